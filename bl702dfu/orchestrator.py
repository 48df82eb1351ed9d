from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional, Union

from .commands import Bl702CommandSet, CommandSet
from .config import BOOTLOADER_MAGIC, UpdateConfig
from .errors import AttemptsExhausted, DFUError, ImageUnavailable, TransportNok, TransportTimeout
from .framing import fragment, packet_count
from .image import load_firmware_image
from .log import IndentLogger
from .pages import ChunkPlanner, Page
from .progress import ProgressObserver, UpdateProgress, UpdateStep
from .responses import Response, ResponseAwaiter
from .state import AttemptState, UpdateEvent, UpdateState
from .transport import Transport


class AttemptCancelled(DFUError):
    """Leaves the current attempt after stop(); never escapes the run."""


@dataclass(frozen=True)
class UpdateOutcome:
    state: UpdateState
    attempts: int

    @property
    def succeeded(self) -> bool:
        return self.state is UpdateState.COMPLETE

    @property
    def cancelled(self) -> bool:
        return self.state is UpdateState.ABORTED


class UpdateOrchestrator:
    """
    Runs a firmware update over a Transport, retrying whole attempts on failure.

    One attempt is: connect, send the bootloader magic, erase, reconnect, program
    every page (one response per page), reset. A NOK or a timeout on any page ends
    the attempt; the next attempt starts over from the bootloader magic.

    The orchestrator owns the page planner for the whole run. Disconnect
    notifications never touch it; they only cancel the outstanding response wait,
    which makes the current attempt fail and the next one reset the cursor.
    """

    def __init__(
            self,
            transport: Transport,
            commands: Optional[CommandSet] = None,
            config: Optional[UpdateConfig] = None,
            observer: Optional[ProgressObserver] = None,
            logger_obj: Optional[logging.Logger] = None,
    ):
        self.transport = transport
        self.commands = commands or Bl702CommandSet()
        self.config = config or UpdateConfig()
        self.observer = observer
        self.log = IndentLogger(logger_obj or logging.getLogger(self.__class__.__name__))
        self.awaiter = ResponseAwaiter(self.log)
        self.attempts = AttemptState(self.config.max_attempts)
        self.progress = UpdateProgress()
        self._planner: Optional[ChunkPlanner] = None
        self._cancel_requested = False
        self._running = False
        transport.bind(self.awaiter.on_response, self.on_disconnected)

    @property
    def state(self) -> UpdateState:
        return self.attempts.state

    @property
    def is_running(self) -> bool:
        return self._running

    # ----------------------------
    # Progress
    # ----------------------------
    def _publish(self, progress: UpdateProgress) -> None:
        self.progress = progress
        if self.observer is not None:
            self.observer(progress)

    def _step(self, step: UpdateStep) -> None:
        self.log.debug("Step: %s", step.value)
        self._publish(self.progress.add_step(step))

    def _fire(self, event: UpdateEvent) -> None:
        state = self.attempts.fire(event)
        self.log.debug("State %s after %s", state.name, event.name)
        self._publish(replace(self.progress, state=state))

    # ----------------------------
    # External notifications
    # ----------------------------
    def stop(self) -> None:
        """Cooperative cancel: the run ends before its next attempt or page."""
        self.log.info("Update cancellation requested")
        self._cancel_requested = True
        self.awaiter.cancel()
        self.awaiter.clear()
        self._publish(UpdateProgress(state=self.state, attempt=self.attempts.attempt))

    def on_disconnected(self, user_initiated: bool) -> None:
        self.log.info("Device disconnected: user initiated: %s", user_initiated)
        if user_initiated and self._running:
            self.stop()
            return
        self.awaiter.cancel()
        self.awaiter.clear()

    # ----------------------------
    # Run
    # ----------------------------
    async def update_from(self, source: Union[str, Path]) -> UpdateOutcome:
        image = await asyncio.to_thread(load_firmware_image, source)
        return await self.start_update(image)

    async def start_update(self, image: bytes) -> UpdateOutcome:
        if self._running:
            raise RuntimeError("An update is already running")
        self._running = True
        try:
            return await self._run(image)
        finally:
            self._running = False

    async def _run(self, image: bytes) -> UpdateOutcome:
        if not image:
            raise ImageUnavailable("Firmware image is empty")
        self._cancel_requested = False
        self.awaiter.cancel()
        self.awaiter.clear()
        self.attempts = AttemptState(self.config.max_attempts)
        self._planner = ChunkPlanner(image)
        total = self._planner.total_bytes
        self.progress = UpdateProgress(total_bytes=total)
        self._fire(UpdateEvent.IMAGE_LOADED)
        self.log.info("Firmware image: %d bytes in %d pages", total, self._planner.page_count)

        try:
            attempt = 0
            while not self._cancel_requested:
                self.log.info("Attempt number: %d/%d", attempt + 1, self.config.total_tries)
                self.attempts.begin_attempt(attempt)
                self._publish(UpdateProgress(
                    total_bytes=total, is_updating=True, state=self.state, attempt=attempt,
                ))
                self.log.indent()
                try:
                    await self._run_attempt()
                except DFUError as e:
                    if self._cancel_requested:
                        self.log.info("Attempt %d cancelled", attempt + 1)
                        break
                    self.log.warning("Attempt %d failed: %s", attempt + 1, e)
                else:
                    self.attempts.success = True
                    break
                finally:
                    self.log.dedent()
                self._fire(UpdateEvent.ATTEMPT_FAILED)
                if not self.attempts.can_retry:
                    break
                attempt += 1
        except asyncio.CancelledError:
            self._fire(UpdateEvent.CANCELLED)
            self._publish(replace(self.progress, is_updating=False))
            raise

        tries = self.attempts.tries
        if self.attempts.success:
            self._publish(replace(self.progress, is_updating=False))
            self.log.info("Firmware update complete after %d attempt(s)", tries)
            return UpdateOutcome(UpdateState.COMPLETE, tries)
        if self._cancel_requested:
            self._fire(UpdateEvent.CANCELLED)
            self._publish(replace(self.progress, is_updating=False))
            return UpdateOutcome(UpdateState.ABORTED, tries)

        self._publish(replace(self.progress, is_updating=False))
        self.log.error("Giving up after %d attempts", tries)
        raise AttemptsExhausted(tries)

    async def _run_attempt(self) -> None:
        planner = self._planner
        await self.transport.connect_if_needed()

        await self._enter_bootloader()
        self._raise_if_cancelled()
        self._fire(UpdateEvent.BOOTLOADER_ENTERED)

        await self._erase_flash(planner.total_bytes)
        self._raise_if_cancelled()
        self._fire(UpdateEvent.FLASH_ERASED)

        self._step(UpdateStep.RECONNECTING)
        await self.transport.reconnect(self.config.reconnect_settle)
        self._raise_if_cancelled()
        self._fire(UpdateEvent.RECONNECTED)

        self._step(UpdateStep.SENDING_FIRMWARE)
        planner.reset()
        response = await self._transfer_pages(planner)
        if response is Response.TIMED_OUT:
            raise TransportTimeout(f"No response within {self.config.response_timeout:.2f}s")
        if response is not Response.OK:
            raise TransportNok("Page rejected or response wait cancelled")
        self.log.info("Firmware sent")
        self._fire(UpdateEvent.PAGES_SENT)
        self._step(UpdateStep.FIRMWARE_SENT)

        await self._system_reset()
        self._fire(UpdateEvent.RESET_DONE)
        self._step(UpdateStep.COMPLETE)

    def _raise_if_cancelled(self) -> None:
        if self._cancel_requested:
            raise AttemptCancelled("Update cancelled")

    # ----------------------------
    # Protocol steps
    # ----------------------------
    async def _write_command(self, command: bytes) -> None:
        for packet in fragment(command):
            await self.transport.write_raw(packet)

    async def _enter_bootloader(self) -> None:
        self._step(UpdateStep.ENTERING_BOOTLOADER)
        with self.log.phase("Entering boot loader"):
            await self.transport.write_raw(BOOTLOADER_MAGIC)

    async def _erase_flash(self, image_size: int) -> None:
        self._step(UpdateStep.ERASING_FLASH)
        with self.log.phase("Erasing flash (%d bytes)", image_size):
            self.awaiter.clear()
            await self._write_command(self.commands.erase_flash(image_size))

    async def _send_page(self, page: Page) -> Response:
        self.awaiter.clear()
        command = self.commands.program_page(page)
        self.log.debug(
            "Transferring page @0x%06X: %d bytes in %d packets", page.offset, len(command), packet_count(len(command))
        )
        await self._write_command(command)
        if self._cancel_requested:
            return Response.NOK
        return await self.awaiter.wait_once(self.config.response_timeout)

    async def _transfer_pages(self, planner: ChunkPlanner) -> Response:
        response = Response.NOK
        page = planner.next_page()
        while page is not None:
            if self._cancel_requested:
                return Response.NOK
            response = await self._send_page(page)
            if response is not Response.OK:
                return response
            self._publish(self.progress.with_bytes(planner.bytes_read, planner.total_bytes))
            self.log.debug("%d/%d bytes", planner.bytes_read, planner.total_bytes)
            page = planner.next_page()
        return response

    async def _system_reset(self) -> None:
        self._step(UpdateStep.RESTARTING_SYSTEM)
        with self.log.phase("Perform system reset"):
            await self._write_command(self.commands.system_reset())
            await asyncio.sleep(self.config.reset_settle)
