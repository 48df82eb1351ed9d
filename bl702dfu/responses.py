from __future__ import annotations

import asyncio
import enum
from collections import deque
from typing import Deque, Optional

from .config import ACK_MARKER, RESPONSE_FRAME_LEN, RESPONSE_TIMEOUT_S
from .log import IndentLogger, get_logger


class Response(enum.Enum):
    OK = "ok"
    NOK = "nok"
    TIMED_OUT = "timed_out"


_FRAME_ARRIVED = object()
_WAIT_CANCELLED = object()


class ResponseAwaiter:
    """
    Queues response frames from the device and hands them out one wait at a time.

    on_response(), cancel() and clear() must be called on the event loop that runs
    wait_once(); the BLE transport schedules its notifications there. Frames that
    arrive while nobody waits stay queued until consumed or cleared.

    Only one wait may be outstanding: starting a new wait resolves any earlier one
    as NOK, and so does cancel().
    """

    def __init__(self, logger: Optional[IndentLogger] = None) -> None:
        self._logger = logger or get_logger(self.__class__.__name__)
        self._frames: Deque[bytes] = deque()
        self._pending: Optional[asyncio.Future] = None

    @property
    def queued(self) -> int:
        return len(self._frames)

    @property
    def waiting(self) -> bool:
        return self._pending is not None and not self._pending.done()

    @staticmethod
    def classify(frame: bytes) -> Response:
        if len(frame) != RESPONSE_FRAME_LEN:
            return Response.NOK
        if frame[0] != ACK_MARKER:
            return Response.NOK
        return Response.OK

    def on_response(self, data: bytes) -> None:
        self._logger.debug("RAW response len=%d data=%s", len(data), bytes(data).hex())
        self._frames.append(bytes(data))
        if self.waiting:
            self._pending.set_result(_FRAME_ARRIVED)

    def clear(self) -> None:
        self._frames.clear()

    def cancel(self) -> None:
        if self.waiting:
            self._logger.debug("Cancelling outstanding response wait")
            self._pending.set_result(_WAIT_CANCELLED)
        self._pending = None

    async def wait_once(self, timeout: float = RESPONSE_TIMEOUT_S) -> Response:
        self.cancel()
        if not self._frames:
            fut = asyncio.get_running_loop().create_future()
            self._pending = fut
            try:
                outcome = await asyncio.wait_for(fut, timeout=timeout)
            except asyncio.TimeoutError:
                self._logger.warning("Time out. Did not receive response from device")
                return Response.TIMED_OUT
            finally:
                if self._pending is fut:
                    self._pending = None
            if outcome is _WAIT_CANCELLED:
                return Response.NOK
            if not self._frames:
                # woken by a frame that was cleared before we resumed
                return Response.NOK

        frame = self._frames.popleft()
        result = self.classify(frame)
        if result is Response.OK:
            self._logger.debug("Got valid response: %s", frame.hex())
        elif len(frame) != RESPONSE_FRAME_LEN:
            self._logger.warning("Unexpected response length %d: %s", len(frame), frame.hex())
        else:
            self._logger.warning("Response NACK or unknown header 0x%02X", frame[0])
        return result
