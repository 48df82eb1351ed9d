from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.exc import BleakCharacteristicNotFoundError, BleakError

from .config import (
    DEFAULT_NOTIFY_UUID,
    DEFAULT_WRITE_UUID,
    MAX_PACKET_PAYLOAD,
    SCAN_TIMEOUT_S,
)
from .errors import ConnectionFailed, ConnectionLost, DeviceNotFound
from .log import IndentLogger

ResponseCallback = Callable[[bytes], None]
DisconnectCallback = Callable[[bool], None]

ATT_HEADER_LEN = 3


def _noop_response(data: bytes) -> None:
    pass


def _noop_disconnect(user_initiated: bool) -> None:
    pass


class Transport:
    """
    What the update orchestrator needs from a byte transport.

    ``write_raw`` returns only once the write has been confirmed as delivered.
    Inbound frames and disconnects are reported through the callbacks given to
    ``bind``, which must be invoked on the orchestrator's event loop.
    """

    def __init__(self) -> None:
        self._response_cb: ResponseCallback = _noop_response
        self._disconnected_cb: DisconnectCallback = _noop_disconnect

    def bind(self, on_response: ResponseCallback, on_disconnected: DisconnectCallback) -> None:
        self._response_cb = on_response
        self._disconnected_cb = on_disconnected

    @property
    def is_connected(self) -> bool:
        raise NotImplementedError

    async def connect_if_needed(self) -> None:
        raise NotImplementedError

    async def reconnect(self, settle_delay: float) -> None:
        raise NotImplementedError

    async def write_raw(self, data: bytes) -> None:
        raise NotImplementedError

    async def disconnect(self) -> None:
        raise NotImplementedError


# ----------------------------
# BLE implementation (bleak)
# ----------------------------
class BLETransport(Transport):
    """
    Drives a UART-style GATT service: commands go to the write characteristic,
    responses arrive as notifications on the notify characteristic.

    Thread Safety:
    - Bleak may invoke _on_notification() and _on_disconnect() outside the loop
    - Both marshal into the orchestrator's loop with call_soon_threadsafe()
    - Disconnects we cause ourselves during reconnect() are not reported
    """

    def __init__(
            self,
            device: Any,
            write_uuid: str = DEFAULT_WRITE_UUID,
            notify_uuid: str = DEFAULT_NOTIFY_UUID,
            loop: Optional[asyncio.AbstractEventLoop] = None,
            logger: Optional[IndentLogger] = None,
    ) -> None:
        super().__init__()
        self.device = device
        self.write_uuid = write_uuid
        self.notify_uuid = notify_uuid
        self._loop = loop
        self._client: Optional[BleakClient] = None
        self._planned_disconnect = False
        self._user_disconnect = False
        self._logger: IndentLogger = logger or IndentLogger(logging.getLogger("BLETransport"))

    @staticmethod
    async def scan_for_device_by_name(name: str, timeout: float = SCAN_TIMEOUT_S) -> BLEDevice:
        device = await BleakScanner.find_device_by_filter(
            lambda d, adv: d.name == name or adv.local_name == name, timeout=timeout
        )
        if device is None:
            raise DeviceNotFound(f"Device named '{name}' not found")
        return device

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    @property
    def _device_label(self) -> str:
        return getattr(self.device, "address", str(self.device))

    async def connect_if_needed(self) -> None:
        if self.is_connected:
            return
        await self._connect()

    async def _connect(self) -> None:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        self._logger.debug("Connecting to device %s", self._device_label)
        self._user_disconnect = False
        self._planned_disconnect = False
        self._client = BleakClient(self.device, disconnected_callback=self._on_disconnect)
        try:
            await self._client.connect()
            max_write = self._client.mtu_size - ATT_HEADER_LEN
            if max_write < MAX_PACKET_PAYLOAD + 1:
                self._logger.warning(
                    "Negotiated MTU %d too small for %d byte packets", self._client.mtu_size, MAX_PACKET_PAYLOAD + 1
                )
            await self._client.start_notify(self.notify_uuid, self._on_notification)
        except BleakCharacteristicNotFoundError as e:
            await self._safe_disconnect()
            short_uuid = self.notify_uuid.split("-")[0]
            raise ConnectionFailed(
                f"Characteristic ({short_uuid}) not found on device {self._device_label}"
            ) from e
        except Exception as e:
            await self._safe_disconnect()
            raise ConnectionFailed(f"Failed to connect: {e}") from e
        self._logger.debug("Connected (MTU=%d)", self._client.mtu_size)

    async def _safe_disconnect(self) -> None:
        """Disconnect without raising - for cleanup after connection failures."""
        if not self._client:
            return
        self._planned_disconnect = True
        try:
            if self._client.is_connected:
                await asyncio.wait_for(self._client.disconnect(), timeout=0.5)
        except (asyncio.TimeoutError, BleakError, OSError):
            self._logger.debug("disconnect failed (ignored)")
        finally:
            self._client = None

    async def _close(self) -> None:
        if not self._client:
            return
        try:
            if self._client.is_connected:
                try:
                    await asyncio.wait_for(self._client.stop_notify(self.notify_uuid), timeout=0.5)
                except (asyncio.TimeoutError, BleakError, OSError):
                    self._logger.debug("stop_notify failed (ignored)")
                try:
                    await asyncio.wait_for(self._client.disconnect(), timeout=0.5)
                except (asyncio.TimeoutError, BleakError, OSError):
                    self._logger.debug("disconnect failed (ignored)")
        finally:
            self._client = None

    async def reconnect(self, settle_delay: float) -> None:
        self._logger.debug("Reconnecting (settle %.1fs)", settle_delay)
        self._planned_disconnect = True
        await self._close()
        await asyncio.sleep(settle_delay)
        self._planned_disconnect = False
        await self._connect()

    async def disconnect(self) -> None:
        """User-initiated disconnect; reported to the bound callback as such."""
        self._user_disconnect = self.is_connected
        await self._close()

    async def write_raw(self, data: bytes) -> None:
        if not self.is_connected:
            raise ConnectionLost("Not connected")
        try:
            await self._client.write_gatt_char(self.write_uuid, data, response=True)
        except (BleakError, OSError, asyncio.TimeoutError) as e:
            raise ConnectionLost(f"Device disconnected: {e}") from e

    # called by Bleak, possibly on another thread; adapt into loop
    def _on_notification(self, sender: Any, data: bytearray) -> None:
        try:
            self._loop.call_soon_threadsafe(self._response_cb, bytes(data))
        except RuntimeError:
            self._logger.error("Failed scheduling notification callback", exc_info=True)

    def _on_disconnect(self, client: Any) -> None:
        if self._planned_disconnect:
            self._planned_disconnect = False
            self._logger.debug("Planned disconnect observed")
            return
        user_initiated = self._user_disconnect
        self._user_disconnect = False
        try:
            self._loop.call_soon_threadsafe(self._disconnected_cb, user_initiated)
        except RuntimeError:
            self._logger.error("Failed scheduling disconnected callback", exc_info=True)
