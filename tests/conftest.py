import asyncio
from typing import Callable, List, Optional

import pytest

from bl702dfu.commands import OP_FLASH_ERASE, OP_FLASH_WRITE, OP_SYSTEM_RESET
from bl702dfu.config import BOOTLOADER_MAGIC, LAST_PACKET, UpdateConfig
from bl702dfu.transport import Transport

ACK = bytes([0x4F, 0x4B])
NACK = bytes([0x46, 0x4C])

# Responder: (fake transport, index of the page command within its attempt) -> frame or None
Responder = Callable[["FakeTransport", int], Optional[bytes]]


def always(frame: Optional[bytes]) -> Responder:
    return lambda transport, page_index: frame


class FakeTransport(Transport):
    """
    In-memory transport: reassembles framed commands from written packets and
    answers each program-page command through a responder.
    """

    def __init__(self, responder: Responder = always(ACK)) -> None:
        super().__init__()
        self.responder = responder
        self.connected = False
        self.connects = 0
        self.reconnects: List[float] = []
        self.packets: List[bytes] = []
        self.commands: List[bytes] = []
        self.magic_writes = 0
        self.page_index = 0
        self._partial = bytearray()

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def connect_if_needed(self) -> None:
        if not self.connected:
            self.connects += 1
            self.connected = True

    async def reconnect(self, settle_delay: float) -> None:
        self.reconnects.append(settle_delay)
        self.connected = True
        await asyncio.sleep(0)

    async def disconnect(self) -> None:
        self.connected = False
        self._disconnected_cb(True)

    def drop(self) -> None:
        """Simulate an unexpected link loss reported by the stack."""
        self.connected = False
        asyncio.get_running_loop().call_soon(self._disconnected_cb, False)

    def push(self, frame: bytes) -> None:
        asyncio.get_running_loop().call_soon(self._response_cb, frame)

    async def write_raw(self, data: bytes) -> None:
        data = bytes(data)
        self.packets.append(data)
        await asyncio.sleep(0)
        if data == BOOTLOADER_MAGIC:
            self.magic_writes += 1
            self.page_index = 0
            return
        self._partial += data[1:]
        if data[0] != LAST_PACKET:
            return
        command = bytes(self._partial)
        self._partial.clear()
        self.commands.append(command)
        if command[0] == OP_FLASH_WRITE:
            frame = self.responder(self, self.page_index)
            self.page_index += 1
            if frame is not None:
                self.push(frame)

    def commands_with(self, opcode: int) -> List[bytes]:
        return [c for c in self.commands if c[0] == opcode]

    @property
    def erase_commands(self) -> List[bytes]:
        return self.commands_with(OP_FLASH_ERASE)

    @property
    def page_commands(self) -> List[bytes]:
        return self.commands_with(OP_FLASH_WRITE)

    @property
    def reset_commands(self) -> List[bytes]:
        return self.commands_with(OP_SYSTEM_RESET)


@pytest.fixture
def fast_config() -> UpdateConfig:
    return UpdateConfig(response_timeout=0.05, reconnect_settle=0.0, reset_settle=0.0)


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def firmware() -> bytes:
    return bytes(i & 0xFF for i in range(10000))
