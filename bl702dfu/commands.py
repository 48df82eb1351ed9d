"""
Command payloads understood by the BL702 bootloader.

Frames follow the ISP layout::

    opcode(1) | checksum(1) | length(2, LE) | payload

where checksum is the low byte of the sum over the length bytes and the payload.
The encoding is kept behind ``CommandSet`` so a device with a different command
set can be driven by injecting another implementation into the orchestrator.
"""
from __future__ import annotations

from dataclasses import dataclass

from .pages import Page

OP_SYSTEM_RESET = 0x21
OP_FLASH_ERASE = 0x30
OP_FLASH_WRITE = 0x31

DEFAULT_FLASH_BASE = 0x00000000


def checksum(length: bytes, payload: bytes) -> int:
    return sum(length + payload) & 0xFF


@dataclass
class IspCommand:
    opcode: int
    name: str

    def payload(self) -> bytes:
        raise NotImplementedError

    def build(self) -> bytes:
        body = self.payload()
        if len(body) > 0xFFFF:
            raise ValueError(f"{self.name} payload too long: {len(body)}")
        length = len(body).to_bytes(2, "little")
        return bytes([self.opcode, checksum(length, body)]) + length + body


class EraseFlash(IspCommand):
    def __init__(self, start: int, size: int):
        super().__init__(OP_FLASH_ERASE, "FLASH_ERASE")
        if size <= 0:
            raise ValueError("erase size must be positive")
        self.start = start
        self.size = size

    def payload(self) -> bytes:
        end = self.start + self.size - 1
        return self.start.to_bytes(4, "little") + end.to_bytes(4, "little")


class ProgramPage(IspCommand):
    def __init__(self, address: int, data: bytes):
        super().__init__(OP_FLASH_WRITE, "FLASH_WRITE")
        self.address = address
        self.data = bytes(data)

    def payload(self) -> bytes:
        return self.address.to_bytes(4, "little") + self.data


class SystemReset(IspCommand):
    def __init__(self):
        super().__init__(OP_SYSTEM_RESET, "SYSTEM_RESET")

    def payload(self) -> bytes:
        return b""


class CommandSet:
    """Builds the raw command bytes for each protocol step."""

    def erase_flash(self, image_size: int) -> bytes:
        raise NotImplementedError

    def program_page(self, page: Page) -> bytes:
        raise NotImplementedError

    def system_reset(self) -> bytes:
        raise NotImplementedError


class Bl702CommandSet(CommandSet):
    def __init__(self, base_address: int = DEFAULT_FLASH_BASE) -> None:
        self.base_address = base_address

    def erase_flash(self, image_size: int) -> bytes:
        return EraseFlash(self.base_address, image_size).build()

    def program_page(self, page: Page) -> bytes:
        return ProgramPage(self.base_address + page.offset, page.data).build()

    def system_reset(self) -> bytes:
        return SystemReset().build()
