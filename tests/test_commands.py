import pytest

from bl702dfu.commands import (
    OP_FLASH_ERASE,
    OP_FLASH_WRITE,
    OP_SYSTEM_RESET,
    Bl702CommandSet,
    EraseFlash,
    ProgramPage,
    checksum,
)
from bl702dfu.pages import Page


def test_erase_covers_image_size():
    frame = EraseFlash(0x0, 10000).build()
    assert frame[0] == OP_FLASH_ERASE
    assert frame[2:4] == (8).to_bytes(2, "little")
    assert frame[4:8] == (0).to_bytes(4, "little")
    assert frame[8:12] == (9999).to_bytes(4, "little")
    assert frame[1] == checksum(frame[2:4], frame[4:])


def test_erase_rejects_empty_image():
    with pytest.raises(ValueError):
        EraseFlash(0, 0)


def test_program_page_frame():
    data = bytes(range(256)) * 16
    frame = ProgramPage(0x1000, data).build()
    assert frame[0] == OP_FLASH_WRITE
    assert int.from_bytes(frame[2:4], "little") == 4 + len(data)
    assert frame[4:8] == bytes([0x00, 0x10, 0x00, 0x00])
    assert frame[8:] == data
    assert frame[1] == sum(frame[2:]) & 0xFF


def test_system_reset_frame():
    assert Bl702CommandSet().system_reset() == bytes([OP_SYSTEM_RESET, 0x00, 0x00, 0x00])


def test_command_set_offsets_pages_by_base_address():
    commands = Bl702CommandSet(base_address=0x2000)
    frame = commands.program_page(Page(offset=0x1000, data=b"\x01\x02"))
    assert int.from_bytes(frame[4:8], "little") == 0x3000
    erase = commands.erase_flash(0x100)
    assert int.from_bytes(erase[4:8], "little") == 0x2000
    assert int.from_bytes(erase[8:12], "little") == 0x20FF
