import pytest

from bl702dfu.config import LAST_PACKET, MAX_PACKET_PAYLOAD, MORE_FOLLOWS
from bl702dfu.framing import fragment, packet_count


@pytest.mark.parametrize("length", [1, 239, 240, 241, 480, 481, 4100])
def test_payloads_reassemble_command(length):
    command = bytes((i * 7) & 0xFF for i in range(length))
    packets = list(fragment(command))
    assert len(packets) == packet_count(length)
    assert b"".join(p[1:] for p in packets) == command
    assert [p[0] for p in packets] == [MORE_FOLLOWS] * (len(packets) - 1) + [LAST_PACKET]
    assert all(len(p) <= MAX_PACKET_PAYLOAD + 1 for p in packets)


def test_empty_command_yields_nothing():
    assert list(fragment(b"")) == []


def test_exactly_one_payload_is_a_single_last_packet():
    packets = list(fragment(b"\xAA" * 240))
    assert len(packets) == 1
    assert packets[0][0] == LAST_PACKET
    assert len(packets[0]) == 241


def test_500_byte_command():
    packets = list(fragment(bytes(500)))
    assert [len(p) - 1 for p in packets] == [240, 240, 20]
    assert [p[0] for p in packets] == [1, 1, 0]


def test_fragment_is_lazy_and_single_use():
    gen = fragment(b"\x01" * 300)
    assert next(gen)[0] == MORE_FOLLOWS
    assert next(gen) == b"\x00" + b"\x01" * 60
    with pytest.raises(StopIteration):
        next(gen)


def test_rejects_non_positive_payload_size():
    with pytest.raises(ValueError):
        list(fragment(b"abc", payload_size=0))
