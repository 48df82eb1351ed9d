"""
Packet framing for commands sent over the BLE write characteristic.

Each packet is one continuation byte followed by up to MAX_PACKET_PAYLOAD command
bytes. The continuation byte is LAST_PACKET when the bytes still unsent before the
packet fit into it, MORE_FOLLOWS otherwise.
"""
from __future__ import annotations

from typing import Iterator

from .config import LAST_PACKET, MAX_PACKET_PAYLOAD, MORE_FOLLOWS


def fragment(command: bytes, payload_size: int = MAX_PACKET_PAYLOAD) -> Iterator[bytes]:
    """Yield the transport packets carrying ``command``, in order.

    A zero-length command yields nothing.
    """
    if payload_size <= 0:
        raise ValueError("payload_size must be positive")
    data = bytes(command)
    total = len(data)
    sent = 0
    while sent < total:
        remaining = total - sent
        flag = LAST_PACKET if remaining <= payload_size else MORE_FOLLOWS
        take = min(payload_size, remaining)
        yield bytes([flag]) + data[sent:sent + take]
        sent += take


def packet_count(command_len: int, payload_size: int = MAX_PACKET_PAYLOAD) -> int:
    return -(-command_len // payload_size)
