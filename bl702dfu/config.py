"""
Protocol constants, exit codes and run-time configuration for the BL702 BLE updater.

The wire constants must match the bootloader exactly; only the timing values in
UpdateConfig are meant to be tuned.
"""
from __future__ import annotations

from dataclasses import dataclass

# ----------------------------
# Wire constants
# ----------------------------
FLASH_PAGE_SIZE = 4096
MAX_PACKET_PAYLOAD = 240

BOOTLOADER_MAGIC = b"BL702BOOT"
ACK_MARKER = 0x4F
RESPONSE_FRAME_LEN = 2

MORE_FOLLOWS = 1
LAST_PACKET = 0

# Nordic UART Service: RX is written by us, TX notifies responses
DEFAULT_SERVICE_UUID = "6e400001-b5a3-f393-e0a9-e50e24dcca9e"
DEFAULT_WRITE_UUID = "6e400002-b5a3-f393-e0a9-e50e24dcca9e"
DEFAULT_NOTIFY_UUID = "6e400003-b5a3-f393-e0a9-e50e24dcca9e"

# ----------------------------
# Timing / retry defaults
# ----------------------------
MAX_ATTEMPTS = 10
RESPONSE_POLL_INTERVAL_S = 0.01
RESPONSE_TIMEOUT_S = 300 * RESPONSE_POLL_INTERVAL_S
RECONNECT_SETTLE_S = 15.0
RESET_SETTLE_S = 0.1

MAX_FIRMWARE_SIZE = 4 * 1024 * 1024
HTTP_TIMEOUT_S = 30.0
SCAN_TIMEOUT_S = 10.0

# ----------------------------
# Exit codes
# ----------------------------
EXIT_SUCCESS = 0
EXIT_GENERIC_ERROR = 1
EXIT_USAGE_ERROR = 2
EXIT_DEVICE_NOT_FOUND = 3
EXIT_IMAGE_UNAVAILABLE = 4
EXIT_CONNECTION_FAILED = 5
EXIT_ATTEMPTS_EXHAUSTED = 6
EXIT_INTERRUPTED = 130


@dataclass
class UpdateConfig:
    """Tunable timing of one update run. Seconds throughout."""

    max_attempts: int = MAX_ATTEMPTS
    response_timeout: float = RESPONSE_TIMEOUT_S
    reconnect_settle: float = RECONNECT_SETTLE_S
    reset_settle: float = RESET_SETTLE_S

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")
        for name in ("response_timeout", "reconnect_settle", "reset_settle"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")

    @property
    def total_tries(self) -> int:
        return self.max_attempts + 1
