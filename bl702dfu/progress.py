from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import Callable, Optional, Tuple

from .state import UpdateState


class UpdateStep(enum.Enum):
    ENTERING_BOOTLOADER = "Entering bootloader"
    ERASING_FLASH = "Erasing flash"
    RECONNECTING = "Reconnecting"
    SENDING_FIRMWARE = "Sending firmware"
    FIRMWARE_SENT = "Firmware sent"
    RESTARTING_SYSTEM = "Restarting system"
    COMPLETE = "Complete"


@dataclass(frozen=True)
class UpdateProgress:
    """Read-only snapshot handed to observers. Never read back by the orchestrator."""

    total_bytes: int = 0
    sent_bytes: int = 0
    steps: Tuple[UpdateStep, ...] = ()
    is_updating: bool = False
    state: UpdateState = UpdateState.IDLE
    attempt: int = 0

    @property
    def current_step(self) -> Optional[UpdateStep]:
        return self.steps[-1] if self.steps else None

    @property
    def percent(self) -> float:
        if not self.total_bytes:
            return 0.0
        return self.sent_bytes * 100.0 / self.total_bytes

    def add_step(self, step: UpdateStep) -> "UpdateProgress":
        return replace(self, steps=self.steps + (step,))

    def with_bytes(self, sent: int, total: int) -> "UpdateProgress":
        return replace(self, sent_bytes=sent, total_bytes=total)


ProgressObserver = Callable[[UpdateProgress], None]
