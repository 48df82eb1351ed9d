"""
Update state machine.

The orchestrator never assigns a state directly; it feeds events through
``transition`` so illegal orderings surface as IllegalTransition.
"""
from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, Tuple

from .config import MAX_ATTEMPTS
from .errors import IllegalTransition


class UpdateState(enum.Enum):
    IDLE = enum.auto()
    IMAGE_LOADED = enum.auto()
    ENTERING_BOOTLOADER = enum.auto()
    ERASING_FLASH = enum.auto()
    RECONNECTING = enum.auto()
    TRANSFERRING_PAGES = enum.auto()
    SYSTEM_RESET = enum.auto()
    COMPLETE = enum.auto()
    FAILED = enum.auto()
    ABORTED = enum.auto()


class UpdateEvent(enum.Enum):
    IMAGE_LOADED = enum.auto()
    ATTEMPT_STARTED = enum.auto()
    BOOTLOADER_ENTERED = enum.auto()
    FLASH_ERASED = enum.auto()
    RECONNECTED = enum.auto()
    PAGES_SENT = enum.auto()
    RESET_DONE = enum.auto()
    ATTEMPT_FAILED = enum.auto()
    CANCELLED = enum.auto()


_IN_ATTEMPT = (
    UpdateState.ENTERING_BOOTLOADER,
    UpdateState.ERASING_FLASH,
    UpdateState.RECONNECTING,
    UpdateState.TRANSFERRING_PAGES,
    UpdateState.SYSTEM_RESET,
)

_TRANSITIONS: Dict[Tuple[UpdateState, UpdateEvent], UpdateState] = {
    (UpdateState.IDLE, UpdateEvent.IMAGE_LOADED): UpdateState.IMAGE_LOADED,
    (UpdateState.IMAGE_LOADED, UpdateEvent.ATTEMPT_STARTED): UpdateState.ENTERING_BOOTLOADER,
    (UpdateState.FAILED, UpdateEvent.ATTEMPT_STARTED): UpdateState.ENTERING_BOOTLOADER,
    (UpdateState.ENTERING_BOOTLOADER, UpdateEvent.BOOTLOADER_ENTERED): UpdateState.ERASING_FLASH,
    (UpdateState.ERASING_FLASH, UpdateEvent.FLASH_ERASED): UpdateState.RECONNECTING,
    (UpdateState.RECONNECTING, UpdateEvent.RECONNECTED): UpdateState.TRANSFERRING_PAGES,
    (UpdateState.TRANSFERRING_PAGES, UpdateEvent.PAGES_SENT): UpdateState.SYSTEM_RESET,
    (UpdateState.SYSTEM_RESET, UpdateEvent.RESET_DONE): UpdateState.COMPLETE,
}
_TRANSITIONS.update({(s, UpdateEvent.ATTEMPT_FAILED): UpdateState.FAILED for s in _IN_ATTEMPT})
_TRANSITIONS.update({(s, UpdateEvent.CANCELLED): UpdateState.ABORTED for s in UpdateState})


def transition(state: UpdateState, event: UpdateEvent) -> UpdateState:
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise IllegalTransition(state, event) from None


@dataclass
class AttemptState:
    """Bookkeeping of one update run: attempt counter, FSM state and outcome."""

    max_attempts: int = MAX_ATTEMPTS
    attempt: int = 0
    tries: int = 0
    state: UpdateState = UpdateState.IDLE
    success: bool = False

    def fire(self, event: UpdateEvent) -> UpdateState:
        self.state = transition(self.state, event)
        return self.state

    def begin_attempt(self, attempt: int) -> None:
        if attempt > self.max_attempts:
            raise ValueError(f"attempt {attempt} beyond limit {self.max_attempts}")
        self.attempt = attempt
        self.tries = attempt + 1
        self.fire(UpdateEvent.ATTEMPT_STARTED)

    @property
    def can_retry(self) -> bool:
        return self.attempt < self.max_attempts
