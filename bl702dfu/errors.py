from __future__ import annotations

from .config import (
    EXIT_ATTEMPTS_EXHAUSTED,
    EXIT_CONNECTION_FAILED,
    EXIT_DEVICE_NOT_FOUND,
    EXIT_GENERIC_ERROR,
    EXIT_IMAGE_UNAVAILABLE,
)


class DFUError(RuntimeError):
    exit_code = EXIT_GENERIC_ERROR


class ImageUnavailable(DFUError):
    """Firmware image could not be read or fetched. Fatal before any attempt."""
    exit_code = EXIT_IMAGE_UNAVAILABLE


class DeviceNotFound(DFUError):
    exit_code = EXIT_DEVICE_NOT_FOUND


class ConnectionFailed(DFUError):
    exit_code = EXIT_CONNECTION_FAILED


class ConnectionLost(DFUError):
    exit_code = EXIT_CONNECTION_FAILED


class TransportTimeout(DFUError):
    pass


class TransportNok(DFUError):
    pass


class AttemptsExhausted(DFUError):
    exit_code = EXIT_ATTEMPTS_EXHAUSTED

    def __init__(self, attempts: int) -> None:
        super().__init__(f"Firmware update failed after {attempts} attempts")
        self.attempts = attempts


class IllegalTransition(RuntimeError):
    """Raised when the update state machine is driven with an event it does not accept."""

    def __init__(self, state, event) -> None:
        super().__init__(f"Illegal transition: {state.name} on {event.name}")
        self.state = state
        self.event = event
