"""Firmware update over BLE for BL702 based devices."""
from .commands import Bl702CommandSet, CommandSet
from .config import UpdateConfig
from .errors import (
    AttemptsExhausted,
    ConnectionFailed,
    ConnectionLost,
    DeviceNotFound,
    DFUError,
    ImageUnavailable,
)
from .framing import fragment
from .image import load_firmware_image
from .orchestrator import UpdateOrchestrator, UpdateOutcome
from .pages import ChunkPlanner, Page
from .progress import UpdateProgress, UpdateStep
from .responses import Response, ResponseAwaiter
from .state import UpdateState
from .transport import BLETransport, Transport

__version__ = "0.1.0"
