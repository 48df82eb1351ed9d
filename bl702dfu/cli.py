"""
BL702 BLE firmware uploader.

Puts the device into its bootloader, erases flash, programs the image page by page
and resets the device, retrying the whole sequence on failure.

Usage:
    bl702-dfu firmware.bin -d <address> [-v]
    bl702-dfu http://host/firmwarewbootheader.bin -n "Robot"
"""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Any, List, Optional

from .config import (
    DEFAULT_NOTIFY_UUID,
    DEFAULT_WRITE_UUID,
    EXIT_GENERIC_ERROR,
    EXIT_INTERRUPTED,
    EXIT_SUCCESS,
    EXIT_USAGE_ERROR,
    MAX_ATTEMPTS,
    RECONNECT_SETTLE_S,
    RESPONSE_TIMEOUT_S,
    SCAN_TIMEOUT_S,
    UpdateConfig,
)
from .errors import DFUError
from .image import is_url
from .log import IndentLogger
from .orchestrator import UpdateOrchestrator
from .progress import UpdateProgress
from .transport import BLETransport

logger = logging.getLogger("bl702dfu.cli")


class ConsoleProgress:
    """Prints step changes and page progress to stdout."""

    def __init__(self, stream: Any = None) -> None:
        self._stream = stream or sys.stdout
        self._last_step = None
        self._last_sent = 0
        self._last_attempt = -1

    def __call__(self, progress: UpdateProgress) -> None:
        if progress.is_updating and progress.attempt != self._last_attempt:
            self._last_attempt = progress.attempt
            self._last_step = None
            self._last_sent = 0
            if progress.attempt:
                self._print(f"Retrying (attempt {progress.attempt + 1})...")
        step = progress.current_step
        if step is not None and step is not self._last_step:
            self._last_step = step
            self._print(f"{step.value}...")
        if progress.sent_bytes != self._last_sent and progress.sent_bytes:
            self._last_sent = progress.sent_bytes
            self._print(f"  {progress.sent_bytes:,}/{progress.total_bytes:,} bytes ({progress.percent:.0f}%)")

    def _print(self, msg: str) -> None:
        print(msg, file=self._stream, flush=True)


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="BL702 BLE firmware uploader",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s firmware.bin -d E20E664A-4716-ABA3-ABC6-B9A0329B5B2E
  %(prog)s http://example.com/firmwarewbootheader.bin -n "Robot"
  export BLE_DEVICE_ADDRESS=A4:CF:12:XX:XX:XX && %(prog)s firmware.bin
"""
    )
    p.add_argument("firmware", help="Path or http(s) URL of the firmware image")

    device_group = p.add_mutually_exclusive_group(required=not os.environ.get("BLE_DEVICE_ADDRESS"))
    device_group.add_argument("-d", "--device", dest="device", help="BLE device address")
    device_group.add_argument("-n", "--name", dest="name", help="BLE device name (scan)")

    p.add_argument("--attempts", type=int, default=MAX_ATTEMPTS, help="Retries after the first try")
    p.add_argument("--response-timeout", type=float, default=RESPONSE_TIMEOUT_S, help="Seconds to wait per page ack")
    p.add_argument("--reconnect-delay", type=float, default=RECONNECT_SETTLE_S, help="Settle seconds after erase")
    p.add_argument("--scan-timeout", type=float, default=SCAN_TIMEOUT_S, help="Seconds to scan for --name")
    p.add_argument("--write-uuid", default=DEFAULT_WRITE_UUID, help="Characteristic commands are written to")
    p.add_argument("--notify-uuid", default=DEFAULT_NOTIFY_UUID, help="Characteristic responses arrive on")
    p.add_argument("-v", "--verbose", action="store_true", help="Verbose (console output)")
    p.add_argument("--log-level", choices=["debug", "info", "warning", "error"], default="warning", help="Logging level")
    return p


def validate_args(args: argparse.Namespace) -> Optional[str]:
    """Return an error message for invalid arguments, None when they are usable."""
    device_address = (args.device or os.environ.get("BLE_DEVICE_ADDRESS") or "").strip()
    device_name = (args.name or "").strip()
    if not device_address and not device_name:
        return "Device required (address or name)."
    if args.attempts < 0:
        return "--attempts must be >= 0"
    if args.response_timeout <= 0:
        return "--response-timeout must be > 0"
    if args.reconnect_delay < 0:
        return "--reconnect-delay must be >= 0"
    if not is_url(args.firmware) and not os.path.isfile(args.firmware):
        return f"Firmware file not found: {args.firmware}"
    return None


def normalize_address(address: str) -> str:
    """Format 32 hex digit CoreBluetooth identifiers as a UUID; leave MACs alone."""
    cleaned = address.replace(":", "").replace("-", "")
    if len(cleaned) == 32:
        return f"{cleaned[0:8]}-{cleaned[8:12]}-{cleaned[12:16]}-{cleaned[16:20]}-{cleaned[20:32]}".upper()
    return address


async def run_upload_with_args(args: argparse.Namespace) -> int:
    level = {"debug": logging.DEBUG, "info": logging.INFO, "warning": logging.WARNING, "error": logging.ERROR}[args.log_level]
    if args.verbose:
        level = logging.DEBUG
    fmt = "%(asctime)s %(levelname)s [%(name)s] %(message)s" if level <= logging.DEBUG else "%(levelname)s: %(message)s"
    # root stays at WARNING so bleak's own logging stays quiet
    logging.basicConfig(level=logging.WARNING, format=fmt, stream=sys.stdout)
    uploader_logger = logging.getLogger("bl702dfu.UpdateOrchestrator")
    logging.getLogger("bl702dfu").setLevel(level)

    error = validate_args(args)
    if error:
        logger.error(error)
        return EXIT_USAGE_ERROR

    config = UpdateConfig(
        max_attempts=args.attempts,
        response_timeout=args.response_timeout,
        reconnect_settle=args.reconnect_delay,
    )

    try:
        if args.name:
            print(f"Scanning for {args.name}...", flush=True)
            device: Any = await BLETransport.scan_for_device_by_name(args.name.strip(), timeout=args.scan_timeout)
        else:
            device = normalize_address((args.device or os.environ.get("BLE_DEVICE_ADDRESS")).strip())

        transport = BLETransport(
            device,
            write_uuid=args.write_uuid,
            notify_uuid=args.notify_uuid,
            loop=asyncio.get_running_loop(),
            logger=IndentLogger(logging.getLogger("bl702dfu.BLETransport")),
        )
        orchestrator = UpdateOrchestrator(
            transport,
            config=config,
            observer=ConsoleProgress(),
            logger_obj=uploader_logger,
        )
        try:
            outcome = await orchestrator.update_from(args.firmware)
        finally:
            await transport.disconnect()

        if outcome.cancelled:
            print("Update cancelled", file=sys.stderr, flush=True)
            return EXIT_INTERRUPTED
        print(f"✓ Firmware update complete ({outcome.attempts} attempt(s))", flush=True)
        return EXIT_SUCCESS
    except DFUError as e:
        print(f"ERROR: {e}", file=sys.stderr, flush=True)
        return e.exit_code
    except (KeyboardInterrupt, asyncio.CancelledError):
        print("ERROR: Interrupted by user", file=sys.stderr, flush=True)
        return EXIT_INTERRUPTED
    except Exception as e:
        print(f"ERROR: Unexpected error during update: {e}", file=sys.stderr, flush=True)
        logger.exception("Full traceback:")
        return EXIT_GENERIC_ERROR


def main(argv: Optional[List[str]] = None) -> int:
    argv = argv if argv is not None else sys.argv[1:]
    args = build_arg_parser().parse_args(argv)
    try:
        return asyncio.run(run_upload_with_args(args))
    except KeyboardInterrupt:
        logger.error("Interrupted by user")
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    raise SystemExit(main())
