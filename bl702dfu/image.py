"""Firmware image retrieval: a local file or an HTTP(S) download."""
from __future__ import annotations

import logging
import zlib
from pathlib import Path
from typing import Union
from urllib.parse import urlparse

import requests

from .config import HTTP_TIMEOUT_S, MAX_FIRMWARE_SIZE
from .errors import ImageUnavailable

logger = logging.getLogger(__name__)


def is_url(source: Union[str, Path]) -> bool:
    return isinstance(source, str) and urlparse(source).scheme in ("http", "https")


def fetch_firmware_image(url: str, timeout: float = HTTP_TIMEOUT_S) -> bytes:
    logger.debug("Fetching firmware from %s", url)
    try:
        response = requests.get(url, timeout=timeout)
    except requests.RequestException as e:
        raise ImageUnavailable(f"Could not fetch firmware file: {url}: {e}") from e
    if response.status_code != requests.codes.ok:
        raise ImageUnavailable(f"Could not fetch firmware file: {url}. status: {response.status_code}")
    return response.content


def read_firmware_image(path: Union[str, Path]) -> bytes:
    path = Path(path)
    if not path.exists() or not path.is_file():
        raise ImageUnavailable(f"Firmware not found: {path}")
    try:
        return path.read_bytes()
    except OSError as e:
        raise ImageUnavailable(f"Could not read firmware file {path}: {e}") from e


def load_firmware_image(source: Union[str, Path], timeout: float = HTTP_TIMEOUT_S) -> bytes:
    """Return the raw image bytes from ``source``, validated for size."""
    data = fetch_firmware_image(source, timeout) if is_url(source) else read_firmware_image(source)
    total = len(data)
    if total == 0:
        raise ImageUnavailable("Firmware file is empty")
    if total > MAX_FIRMWARE_SIZE:
        raise ImageUnavailable(f"Firmware too large: {total} (max={MAX_FIRMWARE_SIZE})")
    logger.info("Firmware file read: %d bytes, CRC32=0x%08X", total, zlib.crc32(data) & 0xFFFFFFFF)
    return data
