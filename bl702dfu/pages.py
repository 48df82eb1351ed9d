from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import FLASH_PAGE_SIZE
from .log import get_logger

log = get_logger(__name__)


@dataclass(frozen=True)
class Page:
    offset: int
    data: bytes

    def __len__(self) -> int:
        return len(self.data)


class ChunkPlanner:
    """
    Walks a firmware image one flash page at a time.

    The cursor always advances by the full page size, so a trailing partial page
    is immediately followed by end-of-data. ``bytes_read`` counts the bytes
    actually handed out since the last reset.
    """

    def __init__(self, image: bytes, page_size: int = FLASH_PAGE_SIZE) -> None:
        if page_size <= 0:
            raise ValueError("page_size must be positive")
        self._image = bytes(image)
        self.page_size = page_size
        self._cursor = 0
        self.bytes_read = 0

    @property
    def total_bytes(self) -> int:
        return len(self._image)

    @property
    def page_count(self) -> int:
        return -(-self.total_bytes // self.page_size)

    def reset(self) -> None:
        self._cursor = 0
        self.bytes_read = 0

    def next_page(self) -> Optional[Page]:
        if self._cursor >= self.total_bytes:
            return None
        start = self._cursor
        end = min(start + self.page_size, self.total_bytes)
        page = Page(offset=start, data=self._image[start:end])
        self.bytes_read += len(page)
        self._cursor += self.page_size
        log.debug("next_page: [%d, %d) of %d, size=%d", start, end, self.total_bytes, len(page))
        return page
