from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator


class IndentLogger:
    """Logger wrapper that indents messages of nested protocol phases."""

    def __init__(self, logger_obj: logging.Logger) -> None:
        self._logger: logging.Logger = logger_obj
        self._indent: int = 0

    @property
    def name(self) -> str:
        return self._logger.name

    def _fmt(self, msg: str) -> str:
        return ("  " * self._indent) + msg

    def indent(self) -> None:
        self._indent += 1

    def dedent(self) -> None:
        self._indent = max(0, self._indent - 1)

    @contextmanager
    def phase(self, msg: str, *args: Any) -> Iterator[None]:
        self.debug("→ " + msg, *args)
        self.indent()
        try:
            yield
        finally:
            self.dedent()

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._logger.debug(self._fmt(msg), *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._logger.info(self._fmt(msg), *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._logger.warning(self._fmt(msg), *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._logger.error(self._fmt(msg), *args, **kwargs)


def get_logger(name: str) -> IndentLogger:
    return IndentLogger(logging.getLogger(name))
