"""Console log formatting."""

from __future__ import annotations

import logging
import os
import sys
from typing import IO, Any


def _sgr(code: str) -> str:
    return f"\033[{code}m"


class ColoredFormatter(logging.Formatter):
    """Colours the level name and dims the logger name on a terminal.

    ``stream`` should be the handler's stream; stderr is assumed otherwise.
    Setting ``NO_COLOR`` turns colour off everywhere.
    """

    COLORS: dict[int, str] = {
        level: _sgr(code)
        for level, code in (
            (logging.DEBUG, "36"),
            (logging.INFO, "32"),
            (logging.WARNING, "33"),
            (logging.ERROR, "31"),
            (logging.CRITICAL, "1;31"),
        )
    }
    DIM = _sgr("2")
    RESET = _sgr("0")

    def __init__(self, *args: Any, stream: IO[str] | None = None, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self._stream = stream

    def _is_terminal(self) -> bool:
        if "NO_COLOR" in os.environ:
            return False
        isatty = getattr(self._stream or sys.stderr, "isatty", None)
        return bool(isatty and isatty())

    def _paint(self, text: str, color: str) -> str:
        return f"{color}{text}{self.RESET}" if color else text

    def format(self, record: logging.LogRecord) -> str:
        if not self._is_terminal():
            return super().format(record)
        # Other handlers share the record, so colour a copy.
        painted = logging.makeLogRecord(record.__dict__)
        painted.levelname = self._paint(record.levelname, self.COLORS.get(record.levelno, ""))
        painted.name = self._paint(record.name, self.DIM)
        return super().format(painted)
