"""Diagnostics sinks receiving the engine's tagged trace lines."""

from __future__ import annotations

import logging
from collections import deque
from typing import Optional

__all__ = [
    "LoggingDiagnostics",
    "MemoryDiagnostics",
]

_DIAGNOSTICS_LOGGER = "aiannotator.diagnostics"


class LoggingDiagnostics:
    """Forward diagnostic lines to the ``aiannotator.diagnostics`` logger."""

    def __init__(self, logger: Optional[logging.Logger] = None, level: int = logging.DEBUG) -> None:
        self._logger = logger or logging.getLogger(_DIAGNOSTICS_LOGGER)
        self._level = level

    def append_line(self, line: str) -> None:
        self._logger.log(self._level, line)


class MemoryDiagnostics:
    """Keep the most recent diagnostic lines in memory."""

    def __init__(self, max_lines: int = 500) -> None:
        self._lines: deque[str] = deque(maxlen=max(1, max_lines))

    def append_line(self, line: str) -> None:
        self._lines.append(line)

    @property
    def lines(self) -> list[str]:
        return list(self._lines)

    def clear(self) -> None:
        self._lines.clear()

    def __contains__(self, fragment: object) -> bool:
        return isinstance(fragment, str) and any(fragment in line for line in self._lines)
