"""Audit trail of annotation attempts."""

from __future__ import annotations

import json
import logging
from collections import deque
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, ValidationError

__all__ = [
    "AuditOutcome",
    "AnnotationAuditEntry",
    "AnnotationAuditLog",
]

logger = logging.getLogger(__name__)


class AuditOutcome(str, Enum):
    """Result of one annotation attempt."""

    ANNOTATED = "annotated"
    SKIPPED = "skipped"
    FAILED = "failed"


class AnnotationAuditEntry(BaseModel):
    """Audit log entry for a single annotation attempt."""

    timestamp: datetime = Field(default_factory=datetime.now)
    uri: str
    outcome: AuditOutcome
    reason: str = ""
    start_line: Optional[int] = None
    end_line: Optional[int] = None
    employee_id: Optional[str] = None
    tool_name: Optional[str] = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class AnnotationAuditLog:
    """Keep recent audit entries in memory and optionally append them to a file."""

    def __init__(self, log_path: Optional[Union[str, Path]] = None, max_entries: int = 1000) -> None:
        self._entries: deque[AnnotationAuditEntry] = deque(maxlen=max(1, max_entries))
        self._log_path = Path(log_path).expanduser() if log_path else None

    @property
    def log_path(self) -> Optional[Path]:
        return self._log_path

    def record(self, entry: AnnotationAuditEntry) -> None:
        """Store ``entry``; file write failures are logged and ignored."""

        self._entries.append(entry)
        if self._log_path is None:
            return
        try:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            with self._log_path.open("a", encoding="utf-8") as handle:
                handle.write(entry.model_dump_json() + "\n")
        except OSError as exc:
            logger.error("Failed to write audit log: %s", exc)

    def entries(self, limit: Optional[int] = None) -> list[AnnotationAuditEntry]:
        """Return recorded entries, newest last."""

        items = list(self._entries)
        if limit is not None:
            items = items[-limit:] if limit > 0 else []
        return items

    def count(self, outcome: AuditOutcome) -> int:
        return sum(1 for entry in self._entries if entry.outcome is outcome)

    def read_entries(self, limit: int = 1000) -> list[AnnotationAuditEntry]:
        """Read entries back from the log file, skipping malformed lines."""

        if self._log_path is None or not self._log_path.exists():
            return []
        entries: list[AnnotationAuditEntry] = []
        with self._log_path.open("r", encoding="utf-8") as handle:
            for line in handle:
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(AnnotationAuditEntry(**json.loads(line)))
                except (json.JSONDecodeError, ValidationError) as exc:
                    logger.warning("Skipping malformed audit line: %s", exc)
        return entries[-limit:] if limit > 0 else []
