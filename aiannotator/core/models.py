"""Data transfer objects shared across the annotation engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

__all__ = [
    "InsertionClassification",
    "TextPosition",
    "ChangeEvent",
    "ClassificationResult",
    "PendingBuffer",
    "LineRange",
    "TextInsert",
    "CommentStyle",
    "count_lines",
]


class InsertionClassification(str, Enum):
    """Outcome of classifying a single insertion."""

    HUMAN = "HUMAN"
    AI_LIKELY = "AI_LIKELY"
    PASTED = "PASTED"
    IGNORED = "IGNORED"


@dataclass(frozen=True)
class TextPosition:
    """Zero-based line and character position inside a document."""

    line: int
    character: int = 0


@dataclass(frozen=True)
class ChangeEvent:
    """One content change reported by the editor for a document."""

    uri: str
    start: TextPosition
    replaced_length: int
    text: str
    timestamp: Optional[float] = None

    @property
    def char_count(self) -> int:
        return len(self.text)

    @property
    def line_count(self) -> int:
        return count_lines(self.text)

    @property
    def end_line(self) -> int:
        """Return the last line touched by the inserted text."""

        return self.start.line + self.text.count("\n")


@dataclass(frozen=True)
class ClassificationResult:
    """Classification emitted for a change or a coalesced group of changes."""

    classification: InsertionClassification
    uri: str
    line: int
    text: str
    reason: str
    end_line: Optional[int] = None
    change_count: int = 1

    @property
    def is_ai_likely(self) -> bool:
        return self.classification is InsertionClassification.AI_LIKELY

    def as_dict(self) -> dict[str, Any]:
        """Expose the result as a serialisable mapping."""

        payload: dict[str, Any] = {
            "classification": self.classification.value,
            "uri": self.uri,
            "line": self.line,
            "chars": len(self.text),
            "reason": self.reason,
            "change_count": self.change_count,
        }
        if self.end_line is not None:
            payload["end_line"] = self.end_line
        return payload


@dataclass
class PendingBuffer:
    """Accumulated rapid changes for one file awaiting a flush decision."""

    uri: str
    key: str
    text: str
    char_count: int
    start_line: int
    end_line: int
    first_seen: float
    last_seen: float
    change_count: int = 1
    replaced_length: int = 0

    @classmethod
    def from_change(cls, key: str, change: ChangeEvent, now: float) -> "PendingBuffer":
        return cls(
            uri=change.uri,
            key=key,
            text=change.text,
            char_count=change.char_count,
            start_line=change.start.line,
            end_line=change.end_line,
            first_seen=now,
            last_seen=now,
            change_count=1,
            replaced_length=change.replaced_length,
        )

    def extend(self, change: ChangeEvent, now: float) -> None:
        """Merge a follow-up change into the buffer."""

        self.text += change.text
        self.char_count += change.char_count
        self.start_line = min(self.start_line, change.start.line)
        self.end_line = max(self.end_line, change.end_line)
        self.last_seen = now
        self.change_count += 1
        self.replaced_length += change.replaced_length

    @property
    def trimmed_length(self) -> int:
        return len(self.text.strip())

    @property
    def is_single_line(self) -> bool:
        return "\n" not in self.text


@dataclass(frozen=True)
class LineRange:
    """Half-open range of document lines, ``end`` is exclusive."""

    start: int
    end: int

    @classmethod
    def empty(cls) -> "LineRange":
        return cls(0, 0)

    @property
    def is_empty(self) -> bool:
        return self.end <= self.start

    def __len__(self) -> int:
        return max(0, self.end - self.start)


@dataclass(frozen=True)
class TextInsert:
    """Single insertion inside an atomic multi-position edit."""

    position: TextPosition
    text: str


@dataclass(frozen=True)
class CommentStyle:
    """Comment syntax used to wrap provenance lines for a language."""

    line_prefix: str
    block_start: Optional[str] = None
    block_end: Optional[str] = None

    @property
    def is_block(self) -> bool:
        return bool(self.block_start and self.block_end)


def count_lines(text: str) -> int:
    """Return the number of editor lines spanned by ``text``."""

    return text.count("\n") + 1
