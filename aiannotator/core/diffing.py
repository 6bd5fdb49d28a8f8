"""Locate the block of lines that is new relative to a snapshot."""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Optional, Sequence

from .markers import is_provenance_line
from .models import LineRange

__all__ = ["find_new_range", "split_lines"]

logger = logging.getLogger(__name__)

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


def split_lines(text: str) -> list[str]:
    """Split ``text`` on editor line breaks without a trailing empty entry.

    Only CR, LF and CRLF end a line, so form feeds and Unicode separators
    stay inside the line the way editors number them.
    """

    if not text:
        return []
    lines = _LINE_BREAK.split(text)
    if lines[-1] == "":
        lines.pop()
    return lines


def find_new_range(
    current_text: str,
    snapshot_text: Optional[str],
    inserted_text: str = "",
) -> LineRange:
    """Return the line range present in ``current_text`` but not in the snapshot.

    A blank snapshot makes the whole file new. A ``None`` snapshot skips the
    diff and only searches for ``inserted_text``. An empty range means there
    is nothing to annotate.
    """

    lines = split_lines(current_text)

    if snapshot_text is not None and not snapshot_text.strip():
        if not current_text.strip():
            return LineRange.empty()
        return LineRange(0, len(lines))

    if snapshot_text is not None:
        found = _diff_range(lines, split_lines(snapshot_text))
        if not found.is_empty:
            return found
        logger.debug("Snapshot diff found no new lines, searching for inserted text")

    return _search_range(lines, inserted_text)


def _diff_range(lines: Sequence[str], old_lines: Sequence[str]) -> LineRange:
    remaining = Counter(_content_lines(old_lines))
    first = -1
    last = -1
    for index, line in enumerate(lines):
        trimmed = line.strip()
        if not trimmed or is_provenance_line(trimmed):
            continue
        if remaining[trimmed] > 0:
            remaining[trimmed] -= 1
            continue
        if first < 0:
            first = index
        last = index
    if first < 0:
        return LineRange.empty()
    return LineRange(first, last + 1)


def _search_range(lines: Sequence[str], inserted_text: str) -> LineRange:
    needles = _content_lines(split_lines(inserted_text))
    if not needles:
        return LineRange.empty()

    head, tail = needles[0], needles[-1]
    start = next((i for i, line in enumerate(lines) if line.strip() == head), -1)
    if start < 0:
        return LineRange.empty()

    for index in range(len(lines) - 1, start - 1, -1):
        if lines[index].strip() == tail:
            return LineRange(start, index + 1)
    return LineRange(start, start + 1)


def _content_lines(lines: Sequence[str]) -> list[str]:
    trimmed = (line.strip() for line in lines)
    return [line for line in trimmed if line and not is_provenance_line(line)]
