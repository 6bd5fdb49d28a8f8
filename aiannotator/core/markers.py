"""Provenance marker literals and language-aware comment rendering."""

from __future__ import annotations

import re
from typing import Mapping, Sequence

from .models import CommentStyle, LineRange

__all__ = [
    "ANNOTATION_MARKER",
    "ANNOTATION_END_MARKER",
    "DEFAULT_TOOL_NAME",
    "UNKNOWN_EMPLOYEE_ID",
    "COMMENT_STYLES",
    "style_for_language",
    "build_annotation_start",
    "build_annotation_end",
    "contains_marker",
    "is_provenance_line",
    "find_annotated_spans",
    "last_end_marker_line",
    "range_inside_spans",
]

# Stable on-disk contract, other tooling scans for these two literals.
ANNOTATION_MARKER = "AI_ASSISTED: true"
ANNOTATION_END_MARKER = "AI_ASSISTED_END"

DEFAULT_TOOL_NAME = "GitHub Copilot"
UNKNOWN_EMPLOYEE_ID = "UNKNOWN"

_SLASH = CommentStyle("//")
_HASH = CommentStyle("#")
_DASH = CommentStyle("--")
_SEMI = CommentStyle(";;")
_PERCENT = CommentStyle("%")
_MARKUP = CommentStyle("", "<!--", "-->")
_CSS = CommentStyle("", "/*", "*/")

COMMENT_STYLES: Mapping[str, CommentStyle] = {
    # C-family
    "javascript": _SLASH,
    "typescript": _SLASH,
    "javascriptreact": _SLASH,
    "typescriptreact": _SLASH,
    "java": _SLASH,
    "c": _SLASH,
    "cpp": _SLASH,
    "csharp": _SLASH,
    "go": _SLASH,
    "rust": _SLASH,
    "swift": _SLASH,
    "kotlin": _SLASH,
    "dart": _SLASH,
    "scala": _SLASH,
    "php": _SLASH,
    "scss": _SLASH,
    "less": _SLASH,
    # Hash-style
    "python": _HASH,
    "ruby": _HASH,
    "shellscript": _HASH,
    "bash": _HASH,
    "perl": _HASH,
    "r": _HASH,
    "yaml": _HASH,
    "dockerfile": _HASH,
    "makefile": _HASH,
    "powershell": _HASH,
    "coffeescript": _HASH,
    "elixir": _HASH,
    # Dash-dash
    "sql": _DASH,
    "lua": _DASH,
    "haskell": _DASH,
    # Lisp family
    "clojure": _SEMI,
    "lisp": _SEMI,
    "scheme": _SEMI,
    # Block comments only
    "html": _MARKUP,
    "xml": _MARKUP,
    "svg": _MARKUP,
    "markdown": _MARKUP,
    "css": _CSS,
    # Other
    "matlab": _PERCENT,
    "latex": _PERCENT,
    "erlang": _PERCENT,
    "fortran": CommentStyle("!"),
    "vb": CommentStyle("'"),
}

DEFAULT_STYLE = _SLASH


def _provenance_pattern(styles: Sequence[CommentStyle]) -> re.Pattern[str]:
    openers = {token for style in styles for token in (style.line_prefix, style.block_start) if token}
    closers = {style.block_end for style in styles if style.block_end}
    opener = "|".join(re.escape(token) for token in sorted(openers, key=len, reverse=True))
    closer = "|".join(re.escape(token) for token in sorted(closers, key=len, reverse=True))
    # Block bodies carry no comment token, key values never contain "="
    return re.compile(
        rf"^(?:(?:{opener})\s*)?"
        rf"(?:{re.escape(ANNOTATION_MARKER)}|{re.escape(ANNOTATION_END_MARKER)}|(?:AI_TOOL|EMPLOYEE_ID): [^=]*)"
        rf"\s*(?:{closer})?$"
    )


_PROVENANCE_LINE = _provenance_pattern([*COMMENT_STYLES.values(), DEFAULT_STYLE])


def style_for_language(language_id: str | None) -> CommentStyle:
    """Return the comment style for ``language_id``, ``//`` when unknown."""

    return COMMENT_STYLES.get((language_id or "").strip().lower(), DEFAULT_STYLE)


def build_annotation_start(
    language_id: str | None,
    employee_id: str,
    tool_name: str = DEFAULT_TOOL_NAME,
) -> str:
    """Build the start block inserted before the AI-generated code."""

    style = style_for_language(language_id)
    lines = [
        ANNOTATION_MARKER,
        f"AI_TOOL: {tool_name}",
        f"EMPLOYEE_ID: {employee_id or UNKNOWN_EMPLOYEE_ID}",
    ]
    if style.is_block:
        body = [f"  {line}" for line in lines]
        return "\n".join([str(style.block_start), *body, str(style.block_end), ""])
    return "".join(f"{style.line_prefix} {line}\n" for line in lines)


def build_annotation_end(language_id: str | None) -> str:
    """Build the end marker inserted after the AI-generated code."""

    style = style_for_language(language_id)
    if style.is_block:
        return f"{style.block_start} {ANNOTATION_END_MARKER} {style.block_end}\n"
    return f"{style.line_prefix} {ANNOTATION_END_MARKER}\n"


def contains_marker(text: str) -> bool:
    """Return ``True`` when ``text`` carries either marker literal."""

    return ANNOTATION_MARKER in text or ANNOTATION_END_MARKER in text


def is_provenance_line(line: str) -> bool:
    """Return ``True`` for lines shaped like part of a rendered annotation block."""

    return bool(_PROVENANCE_LINE.match(line.strip()))


def find_annotated_spans(lines: Sequence[str]) -> list[tuple[int, int]]:
    """Return ``(start_marker_line, end_marker_line)`` pairs found in ``lines``.

    A start marker without a matching end marker extends to the last line.
    Nested start markers are folded into the outer pair.
    """

    spans: list[tuple[int, int]] = []
    open_line: int | None = None
    for index, line in enumerate(lines):
        if ANNOTATION_MARKER in line:
            if open_line is None:
                open_line = index
        elif ANNOTATION_END_MARKER in line and open_line is not None:
            spans.append((open_line, index))
            open_line = None
    if open_line is not None:
        spans.append((open_line, max(open_line, len(lines) - 1)))
    return spans


def last_end_marker_line(lines: Sequence[str]) -> int:
    """Return the index of the last end marker line, or ``-1``."""

    for index in range(len(lines) - 1, -1, -1):
        if ANNOTATION_END_MARKER in lines[index]:
            return index
    return -1


def range_inside_spans(line_range: LineRange, spans: Sequence[tuple[int, int]]) -> bool:
    """Return ``True`` when the whole range sits inside one marker pair."""

    if line_range.is_empty:
        return False
    last = line_range.end - 1
    return any(start <= line_range.start and last <= end for start, end in spans)
