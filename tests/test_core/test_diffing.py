"""Tests for locating newly inserted lines."""
from __future__ import annotations

from aiannotator.core.diffing import find_new_range, split_lines
from aiannotator.core.models import LineRange


def test_inserted_block_between_existing_lines() -> None:
    snapshot = "a\nb\nc\n"
    current = "a\nb\nX\nY\nc\n"

    assert find_new_range(current, snapshot) == LineRange(2, 4)


def test_duplicate_lines_are_counted() -> None:
    snapshot = "x = 1\nreturn x\n"
    current = "x = 1\nreturn x\nx = 1\nreturn x\n"

    assert find_new_range(current, snapshot) == LineRange(2, 4)


def test_blank_lines_and_indentation_are_ignored() -> None:
    snapshot = "def f():\n    pass\n"
    current = "def f():\n\n      pass\n    value = 2\n\n"

    assert find_new_range(current, snapshot) == LineRange(3, 4)


def test_provenance_lines_never_count_as_new() -> None:
    snapshot = "a\n"
    current = "# AI_ASSISTED: true\n# AI_TOOL: T\n# EMPLOYEE_ID: E\na\n# AI_ASSISTED_END\n"

    assert find_new_range(current, snapshot).is_empty


def test_code_resembling_marker_keys_still_counts_as_new() -> None:
    snapshot = "class Settings:\n    debug = False\n"
    current = 'class Settings:\n    debug = False\n    EMPLOYEE_ID: str = ""\n    AI_ASSISTED_MODE = True\n'

    assert find_new_range(current, snapshot) == LineRange(2, 4)


def test_blank_snapshot_makes_whole_file_new() -> None:
    assert find_new_range("one\ntwo\n\n\n", "") == LineRange(0, 4)
    assert find_new_range("one\ntwo", "") == LineRange(0, 2)
    assert find_new_range("\n\n", "  ").is_empty


def test_missing_snapshot_searches_for_inserted_text() -> None:
    current = "a\nb\nfoo()\nbar()\nc\n"

    assert find_new_range(current, None, "foo()\nbar()\n") == LineRange(2, 4)
    assert find_new_range(current, None, "").is_empty
    assert find_new_range(current, None, "missing()").is_empty


def test_search_returns_single_line_without_tail() -> None:
    current = "a\nfoo()\nb\n"

    assert find_new_range(current, None, "foo()\nnever_written()") == LineRange(1, 2)


def test_unchanged_snapshot_falls_back_to_search() -> None:
    text = "a\nfoo()\nb\n"

    assert find_new_range(text, text, "foo()") == LineRange(1, 2)
    assert find_new_range(text, text).is_empty


def test_split_lines_only_breaks_on_newlines() -> None:
    assert split_lines("a\x0cb\n\x85\nc d\r\ne\rf\n") == ["a\x0cb", "\x85", "c d", "e", "f"]
    assert split_lines("a\n\n") == ["a", ""]
    assert split_lines("") == []
