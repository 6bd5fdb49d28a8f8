"""Tests for the streaming insertion classifier."""
from __future__ import annotations

import pytest

from aiannotator.core.clipboard import ClipboardDetector
from aiannotator.core.config import AnnotatorConfig
from aiannotator.core.detection import DetectionEngine
from aiannotator.core.diagnostics import MemoryDiagnostics
from aiannotator.core.models import ClassificationResult, InsertionClassification
from aiannotator.core.scheduler import VirtualScheduler
from aiannotator.core.state import AnnotatorState

from tests.tools import InMemoryDocument, InMemoryWorkspace, makeChange

URI = "file:///work/app.py"

HUMAN = InsertionClassification.HUMAN
IGNORED = InsertionClassification.IGNORED
PASTED = InsertionClassification.PASTED
AI_LIKELY = InsertionClassification.AI_LIKELY


def buildEngine(config: AnnotatorConfig | None = None, workspace: InMemoryWorkspace | None = None):
    scheduler = VirtualScheduler()
    state = AnnotatorState(scheduler)
    clipboard = ClipboardDetector(None, scheduler)
    diagnostics = MemoryDiagnostics()
    engine = DetectionEngine(
        config or AnnotatorConfig(),
        clipboard,
        state,
        scheduler,
        documents=workspace,
        diagnostics=diagnostics,
    )
    emitted: list[ClassificationResult] = []
    engine.on_result(emitted.append)
    return engine, scheduler, state, clipboard, diagnostics, emitted


def test_single_character_is_human() -> None:
    engine, *_ = buildEngine()
    result = engine.process_change(InMemoryDocument(URI), makeChange(URI, "a"))

    assert result is not None
    assert result.classification is HUMAN
    assert result.reason == "single char (human typing)"


@pytest.mark.parametrize(
    "text, replaced, expected, reason",
    [
        ("", 5, IGNORED, "pure deletion"),
        ("# AI_ASSISTED_END\n", 0, IGNORED, "contains annotation marker"),
        ("\n        ", 0, IGNORED, "short whitespace (auto-indent)"),
        ("foo", 0, HUMAN, "below threshold (3 < 8)"),
        ("calculate", 4, HUMAN, "likely word completion (ratio=2.2)"),
    ],
)
def test_reject_chain(
    text: str, replaced: int, expected: InsertionClassification, reason: str
) -> None:
    engine, _, _, _, _, emitted = buildEngine()
    result = engine.process_change(InMemoryDocument(URI), makeChange(URI, text, replaced=replaced))

    assert result is not None
    assert result.classification is expected
    assert result.reason == reason
    assert emitted == []


def test_short_replacement_is_snippet_navigation() -> None:
    engine, *_ = buildEngine(AnnotatorConfig(min_chars_for_detection=1))
    result = engine.process_change(InMemoryDocument(URI), makeChange(URI, "a\nb", replaced=1))

    assert result is not None
    assert result.classification is HUMAN
    assert result.reason == "snippet tab-stop / bracket auto-close"


def test_internal_documents_leave_no_diagnostics() -> None:
    engine, _, _, _, diagnostics, emitted = buildEngine()
    uri = "output:extension-output-annotator"
    result = engine.process_change(InMemoryDocument(uri), makeChange(uri, "line one\nline two\nline three\n"))

    assert result is not None
    assert result.classification is IGNORED
    assert diagnostics.lines == []
    assert emitted == []


def test_suppressed_document_is_ignored() -> None:
    engine, _, state, _, diagnostics, emitted = buildEngine()
    state.suppression.acquire(["/work/app.py"])
    block = "def add(a, b):\n    return a + b\n"
    result = engine.process_change(InMemoryDocument(URI), makeChange(URI, block))

    assert result is not None
    assert result.classification is IGNORED
    assert "suppressed=True" in diagnostics
    assert emitted == []


def test_disabled_engine_ignores_everything() -> None:
    engine, *_ = buildEngine(AnnotatorConfig(enabled=False))
    result = engine.process_change(InMemoryDocument(URI), makeChange(URI, "def f():\n    return 42\n"))

    assert result is not None
    assert result.classification is IGNORED
    assert result.reason == "engine disabled"


def test_paste_flag_classifies_as_pasted() -> None:
    engine, scheduler, _, clipboard, _, emitted = buildEngine()
    clipboard.begin_paste()
    block = "def add(a, b):\n    return a + b\n"
    result = engine.process_change(InMemoryDocument(URI), makeChange(URI, block))

    assert result is not None
    assert result.classification is PASTED
    assert emitted == []

    scheduler.advance(0.6)
    assert engine.process_change(InMemoryDocument(URI), makeChange(URI, block)).classification is AI_LIKELY


def test_clipboard_content_classifies_as_pasted() -> None:
    engine, _, _, clipboard, _, _ = buildEngine()
    clipboard.set_clipboard("values = [item for item in items]")
    change = makeChange(URI, "    values = [item for item in items]\n    return values\n")

    assert engine.process_change(InMemoryDocument(URI), change).classification is PASTED


def test_multiline_block_emits_immediately() -> None:
    engine, scheduler, _, _, _, emitted = buildEngine()
    block = "def add(a, b):\n    return a + b\n"
    result = engine.process_change(InMemoryDocument(URI), makeChange(URI, block, line=4))

    assert result is not None
    assert result.classification is AI_LIKELY
    assert result.line == 4
    assert result.end_line == 6
    assert result.reason == "3-line block, pure insert"
    assert emitted == [result]
    assert scheduler.pending() == 0
    assert engine.emitted_count == 1


def test_rapid_small_changes_are_coalesced() -> None:
    engine, scheduler, _, _, _, emitted = buildEngine(AnnotatorConfig(min_chars_for_detection=4))
    document = InMemoryDocument(URI)

    for text in ("abcd", "efghi", "jklmno"):
        assert engine.process_change(document, makeChange(URI, text, line=3)) is None
        scheduler.advance(0.05)

    buffer = engine.pending_buffer(URI)
    assert buffer is not None
    assert buffer.change_count == 3
    assert emitted == []

    scheduler.advance(0.3)

    assert len(emitted) == 1
    result = emitted[0]
    assert result.classification is AI_LIKELY
    assert result.text == "abcdefghijklmno"
    assert result.change_count == 3
    assert result.reason.startswith("coalesced 3 changes, 15 chars in 100ms")
    assert engine.pending_buffer(URI) is None


def test_spaced_small_changes_are_discarded() -> None:
    engine, scheduler, _, _, diagnostics, emitted = buildEngine(AnnotatorConfig(min_chars_for_detection=4))
    document = InMemoryDocument(URI)

    for text in ("abcd", "efghi", "jklmno"):
        engine.process_change(document, makeChange(URI, text))
        scheduler.advance(2.0)

    assert emitted == []
    assert "FLUSH DISCARD" in diagnostics


def test_single_long_line_emits_after_window() -> None:
    engine, scheduler, _, _, _, emitted = buildEngine()
    engine.process_change(InMemoryDocument(URI), makeChange(URI, "total = compute_total(items, tax)"))

    scheduler.advance(0.3)

    assert len(emitted) == 1
    assert emitted[0].change_count == 1


def test_single_line_completion_buffer_is_discarded() -> None:
    engine, scheduler, _, _, _, emitted = buildEngine()
    engine.process_change(InMemoryDocument(URI), makeChange(URI, "total = compute_total(items, tax)", replaced=5))

    scheduler.advance(0.3)

    assert emitted == []


def test_block_flushes_pending_buffer_first() -> None:
    engine, _, _, _, _, emitted = buildEngine()
    document = InMemoryDocument(URI)
    engine.process_change(document, makeChange(URI, "result = compute_total(items)"))
    engine.process_change(document, makeChange(URI, "def add(a, b):\n    return a + b\n", line=5))

    assert [r.change_count for r in emitted] == [1, 1]
    assert emitted[0].text == "result = compute_total(items)"


def test_discard_drops_pending_buffer() -> None:
    engine, scheduler, _, _, _, emitted = buildEngine()
    engine.process_change(InMemoryDocument(URI), makeChange(URI, "result = compute_total(items)"))
    engine.discard(URI)
    scheduler.advance(1.0)

    assert emitted == []
    assert scheduler.pending() == 0


def test_failing_callback_does_not_break_the_stream() -> None:
    engine, _, _, _, _, emitted = buildEngine()

    def explode(result: ClassificationResult) -> None:
        raise RuntimeError("boom")

    engine.on_result(explode)
    engine.process_change(InMemoryDocument(URI), makeChange(URI, "def f():\n    return 1234\n"))

    assert len(emitted) == 1


@pytest.mark.asyncio
async def test_file_change_outside_editor() -> None:
    workspace = InMemoryWorkspace()
    document = workspace.add(URI, "def add(a, b):\n    return a + b\n")
    engine, _, state, _, diagnostics, emitted = buildEngine(workspace=workspace)

    state.snapshots.take(URI, document.text)
    assert await engine.process_file_change(URI) is None
    assert "unchanged since snapshot" in diagnostics

    result = await engine.process_file_change(URI, force=True)
    assert result is not None
    assert result.line == 0
    assert result.end_line == 2
    assert emitted == [result]


@pytest.mark.asyncio
async def test_file_change_only_counts_unmarked_tail() -> None:
    workspace = InMemoryWorkspace()
    workspace.add(
        URI,
        "# AI_ASSISTED: true\n"
        "x = 1\n"
        "# AI_ASSISTED_END\n"
        "def generated(value):\n"
        "    return value * 2\n",
    )
    engine, *_ = buildEngine(workspace=workspace)

    result = await engine.process_file_change(URI)

    assert result is not None
    assert result.line == 3
    assert result.reason == "unmarked trailing content"
    assert result.text.startswith("def generated")


@pytest.mark.asyncio
async def test_file_change_skips_fully_annotated_files() -> None:
    workspace = InMemoryWorkspace()
    workspace.add(URI, "# AI_ASSISTED: true\nx = 1\n# AI_ASSISTED_END\n")
    engine, _, state, _, _, emitted = buildEngine(workspace=workspace)

    assert await engine.process_file_change(URI) is None
    assert await engine.process_file_change("file:///work/missing.py") is None

    state.suppression.acquire([URI])
    assert await engine.process_file_change(URI, force=True) is None
    assert emitted == []
