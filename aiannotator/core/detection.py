"""Streaming classifier turning raw change events into AI-likely insertions."""

from __future__ import annotations

import logging
from pathlib import PurePath
from typing import Callable, Optional

from .clipboard import ClipboardDetector
from .config import AnnotatorConfig
from .diagnostics import LoggingDiagnostics
from .diffing import split_lines
from .host import DiagnosticsSink, DocumentSource, TextDocument, file_key, is_internal_uri
from .markers import contains_marker, find_annotated_spans, last_end_marker_line
from .models import (
    ChangeEvent,
    ClassificationResult,
    InsertionClassification,
    PendingBuffer,
)
from .scheduler import Scheduler, TimerHandle
from .state import AnnotatorState

__all__ = ["DetectionEngine", "ResultCallback"]

logger = logging.getLogger(__name__)

ResultCallback = Callable[[ClassificationResult], None]

# Reject chain thresholds
_WHITESPACE_FLOOR = 12
_COMPLETION_MAX_CHARS = 60
_COMPLETION_MAX_RATIO = 4.0
_SHORT_REPLACE_MAX_CHARS = 3

# Instant emission: a single event carrying a sizeable multi-line block
_INSTANT_MIN_CHARS = 20
_INSTANT_MIN_LINES = 2

# Coalescing buffer flush decisions
_BUFFER_MIN_CHARS = 3
_COALESCED_MIN_CHARS = 20

# Whole-file checks for changes written outside the editor buffer
_FILE_CHANGE_MIN_CHARS = 20


class DetectionEngine:
    """Classify content changes, buffering rapid small ones per file.

    Only ``AI_LIKELY`` results reach the registered callbacks. Every other
    outcome is returned to the caller of :meth:`process_change` and written
    to the diagnostics sink.
    """

    def __init__(
        self,
        config: AnnotatorConfig,
        clipboard: ClipboardDetector,
        state: AnnotatorState,
        scheduler: Scheduler,
        *,
        documents: Optional[DocumentSource] = None,
        diagnostics: Optional[DiagnosticsSink] = None,
    ) -> None:
        self._config = config
        self._clipboard = clipboard
        self._state = state
        self._scheduler = scheduler
        self._documents = documents
        self._log = diagnostics or LoggingDiagnostics()
        self._callbacks: list[ResultCallback] = []
        self._pending: dict[str, PendingBuffer] = {}
        self._timers: dict[str, TimerHandle] = {}
        self._emitted = 0

    @property
    def config(self) -> AnnotatorConfig:
        return self._config

    @property
    def emitted_count(self) -> int:
        """Number of ``AI_LIKELY`` results delivered so far."""

        return self._emitted

    def on_result(self, callback: ResultCallback) -> None:
        """Register a callback receiving every ``AI_LIKELY`` result."""

        self._callbacks.append(callback)

    def update_config(self, config: AnnotatorConfig) -> None:
        self._config = config

    def pending_buffer(self, uri: str) -> Optional[PendingBuffer]:
        return self._pending.get(file_key(uri))

    # ------------------------------------------------------------------
    # Editor change events
    # ------------------------------------------------------------------
    def process_change(self, document: TextDocument, change: ChangeEvent) -> Optional[ClassificationResult]:
        """Classify one content change.

        Returns the immediate classification, or ``None`` when the change was
        absorbed into the file's coalescing buffer.
        """

        try:
            return self._process_change(document, change)
        except Exception:  # noqa: BLE001 - one bad event must not stop the stream
            logger.exception("Failed to classify change in %s", change.uri)
            return self._verdict(InsertionClassification.IGNORED, change, "classifier error")

    def _process_change(self, document: TextDocument, change: ChangeEvent) -> Optional[ClassificationResult]:
        config = self._config
        uri = change.uri or document.uri
        text = change.text
        chars = len(text)
        lines = change.line_count
        trimmed = text.strip()
        ignored = InsertionClassification.IGNORED
        human = InsertionClassification.HUMAN

        if not config.enabled:
            return self._verdict(ignored, change, "engine disabled")

        # Checked before any logging, diagnostics output itself is a document
        if is_internal_uri(uri, document.file_name):
            return self._verdict(ignored, change, "internal document")

        suppressed = self._state.suppression.is_suppressed(uri)
        self._log.append_line(
            f"[CHANGE] file={_short_name(document)} chars={chars} lines={lines} "
            f"rangeLen={change.replaced_length} suppressed={suppressed}"
        )

        if suppressed:
            return self._skip(ignored, change, "suppressed (our annotation)")
        if chars == 0:
            return self._skip(ignored, change, "pure deletion")
        if contains_marker(text):
            return self._skip(ignored, change, "contains annotation marker")
        if chars == 1 and change.replaced_length == 0:
            return self._skip(human, change, "single char (human typing)")
        if not trimmed and chars < _WHITESPACE_FLOOR:
            return self._skip(ignored, change, "short whitespace (auto-indent)")
        if len(trimmed) < config.min_chars_for_detection:
            return self._skip(
                human, change, f"below threshold ({len(trimmed)} < {config.min_chars_for_detection})"
            )
        if self._clipboard.was_pasted(text):
            return self._skip(InsertionClassification.PASTED, change, "clipboard paste")
        if lines <= 1 and chars < _COMPLETION_MAX_CHARS and change.replaced_length > 0:
            ratio = chars / max(change.replaced_length, 1)
            if ratio < _COMPLETION_MAX_RATIO:
                return self._skip(human, change, f"likely word completion (ratio={ratio:.1f})")
        if change.replaced_length > 0 and chars <= _SHORT_REPLACE_MAX_CHARS:
            return self._skip(human, change, "snippet tab-stop / bracket auto-close")

        key = file_key(uri)
        now = change.timestamp if change.timestamp is not None else self._scheduler.now()

        if len(trimmed) >= _INSTANT_MIN_CHARS and lines >= _INSTANT_MIN_LINES:
            self._flush(key)
            result = ClassificationResult(
                classification=InsertionClassification.AI_LIKELY,
                uri=uri,
                line=change.start.line,
                text=text,
                reason=self._build_reason(chars, lines, change.replaced_length),
                end_line=change.end_line,
            )
            self._log.append_line(f"  -> AI_LIKELY: {result.reason}")
            self._emit(result)
            return result

        self._buffer(key, change, now)
        return None

    # ------------------------------------------------------------------
    # Coalescing buffer
    # ------------------------------------------------------------------
    def _buffer(self, key: str, change: ChangeEvent, now: float) -> None:
        window = self._config.coalesce_window
        pending = self._pending.get(key)
        if pending is not None and now - pending.last_seen > window:
            self._flush(key)
            pending = None

        if pending is None:
            pending = PendingBuffer.from_change(key, change, now)
            self._pending[key] = pending
        else:
            pending.extend(change, now)
        self._log.append_line(
            f"  -> BUFFER: {pending.change_count} change(s), {pending.char_count} chars"
        )

        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        self._timers[key] = self._scheduler.call_later(window, self._on_flush_timer, key)

    def _on_flush_timer(self, key: str) -> None:
        self._timers.pop(key, None)
        try:
            self._flush(key)
        except Exception:  # noqa: BLE001 - timer callbacks must not raise into the loop
            logger.exception("Failed to flush coalescing buffer for %s", key)

    def _flush(self, key: str) -> Optional[ClassificationResult]:
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        pending = self._pending.pop(key, None)
        if pending is None:
            return None

        trimmed_length = pending.trimmed_length
        if trimmed_length < _BUFFER_MIN_CHARS:
            self._log.append_line(f"  -> FLUSH DISCARD: {trimmed_length} chars after trim")
            return None
        if (
            pending.change_count == 1
            and pending.is_single_line
            and pending.replaced_length > 0
            and pending.char_count < _COMPLETION_MAX_CHARS
        ):
            self._log.append_line("  -> FLUSH DISCARD: single short completion")
            return None
        if pending.change_count < 2 and trimmed_length < _COALESCED_MIN_CHARS:
            self._log.append_line(
                f"  -> FLUSH DISCARD: single change below {_COALESCED_MIN_CHARS} chars"
            )
            return None

        elapsed = max(pending.last_seen - pending.first_seen, 0.0)
        reason = (
            f"coalesced {pending.change_count} changes, {pending.char_count} chars "
            f"in {elapsed * 1000:.0f}ms"
        )
        rate = self._chars_per_second(pending.char_count, elapsed)
        if rate is not None and rate >= self._config.chars_per_second_threshold:
            reason += f" ({rate:.0f} chars/s)"

        result = ClassificationResult(
            classification=InsertionClassification.AI_LIKELY,
            uri=pending.uri,
            line=pending.start_line,
            text=pending.text,
            reason=reason,
            end_line=pending.end_line,
            change_count=pending.change_count,
        )
        self._log.append_line(f"  -> AI_LIKELY: {reason}")
        self._emit(result)
        return result

    def flush_all(self) -> list[ClassificationResult]:
        """Force every pending buffer through the flush decision."""

        results = [self._flush(key) for key in list(self._pending)]
        return [result for result in results if result is not None]

    def discard(self, uri: str) -> None:
        """Drop the pending buffer of ``uri`` without emitting it."""

        key = file_key(uri)
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()
        self._pending.pop(key, None)

    def dispose(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        self._pending.clear()

    # ------------------------------------------------------------------
    # Whole-file changes
    # ------------------------------------------------------------------
    async def process_file_change(self, uri: str, *, force: bool = False) -> Optional[ClassificationResult]:
        """Classify a file rewritten without buffer-visible change events.

        With ``force`` the file is classified even when annotation is disabled
        or its content still matches the last snapshot.
        """

        if is_internal_uri(uri) or not (force or self._config.enabled):
            return None
        if self._state.suppression.is_suppressed(uri):
            self._log.append_line(f"[FILE] {uri} -> SKIP: suppressed")
            return None
        if self._documents is None:
            logger.debug("No document source configured, ignoring file change for %s", uri)
            return None

        try:
            document = await self._documents.open_document(uri)
            content = document.get_text()
        except Exception as exc:  # noqa: BLE001 - host I/O failures only abort this attempt
            logger.warning("Could not open %s: %s", uri, exc)
            self._log.append_line(f"[FILE] {uri} -> SKIP: open failed ({exc})")
            return None

        if not force and self._state.snapshots.get(uri) == content:
            self._log.append_line(f"[FILE] {uri} -> SKIP: unchanged since snapshot")
            return None

        lines = split_lines(content)
        anchor = 0
        if contains_marker(content):
            # Only content after the last closed block counts as new
            spans = find_annotated_spans(lines)
            closed_at = max((end for _, end in spans), default=last_end_marker_line(lines))
            anchor = closed_at + 1
            content = "\n".join(lines[anchor:])

        if len(content.strip()) < _FILE_CHANGE_MIN_CHARS:
            self._log.append_line(f"[FILE] {uri} -> SKIP: already annotated or too short")
            return None

        result = ClassificationResult(
            classification=InsertionClassification.AI_LIKELY,
            uri=uri,
            line=anchor,
            text=content,
            reason="file changed outside the editor" if anchor == 0 else "unmarked trailing content",
            end_line=len(lines),
        )
        self._log.append_line(f"[FILE] {uri} -> AI_LIKELY: {result.reason}")
        self._emit(result)
        return result

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _emit(self, result: ClassificationResult) -> None:
        self._emitted += 1
        for callback in list(self._callbacks):
            try:
                callback(result)
            except Exception:  # noqa: BLE001 - callbacks belong to the host
                logger.exception("Result callback failed for %s", result.uri)

    def _verdict(
        self, classification: InsertionClassification, change: ChangeEvent, reason: str
    ) -> ClassificationResult:
        return ClassificationResult(
            classification=classification,
            uri=change.uri,
            line=change.start.line,
            text=change.text,
            reason=reason,
        )

    def _skip(
        self, classification: InsertionClassification, change: ChangeEvent, reason: str
    ) -> ClassificationResult:
        self._log.append_line(f"  -> SKIP: {reason}")
        return self._verdict(classification, change, reason)

    @staticmethod
    def _chars_per_second(chars: int, elapsed: float) -> Optional[float]:
        if elapsed <= 0:
            return None
        return chars / elapsed

    @staticmethod
    def _build_reason(chars: int, lines: int, replaced: int) -> str:
        parts = [f"{lines}-line block" if lines >= 3 else f"{chars} chars"]
        parts.append("pure insert" if replaced == 0 else f"replaced {replaced} chars")
        return ", ".join(parts)


def _short_name(document: TextDocument) -> str:
    name = document.file_name or document.uri
    return PurePath(name.replace("\\", "/")).name or name
