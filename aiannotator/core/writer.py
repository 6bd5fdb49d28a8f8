"""Idempotent writer inserting provenance markers around AI-generated code."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from .audit import AnnotationAuditEntry, AnnotationAuditLog, AuditOutcome
from .config import AnnotatorConfig
from .diffing import find_new_range, split_lines
from .errors import AnnotatorResolutionError, AnnotatorWriteError
from .host import DocumentSource, EditApplier, TextDocument, file_key
from .markers import (
    UNKNOWN_EMPLOYEE_ID,
    build_annotation_end,
    build_annotation_start,
    find_annotated_spans,
    range_inside_spans,
)
from .models import ClassificationResult, LineRange, TextInsert, TextPosition
from .scheduler import Scheduler
from .state import AnnotatorState

__all__ = ["AnnotationWriter", "plan_inserts", "clip_to_unannotated"]

logger = logging.getLogger(__name__)


class AnnotationWriter:
    """Write start/end marker pairs into documents, one job per file at a time."""

    def __init__(
        self,
        config: AnnotatorConfig,
        state: AnnotatorState,
        documents: DocumentSource,
        edits: EditApplier,
        scheduler: Scheduler,
        *,
        employee_id: str = UNKNOWN_EMPLOYEE_ID,
        audit: Optional[AnnotationAuditLog] = None,
    ) -> None:
        self._config = config
        self._state = state
        self._documents = documents
        self._edits = edits
        self._scheduler = scheduler
        self._employee_id = employee_id or UNKNOWN_EMPLOYEE_ID
        self._audit = audit or AnnotationAuditLog(config.audit_log_path)
        self._locks: dict[str, asyncio.Lock] = {}
        self._written = 0

    @property
    def employee_id(self) -> str:
        return self._employee_id

    @property
    def audit(self) -> AnnotationAuditLog:
        return self._audit

    @property
    def written_count(self) -> int:
        """Number of successful annotation writes."""

        return self._written

    def set_employee_id(self, employee_id: Optional[str]) -> None:
        self._employee_id = employee_id or UNKNOWN_EMPLOYEE_ID

    def update_config(self, config: AnnotatorConfig) -> None:
        self._config = config

    # ------------------------------------------------------------------
    # Snapshot lifecycle
    # ------------------------------------------------------------------
    def take_snapshot(self, uri: str, content: str) -> None:
        """Record ``content`` as the clean baseline for ``uri``."""

        self._state.snapshots.take(uri, content)

    def on_document_closed(self, uri: str) -> None:
        """Drop every piece of per-file state held for ``uri``."""

        key = file_key(uri)
        lock = self._locks.get(key)
        if lock is None or not lock.locked():
            self._locks.pop(key, None)
        self._state.forget_document(uri)

    def has_lock(self, uri: str) -> bool:
        return file_key(uri) in self._locks

    # ------------------------------------------------------------------
    # Annotation
    # ------------------------------------------------------------------
    async def annotate(self, result: ClassificationResult) -> bool:
        """Annotate the code behind ``result``; returns ``True`` when written.

        Jobs for the same file run strictly one after the other. Failures are
        logged and never raised to the caller.
        """

        key = file_key(result.uri)
        lock = self._locks.setdefault(key, asyncio.Lock())
        async with lock:
            try:
                return await self._annotate(result, key)
            except Exception as exc:  # noqa: BLE001 - annotation is best effort
                logger.exception("Annotation failed for %s", result.uri)
                self._record(result.uri, AuditOutcome.FAILED, f"unexpected error: {exc}")
                return False

    async def _annotate(self, result: ClassificationResult, key: str) -> bool:
        uri = result.uri
        if not result.is_ai_likely:
            return False

        if self._state.cooldowns.is_cooling(key, self._config.cooldown_seconds):
            logger.debug("Skipping %s, annotated less than %.1fs ago", uri, self._config.cooldown_seconds)
            self._record(uri, AuditOutcome.SKIPPED, "cooldown")
            return False

        try:
            document = await self._documents.open_document(uri)
        except AnnotatorResolutionError as exc:
            logger.error("Cannot map %s to a file: %s", uri, exc)
            self._record(uri, AuditOutcome.FAILED, f"unresolved: {exc}")
            return False
        except Exception as exc:  # noqa: BLE001 - host I/O failures only abort this attempt
            logger.error("Could not open %s for annotation: %s", uri, exc)
            self._record(uri, AuditOutcome.FAILED, f"open failed: {exc}")
            return False

        if document.is_closed:
            self._record(uri, AuditOutcome.SKIPPED, "document closed")
            return False

        current = document.get_text()
        line_range = find_new_range(current, self._state.snapshots.get(uri), result.text)
        if line_range.is_empty:
            logger.debug("No new lines located in %s", uri)
            self._record(uri, AuditOutcome.SKIPPED, "no new range")
            return False

        spans = find_annotated_spans(split_lines(current))
        if range_inside_spans(line_range, spans):
            logger.debug("Lines %d-%d of %s are already annotated", line_range.start, line_range.end, uri)
            self._record(uri, AuditOutcome.SKIPPED, "already annotated", line_range)
            return False

        line_range = clip_to_unannotated(line_range, spans)
        if line_range.is_empty:
            self._record(uri, AuditOutcome.SKIPPED, "already annotated")
            return False

        inserts = plan_inserts(
            document,
            line_range,
            build_annotation_start(document.language_id, self._employee_id, self._config.tool_name),
            build_annotation_end(document.language_id),
        )

        identities = self._state.suppression.acquire((uri, key))
        try:
            try:
                applied = await self._edits.apply_edit(uri, inserts)
            except AnnotatorWriteError as exc:
                logger.error("Could not edit %s: %s", uri, exc)
                self._record(uri, AuditOutcome.FAILED, f"edit failed: {exc}", line_range)
                return False
            if not applied:
                logger.warning("Editor rejected annotation edit for %s", uri)
                self._record(uri, AuditOutcome.FAILED, "edit rejected", line_range)
                return False

            self._state.cooldowns.record(key)
            self._written += 1
            await self._persist(document)
        finally:
            # Outlive the asynchronous echo of our own edit
            self._state.suppression.release_later(identities, self._config.suppression_grace)

        logger.info(
            "Annotated lines %d-%d in %s (%s)", line_range.start, line_range.end, uri, result.reason
        )
        self._record(uri, AuditOutcome.ANNOTATED, result.reason, line_range)
        return True

    async def _persist(self, document: TextDocument) -> None:
        uri = document.uri
        try:
            saved = await self._documents.save_document(document)
        except Exception as exc:  # noqa: BLE001 - the edit itself already succeeded
            logger.error("Could not save %s after annotation: %s", uri, exc)
            saved = False
        if not saved:
            logger.warning("Document %s was not saved after annotation", uri)
        self._state.snapshots.take(uri, document.get_text())

    def _record(
        self,
        uri: str,
        outcome: AuditOutcome,
        reason: str,
        line_range: Optional[LineRange] = None,
    ) -> None:
        self._audit.record(
            AnnotationAuditEntry(
                uri=uri,
                outcome=outcome,
                reason=reason,
                start_line=line_range.start if line_range is not None else None,
                end_line=line_range.end if line_range is not None else None,
                employee_id=self._employee_id,
                tool_name=self._config.tool_name,
            )
        )


def clip_to_unannotated(line_range: LineRange, spans: Sequence[tuple[int, int]]) -> LineRange:
    """Shrink ``line_range`` so it never overlaps an existing marker pair."""

    start, end = line_range.start, line_range.end
    for open_line, close_line in sorted(spans):
        if start > end - 1:
            break
        if open_line <= start <= close_line:
            start = close_line + 1
        elif start < open_line <= end - 1:
            end = open_line
    return LineRange(start, max(start, end))


def plan_inserts(
    document: TextDocument,
    line_range: LineRange,
    start_block: str,
    end_block: str,
) -> list[TextInsert]:
    """Build the atomic edit: end block first, then the start block."""

    last_line = document.line_count - 1
    if line_range.end > last_line:
        tail = document.line_at(last_line) if last_line >= 0 else ""
        if line_range.end == last_line + 1 and not tail:
            # Document ends with a newline, the empty last line takes the marker
            end_insert = TextInsert(TextPosition(last_line, 0), end_block)
        else:
            end_insert = TextInsert(TextPosition(max(last_line, 0), len(tail)), "\n" + end_block)
    else:
        end_insert = TextInsert(TextPosition(line_range.end, 0), end_block)
    return [end_insert, TextInsert(TextPosition(line_range.start, 0), start_block)]
