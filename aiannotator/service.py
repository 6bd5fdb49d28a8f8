"""Workspace-level wiring of the clipboard, classifier, writer and watcher."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Callable, Iterable, Optional, Sequence

from aiannotator.core.audit import AnnotationAuditLog
from aiannotator.core.clipboard import ClipboardDetector
from aiannotator.core.config import AnnotatorConfig
from aiannotator.core.detection import DetectionEngine
from aiannotator.core.env import resolve_employee_id
from aiannotator.core.host import (
    ClipboardReader,
    DiagnosticsSink,
    DocumentSource,
    EditApplier,
    FileWatcher,
    TextDocument,
    is_internal_uri,
)
from aiannotator.core.markers import UNKNOWN_EMPLOYEE_ID
from aiannotator.core.models import ChangeEvent, ClassificationResult
from aiannotator.core.scheduler import AsyncioScheduler, Scheduler
from aiannotator.core.state import AnnotatorState
from aiannotator.core.writer import AnnotationWriter
from aiannotator.watcher import FileChangeDispatcher, WatchdogFileWatcher

__all__ = ["AnnotatorService"]

logger = logging.getLogger(__name__)

AnnotatedCallback = Callable[[ClassificationResult, bool], None]


class AnnotatorService:
    """Run annotation for one workspace on top of host-provided primitives.

    The host forwards editor events to the ``on_*`` hooks. Every ``AI_LIKELY``
    result is handed to the writer as a background task, and callbacks
    registered through :meth:`on_annotated` learn whether markers were written.
    """

    def __init__(
        self,
        documents: DocumentSource,
        edits: EditApplier,
        *,
        config: Optional[AnnotatorConfig] = None,
        clipboard: Optional[ClipboardReader] = None,
        scheduler: Optional[Scheduler] = None,
        diagnostics: Optional[DiagnosticsSink] = None,
        workspace_roots: Iterable[Path | str] = (),
        audit: Optional[AnnotationAuditLog] = None,
        watch_files: bool = False,
    ) -> None:
        self._config = config or AnnotatorConfig()
        self._scheduler = scheduler or AsyncioScheduler()
        self._roots = tuple(Path(root) for root in workspace_roots)
        self._watch_files = watch_files

        self._state = AnnotatorState(self._scheduler)
        self._clipboard = ClipboardDetector(clipboard, self._scheduler)
        self._engine = DetectionEngine(
            self._config,
            self._clipboard,
            self._state,
            self._scheduler,
            documents=documents,
            diagnostics=diagnostics,
        )
        self._writer = AnnotationWriter(
            self._config,
            self._state,
            documents,
            edits,
            self._scheduler,
            audit=audit,
        )
        self._engine.on_result(self._on_result)

        self._dispatchers: list[FileChangeDispatcher] = []
        self._watchers: list[FileWatcher] = []
        self._tasks: set[asyncio.Task[bool]] = set()
        self._callbacks: list[AnnotatedCallback] = []
        self._started = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------
    @property
    def config(self) -> AnnotatorConfig:
        return self._config

    @property
    def state(self) -> AnnotatorState:
        return self._state

    @property
    def engine(self) -> DetectionEngine:
        return self._engine

    @property
    def writer(self) -> AnnotationWriter:
        return self._writer

    @property
    def clipboard(self) -> ClipboardDetector:
        return self._clipboard

    @property
    def dispatchers(self) -> list[FileChangeDispatcher]:
        return list(self._dispatchers)

    @property
    def is_running(self) -> bool:
        return self._started

    def on_annotated(self, callback: AnnotatedCallback) -> None:
        """Register a callback receiving each result and whether it was written."""

        self._callbacks.append(callback)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        """Resolve the employee id and start clipboard polling and watchers."""

        if self._started:
            return
        self.reload_employee_id()
        self._clipboard.start()
        if self._watch_files:
            self._start_watchers()
        self._started = True
        logger.info(
            "Annotator started (enabled=%s, min chars=%d, employee=%s)",
            self._config.enabled,
            self._config.min_chars_for_detection,
            self._writer.employee_id,
        )

    async def stop(self) -> None:
        """Stop background work and wait for running annotation jobs."""

        if not self._started:
            return
        self._started = False
        for watcher in self._watchers:
            watcher.stop()
        self._watchers.clear()
        self._dispatchers.clear()
        self._clipboard.dispose()
        self._engine.dispose()
        await self.drain()
        logger.info("Annotator stopped")

    async def drain(self) -> None:
        """Wait until every scheduled annotation and file check has finished."""

        while self._tasks or any(d.has_pending_tasks for d in self._dispatchers):
            for dispatcher in self._dispatchers:
                await dispatcher.drain()
            if self._tasks:
                await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _start_watchers(self) -> None:
        for root in self._roots:
            dispatcher = FileChangeDispatcher(
                root,
                self._engine.process_file_change,
                self._scheduler,
                patterns=self._config.watch_patterns,
                env_file_name=self._config.env_file_name,
                on_env_change=self._on_env_file_changed,
            )
            watcher = WatchdogFileWatcher(dispatcher)
            try:
                watcher.start()
            except OSError as exc:
                logger.error("Could not watch %s: %s", root, exc)
                continue
            self._dispatchers.append(dispatcher)
            self._watchers.append(watcher)

    # ------------------------------------------------------------------
    # Editor hooks
    # ------------------------------------------------------------------
    def on_text_changed(
        self, document: TextDocument, changes: Sequence[ChangeEvent]
    ) -> list[Optional[ClassificationResult]]:
        """Classify every content change of one document change event."""

        return [self._engine.process_change(document, change) for change in changes]

    def on_document_opened(self, document: TextDocument) -> None:
        self._snapshot(document)

    def on_document_focused(self, document: TextDocument) -> None:
        self._snapshot(document)

    def on_document_saved(self, document: TextDocument) -> None:
        """Re-baseline after a user save; saves issued by the writer are ignored."""

        if self._state.suppression.is_suppressed(document.uri):
            return
        if self._engine.pending_buffer(document.uri) is not None:
            return
        self._snapshot(document)

    def on_document_closed(self, document: TextDocument | str) -> None:
        uri = document if isinstance(document, str) else document.uri
        self._engine.discard(uri)
        self._writer.on_document_closed(uri)

    async def on_paste(self) -> None:
        """Call before the host executes an intercepted paste command."""

        await self._clipboard.on_paste()

    def _snapshot(self, document: TextDocument) -> None:
        if document.is_closed or is_internal_uri(document.uri, document.file_name):
            return
        self._writer.take_snapshot(document.uri, document.get_text())

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    async def force_annotate(self, uri: str) -> bool:
        """Classify and annotate ``uri`` as a whole, bypassing the snapshot check."""

        written = self._writer.written_count
        if await self._engine.process_file_change(uri, force=True) is None:
            return False
        await self.drain()
        return self._writer.written_count > written

    def toggle(self) -> bool:
        """Flip the enabled flag and return the new value."""

        self.apply_config(self._config.copy(enabled=not self._config.enabled))
        logger.info("Annotation %s", "enabled" if self._config.enabled else "disabled")
        return self._config.enabled

    def apply_config(self, config: AnnotatorConfig) -> None:
        """Switch every component to ``config`` without a restart."""

        config.validate()
        env_changed = config.env_file_name != self._config.env_file_name
        self._config = config
        self._engine.update_config(config)
        self._writer.update_config(config)
        if env_changed and self._started:
            self.reload_employee_id()

    def reload_employee_id(self) -> str:
        """Re-read the env file of the workspace roots."""

        employee_id = resolve_employee_id(
            self._roots, self._config.env_file_name, placeholder=UNKNOWN_EMPLOYEE_ID
        )
        self._writer.set_employee_id(employee_id)
        return employee_id

    def status(self) -> dict[str, Any]:
        """Summarise the current state for display."""

        return {
            "enabled": self._config.enabled,
            "min_chars": self._config.min_chars_for_detection,
            "employee_id": self._writer.employee_id,
            "annotations_written": self._writer.written_count,
            "results_emitted": self._engine.emitted_count,
            "pending_jobs": len(self._tasks),
            "watching": [str(d.root) for d in self._dispatchers],
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _on_result(self, result: ClassificationResult) -> None:
        task = asyncio.ensure_future(self._writer.annotate(result))
        self._tasks.add(task)
        task.add_done_callback(lambda done: self._finalise(result, done))

    def _on_env_file_changed(self, path: Path) -> None:
        employee_id = self.reload_employee_id()
        logger.info("Reloaded %s, employee id is now %s", path, employee_id)

    def _finalise(self, result: ClassificationResult, task: asyncio.Task[bool]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        written = bool(task.result())
        for callback in list(self._callbacks):
            try:
                callback(result, written)
            except Exception:  # noqa: BLE001 - callbacks belong to the host
                logger.exception("Annotated callback failed for %s", result.uri)
