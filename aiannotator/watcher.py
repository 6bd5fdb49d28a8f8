"""Filesystem watch trigger feeding whole-file changes to the engine."""

from __future__ import annotations

import asyncio
import fnmatch
import logging
import re
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from aiannotator.core.config import DEFAULT_WATCH_PATTERNS
from aiannotator.core.scheduler import Scheduler

__all__ = [
    "FileChangeDispatcher",
    "WatchdogFileWatcher",
    "expand_braces",
]

logger = logging.getLogger(__name__)

FileChangeCallback = Callable[[str], Awaitable[Any]]
EnvChangeCallback = Callable[[Path], Any]

_BRACE = re.compile(r"\{([^{}]*)\}")
_EXCLUDED_PARTS = frozenset(("node_modules", ".git"))


def expand_braces(pattern: str) -> list[str]:
    """Expand ``{a,b}`` alternatives, ``fnmatch`` has no brace support."""

    match = _BRACE.search(pattern)
    if match is None:
        return [pattern]
    head, tail = pattern[:match.start()], pattern[match.end():]
    expanded: list[str] = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(f"{head}{option}{tail}"))
    return expanded


class FileChangeDispatcher:
    """Filter, debounce and delay filesystem notifications for one workspace root."""

    def __init__(
        self,
        root: Path | str,
        callback: FileChangeCallback,
        scheduler: Scheduler,
        *,
        patterns: Iterable[str] = DEFAULT_WATCH_PATTERNS,
        env_file_name: str = ".env",
        debounce: float = 2.0,
        settle_delay: float = 0.5,
        on_env_change: Optional[EnvChangeCallback] = None,
    ) -> None:
        self._root = Path(root)
        self._callback = callback
        self._scheduler = scheduler
        self._patterns = tuple(p for pattern in patterns for p in expand_braces(pattern))
        self._env_file_name = env_file_name
        self._debounce = debounce
        self._settle_delay = settle_delay
        self._on_env_change = on_env_change
        self._recent: dict[str, float] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def root(self) -> Path:
        return self._root

    @property
    def patterns(self) -> tuple[str, ...]:
        return self._patterns

    @property
    def recent_paths(self) -> tuple[str, ...]:
        """Paths still inside their debounce window."""
        return tuple(self._recent)

    @property
    def has_pending_tasks(self) -> bool:
        return bool(self._tasks)

    def is_env_file(self, path: Path | str) -> bool:
        """Return ``True`` for the env file directly under the workspace root."""

        candidate = Path(path)
        return candidate.name == self._env_file_name and candidate.parent == self._root

    def matches(self, path: Path | str) -> bool:
        """Return ``True`` when ``path`` is a watched, non-excluded file."""

        candidate = Path(path)
        try:
            relative = candidate.relative_to(self._root).as_posix()
        except ValueError:
            relative = candidate.as_posix()
        parts = set(Path(relative).parts)
        if parts & _EXCLUDED_PARTS or candidate.name == self._env_file_name:
            return False
        anchored = f"/{relative}"
        return any(
            fnmatch.fnmatch(relative, pattern) or fnmatch.fnmatch(anchored, pattern)
            for pattern in self._patterns
        )

    def notify(self, path: Path | str) -> bool:
        """Handle a changed or created file; returns ``True`` when dispatched."""

        if self.is_env_file(path):
            if self._on_env_change is None or not self._claim(path):
                return False
            logger.debug("Env file changed: %s", path)
            self._scheduler.call_later(self._settle_delay, self._reload_env, Path(path))
            return True

        if not self.matches(path) or not self._claim(path):
            return False

        key = Path(path).as_posix()
        logger.debug("File changed: %s", key)
        # Let the writing tool finish before reading the file
        self._scheduler.call_later(self._settle_delay, self._dispatch, Path(path).as_uri())
        return True

    def _claim(self, path: Path | str) -> bool:
        now = self._scheduler.now()
        self._recent = {
            key: seen for key, seen in self._recent.items() if now - seen < self._debounce
        }
        key = Path(path).as_posix()
        if key in self._recent:
            return False
        self._recent[key] = now
        return True

    def _reload_env(self, path: Path) -> None:
        if self._on_env_change is None:
            return
        try:
            self._on_env_change(path)
        except Exception as exc:  # noqa: BLE001 - a bad env file must not stop the watcher
            logger.error("Env file reload failed for %s: %s", path, exc)

    def _dispatch(self, uri: str) -> None:
        task = asyncio.ensure_future(self._callback(uri))
        self._tasks.add(task)
        task.add_done_callback(self._finalise_task)

    def _finalise_task(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("File change handler failed: %s", task.exception())

    async def drain(self) -> None:
        """Wait for every dispatched callback to complete."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)


class _DispatchHandler(FileSystemEventHandler):
    """Marshal watchdog events from the observer thread onto the event loop."""

    def __init__(self, dispatcher: FileChangeDispatcher, loop: asyncio.AbstractEventLoop) -> None:
        self._dispatcher = dispatcher
        self._loop = loop

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path)

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self._forward(event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        # Atomic saves write a temporary file and rename it into place
        if not event.is_directory:
            self._forward(event.dest_path)

    def _forward(self, path: Any) -> None:
        if isinstance(path, bytes):
            path = path.decode("utf-8", errors="replace")
        self._loop.call_soon_threadsafe(self._dispatcher.notify, str(path))


class WatchdogFileWatcher:
    """Watch a workspace root with a ``watchdog`` observer."""

    def __init__(
        self,
        dispatcher: FileChangeDispatcher,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._loop = loop
        self._observer: Optional[Any] = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        if self._observer is not None:
            return
        loop = self._loop or asyncio.get_running_loop()
        observer = Observer()
        observer.schedule(_DispatchHandler(self._dispatcher, loop), str(self._dispatcher.root), recursive=True)
        observer.start()
        self._observer = observer
        logger.info(
            "File watcher active for %d patterns under %s",
            len(self._dispatcher.patterns),
            self._dispatcher.root,
        )

    def stop(self) -> None:
        if self._observer is None:
            return
        self._observer.stop()
        self._observer.join()
        self._observer = None
