"""Clipboard paste heuristic consulted by the detection engine."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from .host import ClipboardReader
from .scheduler import Scheduler, TimerHandle

__all__ = ["ClipboardDetector"]

logger = logging.getLogger(__name__)

_EXACT_MATCH_FLOOR = 3
_SUBSTRING_MATCH_FLOOR = 20


class ClipboardDetector:
    """Decide whether an inserted string plausibly came from a paste.

    Two strategies are combined: a paste-in-progress flag raised by an
    intercepted paste command, and content matching against the last known
    clipboard text, refreshed by polling and on every intercepted paste.
    """

    def __init__(
        self,
        reader: Optional[ClipboardReader],
        scheduler: Scheduler,
        *,
        poll_interval: float = 1.5,
        paste_window: float = 0.5,
    ) -> None:
        self._reader = reader
        self._scheduler = scheduler
        self._poll_interval = poll_interval
        self._paste_window = paste_window
        self._paste_flag = False
        self._flag_timer: Optional[TimerHandle] = None
        self._poll_timer: Optional[TimerHandle] = None
        self._poll_task: Optional[asyncio.Task[None]] = None
        self._last_clipboard = ""

    @property
    def last_clipboard(self) -> str:
        return self._last_clipboard

    @property
    def paste_in_progress(self) -> bool:
        return self._paste_flag

    def was_pasted(self, inserted_text: str) -> bool:
        """Return ``True`` when ``inserted_text`` looks like a paste."""

        if self._paste_flag:
            return True

        clip = self._last_clipboard.strip()
        if (
            len(clip) > _EXACT_MATCH_FLOOR
            and len(inserted_text) > _EXACT_MATCH_FLOOR
            and inserted_text.strip() == clip
        ):
            return True

        # Short or blank clipboard snippets would match far too much code
        if len(clip) > _SUBSTRING_MATCH_FLOOR and clip in inserted_text:
            return True

        return False

    # ------------------------------------------------------------------
    # Paste interception
    # ------------------------------------------------------------------
    def begin_paste(self) -> None:
        """Raise the paste flag for the configured window."""

        self._paste_flag = True
        if self._flag_timer is not None:
            self._flag_timer.cancel()
        self._flag_timer = self._scheduler.call_later(self._paste_window, self._clear_paste_flag)

    async def on_paste(self) -> None:
        """Handle an intercepted paste command before the paste executes."""

        self.begin_paste()
        await self.refresh()

    def _clear_paste_flag(self) -> None:
        self._paste_flag = False
        self._flag_timer = None

    # ------------------------------------------------------------------
    # Clipboard polling
    # ------------------------------------------------------------------
    async def refresh(self) -> None:
        """Re-read the clipboard, keeping the previous value on failure."""

        if self._reader is None:
            return
        try:
            self._last_clipboard = await self._reader.read_text() or ""
        except Exception as exc:  # noqa: BLE001 - clipboard access is best effort
            logger.debug("Clipboard read failed: %s", exc)

    def set_clipboard(self, text: str) -> None:
        """Record clipboard text observed by the host directly."""

        self._last_clipboard = text or ""

    def start(self) -> None:
        """Begin polling the clipboard on the configured interval."""

        if self._poll_timer is None and self._reader is not None:
            self._poll_timer = self._scheduler.call_later(self._poll_interval, self._poll)

    def dispose(self) -> None:
        for timer in (self._poll_timer, self._flag_timer):
            if timer is not None:
                timer.cancel()
        self._poll_timer = None
        self._flag_timer = None
        if self._poll_task is not None and not self._poll_task.done():
            self._poll_task.cancel()
        self._poll_task = None
        self._paste_flag = False

    def _poll(self) -> None:
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.ensure_future(self.refresh())
        self._poll_timer = self._scheduler.call_later(self._poll_interval, self._poll)
