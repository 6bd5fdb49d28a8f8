"""Per-file engine state shared by the classifier and the annotation writer."""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable, Optional

from .host import file_key
from .scheduler import Scheduler

__all__ = [
    "SuppressionSet",
    "CooldownTable",
    "SnapshotStore",
    "AnnotatorState",
]

logger = logging.getLogger(__name__)


class SuppressionSet:
    """Document identities currently being written by the annotation writer.

    Membership is reference counted so an early release from one write never
    clears the suppression of a later overlapping write on the same file.
    """

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._counts: Counter[str] = Counter()

    def __contains__(self, identity: object) -> bool:
        return isinstance(identity, str) and self._counts[identity] > 0

    def __len__(self) -> int:
        return sum(1 for count in self._counts.values() if count > 0)

    def is_suppressed(self, uri: str) -> bool:
        """Return ``True`` when ``uri`` or its underlying file is suppressed."""

        return uri in self or file_key(uri) in self

    def acquire(self, identities: Iterable[str]) -> tuple[str, ...]:
        keys = tuple(dict.fromkeys(identities))
        for key in keys:
            self._counts[key] += 1
        return keys

    def release(self, identities: Iterable[str]) -> None:
        for key in identities:
            if self._counts[key] <= 1:
                self._counts.pop(key, None)
            else:
                self._counts[key] -= 1

    def release_later(self, identities: Iterable[str], delay: float) -> None:
        """Release ``identities`` once ``delay`` seconds have elapsed."""

        keys = tuple(identities)
        self._scheduler.call_later(delay, self.release, keys)

    def discard(self, identities: Iterable[str]) -> None:
        """Drop every reference held for ``identities``."""

        for key in identities:
            self._counts.pop(key, None)


class CooldownTable:
    """Timestamp of the last successful annotation per file key."""

    def __init__(self, scheduler: Scheduler) -> None:
        self._scheduler = scheduler
        self._stamps: dict[str, float] = {}

    def record(self, key: str) -> None:
        self._stamps[key] = self._scheduler.now()

    def last(self, key: str) -> Optional[float]:
        return self._stamps.get(key)

    def is_cooling(self, key: str, interval: float) -> bool:
        stamp = self._stamps.get(key)
        if stamp is None:
            return False
        return self._scheduler.now() - stamp < interval

    def forget(self, key: str) -> None:
        self._stamps.pop(key, None)

    def __len__(self) -> int:
        return len(self._stamps)


class SnapshotStore:
    """Last known clean text of each document, keyed by URI."""

    def __init__(self) -> None:
        self._snapshots: dict[str, str] = {}

    def take(self, uri: str, content: str) -> None:
        self._snapshots[uri] = content

    def get(self, uri: str) -> Optional[str]:
        return self._snapshots.get(uri)

    def forget(self, uri: str) -> None:
        self._snapshots.pop(uri, None)

    def __contains__(self, uri: object) -> bool:
        return uri in self._snapshots

    def __len__(self) -> int:
        return len(self._snapshots)


@dataclass
class AnnotatorState:
    """Engine-wide state, injected into the classifier and the writer."""

    scheduler: Scheduler
    suppression: SuppressionSet = field(init=False)
    cooldowns: CooldownTable = field(init=False)
    snapshots: SnapshotStore = field(default_factory=SnapshotStore)

    def __post_init__(self) -> None:
        self.suppression = SuppressionSet(self.scheduler)
        self.cooldowns = CooldownTable(self.scheduler)

    def forget_document(self, uri: str) -> None:
        """Purge every trace of ``uri`` from the shared state."""

        key = file_key(uri)
        self.snapshots.forget(uri)
        self.cooldowns.forget(key)
        self.suppression.discard((uri, key))
        logger.debug("Purged annotation state for %s", uri)
