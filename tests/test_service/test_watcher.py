"""Tests for the filesystem watch trigger."""
from __future__ import annotations

from pathlib import Path

import pytest

from aiannotator.core.scheduler import VirtualScheduler
from aiannotator.watcher import FileChangeDispatcher, WatchdogFileWatcher, expand_braces


def buildDispatcher(root: Path, calls: list[str], **kwargs) -> tuple[FileChangeDispatcher, VirtualScheduler]:
    scheduler = VirtualScheduler()

    async def callback(uri: str) -> None:
        calls.append(uri)

    return FileChangeDispatcher(root, callback, scheduler, **kwargs), scheduler


def test_expand_braces() -> None:
    assert expand_braces("**/*.py") == ["**/*.py"]
    assert expand_braces("**/*.{ts,tsx}") == ["**/*.ts", "**/*.tsx"]
    assert expand_braces("{src,lib}/*.{c,h}") == ["src/*.c", "src/*.h", "lib/*.c", "lib/*.h"]


def test_pattern_matching_and_exclusions(tmp_path: Path) -> None:
    dispatcher, _ = buildDispatcher(tmp_path, [])

    assert dispatcher.matches(tmp_path / "app.py")
    assert dispatcher.matches(tmp_path / "src" / "deep" / "main.ts")
    assert not dispatcher.matches(tmp_path / "logo.png")
    assert not dispatcher.matches(tmp_path / "node_modules" / "pkg" / "index.js")
    assert not dispatcher.matches(tmp_path / ".git" / "hooks" / "pre-commit.sh")
    assert not dispatcher.matches(tmp_path / ".env")


def test_custom_patterns(tmp_path: Path) -> None:
    dispatcher, _ = buildDispatcher(tmp_path, [], patterns=["src/*.{c,h}"], env_file_name=".env.local")

    assert dispatcher.matches(tmp_path / "src" / "main.c")
    assert not dispatcher.matches(tmp_path / "main.c")
    assert not dispatcher.matches(tmp_path / "app.py")


@pytest.mark.asyncio
async def test_notifications_are_debounced_and_delayed(tmp_path: Path) -> None:
    calls: list[str] = []
    dispatcher, scheduler = buildDispatcher(tmp_path, calls)
    target = tmp_path / "app.py"

    assert dispatcher.notify(target) is True
    assert dispatcher.notify(target) is False
    assert dispatcher.notify(tmp_path / "notes.png") is False

    scheduler.advance(0.4)
    await dispatcher.drain()
    assert calls == []

    scheduler.advance(0.1)
    await dispatcher.drain()
    assert calls == [target.as_uri()]

    scheduler.advance(1.0)
    assert dispatcher.notify(target) is False
    scheduler.advance(0.5)
    assert dispatcher.notify(target) is True



def test_env_file_changes_reload_instead_of_dispatching(tmp_path: Path) -> None:
    calls: list[str] = []
    reloads: list[Path] = []
    dispatcher, scheduler = buildDispatcher(tmp_path, calls, on_env_change=reloads.append)
    env_file = tmp_path / ".env"

    assert dispatcher.notify(env_file) is True
    assert dispatcher.notify(env_file) is False
    assert dispatcher.notify(tmp_path / "nested" / ".env") is False

    scheduler.advance(0.5)
    assert reloads == [env_file]
    assert calls == []


def test_env_file_is_ignored_without_reload_callback(tmp_path: Path) -> None:
    dispatcher, _ = buildDispatcher(tmp_path, [])

    assert dispatcher.notify(tmp_path / ".env") is False
    assert dispatcher.recent_paths == ()


def test_failing_env_reload_is_contained(tmp_path: Path) -> None:
    def reload(path: Path) -> None:
        raise ValueError("bad env file")

    dispatcher, scheduler = buildDispatcher(tmp_path, [], on_env_change=reload)
    dispatcher.notify(tmp_path / ".env")
    scheduler.advance(0.5)

    assert dispatcher.notify(tmp_path / "app.py") is True


@pytest.mark.asyncio
async def test_expired_debounce_entries_are_forgotten(tmp_path: Path) -> None:
    dispatcher, scheduler = buildDispatcher(tmp_path, [])

    for index in range(50):
        dispatcher.notify(tmp_path / f"module_{index}.py")
    assert len(dispatcher.recent_paths) == 50

    scheduler.advance(2.0)
    dispatcher.notify(tmp_path / "fresh.py")
    assert dispatcher.recent_paths == ((tmp_path / "fresh.py").as_posix(),)

@pytest.mark.asyncio
async def test_failing_callback_is_contained(tmp_path: Path) -> None:
    scheduler = VirtualScheduler()

    async def callback(uri: str) -> None:
        raise RuntimeError("broken")

    dispatcher = FileChangeDispatcher(tmp_path, callback, scheduler)
    dispatcher.notify(tmp_path / "app.py")
    scheduler.advance(0.5)
    await dispatcher.drain()

    assert not dispatcher.has_pending_tasks


@pytest.mark.asyncio
async def test_watchdog_watcher_start_and_stop(tmp_path: Path) -> None:
    dispatcher, _ = buildDispatcher(tmp_path, [])
    watcher = WatchdogFileWatcher(dispatcher)

    watcher.start()
    assert watcher.running
    watcher.start()

    watcher.stop()
    assert not watcher.running
    watcher.stop()
