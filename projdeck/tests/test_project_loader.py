"""End-to-end tests for the pipeline driver.

Runs the real fetcher and walker over temporary roots and checks event
ordering, the resulting store order, terminal errors, and shutdown.
"""

import asyncio
import os
import threading
from datetime import UTC, datetime
from pathlib import Path

import pytest

from projdeck.config import DeckSettings
from projdeck.models import ProjectAdded, ProjectEvent, ProjectUpdated
from projdeck.services import project_walker
from projdeck.services.event_channel import PipelineError
from projdeck.services.project_loader import ConfigurationError, ProjectLoader
from projdeck.services.project_store import ProjectStore

T0 = 1_700_000_000
T1 = T0 + 600


async def _collect(loader: ProjectLoader) -> list[ProjectEvent]:
    """Drain *loader* to its clean end, with a safety timeout."""
    async with asyncio.timeout(10):
        return [event async for event in loader]


@pytest.fixture()
def two_roots(tmp_path: Path) -> tuple[Path, Path]:
    """Two roots holding one project each.

    - ``root_a/A``: no descendants, mtime T0
    - ``root_b/B``: one file with mtime T1, directory mtime T0

    Args:
        tmp_path: Pytest-provided temporary directory.

    Returns:
        The two root paths.
    """
    project_a = tmp_path / "root_a" / "A"
    project_b = tmp_path / "root_b" / "B"
    project_a.mkdir(parents=True)
    project_b.mkdir(parents=True)

    newest = project_b / "main.py"
    newest.write_text("print('b')")
    os.utime(newest, (T1, T1))
    for directory in (project_a, project_b):
        os.utime(directory, (T0, T0))
    return tmp_path / "root_a", tmp_path / "root_b"


def test_empty_roots_is_a_configuration_error() -> None:
    """The driver refuses to start without roots."""
    with pytest.raises(ConfigurationError):
        ProjectLoader([])


@pytest.mark.asyncio()
async def test_from_settings_uses_configured_limits() -> None:
    """Settings carry the roots, both fan-out limits, and the channel capacity."""
    settings = DeckSettings(project_dirs=["/a", "/b"], fetch_concurrency=3, walk_concurrency=2, channel_capacity=7)
    loader = ProjectLoader.from_settings(settings)
    try:
        assert loader.project_dirs == ["/a", "/b"]
        assert loader._fetcher.concurrency == 3
        assert loader._walker.concurrency == 2
        assert loader._channel.capacity == 7
    finally:
        await loader.aclose()


@pytest.mark.asyncio()
async def test_discovery_then_enrichment_resorts_store(two_roots: tuple[Path, Path]) -> None:
    """Adds sort by name on a tie; enrichment moves the newer project first."""
    root_a, root_b = two_roots

    async with ProjectLoader([str(root_a), str(root_b)]) as loader:
        events = await _collect(loader)

    adds = [event for event in events if isinstance(event, ProjectAdded)]
    updates = [event for event in events if isinstance(event, ProjectUpdated)]
    assert len(adds) == 2
    assert len(updates) == 2

    discovered = ProjectStore()
    for event in adds:
        discovered.apply(event)
    discovered.resort()
    assert [p.name for p in discovered] == ["A", "B"]
    assert all(p.modified == datetime.fromtimestamp(T0, tz=UTC) for p in discovered)

    store = ProjectStore()
    for event in events:
        if isinstance(event, ProjectUpdated):
            assert event.key in store
        store.apply(event)
        store.resort()

    assert [p.name for p in store] == ["B", "A"]
    assert store[0].modified == datetime.fromtimestamp(T1, tz=UTC)
    assert store[0].file_count == 1
    assert store[1].file_count == 0


@pytest.mark.asyncio()
async def test_missing_root_ends_stream_with_error(two_roots: tuple[Path, Path], tmp_path: Path) -> None:
    """Projects found before a bad root are delivered, then the stream fails."""
    root_a, _ = two_roots
    loader = ProjectLoader([str(root_a), str(tmp_path / "missing")])
    loader.start()

    received: list[ProjectEvent] = []
    try:
        async with asyncio.timeout(10):
            with pytest.raises(PipelineError) as exc_info:
                while (event := await loader.next_event()) is not None:
                    received.append(event)
    finally:
        await loader.aclose()

    assert "missing" in str(exc_info.value)
    assert [type(event) for event in received] == [ProjectAdded, ProjectUpdated]


@pytest.mark.asyncio()
async def test_vanished_project_does_not_fail_stream(
    two_roots: tuple[Path, Path], monkeypatch: pytest.MonkeyPatch
) -> None:
    """A project removed before its walk is left unenriched; the stream ends cleanly."""
    root_a, root_b = two_roots
    real_summarize = project_walker.summarize_tree

    def summarize_or_vanish(directory: Path, stop: threading.Event | None = None) -> project_walker.TreeSummary:
        if directory.name == "B":
            raise FileNotFoundError(2, "No such file or directory", str(directory))
        return real_summarize(directory, stop)

    monkeypatch.setattr(project_walker, "summarize_tree", summarize_or_vanish)

    async with ProjectLoader([str(root_a), str(root_b)]) as loader:
        events = await _collect(loader)
        assert await loader.next_event() is None

    updated_keys = {event.key for event in events if isinstance(event, ProjectUpdated)}
    assert {Path(key).name for key in updated_keys} == {"A"}
    assert sum(isinstance(event, ProjectAdded) for event in events) == 2


@pytest.mark.asyncio()
async def test_aclose_stops_a_stalled_pipeline(two_roots: tuple[Path, Path]) -> None:
    """Closing while the consumer never drains returns promptly."""
    root_a, root_b = two_roots
    loader = ProjectLoader([str(root_a), str(root_b)], channel_capacity=1)
    loader.start()
    await asyncio.sleep(0.05)

    async with asyncio.timeout(5):
        await loader.aclose()


@pytest.mark.asyncio()
async def test_aclose_stops_running_walks(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """A traversal already running on the pool returns once the loader closes."""
    (tmp_path / "root" / "huge").mkdir(parents=True)
    started = threading.Event()
    finished = threading.Event()
    observed_stop: list[bool] = []

    def endless_walk(directory: Path, stop: threading.Event | None = None) -> project_walker.TreeSummary:
        started.set()
        assert stop is not None
        observed_stop.append(stop.wait(timeout=5))
        finished.set()
        return project_walker.TreeSummary(modified=0.0, file_count=0)

    monkeypatch.setattr(project_walker, "summarize_tree", endless_walk)

    loader = ProjectLoader([str(tmp_path / "root")])
    loader.start()
    assert await asyncio.to_thread(started.wait, 5)

    await loader.aclose()

    assert await asyncio.to_thread(finished.wait, 5)
    assert observed_stop == [True]
