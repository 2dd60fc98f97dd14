"""Project walker -- the enrichment stage.

Consumes the paths the discovery stage forwards and computes, for each, the
latest modification time and the number of files beneath it, skipping hidden
and git-ignored entries.  Traversals are blocking filesystem work and run on
a dedicated thread pool so they never stall the event loop that serves the
consumer.
"""

import asyncio
import logging
import os
import threading
from concurrent.futures import Executor
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from projdeck.models import ProjectUpdated
from projdeck.services.event_channel import EventChannel
from projdeck.services.ignore_rules import is_hidden, load_ignore_matcher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TreeSummary:
    """Aggregates of one recursive walk.

    Attributes:
        modified: Latest mtime seen, as a POSIX timestamp.  Never earlier than
            the walked directory's own mtime.
        file_count: Number of included files.
    """

    modified: float
    file_count: int


def summarize_tree(directory: Path, stop: threading.Event | None = None) -> TreeSummary:
    """Walk *directory* recursively and aggregate file activity.

    Unreadable sub-directories and files that vanish mid-walk are skipped, so
    the result is best-effort.  Directory symlinks are not followed.

    Args:
        directory: The project directory to walk.
        stop: When set, the walk returns early with the aggregates so far.

    Returns:
        The aggregated ``TreeSummary``.

    Raises:
        OSError: If *directory* itself cannot be stat'ed.
    """
    latest = directory.stat().st_mtime
    file_count = 0
    matcher = load_ignore_matcher(directory)
    root = str(directory)

    def _on_error(exc: OSError) -> None:
        logger.debug("Skipping unreadable entry during walk of %s: %s", directory, exc)

    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        if stop is not None and stop.is_set():
            logger.debug("Walk of %s stopped early", directory)
            break

        relative_dir = os.path.relpath(dirpath, root)
        prefix = "" if relative_dir == "." else relative_dir.replace(os.sep, "/") + "/"

        dirnames[:] = [
            name
            for name in dirnames
            if not is_hidden(name) and not (matcher and matcher.is_ignored(prefix + name, is_dir=True))
        ]

        for name in filenames:
            if stop is not None and stop.is_set():
                break
            if is_hidden(name) or (matcher and matcher.is_ignored(prefix + name)):
                continue
            try:
                mtime = os.lstat(os.path.join(dirpath, name)).st_mtime
            except OSError:
                continue
            file_count += 1
            if mtime > latest:
                latest = mtime

    return TreeSummary(modified=latest, file_count=file_count)


class ProjectWalker:
    """Enrichment stage: forwarded paths in, ``Update`` events out.

    Attributes:
        concurrency: Maximum traversals in flight.
    """

    def __init__(self, executor: Executor, concurrency: int = 8, stop: threading.Event | None = None) -> None:
        self.concurrency = concurrency
        self._executor = executor
        self._stop = stop

    async def run(self, paths: asyncio.Queue[Path | None], channel: EventChannel) -> int:
        """Enrich every path put on *paths* until a ``None`` marker arrives.

        Args:
            paths: Queue fed by the discovery stage; ``None`` closes it.
            channel: Destination for ``Update`` events.

        Returns:
            Number of ``Update`` events emitted.
        """
        slots = asyncio.Semaphore(self.concurrency)
        loop = asyncio.get_running_loop()

        async def enrich(path: Path) -> bool:
            try:
                try:
                    summary = await loop.run_in_executor(self._executor, summarize_tree, path, self._stop)
                except OSError as exc:
                    logger.warning("Could not enrich %s: %s", path, exc)
                    return False
                await channel.send(
                    ProjectUpdated(
                        key=str(path),
                        modified=datetime.fromtimestamp(summary.modified, tz=UTC),
                        file_count=summary.file_count,
                    )
                )
                logger.debug("Enriched %s: %d file(s)", path, summary.file_count)
                return True
            finally:
                slots.release()

        tasks: list[asyncio.Task[bool]] = []
        async with asyncio.TaskGroup() as group:
            while (path := await paths.get()) is not None:
                await slots.acquire()
                tasks.append(group.create_task(enrich(path)))

        return sum(1 for task in tasks if task.result())
