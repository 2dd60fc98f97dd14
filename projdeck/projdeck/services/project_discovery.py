"""Project discovery service -- lists the configured roots for candidate projects.

Every immediate sub-directory of a root is a candidate project.  Each one gets
a light metadata read (README text, ``.git`` probe, its own mtime) on a worker
thread, is announced on the event channel with an ``Add`` event, and is then
forwarded to the walker for the full recursive scan.

Roots are processed one after another; candidates within a root are fanned
out with a bounded number in flight.  A candidate that fails to read is
logged and skipped.  A root that cannot be listed stops discovery with a
``RootListingError``.
"""

import asyncio
import logging
import os
from datetime import UTC, datetime
from pathlib import Path

from projdeck.models import Project, ProjectAdded
from projdeck.services.event_channel import EventChannel

logger = logging.getLogger(__name__)

README_NAMES = ("README.md", "README", "README.rst", "README.txt")
README_MAX_BYTES = 64 * 1024


class RootListingError(Exception):
    """Raised when a configured root directory cannot be listed.

    Attributes:
        root: The expanded root path.
    """

    def __init__(self, root: Path, reason: OSError) -> None:
        self.root = root
        super().__init__(f"Cannot list project root {str(root)!r}: {reason.strerror or reason}")


def expand_root(spec: str) -> Path:
    """Expand ``~`` and ``$VAR`` references in a configured root.

    Args:
        spec: Root path as written in configuration.

    Returns:
        The expanded path.  It is not resolved, so the error message for a
        missing root names what the user wrote.
    """
    return Path(os.path.expandvars(spec)).expanduser()


def _read_readme(directory: Path) -> str | None:
    """Return the text of the first conventional README in *directory*.

    Best-effort: an unreadable README is treated as absent.
    """
    for name in README_NAMES:
        candidate = directory / name
        if not candidate.is_file():
            continue
        try:
            with candidate.open("r", encoding="utf-8", errors="replace") as handle:
                return handle.read(README_MAX_BYTES)
        except OSError:
            logger.debug("Could not read %s", candidate)
            return None
    return None


def read_project(directory: Path) -> Project:
    """Capture discovery-time metadata for *directory*.

    ``file_count`` starts at 0 and ``modified`` at the directory's own mtime;
    the walker refines both.

    Args:
        directory: A candidate project directory.

    Returns:
        A ``Project`` with provisional activity values.

    Raises:
        OSError: If the directory cannot be stat'ed (permission, vanished).
    """
    resolved = directory.resolve()
    stat = resolved.stat()
    return Project(
        path=str(resolved),
        name=resolved.name,
        readme=_read_readme(resolved),
        is_git=(resolved / ".git").exists(),
        modified=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
        file_count=0,
    )


def list_candidates(root: Path) -> list[Path]:
    """Return the immediate sub-directories of *root*, sorted by name.

    Raises:
        OSError: If *root* itself cannot be listed.
    """
    return sorted((child for child in root.iterdir() if child.is_dir()), key=lambda p: p.name)


class ProjectFetcher:
    """Discovery stage: roots in, ``Add`` events and forwarded paths out.

    Attributes:
        concurrency: Maximum candidates read at once within a root.
    """

    def __init__(self, concurrency: int = 8) -> None:
        self.concurrency = concurrency

    async def run(
        self,
        roots: list[str],
        channel: EventChannel,
        forward: asyncio.Queue[Path | None],
    ) -> int:
        """Discover every candidate under *roots*.

        The caller owns *forward* and is responsible for closing it once this
        coroutine returns or raises.

        Args:
            roots: Root path specifications, processed in order.
            channel: Destination for ``Add`` events.
            forward: Queue feeding the walker.

        Returns:
            Number of projects announced.

        Raises:
            RootListingError: If a root cannot be listed.
        """
        slots = asyncio.Semaphore(self.concurrency)
        announced = 0

        async def discover(candidate: Path) -> bool:
            try:
                try:
                    project = await asyncio.to_thread(read_project, candidate)
                except OSError as exc:
                    logger.warning("Skipping %s: %s", candidate, exc)
                    return False
                await channel.send(ProjectAdded(project=project))
                await forward.put(Path(project.path))
                return True
            finally:
                slots.release()

        for spec in roots:
            root = expand_root(spec)
            try:
                candidates = await asyncio.to_thread(list_candidates, root)
            except OSError as exc:
                raise RootListingError(root, exc) from exc

            logger.info("Found %d candidate project(s) under %s", len(candidates), root)

            tasks: list[asyncio.Task[bool]] = []
            async with asyncio.TaskGroup() as group:
                for candidate in candidates:
                    await slots.acquire()
                    tasks.append(group.create_task(discover(candidate)))
            announced += sum(1 for task in tasks if task.result())

        return announced
