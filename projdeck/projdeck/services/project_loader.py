"""Project loader -- the pipeline driver.

The ``ProjectLoader`` owns the discovery and enrichment stages, the queue
that forwards paths between them, and the consumer half of the event
channel.  The rest of the application only ever calls ``next_event`` (or
iterates the loader) and ``aclose``.

Task layout::

    fetcher  --Add-->     channel  --> consumer
       |                     ^
       +--path--> walker --Update

A supervisor task waits for the fetcher, closes the forward queue, waits for
the walker, and then closes the channel, attaching the first stage failure so
the consumer sees it as the terminal item of the stream.
"""

import asyncio
import logging
import threading
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from types import TracebackType
from typing import Self

from projdeck.config import DeckSettings
from projdeck.models import ProjectEvent
from projdeck.services.event_channel import DEFAULT_CAPACITY, EventChannel
from projdeck.services.project_discovery import ProjectFetcher
from projdeck.services.project_walker import ProjectWalker

logger = logging.getLogger(__name__)


class ConfigurationError(Exception):
    """Raised when the loader is configured with unusable input."""


class ProjectLoader:
    """Runs discovery and enrichment and multiplexes their events.

    Usage::

        async with ProjectLoader(["~/src"]) as loader:
            async for event in loader:
                store.apply(event)
    """

    def __init__(
        self,
        project_dirs: Sequence[str],
        *,
        fetch_concurrency: int = 8,
        walk_concurrency: int = 8,
        channel_capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        """Initialise the loader without starting it.

        Args:
            project_dirs: Ordered root path specifications.
            fetch_concurrency: Candidate fan-out limit per root.
            walk_concurrency: Traversal fan-out limit.
            channel_capacity: Bound on pending events.

        Raises:
            ConfigurationError: If *project_dirs* is empty.
        """
        if not project_dirs:
            raise ConfigurationError("No project directories configured")

        self.project_dirs = list(project_dirs)
        self._channel = EventChannel(channel_capacity)
        # Unbounded: put() never suspends, even after the walker has failed.
        self._forward: asyncio.Queue[Path | None] = asyncio.Queue()
        self._executor = ThreadPoolExecutor(max_workers=walk_concurrency, thread_name_prefix="projdeck-walker")
        self._stop = threading.Event()
        self._fetcher = ProjectFetcher(concurrency=fetch_concurrency)
        self._walker = ProjectWalker(self._executor, concurrency=walk_concurrency, stop=self._stop)
        self._tasks: list[asyncio.Task[object]] = []
        self._started = False

    @classmethod
    def from_settings(cls, settings: DeckSettings) -> Self:
        """Build a loader from application settings."""
        return cls(
            settings.project_dirs,
            fetch_concurrency=settings.fetch_concurrency,
            walk_concurrency=settings.walk_concurrency,
            channel_capacity=settings.channel_capacity,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Launch both stages.  Must be called from a running event loop."""
        if self._started:
            return
        self._started = True
        logger.info("Starting project discovery over %d root(s)", len(self.project_dirs))

        fetcher = asyncio.create_task(
            self._fetcher.run(self.project_dirs, self._channel, self._forward), name="projdeck-fetcher"
        )
        walker = asyncio.create_task(self._walker.run(self._forward, self._channel), name="projdeck-walker")
        supervisor = asyncio.create_task(self._supervise(fetcher, walker), name="projdeck-supervisor")
        self._tasks = [fetcher, walker, supervisor]

    async def _supervise(self, fetcher: asyncio.Task[int], walker: asyncio.Task[int]) -> None:
        error: BaseException | None = None
        try:
            announced = await fetcher
            logger.info("Discovery finished: %d project(s)", announced)
        except Exception as exc:
            logger.error("Discovery failed: %s", exc)
            error = exc
        finally:
            await self._forward.put(None)

        try:
            enriched = await walker
            logger.info("Enrichment finished: %d project(s)", enriched)
        except Exception as exc:
            logger.error("Enrichment failed: %s", exc)
            error = error or exc

        await self._channel.close(error)

    async def aclose(self) -> None:
        """Stop both stages without waiting for outstanding walks to finish.

        Traversals already running on the pool are told to stop and return
        early; queued ones are dropped.
        """
        self._stop.set()
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info("Project loader closed")

    async def __aenter__(self) -> Self:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    # ------------------------------------------------------------------
    # Consumer API
    # ------------------------------------------------------------------

    async def next_event(self) -> ProjectEvent | None:
        """Return the next pending event, suspending until one is available.

        Returns:
            The next event, or ``None`` once no more events will ever arrive.

        Raises:
            PipelineError: If the pipeline ended because a stage failed.
        """
        return await self._channel.receive()

    def __aiter__(self) -> Self:
        return self

    async def __anext__(self) -> ProjectEvent:
        event = await self.next_event()
        if event is None:
            raise StopAsyncIteration
        return event
