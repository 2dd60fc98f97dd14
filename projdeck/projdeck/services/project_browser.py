"""Project browser -- the single consumer of the pipeline.

The ``ProjectBrowser`` owns the ``ProjectStore``, drains the loader, applies
each event and re-sorts, and tracks the user's selection.  It is the only
writer of the store.

Selection is remembered by project key and re-resolved to a display index on
demand, so it follows the project when a re-sort moves it.

Every applied event (and the end of the stream) is published to subscriber
queues so the SSE endpoint can stream the live view.
"""

import asyncio
import logging
from collections.abc import AsyncIterator

from projdeck.models import (
    EventType,
    FeedEvent,
    LoadState,
    Project,
    ProjectAdded,
    ProjectEvent,
    SelectionMove,
    summarize,
)
from projdeck.services.event_channel import PipelineError
from projdeck.services.project_store import ProjectStore, StoreIntegrityError

logger = logging.getLogger(__name__)


class ProjectBrowser:
    """Consumer-side state: the store, pipeline status, and selection.

    Attributes:
        store: The project store; only this browser mutates it.
        state: Pipeline state as last observed.
        error: Terminal pipeline error message, if the pipeline failed.
        integrity_errors: Messages of store integrity violations seen so far.
    """

    def __init__(self, events: AsyncIterator[ProjectEvent] | None = None) -> None:
        """Initialise the browser.

        Args:
            events: The event source to drain in ``run`` -- normally a
                ``ProjectLoader``.  May be omitted when events are applied
                directly.
        """
        self.store = ProjectStore()
        self.state = LoadState.LOADING
        self.error = ""
        self.integrity_errors: list[str] = []
        self._events = events
        self._selected_key: str | None = None
        self._last_selected_key: str | None = None
        self._subscribers: set[asyncio.Queue[FeedEvent]] = set()

    # ------------------------------------------------------------------
    # Event consumption
    # ------------------------------------------------------------------

    async def run(self) -> None:
        """Drain the event source until the pipeline ends.

        A fatal pipeline error is recorded and published rather than raised,
        so the application keeps serving what was discovered.
        """
        if self._events is None:
            raise RuntimeError("ProjectBrowser has no event source to run")

        try:
            async for event in self._events:
                self.apply(event)
        except PipelineError as exc:
            self.state = LoadState.FAILED
            self.error = str(exc)
            logger.error("Project pipeline failed: %s", exc)
            self._publish(FeedEvent(event_type=EventType.ERROR, data=self.error))
            return

        self.state = LoadState.COMPLETE
        logger.info("Project pipeline complete: %d project(s)", len(self.store))
        self._publish(FeedEvent(event_type=EventType.DONE, data=f"{len(self.store)} project(s)"))

    def apply(self, event: ProjectEvent) -> bool:
        """Apply *event* to the store and re-sort.

        Integrity violations are logged and recorded; the store is left as it
        was and consumption continues.

        Returns:
            ``True`` if the event was applied.
        """
        try:
            project = self.store.apply(event)
        except StoreIntegrityError as exc:
            logger.error("Rejected project event: %s", exc)
            self.integrity_errors.append(str(exc))
            return False

        self.store.resort()
        event_type = EventType.ADD if isinstance(event, ProjectAdded) else EventType.UPDATE
        summary = summarize(project, self.store.index_of(project.key))
        self._publish(FeedEvent(event_type=event_type, data=summary.model_dump_json()))
        return True

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def subscribe(self) -> asyncio.Queue[FeedEvent]:
        """Register a new subscriber queue for feed events."""
        queue: asyncio.Queue[FeedEvent] = asyncio.Queue()
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[FeedEvent]) -> None:
        """Remove a subscriber queue; unknown queues are ignored."""
        self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        """Number of live feed subscribers."""
        return len(self._subscribers)

    def _publish(self, event: FeedEvent) -> None:
        for queue in self._subscribers:
            queue.put_nowait(event)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    @property
    def selected_index(self) -> int | None:
        """Current display index of the selected project, if any."""
        if self._selected_key is None:
            return None
        return self.store.index_of(self._selected_key)

    def current(self) -> Project | None:
        """Return the selected project, or ``None`` when nothing is selected."""
        if self._selected_key is None:
            return None
        return self.store.get(self._selected_key)

    def select(self, index: int) -> Project:
        """Select the project at display *index*.

        Raises:
            IndexError: If *index* is outside the display order.
        """
        if not 0 <= index < len(self.store):
            raise IndexError(f"Project index {index} out of range")
        project = self.store[index]
        self._selected_key = project.key
        return project

    def select_next(self) -> Project | None:
        """Move the selection down one row, wrapping to the top."""
        if not self.store:
            return None
        index = self.selected_index
        if index is None:
            return self.select(self._resume_index())
        return self.select(0 if index >= len(self.store) - 1 else index + 1)

    def select_previous(self) -> Project | None:
        """Move the selection up one row, wrapping to the bottom."""
        if not self.store:
            return None
        index = self.selected_index
        if index is None:
            return self.select(self._resume_index())
        return self.select(len(self.store) - 1 if index == 0 else index - 1)

    def select_first(self) -> Project | None:
        """Select the top row."""
        return self.select(0) if self.store else None

    def select_last(self) -> Project | None:
        """Select the bottom row."""
        return self.select(len(self.store) - 1) if self.store else None

    def unselect(self) -> None:
        """Clear the selection, remembering it for the next move."""
        if self._selected_key is not None:
            self._last_selected_key = self._selected_key
        self._selected_key = None

    def move(self, move: SelectionMove, index: int | None = None) -> Project | None:
        """Apply a ``SelectionMove``.

        Raises:
            IndexError: If ``move`` is ``INDEX`` and *index* is missing or out
                of range.
        """
        match move:
            case SelectionMove.INDEX:
                if index is None:
                    raise IndexError("An index is required to select by index")
                return self.select(index)
            case SelectionMove.NEXT:
                return self.select_next()
            case SelectionMove.PREVIOUS:
                return self.select_previous()
            case SelectionMove.FIRST:
                return self.select_first()
            case SelectionMove.LAST:
                return self.select_last()
            case SelectionMove.CLEAR:
                self.unselect()
                return None

    def _resume_index(self) -> int:
        if self._last_selected_key is not None and self._last_selected_key in self.store:
            return self.store.index_of(self._last_selected_key)
        return 0
