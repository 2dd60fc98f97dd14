"""Bounded event channel between the pipeline stages and the single consumer.

Both stages send into the same ``asyncio.Queue``; a full queue suspends the
sender, which is the pipeline's only backpressure.  Closing the channel
enqueues an end-of-stream marker behind every pending event, so the consumer
drains everything that was sent before it observes the end.
"""

import asyncio
import logging
from dataclasses import dataclass

from projdeck.models import ProjectEvent

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100


class ChannelClosedError(Exception):
    """Raised when sending on a channel that has already been closed."""


class PipelineError(Exception):
    """Terminal failure of the discovery pipeline.

    Raised by ``receive`` once the stream has ended because a stage failed;
    the stage's exception is chained as ``__cause__``.
    """


@dataclass(frozen=True)
class _EndOfStream:
    error: BaseException | None = None


class EventChannel:
    """Multi-producer, single-consumer bounded queue of ``ProjectEvent``.

    Attributes:
        capacity: Maximum number of pending events before senders suspend.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        self.capacity = capacity
        self._queue: asyncio.Queue[ProjectEvent | _EndOfStream] = asyncio.Queue(maxsize=capacity)
        self._closed = False
        self._end: _EndOfStream | None = None

    @property
    def closed(self) -> bool:
        """Whether ``close`` has been called."""
        return self._closed

    @property
    def pending(self) -> int:
        """Number of items currently buffered."""
        return self._queue.qsize()

    async def send(self, event: ProjectEvent) -> None:
        """Enqueue *event*, suspending while the channel is full.

        Raises:
            ChannelClosedError: If the channel was closed.
        """
        if self._closed:
            raise ChannelClosedError("Cannot send on a closed event channel")
        await self._queue.put(event)

    async def close(self, error: BaseException | None = None) -> None:
        """Mark the end of the stream, optionally as a failure.

        Args:
            error: The stage failure that ended the pipeline, or ``None`` for a
                clean end.
        """
        if self._closed:
            return
        self._closed = True
        await self._queue.put(_EndOfStream(error))

    async def receive(self) -> ProjectEvent | None:
        """Return the next event, suspending until one is available.

        Returns:
            The next event, or ``None`` once the stream has ended cleanly.

        Raises:
            PipelineError: Once the stream has ended with a failure.  Every
                later call raises again.
        """
        if self._end is None:
            item = await self._queue.get()
            if not isinstance(item, _EndOfStream):
                return item
            self._end = item

        if self._end.error is not None:
            raise PipelineError(str(self._end.error)) from self._end.error
        return None
