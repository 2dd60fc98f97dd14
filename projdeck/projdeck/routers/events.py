"""SSE events endpoint -- streams live-view changes to the client.

Uses ``sse-starlette`` to provide a standards-compliant Server-Sent Events
stream.  Each applied pipeline event produces an ``add`` or ``update`` event
whose data is the project's JSON summary; the stream ends with ``done`` or
``error`` when the pipeline does.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, HTTPException
from sse_starlette.sse import EventSourceResponse

from projdeck.models import EventType, LoadState

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from projdeck.services.project_browser import ProjectBrowser

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])

_browser: ProjectBrowser | None = None

_TERMINAL_EVENTS = {EventType.DONE, EventType.ERROR}


def set_browser(browser: ProjectBrowser) -> None:
    """Wire the shared ``ProjectBrowser`` into this router module."""
    global _browser
    _browser = browser


def _get_browser() -> ProjectBrowser:
    if _browser is None:
        raise HTTPException(status_code=503, detail="Project browser not initialised")
    return _browser


async def _event_generator(browser: ProjectBrowser) -> AsyncGenerator[dict[str, str], None]:
    """Yield feed events for SSE until the pipeline's terminal event.

    A client that connects after the pipeline has ended receives the terminal
    event immediately.
    """
    if browser.state is LoadState.COMPLETE:
        yield {"event": EventType.DONE.value, "data": f"{len(browser.store)} project(s)"}
        return
    if browser.state is LoadState.FAILED:
        yield {"event": EventType.ERROR.value, "data": browser.error}
        return

    queue = browser.subscribe()
    try:
        while True:
            event = await queue.get()
            yield {"event": event.event_type.value, "data": event.data}
            if event.event_type in _TERMINAL_EVENTS:
                break
    finally:
        browser.unsubscribe(queue)


@router.get("/events")
async def stream_events() -> EventSourceResponse:
    """Open an SSE stream of project additions and updates."""
    browser = _get_browser()
    return EventSourceResponse(_event_generator(browser))
