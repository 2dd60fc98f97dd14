"""Project list, selection, and open endpoints.

These are thin views over the ``ProjectBrowser``: the list is read in the
store's current display order, selection moves are applied to the browser,
and ``/open`` hands the chosen project to the opener.
"""

import logging

from fastapi import APIRouter, HTTPException

from projdeck.config import OpenerSettings
from projdeck.models import (
    OpenRequest,
    OpenResponse,
    ProjectDetail,
    ProjectsResponse,
    SelectionRequest,
    SelectionResponse,
    summarize,
)
from projdeck.services.project_browser import ProjectBrowser
from projdeck.services.project_opener import OpenerError, open_project
from projdeck.services.project_store import ProjectNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["projects"])

_browser: ProjectBrowser | None = None
_opener_settings = OpenerSettings()


def set_browser(browser: ProjectBrowser, opener_settings: OpenerSettings | None = None) -> None:
    """Wire the shared ``ProjectBrowser`` (and opener settings) into this router.

    Args:
        browser: The application-wide browser instance.
        opener_settings: How ``/open`` launches projects; defaults are kept
            when omitted.
    """
    global _browser, _opener_settings
    _browser = browser
    if opener_settings is not None:
        _opener_settings = opener_settings


def _get_browser() -> ProjectBrowser:
    """Return the wired browser or raise 503 if it has not been set."""
    if _browser is None:
        raise HTTPException(status_code=503, detail="Project browser not initialised")
    return _browser


@router.get("/projects", response_model=ProjectsResponse)
async def list_projects() -> ProjectsResponse:
    """List every known project, most recently active first.

    Indices are positions in the current display order and may change as
    soon as another event is applied.
    """
    browser = _get_browser()
    return ProjectsResponse(
        state=browser.state,
        error=browser.error,
        selected_index=browser.selected_index,
        projects=[summarize(project, index) for index, project in enumerate(browser.store)],
    )


@router.get("/projects/{index}", response_model=ProjectDetail)
async def get_project(index: int) -> ProjectDetail:
    """Return the project at display *index*, including its README."""
    browser = _get_browser()
    if not 0 <= index < len(browser.store):
        raise HTTPException(status_code=404, detail=f"No project at index {index}")
    project = browser.store[index]
    return ProjectDetail(**summarize(project, index).model_dump(), readme=project.readme)


@router.post("/selection", response_model=SelectionResponse)
async def change_selection(request: SelectionRequest) -> SelectionResponse:
    """Apply a selection move and return the resulting selection."""
    browser = _get_browser()
    try:
        project = browser.move(request.move, request.index)
    except IndexError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    index = browser.selected_index
    if project is None or index is None:
        return SelectionResponse()
    return SelectionResponse(selected_index=index, project=summarize(project, index))


@router.post("/open", response_model=OpenResponse)
async def open_selected(request: OpenRequest) -> OpenResponse:
    """Open the requested project, or the current selection.

    The call returns once the launched program exits.  Opener failures are
    reported to the caller and leave the store untouched.
    """
    browser = _get_browser()

    if request.key is not None:
        try:
            project = browser.store.get(request.key)
        except ProjectNotFoundError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
    else:
        project = browser.current()
        if project is None:
            raise HTTPException(status_code=409, detail="No project selected")

    try:
        result = await open_project(project, _opener_settings)
    except OpenerError as exc:
        logger.warning("Could not open %s: %s", project.path, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc

    return OpenResponse(key=project.key, command=result.command, returncode=result.returncode)
