"""Pydantic models for projects, pipeline events, and the HTTP API contracts.

Everything that crosses a task boundary (the event channel) or the HTTP
boundary is one of these models -- no loose dicts.
"""

from __future__ import annotations

import enum
from datetime import UTC, datetime
from typing import Annotated, Literal

from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class EventType(enum.StrEnum):
    """Categories of feed events published to subscribers of the live view."""

    ADD = "add"
    UPDATE = "update"
    DONE = "done"
    ERROR = "error"


class LoadState(enum.StrEnum):
    """Lifecycle of the discovery pipeline as seen by the consumer."""

    LOADING = "loading"
    COMPLETE = "complete"
    FAILED = "failed"


class OpenerKind(enum.StrEnum):
    """Which program launches a project."""

    AUTO = "auto"
    CODE = "code"
    EDITOR = "editor"
    COMMAND = "command"


class AppendPathPolicy(enum.StrEnum):
    """Whether the project path is appended as the final launch argument.

    ``AUTO`` appends only when no argument carries the ``{path}`` placeholder.
    """

    ALWAYS = "always"
    AUTO = "auto"
    NEVER = "never"


class SelectionMove(enum.StrEnum):
    """Selection changes a consumer can request."""

    INDEX = "index"
    NEXT = "next"
    PREVIOUS = "previous"
    FIRST = "first"
    LAST = "last"
    CLEAR = "clear"


# ---------------------------------------------------------------------------
# Project entity
# ---------------------------------------------------------------------------


class Project(BaseModel):
    """A discovered project directory.

    ``path`` is the identity of the project for its entire lifetime and cannot
    be reassigned.  ``modified`` and ``file_count`` start with provisional
    discovery values and are refined once by the walker.
    """

    path: str = Field(frozen=True, description="Resolved absolute path; the project key")
    name: str = Field(description="Last path component, for display")
    readme: str | None = Field(default=None, description="README text captured at discovery")
    is_git: bool = Field(default=False, description="Whether the directory holds a .git entry")
    modified: datetime = Field(description="Most recent modification timestamp observed")
    file_count: int = Field(default=0, ge=0, description="Number of non-ignored descendant files")

    @property
    def key(self) -> str:
        """Return the store key for this project."""
        return self.path


# ---------------------------------------------------------------------------
# Pipeline events
# ---------------------------------------------------------------------------


class ProjectAdded(BaseModel):
    """A newly discovered project carrying provisional metadata."""

    kind: Literal["add"] = "add"
    project: Project


class ProjectUpdated(BaseModel):
    """Refined activity metadata for a project that was already added."""

    kind: Literal["update"] = "update"
    key: str = Field(description="Key of the project being refined")
    modified: datetime = Field(description="Latest modification time across included files")
    file_count: int = Field(ge=0, description="Number of included files")


ProjectEvent = Annotated[ProjectAdded | ProjectUpdated, Field(discriminator="kind")]


class FeedEvent(BaseModel):
    """A single event published to live-view subscribers after the store changes."""

    event_type: EventType = Field(description="Category of this event")
    data: str = Field(description="JSON project summary, or a status message for done/error")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


# ---------------------------------------------------------------------------
# HTTP API
# ---------------------------------------------------------------------------


class ProjectSummary(BaseModel):
    """One row of the display-ordered project list."""

    index: int = Field(description="Current position in display order (not stable across events)")
    key: str = Field(description="Stable project key")
    name: str
    modified: datetime
    file_count: int
    is_git: bool


class ProjectDetail(ProjectSummary):
    """A single project including its README text."""

    readme: str | None = None


class ProjectsResponse(BaseModel):
    """Response payload for ``GET /projects``."""

    state: LoadState = Field(description="Pipeline state")
    error: str = Field(default="", description="Terminal pipeline error, if any")
    selected_index: int | None = Field(default=None, description="Display index of the current selection")
    projects: list[ProjectSummary] = Field(default_factory=list)


class SelectionRequest(BaseModel):
    """Request body for ``POST /selection``."""

    move: SelectionMove = Field(description="Selection change to apply")
    index: int | None = Field(default=None, ge=0, description="Target index when move is 'index'")


class SelectionResponse(BaseModel):
    """Response payload for ``POST /selection``."""

    selected_index: int | None = None
    project: ProjectSummary | None = None


class OpenRequest(BaseModel):
    """Request body for ``POST /open``.

    When ``key`` is omitted the current selection is opened.
    """

    key: str | None = Field(default=None, description="Project key to open")


class OpenResponse(BaseModel):
    """Response payload for ``POST /open``."""

    key: str
    command: list[str] = Field(description="The argv that was launched")
    returncode: int


class HealthResponse(BaseModel):
    """Response payload for ``GET /health``."""

    status: str = Field(description="'ok', or 'degraded' when the pipeline failed")
    state: LoadState
    project_count: int
    opener_available: bool = Field(description="Whether the configured opener program can be located")
    opener_command: str = Field(default="", description="Resolved opener command line")


def summarize(project: Project, index: int) -> ProjectSummary:
    """Build the list-row view of *project* at display position *index*."""
    return ProjectSummary(
        index=index,
        key=project.key,
        name=project.name,
        modified=project.modified,
        file_count=project.file_count,
        is_git=project.is_git,
    )
