"""Tests for the HTTP surface.

Most tests skip the lifespan (a ``TestClient`` used without a ``with`` block
does not start it) and wire a pre-populated ``ProjectBrowser`` into the
routers.  One test runs the full lifespan over a temporary root, and one
streams ``/events`` while the browser is still loading.
"""

import asyncio
import os
import time
from collections.abc import AsyncIterator, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, patch

import httpx
import pytest
from fastapi.testclient import TestClient

from projdeck.config import DeckSettings, OpenerSettings
from projdeck.main import create_app
from projdeck.models import LoadState, OpenerKind, Project, ProjectAdded, ProjectEvent, ProjectUpdated
from projdeck.routers import events, health, projects
from projdeck.services.project_browser import ProjectBrowser
from projdeck.services.project_opener import OpenerError, OpenResult

T0 = datetime(2024, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture()
def browser() -> ProjectBrowser:
    """A finished browser with two projects: newer first."""
    browser = ProjectBrowser()
    browser.apply(ProjectAdded(project=Project(path="/roots/old", name="old", modified=T0, readme="# Old")))
    browser.apply(ProjectAdded(project=Project(path="/roots/new", name="new", modified=T0 + timedelta(days=1))))
    browser.state = LoadState.COMPLETE
    return browser


@pytest.fixture()
def client(browser: ProjectBrowser) -> Iterator[TestClient]:
    """A client for an app whose routers share *browser*."""
    opener = OpenerSettings(kind=OpenerKind.COMMAND, command=["true"])
    app = create_app(DeckSettings(project_dirs=["/roots"], opener=opener))
    projects.set_browser(browser, opener)
    events.set_browser(browser)
    health.set_browser(browser, opener)
    yield TestClient(app)


def test_list_projects_in_display_order(client: TestClient) -> None:
    """``GET /projects`` returns the store's display order."""
    response = client.get("/projects")

    assert response.status_code == 200
    body = response.json()
    assert body["state"] == "complete"
    assert [row["name"] for row in body["projects"]] == ["new", "old"]
    assert [row["index"] for row in body["projects"]] == [0, 1]


def test_get_project_detail(client: TestClient) -> None:
    """``GET /projects/{index}`` includes the README."""
    response = client.get("/projects/1")

    assert response.status_code == 200
    assert response.json()["readme"] == "# Old"


def test_get_project_out_of_range(client: TestClient) -> None:
    """An index past the end is a 404."""
    assert client.get("/projects/5").status_code == 404


def test_selection_moves(client: TestClient) -> None:
    """Selection moves return the selected project and its index."""
    response = client.post("/selection", json={"move": "last"})
    assert response.json()["selected_index"] == 1
    assert response.json()["project"]["name"] == "old"

    response = client.post("/selection", json={"move": "clear"})
    assert response.json()["selected_index"] is None


def test_selection_bad_index(client: TestClient) -> None:
    """Selecting a missing index is a 422."""
    assert client.post("/selection", json={"move": "index", "index": 9}).status_code == 422


def test_open_without_selection_conflicts(client: TestClient) -> None:
    """Opening with nothing selected is a 409."""
    assert client.post("/open", json={}).status_code == 409


def test_open_unknown_key(client: TestClient) -> None:
    """Opening an unknown key is a 404."""
    assert client.post("/open", json={"key": "/roots/ghost"}).status_code == 404


def test_open_selected_project(client: TestClient, browser: ProjectBrowser) -> None:
    """The current selection is handed to the opener."""
    browser.select(0)
    result = OpenResult(command=["true", "/roots/new"], returncode=0)

    with patch.object(projects, "open_project", AsyncMock(return_value=result)) as opener:
        response = client.post("/open", json={})

    assert response.status_code == 200
    assert response.json()["key"] == "/roots/new"
    assert opener.await_args.args[0].key == "/roots/new"


def test_open_failure_leaves_store_intact(client: TestClient, browser: ProjectBrowser) -> None:
    """An opener failure is a 502 and the store is unchanged."""
    with patch.object(projects, "open_project", AsyncMock(side_effect=OpenerError("no program"))):
        response = client.post("/open", json={"key": "/roots/old"})

    assert response.status_code == 502
    assert len(browser.store) == 2


def test_health_reports_state(client: TestClient) -> None:
    """``GET /health`` reports the pipeline state and project count."""
    response = client.get("/health")

    body = response.json()
    assert body["status"] == "ok"
    assert body["project_count"] == 2
    assert body["opener_available"] is True


def test_health_degraded_after_failure(client: TestClient, browser: ProjectBrowser) -> None:
    """A failed pipeline degrades health."""
    browser.state = LoadState.FAILED
    browser.error = "cannot list root"

    assert client.get("/health").json()["status"] == "degraded"


def test_events_after_completion_sends_done(client: TestClient) -> None:
    """A client joining after the pipeline ended receives the terminal event."""
    with client.stream("GET", "/events") as response:
        body = "".join(response.iter_text())

    assert "event: done" in body
    assert "2 project(s)" in body


def test_lifespan_runs_pipeline_and_closes_loader(tmp_path: Path) -> None:
    """Startup discovers the configured root; shutdown stops the loader."""
    root = tmp_path / "src"
    for name, mtime in (("older", 1_700_000_000), ("newer", 1_700_000_600)):
        source = root / name / "main.py"
        source.parent.mkdir(parents=True)
        source.write_text("pass")
        os.utime(source, (mtime, mtime))
        os.utime(source.parent, (1_700_000_000, 1_700_000_000))

    app = create_app(DeckSettings(project_dirs=[str(root)]))
    with TestClient(app) as live_client:
        deadline = time.monotonic() + 10
        body = live_client.get("/projects").json()
        while body["state"] == "loading":
            assert time.monotonic() < deadline, "pipeline did not finish"
            time.sleep(0.02)
            body = live_client.get("/projects").json()

        assert body["state"] == "complete"
        assert [row["name"] for row in body["projects"]] == ["newer", "older"]
        assert [row["file_count"] for row in body["projects"]] == [1, 1]

    assert app.state.browser_task.done()
    assert app.state.loader._stop.is_set()


@pytest.mark.asyncio()
async def test_live_events_stream_adds_updates_and_done() -> None:
    """A client connected while loading receives each change, then ``done``."""
    release = asyncio.Event()

    async def source() -> AsyncIterator[ProjectEvent]:
        await release.wait()
        yield ProjectUpdated(key="/roots/old", modified=T0 + timedelta(days=2), file_count=4)

    loading = ProjectBrowser(source())
    loading.apply(ProjectAdded(project=Project(path="/roots/old", name="old", modified=T0)))
    events.set_browser(loading)

    app = create_app(DeckSettings(project_dirs=["/roots"]))
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as http:
        request = asyncio.create_task(http.get("/events"))
        async with asyncio.timeout(5):
            while loading.subscriber_count == 0:
                await asyncio.sleep(0.01)

            loading.apply(ProjectAdded(project=Project(path="/roots/new", name="new", modified=T0)))
            release.set()
            await loading.run()
            response = await request

    body = response.text
    assert response.status_code == 200
    assert body.index("event: add") < body.index("event: update") < body.index("event: done")
    assert "2 project(s)" in body
    assert loading.subscriber_count == 0
