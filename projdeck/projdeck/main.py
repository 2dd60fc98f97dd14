"""FastAPI application entry point for the projdeck service.

This module creates the FastAPI ``app`` instance, registers the routers, and
runs the discovery pipeline for the lifetime of the application: the lifespan
builds a ``ProjectLoader`` and a ``ProjectBrowser`` from settings, drains the
loader in a background task, and stops both on shutdown.  The server is
started via ``uvicorn`` using the settings from ``projdeck.config``.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from projdeck.config import DeckSettings
from projdeck.routers import events, health, projects
from projdeck.services.project_browser import ProjectBrowser
from projdeck.services.project_loader import ProjectLoader

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    """Configure root logging once for the process."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


def create_app(settings: DeckSettings | None = None) -> FastAPI:
    """Build and configure the FastAPI application.

    Args:
        settings: Application settings; loaded from the environment when
            omitted.

    Returns:
        A fully configured ``FastAPI`` application ready to serve.
    """
    settings = settings or DeckSettings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Start the pipeline on startup and stop it on shutdown.

        Raises:
            ConfigurationError: If no project directories are configured,
                which aborts startup.
        """
        loader = ProjectLoader.from_settings(settings)
        browser = ProjectBrowser(loader)

        projects.set_browser(browser, settings.opener)
        events.set_browser(browser)
        health.set_browser(browser, settings.opener)

        loader.start()
        app.state.loader = loader
        app.state.browser = browser
        app.state.browser_task = asyncio.create_task(browser.run(), name="projdeck-browser")
        logger.info("projdeck initialised -- roots=%s", ", ".join(settings.project_dirs))

        yield

        logger.info("projdeck shutting down")
        app.state.browser_task.cancel()
        try:
            await app.state.browser_task
        except asyncio.CancelledError:
            pass
        await loader.aclose()

    app = FastAPI(
        title="projdeck",
        description="Live, activity-sorted index of the projects under your source roots",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(health.router)
    app.include_router(projects.router)
    app.include_router(events.router)
    return app


app = create_app()


def main() -> None:
    """Start the Uvicorn server with settings from the environment.

    This is the CLI entry point (``projdeck`` or ``python -m projdeck.main``).
    """
    settings = DeckSettings()
    configure_logging(settings.log_level)
    logger.info("Starting projdeck on %s:%d", settings.host, settings.port)
    uvicorn.run(
        "projdeck.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
