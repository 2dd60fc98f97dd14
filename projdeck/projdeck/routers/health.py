"""Health-check endpoint.

Reports the pipeline state, the number of known projects, and whether the
configured opener program can be located.
"""

import logging
import shlex

from fastapi import APIRouter, HTTPException

from projdeck.config import OpenerSettings
from projdeck.models import HealthResponse, LoadState
from projdeck.services.project_browser import ProjectBrowser
from projdeck.services.project_opener import OpenerError, resolve_command

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

_browser: ProjectBrowser | None = None
_opener_settings = OpenerSettings()


def set_browser(browser: ProjectBrowser, opener_settings: OpenerSettings | None = None) -> None:
    """Wire the shared ``ProjectBrowser`` (and opener settings) into this router."""
    global _browser, _opener_settings
    _browser = browser
    if opener_settings is not None:
        _opener_settings = opener_settings


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return service health.

    The status is ``degraded`` when the discovery pipeline ended with an
    error; projects discovered before the failure are still served.
    """
    if _browser is None:
        raise HTTPException(status_code=503, detail="Project browser not initialised")

    opener_available = False
    opener_command = ""
    try:
        opener_command = shlex.join(resolve_command(_opener_settings))
        opener_available = True
    except OpenerError as exc:
        logger.warning("Opener unavailable: %s", exc)

    status = "degraded" if _browser.state is LoadState.FAILED else "ok"
    return HealthResponse(
        status=status,
        state=_browser.state,
        project_count=len(_browser.store),
        opener_available=opener_available,
        opener_command=opener_command,
    )
