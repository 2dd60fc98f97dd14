"""Application configuration backed by Pydantic Settings.

All values can be overridden via environment variables prefixed with
``PROJDECK_`` (e.g. ``PROJDECK_PORT=9000``) or via a ``.env`` file in the
working directory.  List values are given as JSON
(``PROJDECK_PROJECT_DIRS='["~/src", "~/work"]'``) and opener settings use the
``__`` nested delimiter (``PROJDECK_OPENER__KIND=editor``).
"""

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from projdeck.models import AppendPathPolicy, OpenerKind


def _default_project_dirs() -> list[str]:
    """Return the default roots to scan: ``~/projects``.

    The shorthand is expanded by the discovery stage, not here, so that the
    configured value round-trips unchanged.

    Returns:
        A single-element list of root path specifications.
    """
    return ["~/projects"]


class OpenerSettings(BaseModel):
    """How a selected project is launched.

    Attributes:
        kind: Program resolution strategy.
        command: Full argv for ``kind=command``; ``{path}`` is replaced by the
            project path.
        chdir: Run the program with the project directory as working directory.
        append_path: Policy for appending the project path as the last argument.
    """

    kind: OpenerKind = OpenerKind.AUTO
    command: list[str] = Field(default_factory=list)
    chdir: bool = False
    append_path: AppendPathPolicy = AppendPathPolicy.AUTO


class DeckSettings(BaseSettings):
    """Central configuration for the projdeck service.

    Attributes:
        project_dirs: Ordered root directories whose immediate subdirectories
            are treated as projects.
        fetch_concurrency: In-flight candidate limit per root during discovery.
        walk_concurrency: In-flight recursive traversals during enrichment.
        channel_capacity: Bound on pending events between the pipeline and the
            consumer.
        host: Network interface to bind the HTTP server to.
        port: TCP port for the HTTP server.
        log_level: Root logging level.
        opener: Project launch settings.
    """

    model_config = SettingsConfigDict(
        env_prefix="PROJDECK_",
        env_file=".env",
        env_nested_delimiter="__",
        extra="ignore",
    )

    project_dirs: list[str] = Field(default_factory=_default_project_dirs)
    fetch_concurrency: int = Field(default=8, ge=1)
    walk_concurrency: int = Field(default=8, ge=1)
    channel_capacity: int = Field(default=100, ge=1)
    host: str = "127.0.0.1"
    port: int = 8424
    log_level: str = "INFO"
    opener: OpenerSettings = Field(default_factory=OpenerSettings)
