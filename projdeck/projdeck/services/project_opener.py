"""Project opener -- launches an editor or command on a project.

Uses ``subprocess.run`` via ``asyncio.to_thread`` so waiting on the launched
program (which may live as long as the editor session) never blocks the event
loop or the discovery pipeline.

Program resolution depends on ``OpenerSettings.kind``:

- ``code``: the VS Code ``code`` launcher on PATH
- ``editor``: the ``$EDITOR`` environment variable (shell-split)
- ``command``: the configured argv
- ``auto``: ``code`` when available, otherwise ``$EDITOR``

Any argument containing ``{path}`` has it replaced by the project path.
Whether the path is also appended as the last argument is governed by
``append_path``.
"""

import asyncio
import logging
import os
import shlex
import shutil
import subprocess

from pydantic import BaseModel, Field

from projdeck.config import OpenerSettings
from projdeck.models import AppendPathPolicy, OpenerKind, Project

logger = logging.getLogger(__name__)

PATH_PLACEHOLDER = "{path}"


class OpenerError(Exception):
    """Raised when a project cannot be opened (no program, launch failure)."""


class OpenResult(BaseModel):
    """Outcome of a single open action.

    Attributes:
        command: The argv that was launched.
        returncode: Exit status of the launched program.
    """

    command: list[str] = Field(description="Launched argv")
    returncode: int = Field(description="Exit status of the launched program")


# ---------------------------------------------------------------------------
# Locate the program
# ---------------------------------------------------------------------------


def _find_code() -> list[str] | None:
    code = shutil.which("code")
    return [code] if code else None


def _find_editor() -> list[str] | None:
    editor = os.environ.get("EDITOR", "").strip()
    return shlex.split(editor) if editor else None


def resolve_command(settings: OpenerSettings) -> list[str]:
    """Return the base argv for the configured opener.

    Args:
        settings: Opener configuration.

    Returns:
        The program and its fixed arguments, before path substitution.

    Raises:
        OpenerError: If no program can be determined.
    """
    match settings.kind:
        case OpenerKind.CODE:
            command = _find_code()
            if command is None:
                raise OpenerError("The 'code' launcher was not found on PATH")
        case OpenerKind.EDITOR:
            command = _find_editor()
            if command is None:
                raise OpenerError("The EDITOR environment variable is not set")
        case OpenerKind.COMMAND:
            if not settings.command:
                raise OpenerError("Opener kind is 'command' but no command is configured")
            command = list(settings.command)
        case _:
            command = _find_code() or _find_editor()
            if command is None:
                raise OpenerError("VS Code was not found and no EDITOR is set")
    return command


def build_args(base_cmd: list[str], project_path: str, policy: AppendPathPolicy) -> list[str]:
    """Substitute the ``{path}`` placeholder and apply the append policy.

    Args:
        base_cmd: Base argv from ``resolve_command``.
        project_path: Absolute path of the project to open.
        policy: Whether to append *project_path* as the last argument.

    Returns:
        The complete argv.
    """
    has_placeholder = any(PATH_PLACEHOLDER in arg for arg in base_cmd)
    args = [arg.replace(PATH_PLACEHOLDER, project_path) for arg in base_cmd]

    if policy is AppendPathPolicy.ALWAYS or (policy is AppendPathPolicy.AUTO and not has_placeholder):
        args.append(project_path)
    return args


# ---------------------------------------------------------------------------
# Launch
# ---------------------------------------------------------------------------


def _run_blocking(args: list[str], cwd: str | None) -> int:
    """Run *args* to completion with the caller's terminal attached.

    Raises:
        OpenerError: If the program cannot be started.
    """
    try:
        result = subprocess.run(args, cwd=cwd, check=False)
    except OSError as exc:
        raise OpenerError(f"Failed to launch {args[0]!r}: {exc.strerror or exc}") from exc
    return result.returncode


async def open_project(project: Project, settings: OpenerSettings) -> OpenResult:
    """Open *project* with the configured program and wait for it to exit.

    Args:
        project: The project to open.
        settings: Opener configuration.

    Returns:
        An ``OpenResult`` with the launched argv and its exit status.

    Raises:
        OpenerError: If no program is configured or the launch fails.
    """
    base_cmd = resolve_command(settings)
    args = build_args(base_cmd, project.path, settings.append_path)
    cwd = project.path if settings.chdir else None

    logger.info("Opening %s with %s", project.name, shlex.join(args))
    returncode = await asyncio.to_thread(_run_blocking, args, cwd)
    logger.info("Opener for %s exited with code %s", project.name, returncode)

    return OpenResult(command=args, returncode=returncode)
