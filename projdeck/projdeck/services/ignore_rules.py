"""Ignore-file semantics for the enrichment walk.

Git is asked which untracked paths under a project are ignored (honouring
``.gitignore`` files, ``.git/info/exclude`` and the user's global excludes),
so the walker applies exactly the rules the user's tooling applies.  Outside
a git work tree, or without a ``git`` executable, only the hidden-entry rule
is in effect.
"""

import logging
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)

GIT_TIMEOUT_SECONDS = 30


def is_hidden(name: str) -> bool:
    """Return whether a directory entry name is hidden (dot-prefixed)."""
    return name.startswith(".")


@dataclass(frozen=True)
class IgnoreMatcher:
    """Snapshot of the ignored paths under one project directory.

    Paths are stored relative to ``root`` in POSIX form, exactly as git
    reports them.  An ignored directory excludes everything beneath it.
    """

    root: Path
    ignored_files: frozenset[str]
    ignored_dirs: frozenset[str]

    def is_ignored(self, relative: str, is_dir: bool = False) -> bool:
        """Return whether the entry at *relative* (POSIX, from ``root``) is ignored."""
        if relative in self.ignored_dirs:
            return True
        if not is_dir and relative in self.ignored_files:
            return True
        parent, _, _ = relative.rpartition("/")
        while parent:
            if parent in self.ignored_dirs:
                return True
            parent, _, _ = parent.rpartition("/")
        return False


def load_ignore_matcher(root: Path) -> IgnoreMatcher | None:
    """Build an ``IgnoreMatcher`` for *root* by querying git.

    Returns:
        The matcher, or ``None`` when git is unavailable or *root* is not
        inside a work tree.
    """
    git = shutil.which("git")
    if git is None:
        return None

    try:
        proc = subprocess.run(
            [git, "-C", str(root), "ls-files", "-z", "--others", "--ignored", "--exclude-standard", "--directory"],
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            timeout=GIT_TIMEOUT_SECONDS,
            check=True,
        )
    except subprocess.CalledProcessError:
        # Not a work tree.
        return None
    except (OSError, subprocess.TimeoutExpired) as exc:
        logger.debug("git ignore query failed for %s: %s", root, exc)
        return None

    ignored_files: set[str] = set()
    ignored_dirs: set[str] = set()
    for raw in proc.stdout.split(b"\x00"):
        if not raw:
            continue
        relative = raw.decode("utf-8", errors="surrogateescape")
        if relative.endswith("/"):
            ignored_dirs.add(relative.rstrip("/"))
        else:
            ignored_files.add(relative)

    return IgnoreMatcher(root=root, ignored_files=frozenset(ignored_files), ignored_dirs=frozenset(ignored_dirs))
