"""Project store -- the key-addressable, sortable index behind the live view.

The ``ProjectStore`` owns every ``Project`` for the lifetime of the process.
It is mutated only by applying pipeline events, from a single consumer task,
so it carries no locking.

Each project gets an integer identity on ``Add`` (its slot in the arrival
sequence).  Identities are never reused; the display order is a separate
permutation of identities that ``resort`` recomputes.  Positions in the
display order therefore change whenever an event is applied -- consumers that
need to follow a project across events should hold its key, not its index.
"""

import logging
from collections.abc import Iterator

from projdeck.models import Project, ProjectAdded, ProjectEvent, ProjectUpdated

logger = logging.getLogger(__name__)


class StoreIntegrityError(Exception):
    """Raised when an event would violate the store's consistency contract.

    Attributes:
        key: The project key the offending event referenced.
    """

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        super().__init__(message)


class DuplicateProjectError(StoreIntegrityError):
    """Raised when an ``Add`` carries a key that is already present."""

    def __init__(self, key: str) -> None:
        super().__init__(key, f"Project {key!r} is already in the store")


class ProjectNotFoundError(StoreIntegrityError):
    """Raised when an ``Update`` references a key that was never added."""

    def __init__(self, key: str) -> None:
        super().__init__(key, f"Project {key!r} not found")


class ProjectStore:
    """Arrival-ordered project registry with a derived display order.

    Indexing (``store[i]``), iteration and ``len`` all follow the current
    display order.
    """

    def __init__(self) -> None:
        self._projects: list[Project] = []
        self._identity_by_key: dict[str, int] = {}
        self._display_order: list[int] = []

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def apply(self, event: ProjectEvent) -> Project:
        """Apply a single pipeline event.

        Args:
            event: An ``Add`` or ``Update`` event.

        Returns:
            The project that was inserted or refined.

        Raises:
            DuplicateProjectError: If an ``Add`` repeats a known key.
            ProjectNotFoundError: If an ``Update`` references an unknown key.
        """
        if isinstance(event, ProjectAdded):
            return self.add(event.project)
        if isinstance(event, ProjectUpdated):
            return self.update(event)
        raise TypeError(f"Unsupported project event: {type(event).__name__}")

    def add(self, project: Project) -> Project:
        """Insert *project* under the next free identity.

        The store is left untouched when the key is already present.

        Raises:
            DuplicateProjectError: If ``project.key`` is already registered.
        """
        if project.key in self._identity_by_key:
            raise DuplicateProjectError(project.key)

        identity = len(self._projects)
        self._projects.append(project)
        self._display_order.append(identity)
        self._identity_by_key[project.key] = identity
        logger.debug("Added project %s as #%d", project.key, identity)
        return project

    def update(self, event: ProjectUpdated) -> Project:
        """Overwrite the activity metadata of an existing project.

        Raises:
            ProjectNotFoundError: If no project with ``event.key`` was added.
        """
        project = self.get(event.key)
        project.modified = event.modified
        project.file_count = event.file_count
        return project

    def resort(self) -> None:
        """Recompute the display order: most recently modified first, then by name.

        Two stable passes -- by name, then by modified descending -- so ties on
        ``modified`` keep their name order.
        """
        projects = self._projects
        self._display_order.sort(key=lambda identity: projects[identity].name)
        self._display_order.sort(key=lambda identity: projects[identity].modified, reverse=True)

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    def get(self, key: str) -> Project:
        """Return the project registered under *key*.

        Raises:
            ProjectNotFoundError: If *key* is unknown.
        """
        identity = self._identity_by_key.get(key)
        if identity is None:
            raise ProjectNotFoundError(key)
        return self._projects[identity]

    def index_of(self, key: str) -> int:
        """Return the current display position of the project under *key*.

        Raises:
            ProjectNotFoundError: If *key* is unknown.
        """
        identity = self._identity_by_key.get(key)
        if identity is None:
            raise ProjectNotFoundError(key)
        return self._display_order.index(identity)

    @property
    def display_order(self) -> list[int]:
        """Return a copy of the current identity permutation."""
        return list(self._display_order)

    def __contains__(self, key: object) -> bool:
        return key in self._identity_by_key

    def __len__(self) -> int:
        return len(self._projects)

    def __getitem__(self, index: int) -> Project:
        if index < 0:
            raise IndexError(f"Project index {index} out of range")
        return self._projects[self._display_order[index]]

    def __iter__(self) -> Iterator[Project]:
        for identity in self._display_order:
            yield self._projects[identity]
