"""
Lifecycle events emitted while scanning repositories.

Every component announces what happens to it through a closed set of event
types instead of string-keyed signals:

* ``PackageEvent``: what happened to a single package during its walk.
* ``RepositoryEvent``: scan progress and index changes of one repository.
* ``ManagerEvent``: a repository event re-emitted with the manager attached.

Listeners are plain callables registered with ``subscribe()``; they are
called synchronously, in registration order, from the task doing the scan.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Generic, List, Optional, TypeVar, Union

if TYPE_CHECKING:
    from repopackager.data.package import Package
    from repopackager.data.repository import Repository
    from repopackager.services.manager import PackageManager

logger = logging.getLogger(__name__)

E = TypeVar("E")


# ---------------------------------------------------------------------------
# Package events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PackageCreated:
    """First successful walk of a package instance."""

    package: Package


@dataclass(frozen=True)
class PackageWalkUpdated:
    """Successful walk of a package instance that had been walked before."""

    package: Package


@dataclass(frozen=True)
class PackageMissingRequirement:
    """Package metadata lacks a name or an identifier."""

    package: Package
    error: Exception


PackageEvent = Union[PackageCreated, PackageWalkUpdated, PackageMissingRequirement]


# ---------------------------------------------------------------------------
# Repository events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RepositoryScanning:
    repository: Repository


@dataclass(frozen=True)
class RepositoryReady:
    """First completed scan of a repository. Emitted once per instance."""

    repository: Repository


@dataclass(frozen=True)
class PackageAdded:
    repository: Repository
    package: Package


@dataclass(frozen=True)
class PackageUpdated:
    """An indexed package was found again at the same path and refreshed."""

    repository: Repository
    package: Package
    previous: Package


@dataclass(frozen=True)
class PackageRemoved:
    """An indexed package was not found by the latest scan."""

    repository: Repository
    package: Package


@dataclass(frozen=True)
class DuplicateIdentifier:
    """A package reused an identifier that is already taken."""

    repository: Repository
    package: Package
    existing: Package
    error: Exception


@dataclass(frozen=True)
class ScanError:
    """Non-fatal failure during a scan (unreadable directory, invalid package)."""

    repository: Repository
    error: Exception
    package: Optional[Package] = None


RepositoryEvent = Union[
    RepositoryScanning,
    RepositoryReady,
    PackageAdded,
    PackageUpdated,
    PackageRemoved,
    DuplicateIdentifier,
    ScanError,
]


# ---------------------------------------------------------------------------
# Manager events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ManagerEvent:
    """A repository event re-emitted by the manager that owns the repository."""

    manager: PackageManager
    event: RepositoryEvent

    @property
    def repository(self) -> Repository:
        return self.event.repository


# ---------------------------------------------------------------------------
# Listener registry
# ---------------------------------------------------------------------------


class Listeners(Generic[E]):
    """
    Ordered set of callbacks for one event type.

    A listener that raises is logged and skipped; the remaining listeners
    still receive the event.
    """

    def __init__(self) -> None:
        self._listeners: List[Callable[[E], None]] = []

    def __len__(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: Callable[[E], None]) -> Callable[[], None]:
        """Register a listener. Returns a callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def emit(self, event: E) -> None:
        # Copy so listeners can unsubscribe themselves while being notified.
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Listener {listener!r} failed handling {type(event).__name__}")
