"""
Package manager: the set of named repositories and the operations that span them.

This service handles:
- Registering repositories and relaying their events with manager context
- Scanning one repository, or fanning out scans over all of them
- Looking up packages and invalid packages across repositories
- Exporting a package directory as a zip stream
"""
from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Dict, Iterable, Iterator, List, Optional, Set, Union

from repopackager.data.package import Package
from repopackager.data.repository import Repository
from repopackager.domain.events import Listeners, ManagerEvent, RepositoryEvent
from repopackager.domain.models import RepositorySettings
from repopackager.exceptions import PackageNotFoundError, RepositoryNotFoundError
from repopackager.services.archive import DEFAULT_EXCLUDE, iter_zip
from repopackager.storage.filesystem import FileSystem, LocalFileSystem

logger = logging.getLogger(__name__)


class PackageManager:
    """
    Owns a set of repositories keyed by name.

    Construct one explicitly and pass it where it is needed; there is no
    process-wide default instance.
    """

    def __init__(self, fs: Optional[FileSystem] = None):
        self._fs = fs or LocalFileSystem()
        self._repos: Dict[str, Repository] = {}
        self._unsubscribers: Dict[str, Callable[[], None]] = {}
        self._listeners: Listeners[ManagerEvent] = Listeners()
        # Strong references to fire-and-forget scans so they are not collected mid-run.
        self._scan_tasks: Set[asyncio.Task] = set()

    # ========================================================================
    # Repository registry
    # ========================================================================

    def subscribe(self, listener: Callable[[ManagerEvent], None]) -> Callable[[], None]:
        return self._listeners.subscribe(listener)

    def add_repository(self, settings: RepositorySettings) -> Repository:
        """
        Create a repository from its settings and start relaying its events.

        A repository registered under the same name is replaced.
        """
        if settings.name in self._repos:
            logger.warning(f"Replacing already registered repository '{settings.name}'")
            self.remove_repository(settings.name)

        repo = Repository(settings, fs=self._fs)
        self._repos[repo.name] = repo
        self._unsubscribers[repo.name] = repo.subscribe(self._on_repository_event)
        logger.info(f"Registered repository '{repo.name}' at {repo.directory}")
        return repo

    def remove_repository(self, name: str) -> None:
        if name not in self._repos:
            raise RepositoryNotFoundError(f"Repository '{name}' is not registered")
        self._unsubscribers.pop(name)()
        del self._repos[name]

    def get_repository(self, name: str) -> Optional[Repository]:
        return self._repos.get(name)

    def get_repositories(self) -> List[Repository]:
        return list(self._repos.values())

    def get_repository_invalid_packages(self, name: str) -> List[Package]:
        """Packages of a repository that were invalid or not unique."""
        return self._require_repository(name).invalid_packages

    # ========================================================================
    # Scanning
    # ========================================================================

    async def scan_repository(self, name: str) -> None:
        """Scan one repository and wait for the scan to finish."""
        repo = self.get_repository(name)
        if repo is None:
            logger.warning(f"Cannot scan unknown repository '{name}'")
            return
        await repo.scan()

    def scan_repositories(self) -> List[asyncio.Task]:
        """
        Start a scan of every repository without waiting for any of them.

        Must be called from a running event loop. The returned tasks may be
        awaited by callers that need to know when scanning is done.
        """
        tasks = []
        for repo in self.get_repositories():
            task = asyncio.create_task(self.scan_repository(repo.name), name=f"scan:{repo.name}")
            self._scan_tasks.add(task)
            task.add_done_callback(self._on_scan_done)
            tasks.append(task)
        return tasks

    def _on_scan_done(self, task: asyncio.Task) -> None:
        self._scan_tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Scan task {task.get_name()} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Scan task {task.get_name()} failed: {error}", exc_info=error)

    # ========================================================================
    # Lookup and export
    # ========================================================================

    def get_repository_package(self, identifier: str, repo_name: str) -> Optional[Package]:
        repo = self.get_repository(repo_name)
        if repo is None:
            return None
        return repo.get_package(identifier)

    def get_repository_package_contents(
        self,
        identifier: str,
        repo_name: str,
        exclude: Optional[Union[str, Iterable[str]]] = DEFAULT_EXCLUDE,
    ) -> Iterator[bytes]:
        """
        Return a zip stream of a package's directory.

        Raises:
            RepositoryNotFoundError: If no repository is named ``repo_name``
            PackageNotFoundError: If the repository has no such package, or its
                directory has disappeared since the last scan
        """
        repo = self._require_repository(repo_name)
        package = repo.get_package(identifier)
        if package is None:
            raise PackageNotFoundError(f"Package '{identifier}' not found in repository '{repo_name}'")

        package_dir = Path(repo.directory) / package.path
        if not package_dir.is_dir():
            logger.warning(f"Package {identifier} is indexed but {package_dir} no longer exists")
            raise PackageNotFoundError(f"Package '{identifier}' no longer exists at '{package.path}'")
        logger.info(f"Exporting package {identifier} from {package_dir}")
        return iter_zip(package_dir, exclude)

    def _require_repository(self, name: str) -> Repository:
        repo = self.get_repository(name)
        if repo is None:
            raise RepositoryNotFoundError(f"Repository '{name}' is not registered")
        return repo

    def _on_repository_event(self, event: RepositoryEvent) -> None:
        self._listeners.emit(ManagerEvent(manager=self, event=event))
