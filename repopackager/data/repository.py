"""
A repository: one directory tree scanned for packages.

A scan runs in two phases. ``populate()`` walks the tree and queues the path
of every metadata file it finds. ``drain()`` then takes the queued paths one
at a time, walks a fresh ``Package`` for each and indexes it by identifier.
Each package is fully resolved before the next one is dequeued, so the
index is only touched by one package at a time and events come out in
traversal order.
"""
from __future__ import annotations

import fnmatch
import json
import logging
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Callable, Dict, List, Optional

from repopackager.data.package import Package
from repopackager.data.walk_queue import WalkQueue
from repopackager.domain.events import (
    DuplicateIdentifier,
    Listeners,
    PackageAdded,
    PackageCreated,
    PackageEvent,
    PackageMissingRequirement,
    PackageRemoved,
    PackageUpdated,
    RepositoryEvent,
    RepositoryReady,
    RepositoryScanning,
    ScanError,
)
from repopackager.domain.models import (
    DEFAULT_METADATA_FILENAME,
    PackageDefinition,
    RepositorySettings,
    RepositorySummary,
)
from repopackager.domain.package_utils import matches_any
from repopackager.exceptions import RepositoryNotUniquePackageError
from repopackager.storage.filesystem import FileSystem, LocalFileSystem

logger = logging.getLogger(__name__)


class RepositoryState(str, Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    DRAINING = "draining"
    READY = "ready"


class Repository:
    def __init__(self, settings: RepositorySettings, fs: Optional[FileSystem] = None):
        self.settings = settings
        self.name = settings.name
        self.directory = Path(settings.directory).expanduser().resolve()
        self.ignore_patterns: List[str] = list(settings.ignore_patterns)
        self.package_definition: PackageDefinition = settings.package_definition

        self.packages: Dict[str, Package] = {}
        self.invalid_packages: List[Package] = []
        self.last_scan_time: Optional[datetime] = None
        self.state = RepositoryState.IDLE

        self._fs = fs or LocalFileSystem()
        self._walk_queue: WalkQueue[Path] = WalkQueue()
        self._listeners: Listeners[RepositoryEvent] = Listeners()
        self._has_completed_scan = False
        # Per-scan bookkeeping: identifiers indexed during the current pass, and
        # packages whose identifier is held by an entry from an earlier scan.
        # The latter are resolved once the pass shows whether that entry still exists.
        self._seen: Dict[str, Package] = {}
        self._deferred: Dict[str, List[Package]] = {}

    def __repr__(self) -> str:
        return f"Repository(name={self.name!r}, directory={str(self.directory)!r})"

    @property
    def metadata_filename(self) -> str:
        return self.package_definition.metadata_filename or DEFAULT_METADATA_FILENAME

    @property
    def is_scanning(self) -> bool:
        return self.state in (RepositoryState.SCANNING, RepositoryState.DRAINING)

    def subscribe(self, listener: Callable[[RepositoryEvent], None]) -> Callable[[], None]:
        return self._listeners.subscribe(listener)

    def get_package(self, identifier: str) -> Optional[Package]:
        return self.packages.get(identifier)

    async def scan(self) -> None:
        """
        Walk the repository tree and rebuild the package index.

        Never raises for filesystem or package problems; those are reported
        as events. Calling scan() while a scan of this repository is still
        running logs a warning and returns immediately.
        """
        if self.is_scanning:
            logger.warning(f"Repository '{self.name}' is already being scanned; ignoring scan request")
            return

        self.state = RepositoryState.SCANNING
        self._walk_queue.clear()
        self._seen = {}
        self._deferred = {}
        self._listeners.emit(RepositoryScanning(repository=self))

        try:
            total = await self.populate()
            logger.info(f"Repository '{self.name}': {total} package candidate(s) found under {self.directory}")

            self.state = RepositoryState.DRAINING
            await self.drain()
        except BaseException:
            # An interrupted scan must not leave candidates for the next one.
            self._walk_queue.clear()
            self._deferred = {}
            self.state = RepositoryState.READY if self._has_completed_scan else RepositoryState.IDLE
            raise

        self._complete_scan()

    async def populate(self, directory: Optional[Path] = None) -> int:
        """
        Queue every metadata file below ``directory`` (default: the root).

        Returns the number of paths queued. An unreadable directory is
        reported as a ``ScanError`` and only that sub-tree is skipped.
        """
        directory = directory or self.directory
        enqueued = 0

        try:
            names = sorted(await self._fs.list_dir(directory))
        except OSError as e:
            self._report_tree_error(directory, e)
            return enqueued

        for name in names:
            full_path = directory / name
            relative = PurePosixPath(full_path.relative_to(self.directory).as_posix())
            if self.ignore_patterns and matches_any(str(relative), self.ignore_patterns):
                continue

            try:
                is_dir = await self._fs.is_directory(full_path)
                if is_dir and await self._fs.is_symlink(full_path):
                    logger.debug(f"Not following symlinked directory {full_path}")
                    continue
            except OSError as e:
                self._report_tree_error(full_path, e)
                continue

            if is_dir:
                enqueued += await self.populate(full_path)
            elif fnmatch.fnmatchcase(name, self.metadata_filename):
                self._walk_queue.push(full_path)
                enqueued += 1

        return enqueued

    async def drain(self) -> None:
        """Walk queued candidates strictly one at a time."""
        while len(self._walk_queue):
            metadata_path = self._walk_queue.next()
            await self._walk_package(metadata_path)

    def to_summary(self) -> RepositorySummary:
        return RepositorySummary(
            name=self.name,
            directory=str(self.directory),
            state=self.state.value,
            package_count=len(self.packages),
            invalid_package_count=len(self.invalid_packages),
            last_scan_time=self.last_scan_time,
        )

    # ------------------------------------------------------------------
    # Package handling
    # ------------------------------------------------------------------

    async def _walk_package(self, metadata_path: Path) -> None:
        definition = self.package_definition
        package = Package(
            self.directory,
            metadata_path,
            ignore_patterns=definition.ignore_patterns,
            normalize_identifier=definition.normalize_identifier,
            fs=self._fs,
        )
        unsubscribe = package.subscribe(self._on_package_event)
        try:
            await package.walk(definition.field_extraction_rules)
        except Exception as e:
            logger.error(f"Unexpected failure walking {metadata_path}: {e}", exc_info=True)
            self._listeners.emit(ScanError(repository=self, error=e, package=package))
        finally:
            unsubscribe()

    def _on_package_event(self, event: PackageEvent) -> None:
        if isinstance(event, PackageCreated):
            self._add_package(event.package)
        elif isinstance(event, PackageMissingRequirement):
            self.invalid_packages.append(event.package)
            logger.warning(f"Repository '{self.name}': {event.error}")
            self._listeners.emit(ScanError(repository=self, error=event.error, package=event.package))

    def _add_package(self, package: Package) -> None:
        identifier = package.identifier
        first_this_pass = self._seen.get(identifier)
        existing = self.packages.get(identifier)

        if first_this_pass is not None:
            self._reject_duplicate(package, first_this_pass)
            return
        if existing is not None and existing.path != package.path:
            self._deferred.setdefault(identifier, []).append(package)
            return

        self._seen[identifier] = package
        self.packages[identifier] = package

        if existing is not None:
            logger.debug(f"Repository '{self.name}': refreshed package {identifier} at '{package.path}'")
            self._listeners.emit(PackageUpdated(repository=self, package=package, previous=existing))
            return

        details = json.dumps({"name": package.name, "identifier": identifier, "path": package.path})
        logger.info(f"Repository '{self.name}': new package added: {details}")
        self._listeners.emit(PackageAdded(repository=self, package=package))

    def _reject_duplicate(self, package: Package, winner: Package) -> None:
        self.invalid_packages.append(package)
        error = RepositoryNotUniquePackageError(package.identifier, winner.path, package.path)
        logger.warning(f"Repository '{self.name}': {error}")
        self._listeners.emit(
            DuplicateIdentifier(repository=self, package=package, existing=winner, error=error)
        )

    def _complete_scan(self) -> None:
        for identifier, candidates in self._deferred.items():
            indexed = self._seen.get(identifier)
            if indexed is not None:
                # The earlier entry was found again and keeps the identifier.
                for package in candidates:
                    self._reject_duplicate(package, indexed)
                continue

            # The package moved: the first copy found elsewhere takes over.
            removed = self.packages.pop(identifier)
            logger.info(f"Repository '{self.name}': package {identifier} no longer found at '{removed.path}'")
            self._listeners.emit(PackageRemoved(repository=self, package=removed))

            moved, *others = candidates
            self._seen[identifier] = moved
            self.packages[identifier] = moved
            logger.info(f"Repository '{self.name}': package {identifier} now indexed at '{moved.path}'")
            self._listeners.emit(PackageAdded(repository=self, package=moved))
            for package in others:
                self._reject_duplicate(package, moved)
        self._deferred = {}

        # Entries from earlier scans that this pass did not find again.
        stale = [identifier for identifier in self.packages if identifier not in self._seen]
        for identifier in stale:
            removed = self.packages.pop(identifier)
            logger.info(f"Repository '{self.name}': package {identifier} no longer found at '{removed.path}'")
            self._listeners.emit(PackageRemoved(repository=self, package=removed))

        self.last_scan_time = datetime.now(timezone.utc)
        self.state = RepositoryState.READY

        if not self._has_completed_scan:
            self._has_completed_scan = True
            logger.info(f"Repository '{self.name}' ready with {len(self.packages)} package(s)")
            self._listeners.emit(RepositoryReady(repository=self))

    def _report_tree_error(self, path: Path, error: OSError) -> None:
        logger.error(f"Repository '{self.name}': cannot walk {path}: {error}")
        self._listeners.emit(ScanError(repository=self, error=error))
