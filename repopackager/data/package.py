"""
A single package discovered inside a repository tree.

A package is the directory holding a metadata file. Walking it reads the
metadata, extracts fields with the configured rules and lists the files it
contains. The outcome is announced to subscribers as a ``PackageEvent``.
"""
from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any, Callable, Dict, Iterable, List, Optional

from repopackager.domain.events import (
    Listeners,
    PackageCreated,
    PackageEvent,
    PackageMissingRequirement,
    PackageWalkUpdated,
)
from repopackager.domain.models import PackageDetail, PackageSummary
from repopackager.domain.package_utils import first_match, matches_any, parse_guid
from repopackager.exceptions import PackageMissingRequirementError
from repopackager.storage.filesystem import FileSystem, LocalFileSystem

logger = logging.getLogger(__name__)

NAME_FIELD = "name"
IDENTIFIER_FIELD = "identifier"
# Older package definitions call the identifier "guid".
IDENTIFIER_ALIASES = ("identifier", "guid")


def extract_fields(rules: Dict[str, Any], text: str) -> Dict[str, Any]:
    """
    Apply field-extraction rules to raw metadata text.

    A string rule is a regex searched case-insensitively; its first capture
    group (trimmed) becomes the value. A mapping rule is applied recursively
    to the same text and yields a nested dict. Unmatched rules are left out.
    """
    fields: Dict[str, Any] = {}
    for field_name, rule in rules.items():
        if isinstance(rule, dict):
            fields[field_name] = extract_fields(rule, text)
            continue

        try:
            value = first_match(rule, text)
        except re.error as e:
            logger.warning(f"Invalid pattern for field '{field_name}': {e}")
            continue
        if value is not None:
            fields[field_name] = value
    return fields


async def list_items(
    fs: FileSystem,
    directory: Path,
    ignore_patterns: Iterable[str] = (),
    prefix: PurePosixPath = PurePosixPath(),
) -> List[str]:
    """
    Recursively list files under ``directory`` as POSIX paths relative to it.

    Entries are visited in name order. Failures are logged and the listing
    continues with whatever could be read.
    """
    ignore_patterns = list(ignore_patterns)
    items: List[str] = []

    try:
        names = sorted(await fs.list_dir(directory))
    except OSError as e:
        logger.warning(f"Could not list {directory}: {e}")
        return items

    for name in names:
        relative = prefix / name
        if matches_any(str(relative), ignore_patterns):
            continue
        full_path = directory / name
        try:
            if await fs.is_directory(full_path):
                if await fs.is_symlink(full_path):
                    continue
                items.extend(await list_items(fs, full_path, ignore_patterns, relative))
            else:
                items.append(str(relative))
        except OSError as e:
            logger.warning(f"Could not stat {full_path}: {e}")
    return items


class Package:
    """
    Candidate package rooted at the directory of ``metadata_path``.

    Created fresh on every directory visit by the owning repository.
    """

    def __init__(
        self,
        repository_dir: Path,
        metadata_path: Path,
        ignore_patterns: Optional[List[str]] = None,
        normalize_identifier: bool = False,
        fs: Optional[FileSystem] = None,
    ):
        self.repository_dir = Path(repository_dir)
        self.metadata_path = Path(metadata_path)
        self.directory = self.metadata_path.parent
        self.path = self.directory.relative_to(self.repository_dir).as_posix()

        self.name: Optional[str] = None
        self.identifier: Optional[str] = None
        self.fields: Dict[str, Any] = {}
        self.items: List[str] = []
        self.last_walk_time: Optional[datetime] = None
        self.has_walked_before = False

        self._ignore_patterns = list(ignore_patterns or [])
        self._normalize_identifier = normalize_identifier
        self._fs = fs or LocalFileSystem()
        self._raw_metadata: Optional[str] = None
        self._listeners: Listeners[PackageEvent] = Listeners()

    def __repr__(self) -> str:
        return f"Package(identifier={self.identifier!r}, name={self.name!r}, path={self.path!r})"

    @property
    def is_valid(self) -> bool:
        return bool(self.name) and bool(self.identifier)

    def subscribe(self, listener: Callable[[PackageEvent], None]) -> Callable[[], None]:
        return self._listeners.subscribe(listener)

    async def walk(self, rules: Dict[str, Any]) -> None:
        """
        Read the metadata file, extract fields and list the package contents.

        Emits ``PackageMissingRequirement`` if the package ends up without a
        name or identifier; otherwise ``PackageCreated`` on the first walk of
        this instance and ``PackageWalkUpdated`` on later walks.
        """
        await self._read_metadata()
        self._parse(rules)
        self.items = await list_items(self._fs, self.directory, self._ignore_patterns)

        if not self.is_valid:
            error = PackageMissingRequirementError(
                f"'{self.path}' is not a valid package: missing required properties (name, identifier)"
            )
            self._listeners.emit(PackageMissingRequirement(package=self, error=error))
            return

        if self.has_walked_before:
            self._listeners.emit(PackageWalkUpdated(package=self))
        else:
            self.has_walked_before = True
            self._listeners.emit(PackageCreated(package=self))

        self.last_walk_time = datetime.now(timezone.utc)

    async def _read_metadata(self) -> None:
        # A missing metadata file is not an error; the package just stays invalid.
        if not await self._fs.is_file(self.metadata_path):
            self._raw_metadata = None
            return

        try:
            self._raw_metadata = await self._fs.read_text(self.metadata_path)
        except OSError as e:
            logger.warning(f"Could not read metadata file {self.metadata_path}: {e}")
            self._raw_metadata = None

    def _parse(self, rules: Dict[str, Any]) -> None:
        self.name = None
        self.identifier = None
        self.fields = {}
        if self._raw_metadata is None:
            return

        extracted = extract_fields(rules, self._raw_metadata)

        name = extracted.pop(NAME_FIELD, None)
        self.name = name if isinstance(name, str) else None

        for alias in IDENTIFIER_ALIASES:
            identifier = extracted.pop(alias, None)
            if isinstance(identifier, str) and identifier and self.identifier is None:
                self.identifier = parse_guid(identifier) if self._normalize_identifier else identifier

        self.fields = extracted

    def to_summary(self) -> PackageSummary:
        return PackageSummary(
            identifier=self.identifier,
            name=self.name,
            path=self.path,
            is_valid=self.is_valid,
            fields=self.fields,
            last_walk_time=self.last_walk_time,
        )

    def to_detail(self) -> PackageDetail:
        return PackageDetail(**self.to_summary().model_dump(), items=list(self.items))
