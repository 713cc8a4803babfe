"""
Exception hierarchy for the package repository.

Scan-time problems (bad metadata, duplicate identifiers, unreadable
directories) are never raised to the caller of a scan; they are wrapped in
these exceptions and delivered through lifecycle events. Lookup and export
operations raise them directly.
"""
from __future__ import annotations


class RepoPackagerError(Exception):
    """Base exception for repopackager."""


class PackageError(RepoPackagerError):
    """Problem with a single discovered package."""


class PackageMissingRequirementError(PackageError):
    """Package metadata is missing a required property (name or identifier)."""


class PackageNotFoundError(RepoPackagerError):
    """No package with the requested identifier is indexed."""


class RepositoryError(RepoPackagerError):
    """Problem at repository scope (e.g. an unreadable directory)."""


class RepositoryNotUniquePackageError(RepositoryError):
    """Another package with the same identifier is already indexed."""

    def __init__(self, identifier: str, existing_path: str, new_path: str):
        self.identifier = identifier
        self.existing_path = existing_path
        self.new_path = new_path
        super().__init__(
            f"Package identifier '{identifier}' at '{new_path}' is already used by '{existing_path}'"
        )


class RepositoryNotFoundError(RepositoryError):
    """No repository with the requested name is registered."""


class ConfigurationError(RepoPackagerError):
    """Configuration file is missing required data or malformed."""
