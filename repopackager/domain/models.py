"""
Pydantic models for the package repository.

This module defines the data models used throughout the application, including:
- Repository settings and the package definition (how packages are recognised)
- Manager-level configuration loaded from disk
- API response models for repositories and packages

Settings accept the camelCase keys of older repository settings
files (``dir``, ``ignore``, ``configFileName``, ``configParseRules``) as
aliases so existing configuration can be reused unchanged.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


DEFAULT_METADATA_FILENAME = "README.md"


def _check_rules(rules: Dict[str, Any], trail: str = "") -> None:
    for field_name, rule in rules.items():
        where = f"{trail}{field_name}"
        if isinstance(rule, dict):
            _check_rules(rule, trail=f"{where}.")
        elif not isinstance(rule, str):
            raise ValueError(
                f"Rule '{where}' must be a regular expression string or a nested rule mapping"
            )


# ---------------------------------------------------------------------------
# Repository configuration models
# ---------------------------------------------------------------------------


class PackageDefinition(BaseModel):
    """
    Describes how to recognise a package and read its metadata.

    A directory is a package candidate when it contains a file whose name
    matches ``metadata_filename``. Each entry in ``field_extraction_rules``
    maps an output field to either a regular expression (first capture group
    is used) or a nested rule mapping applied to the same metadata text.
    """

    model_config = ConfigDict(populate_by_name=True)

    metadata_filename: str = Field(
        default=DEFAULT_METADATA_FILENAME,
        validation_alias=AliasChoices("metadata_filename", "configFileName"),
        description="Name (or glob) of the file describing a package's metadata.",
    )
    field_extraction_rules: Dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("field_extraction_rules", "configParseRules"),
        description="Mapping of field name to regex pattern or nested rule mapping.",
    )
    ignore_patterns: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("ignore_patterns", "ignore"),
        description="Glob patterns (relative to the package directory) excluded from the item listing.",
    )
    normalize_identifier: bool = Field(
        default=False,
        description="Strip braces/dashes from extracted identifiers and upper-case them (GUID style).",
    )

    @field_validator("field_extraction_rules")
    @classmethod
    def _validate_rules(cls, value: Dict[str, Any]) -> Dict[str, Any]:
        _check_rules(value)
        return value


class RepositorySettings(BaseModel):
    """
    Settings for a single repository (one directory tree scanned for packages).
    """

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(
        min_length=1,
        description="Unique name of the repository within a manager.",
    )
    directory: str = Field(
        validation_alias=AliasChoices("directory", "dir"),
        description="Local path to the repository root.",
    )
    ignore_patterns: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("ignore_patterns", "ignore"),
        description="Glob patterns (relative to the root, or a bare entry name) skipped by the tree walk.",
    )
    package_definition: PackageDefinition = Field(
        default_factory=PackageDefinition,
        validation_alias=AliasChoices("package_definition", "packageDefinition"),
        description="How packages are recognised inside this repository.",
    )


class ManagerConfig(BaseModel):
    """
    Top-level configuration describing every managed repository.
    Loaded from: $REPOPACKAGER_CONFIG (YAML or JSON)
    """

    repositories: List[RepositorySettings] = Field(
        default_factory=list,
        description="Repositories registered with the manager at startup.",
    )
    rescan_interval_seconds: Optional[int] = Field(
        default=None,
        ge=1,
        description="If set, every repository is rescanned on this interval.",
    )
    scan_on_startup: bool = Field(
        default=True,
        description="Start a scan of every repository when the application starts.",
    )


# ---------------------------------------------------------------------------
# API response models
# ---------------------------------------------------------------------------


class PackageSummary(BaseModel):
    """
    Public view of a discovered package.
    """

    identifier: Optional[str] = None
    name: Optional[str] = None
    path: str
    is_valid: bool
    fields: Dict[str, Any] = Field(default_factory=dict)
    last_walk_time: Optional[datetime] = None


class PackageDetail(PackageSummary):
    """
    Package view including the listed file items.
    """

    items: List[str] = Field(default_factory=list)


class RepositorySummary(BaseModel):
    """
    Public view of a repository and its scan status.
    """

    name: str
    directory: str
    state: str
    package_count: int
    invalid_package_count: int
    last_scan_time: Optional[datetime] = None
