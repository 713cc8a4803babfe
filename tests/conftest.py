"""Shared fixtures and helpers for repopackager tests."""

from pathlib import Path
from typing import Iterable, List, Optional

import pytest

from repopackager.domain.models import PackageDefinition, RepositorySettings
from repopackager.storage.filesystem import LocalFileSystem

RULES = {
    "name": r"name:\s*(.+)",
    "identifier": r"guid:\s*(\S+)",
    "version": r"version:\s*(\S+)",
}


def write_package(
    root: Path,
    relative: str,
    name: Optional[str] = None,
    identifier: Optional[str] = None,
    files: Iterable[str] = (),
    metadata_filename: str = "README.md",
    extra: str = "",
) -> Path:
    """Create a package directory with a metadata file and some content files."""
    package_dir = root / relative
    package_dir.mkdir(parents=True, exist_ok=True)

    lines = []
    if name is not None:
        lines.append(f"Name: {name}")
    if identifier is not None:
        lines.append(f"GUID: {identifier}")
    if extra:
        lines.append(extra)
    (package_dir / metadata_filename).write_text("\n".join(lines) + "\n")

    for file in files:
        file_path = package_dir / file
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_text(f"contents of {file}")
    return package_dir


def make_settings(root: Path, name: str = "main", **definition) -> RepositorySettings:
    definition.setdefault("field_extraction_rules", RULES)
    return RepositorySettings(
        name=name,
        directory=str(root),
        package_definition=PackageDefinition(**definition),
    )


class FailingFileSystem(LocalFileSystem):
    """Local filesystem that raises for selected paths."""

    def __init__(self, fail_list: Iterable[Path] = (), fail_read: Iterable[Path] = ()):
        super().__init__()
        self.fail_list: List[Path] = [Path(p) for p in fail_list]
        self.fail_read: List[Path] = [Path(p) for p in fail_read]

    async def list_dir(self, directory: Path) -> List[str]:
        if Path(directory) in self.fail_list:
            raise PermissionError(f"Permission denied: '{directory}'")
        return await super().list_dir(directory)

    async def read_text(self, path: Path) -> str:
        if Path(path) in self.fail_read:
            raise OSError(f"I/O error reading '{path}'")
        return await super().read_text(path)


@pytest.fixture
def repo_root(tmp_path):
    root = tmp_path / "repo"
    root.mkdir()
    return root.resolve()
