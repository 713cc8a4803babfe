"""
Zip export of a package directory.

The archive is produced incrementally: ``zipfile`` writes into an
unseekable buffer (so it emits data descriptors instead of seeking back),
and the buffer is flushed to the consumer after every file. Large packages
are never held in memory or on disk as a whole.
"""
from __future__ import annotations

import logging
import os
import zipfile
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Union

from repopackager.domain.package_utils import matches_any

logger = logging.getLogger(__name__)

DEFAULT_EXCLUDE = "_resources/**"


class _ZipStream:
    """Write-only sink that hands out what has been written so far."""

    def __init__(self) -> None:
        self._chunks: List[bytes] = []

    def write(self, data: bytes) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


def _log_walk_error(error: OSError) -> None:
    logger.warning(f"Could not read {error.filename} while archiving: {error}")


def collect_files(directory: Path, exclude: Iterable[str]) -> List[str]:
    """
    Return the files under ``directory`` (POSIX, relative) not matching ``exclude``.

    Unreadable directories are logged and left out.
    """
    exclude = list(exclude)
    files: List[str] = []
    for dirpath, dirnames, filenames in os.walk(directory, onerror=_log_walk_error):
        dirnames.sort()
        for filename in sorted(filenames):
            relative = (Path(dirpath) / filename).relative_to(directory).as_posix()
            if matches_any(relative, exclude):
                continue
            files.append(relative)
    return files


def iter_zip(
    directory: Path,
    exclude: Optional[Union[str, Iterable[str]]] = None,
) -> Iterator[bytes]:
    """
    Yield a zip archive of ``directory`` in chunks.

    Args:
        directory: Directory whose contents are archived (paths in the
            archive are relative to it).
        exclude: Glob pattern(s) of files to leave out. Defaults to the
            ``_resources`` sub-tree.

    The archive is finalised (central directory written) when the generator
    is exhausted.
    """
    if exclude is None:
        exclude = [DEFAULT_EXCLUDE]
    elif isinstance(exclude, str):
        exclude = [exclude]

    directory = Path(directory)
    files = collect_files(directory, exclude)
    logger.debug(f"Archiving {len(files)} file(s) from {directory}")

    sink = _ZipStream()
    with zipfile.ZipFile(sink, "w", zipfile.ZIP_DEFLATED) as zf:
        for relative in files:
            zf.write(directory / relative, arcname=relative)
            chunk = sink.drain()
            if chunk:
                yield chunk
    # Closing the archive writes the central directory.
    tail = sink.drain()
    if tail:
        yield tail
