import stat
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List

import aiofiles
import aiofiles.os


class FileSystem(ABC):
    """
    Abstract base class for the filesystem primitives used by a scan.

    Every method may raise ``OSError``; callers decide whether a failure is
    fatal to the branch they are working on.
    """

    @abstractmethod
    async def list_dir(self, directory: Path) -> List[str]:
        """Return the entry names in a directory (unsorted)."""
        pass

    @abstractmethod
    async def is_directory(self, path: Path) -> bool:
        """Return True if path is a directory (following symlinks)."""
        pass

    @abstractmethod
    async def is_symlink(self, path: Path) -> bool:
        """Return True if path itself is a symbolic link."""
        pass

    @abstractmethod
    async def is_file(self, path: Path) -> bool:
        """Return True if path exists and is a regular file. Never raises."""
        pass

    @abstractmethod
    async def read_text(self, path: Path) -> str:
        """Read a whole file as UTF-8 text."""
        pass


class LocalFileSystem(FileSystem):
    def __init__(self, encoding: str = "utf-8"):
        self._encoding = encoding

    async def list_dir(self, directory: Path) -> List[str]:
        return await aiofiles.os.listdir(directory)

    async def is_directory(self, path: Path) -> bool:
        # stat() rather than path.isdir() so permission errors surface
        st = await aiofiles.os.stat(path)
        return stat.S_ISDIR(st.st_mode)

    async def is_symlink(self, path: Path) -> bool:
        return await aiofiles.os.path.islink(path)

    async def is_file(self, path: Path) -> bool:
        return await aiofiles.os.path.isfile(path)

    async def read_text(self, path: Path) -> str:
        async with aiofiles.open(path, "r", encoding=self._encoding, errors="replace") as f:
            return await f.read()
