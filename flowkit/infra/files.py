"""
Flowkit - File Access

The only path by which the engine touches the filesystem.
"""

import os
from abc import ABC, abstractmethod
from pathlib import Path


class ReaderWriter(ABC):
    """Read, write and stat capability handed to the project state."""

    @abstractmethod
    def read_file(self, path: str) -> bytes:
        """
        Read a whole file.

        Raises:
            FileNotFoundError: If the file does not exist.
        """
        pass

    @abstractmethod
    def write_file(self, path: str, data: bytes, mode: int) -> None:
        """Create or replace a file with the given permission bits."""
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass


class FileSystem(ReaderWriter):
    """ReaderWriter over the local filesystem."""

    def read_file(self, path: str) -> bytes:
        return Path(path).expanduser().read_bytes()

    def write_file(self, path: str, data: bytes, mode: int) -> None:
        target = Path(path).expanduser()
        if target.parent and not target.parent.exists():
            target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        os.chmod(target, mode)

    def exists(self, path: str) -> bool:
        return Path(path).expanduser().exists()
