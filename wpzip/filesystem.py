"""Remote file system interface.

Declares the operations wp-zip needs on the remote host file system : listing
and reading files to download the site, writing and deleting scratch scripts.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import AsyncContextManager

from wpzip.stream import InputStream


class EntryKind(Enum):
    FILE = "file"
    DIRECTORY = "directory"
    OTHER = "other"


@dataclass(frozen=True)
class RemoteEntry:
    """An entry of a remote directory."""

    name: str
    kind: EntryKind = EntryKind.FILE


class FileSystem(ABC):
    """File system of the remote host.

    Paths are posix paths on the remote host. Implementations raise
    FileNotFoundError when a path doesn't exist.
    """

    @abstractmethod
    async def list_dir(self, path: str) -> list[RemoteEntry]:
        """List a directory, without the "." and ".." entries."""

    @abstractmethod
    def open(self, path: str) -> AsyncContextManager[InputStream]:
        """Open a file for reading."""

    @abstractmethod
    async def upload(self, content: InputStream, path: str) -> None:
        """Write the given content to a file, replacing it if it exists."""

    @abstractmethod
    async def mkdir(self, path: str) -> None:
        """Create a directory."""

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete a file, or an empty directory."""
