"""
Remote client protocol definition.

Defines the listing/transfer interface the cache consumes, plus the
transport-independent directory entry record that listings produce.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import BinaryIO, Protocol, runtime_checkable


class EntryKind(Enum):
    FILE = "file"
    DIRECTORY = "directory"
    LINK = "link"
    OTHER = "other"


@dataclass(frozen=True)
class RemoteEntry:
    """One record from a directory listing."""

    name: str
    full_name: str
    kind: EntryKind
    size: int = 0
    modified: datetime | None = None

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY


@runtime_checkable
class RemoteClient(Protocol):
    """Protocol defining the remote listing client interface.

    Any class implementing these methods can back a Cache, regardless of the
    underlying transport.
    """

    def connect(self) -> None:
        """Establish connection to the remote server."""
        ...

    def disconnect(self) -> None:
        """Close connection to the remote server."""
        ...

    def list_dir(self, path: str) -> list[RemoteEntry]:
        """List the immediate children of a directory.

        Args:
            path: Absolute remote path.

        Returns:
            One RemoteEntry per child. If ``path`` names a file, a single
            entry describing that file.

        Raises:
            FileNotFoundError: If path does not exist.
            PermissionError: If access denied.
        """
        ...

    def open_read(self, path: str) -> BinaryIO:
        """Open a binary stream over the contents of a remote file."""
        ...

    def open_write(self, path: str) -> BinaryIO:
        """Open a binary stream that replaces a remote file's contents."""
        ...

    def open_append(self, path: str) -> BinaryIO:
        """Open a binary stream that appends to a remote file."""
        ...

    def create_dir(self, path: str) -> None:
        """Create a single directory."""
        ...

    def delete_file(self, path: str) -> None:
        """Delete a file."""
        ...

    def delete_dir(self, path: str, recurse: bool = False) -> None:
        """Delete a directory, and everything under it when recurse is set."""
        ...
