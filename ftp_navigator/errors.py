"""
Exceptions raised while navigating or mutating the remote tree.

Each class also derives from the closest builtin exception, so callers that
only care about e.g. ``FileNotFoundError`` do not need to import this module.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .remote_client import RemoteEntry


class NavigationError(OSError):
    """Base class for cache navigation and mutation failures."""

    def __init__(self, message: str, path: str | None = None):
        super().__init__(message)
        self.path = path

    def __str__(self) -> str:
        return self.args[0]


class NotFoundError(NavigationError, FileNotFoundError):
    """A path component does not exist under its expected parent."""

    def __init__(self, message: str, path: str | None = None, component: str | None = None,
                 parent: str | None = None):
        super().__init__(message, path)
        self.component = component
        self.parent = parent


class NotDirectoryError(NavigationError, NotADirectoryError):
    """A directory was required but the resolved item is a file."""


class NameConflictError(NavigationError, FileExistsError):
    """A path component exists with the wrong kind for the requested create."""

    def __init__(self, message: str, path: str | None = None, component: str | None = None):
        super().__init__(message, path)
        self.component = component


class AlreadyExistsError(NavigationError, FileExistsError):
    """The leaf of a create operation already exists."""


class ProtocolAnomalyError(NavigationError):
    """The server listed an entry that is neither a file nor a directory."""

    def __init__(self, message: str, path: str | None = None, entry: RemoteEntry | None = None):
        super().__init__(message, path)
        self.entry = entry


class ConnectionBusyError(RuntimeError):
    """A command was issued while a data transfer still owns the connection."""
