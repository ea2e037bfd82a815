"""
In-memory tree cache of a remote directory hierarchy.

The tree mirrors the remote layout one directory at a time. Each directory
node lists itself lazily the first time its children are needed and again
whenever it has been marked stale (by a local mutation, a failed lookup, or a
child that discovered it is no longer a directory). Nodes that survive a
refresh with the same name and kind are kept, so references held elsewhere
stay valid.
"""

import logging
import threading
import weakref
from enum import Enum

from .errors import (
    AlreadyExistsError,
    NameConflictError,
    NotDirectoryError,
    NotFoundError,
    ProtocolAnomalyError,
)
from .remote_client import EntryKind, RemoteClient, RemoteEntry

logger = logging.getLogger(__name__)

ROOT_PATH = "/"


def normalize_path(path: str) -> str:
    """Convert a caller-supplied path into its canonical form.

    Backslashes become forward slashes, empty and trailing separators are
    dropped, and the result always has exactly one leading slash.
    """
    components = [c for c in path.replace("\\", "/").split("/") if c]
    return ROOT_PATH + "/".join(components)


def join_path(parent: str, name: str) -> str:
    """Canonical path of ``name`` inside the directory ``parent``."""
    if parent == ROOT_PATH:
        return ROOT_PATH + name
    return f"{parent}/{name}"


def split_path(path: str) -> tuple[str, str]:
    """Split a path into (parent path, leaf name). The root has an empty leaf."""
    path = normalize_path(path)
    parent, _, name = path.rpartition("/")
    return parent or ROOT_PATH, name


def _components(path: str) -> list[str]:
    return [c for c in path.split("/") if c]


class ListingState(Enum):
    STALE = "stale"
    FRESH = "fresh"


class CacheNode:
    """A remote file known to the cache."""

    def __init__(self, entry: RemoteEntry, parent: "CacheDirectoryNode | None" = None):
        self.entry = entry
        # The parent owns its children; children only point back weakly.
        self._parent_ref = weakref.ref(parent) if parent is not None else None

    @property
    def parent(self) -> "CacheDirectoryNode | None":
        if self._parent_ref is None:
            return None
        return self._parent_ref()

    @property
    def name(self) -> str:
        return self.entry.name

    @property
    def full_name(self) -> str:
        return self.entry.full_name

    @property
    def kind(self) -> EntryKind:
        return self.entry.kind

    @property
    def is_dir(self) -> bool:
        return False

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.full_name!r})"


class CacheDirectoryNode(CacheNode):
    """A remote directory whose children are listed on demand."""

    def __init__(
        self,
        entry: RemoteEntry,
        parent: "CacheDirectoryNode | None",
        client: RemoteClient,
    ):
        super().__init__(entry, parent)
        self._client = client
        self._children: dict[str, CacheNode] = {}
        self._state = ListingState.STALE

    @property
    def is_dir(self) -> bool:
        return True

    @property
    def stale(self) -> bool:
        return self._state is ListingState.STALE

    def mark_dirty(self) -> None:
        self._state = ListingState.STALE

    def _fresh_children(self) -> dict[str, CacheNode]:
        """The only reader of ``_children``; refreshes first when stale."""
        if self._state is ListingState.STALE:
            self._refresh()
        return self._children

    def _refresh(self) -> None:
        path = self.full_name
        try:
            listing = self._client.list_dir(path)
        except FileNotFoundError:
            # Removed remotely; the parent's listing still names it.
            parent = self.parent
            if parent is not None:
                parent.mark_dirty()
            raise

        if len(listing) == 1 and listing[0].full_name == path:
            # Listing a file returns the file itself: this directory was
            # replaced remotely. Let the parent rediscover the path's kind.
            logger.warning("%s is no longer a directory; invalidating its parent", path)
            parent = self.parent
            if parent is not None:
                parent.mark_dirty()
            return

        children: dict[str, CacheNode] = {}
        reused = 0
        for entry in listing:
            if entry.kind not in (EntryKind.FILE, EntryKind.DIRECTORY):
                raise ProtocolAnomalyError(
                    f"Found child of unexpected type {entry.kind.value}: {entry.full_name}",
                    path=entry.full_name,
                    entry=entry,
                )

            existing = self._children.get(entry.name)
            if existing is not None and existing.kind is entry.kind:
                existing.entry = entry
                children[entry.name] = existing
                reused += 1
            elif entry.kind is EntryKind.DIRECTORY:
                children[entry.name] = CacheDirectoryNode(entry, self, self._client)
            else:
                children[entry.name] = CacheNode(entry, self)

        logger.debug(
            "Refreshed %s: %d entries, %d reused, %d dropped",
            path,
            len(children),
            reused,
            len(self._children.keys() - children.keys()),
        )
        self._children = children
        self._state = ListingState.FRESH

    def get_child(self, name: str) -> CacheNode | None:
        child = self._fresh_children().get(name)
        if child is None:
            # Not found once; the listing may predate a remote change.
            self.mark_dirty()
            child = self._fresh_children().get(name)
        return child

    def get_children(self) -> list[CacheNode]:
        return list(self._fresh_children().values())

    def _confirm_absent(self, name: str) -> bool:
        if name not in self._fresh_children():
            return True
        self.mark_dirty()
        return name not in self._fresh_children()

    def _confirm_present(self, name: str) -> bool:
        if name in self._fresh_children():
            return True
        self.mark_dirty()
        return name in self._fresh_children()

    def create_file(self, name: str) -> CacheNode:
        path = join_path(self.full_name, name)
        if not self._confirm_absent(name):
            raise AlreadyExistsError(
                f"Cannot create file named {name} because an item of that name already exists.",
                path,
            )

        logger.debug("Creating file %s", path)
        with self._client.open_write(path):
            pass
        self.mark_dirty()

        child = self.get_child(name)
        if child is None:
            raise NotFoundError(
                f"Created file {path} but the server does not list it",
                path,
                component=name,
                parent=self.full_name,
            )
        return child

    def create_directory(self, name: str) -> "CacheDirectoryNode":
        path = join_path(self.full_name, name)
        if not self._confirm_absent(name):
            raise AlreadyExistsError(
                f"Cannot create directory named {name} because an item of that name already exists.",
                path,
            )

        logger.debug("Creating directory %s", path)
        self._client.create_dir(path)
        self.mark_dirty()

        child = self.get_child(name)
        if child is None:
            raise NotFoundError(
                f"Created directory {path} but the server does not list it",
                path,
                component=name,
                parent=self.full_name,
            )
        if not isinstance(child, CacheDirectoryNode):
            raise NotDirectoryError(f"{path} is not a directory.", path)
        return child

    def delete_file(self, name: str) -> None:
        path = join_path(self.full_name, name)
        if not self._confirm_present(name):
            raise NotFoundError(
                f"Cannot delete file named {name} because it doesn't exist.",
                path,
                component=name,
                parent=self.full_name,
            )

        logger.debug("Deleting file %s", path)
        self._client.delete_file(path)
        self.mark_dirty()

    def delete_directory(self, name: str, recurse: bool) -> None:
        path = join_path(self.full_name, name)
        if not self._confirm_present(name):
            raise NotFoundError(
                f"Cannot delete directory named {name} because it doesn't exist.",
                path,
                component=name,
                parent=self.full_name,
            )

        logger.debug("Deleting directory %s (recurse=%s)", path, recurse)
        self._client.delete_dir(path, recurse)
        self.mark_dirty()


class Cache:
    """
    Path-based view over one remote site.

    Owns the client and the root directory node. Every public method holds
    ``lock`` for its whole duration, so one Cache can be shared between
    threads but only ever drives one command on the connection at a time.
    """

    def __init__(self, client: RemoteClient):
        self._client = client
        self._lock = threading.RLock()
        self._root: CacheDirectoryNode
        self.clear()

    @property
    def client(self) -> RemoteClient:
        return self._client

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    @property
    def root(self) -> CacheDirectoryNode:
        return self._root

    def clear(self) -> None:
        """Forget everything; the next operation lists from the root again."""
        with self._lock:
            root_entry = RemoteEntry(name=ROOT_PATH, full_name=ROOT_PATH, kind=EntryKind.DIRECTORY)
            self._root = CacheDirectoryNode(root_entry, None, self._client)
            logger.debug("Cache cleared")

    def get_item(self, path: str) -> CacheNode:
        with self._lock:
            path = normalize_path(path)

            current: CacheNode = self._root
            for component in _components(path):
                if not isinstance(current, CacheDirectoryNode):
                    break

                child = current.get_child(component)
                if child is None:
                    raise NotFoundError(
                        f"Item {component} does not exist under {current.full_name}",
                        path,
                        component=component,
                        parent=current.full_name,
                    )
                current = child

            if current.full_name != path:
                # Walk stopped at a file where a directory was expected.
                raise NotDirectoryError(f"{current.full_name} is not a directory.", path)

            return current

    def get_child_items(self, path: str) -> list[CacheNode]:
        with self._lock:
            item = self.get_item(path)
            if not isinstance(item, CacheDirectoryNode):
                path = normalize_path(path)
                raise NotDirectoryError(f"{path} is not a directory.", path)
            return item.get_children()

    def create_directory(self, path: str) -> CacheDirectoryNode:
        """Create ``path`` and any missing parents; existing directories are reused."""
        with self._lock:
            path = normalize_path(path)
            return self._ensure_directory(_components(path), path)

    def create_file(self, path: str) -> CacheNode:
        with self._lock:
            parent_path, name = split_path(path)
            if not name:
                raise ValueError(f"Cannot create a file at {normalize_path(path)}")
            parent = self._ensure_directory(_components(parent_path), normalize_path(path))
            return parent.create_file(name)

    def delete_file(self, path: str) -> None:
        with self._lock:
            parent_path, name = split_path(path)
            if not name:
                raise ValueError(f"Cannot delete {normalize_path(path)} as a file")
            parent = self._existing_directory(_components(parent_path), normalize_path(path))
            parent.delete_file(name)

    def delete_directory(self, path: str, recurse: bool = False) -> None:
        with self._lock:
            parent_path, name = split_path(path)
            if not name:
                raise ValueError("Cannot delete the root directory")
            parent = self._existing_directory(_components(parent_path), normalize_path(path))
            parent.delete_directory(name, recurse)

    def _ensure_directory(self, components: list[str], path: str) -> CacheDirectoryNode:
        current = self._root
        for component in components:
            child = current.get_child(component)
            if child is None:
                child = current.create_directory(component)
            elif not isinstance(child, CacheDirectoryNode):
                raise NameConflictError(
                    f"Cannot create a directory named {component} because a file of that name already exists.",
                    path,
                    component=component,
                )
            current = child
        return current

    def _existing_directory(self, components: list[str], path: str) -> CacheDirectoryNode:
        current = self._root
        for component in components:
            child = current.get_child(component)
            if not isinstance(child, CacheDirectoryNode):
                raise NotFoundError(
                    f"Directory {component} does not exist.",
                    path,
                    component=component,
                    parent=current.full_name,
                )
            current = child
        return current
