"""
Drive facade over one cached FTP session.

FTPDrive is what a host (the CLI, the interactive shell, or an embedding
application) talks to: paths in, cache nodes and content streams out.
"""

import logging

from .cache import Cache, CacheDirectoryNode, CacheNode
from .config import AppConfig
from .content import ContentReader, ContentWriter
from .ftp_client import FTPClient
from .remote_client import RemoteClient

logger = logging.getLogger(__name__)

ITEM_TYPES = ("file", "directory")


class FTPDrive:
    def __init__(self, site_name: str, client: RemoteClient):
        self.site_name = site_name
        self._client = client
        self._cache = Cache(client)

    @classmethod
    def from_config(cls, config: AppConfig) -> "FTPDrive":
        client = FTPClient(config.ftp, config.connection)
        return cls(config.site or config.ftp.host, client)

    @property
    def cache(self) -> Cache:
        return self._cache

    def connect(self) -> None:
        logger.info("Connecting drive %s", self.site_name)
        self._client.connect()

    def close(self) -> None:
        logger.info("Closing drive %s", self.site_name)
        self._client.disconnect()

    def __enter__(self) -> "FTPDrive":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Navigation

    def get_item(self, path: str) -> CacheNode:
        return self._cache.get_item(path)

    def get_child_items(self, path: str) -> list[CacheNode]:
        return self._cache.get_child_items(path)

    def item_exists(self, path: str) -> bool:
        try:
            self._cache.get_item(path)
        except (FileNotFoundError, NotADirectoryError):
            return False
        return True

    def is_item_container(self, path: str) -> bool:
        return isinstance(self._cache.get_item(path), CacheDirectoryNode)

    def has_child_items(self, path: str) -> bool:
        with self._cache.lock:
            item = self._cache.get_item(path)
            return isinstance(item, CacheDirectoryNode) and bool(item.get_children())

    # Mutation

    def new_item(self, path: str, item_type: str) -> CacheNode:
        """Create a file or directory; missing parent directories are created."""
        kind = item_type.lower()
        if kind not in ITEM_TYPES:
            raise ValueError(
                f"Unsupported item type: {item_type}. Must be one of: {', '.join(ITEM_TYPES)}"
            )
        if kind == "directory":
            return self._cache.create_directory(path)
        return self._cache.create_file(path)

    def remove_item(self, path: str, recurse: bool = False) -> None:
        with self._cache.lock:
            item = self._cache.get_item(path)
            if isinstance(item, CacheDirectoryNode):
                self._cache.delete_directory(path, recurse)
            else:
                self._cache.delete_file(path)

    # Content

    def get_content_reader(
        self, path: str, encoding: str | None = None, raw: bool = False
    ) -> ContentReader:
        item = self._cache.get_item(path)
        if isinstance(item, CacheDirectoryNode):
            raise IsADirectoryError(f"{item.full_name} is a directory.")
        return ContentReader(self._cache, item, encoding=encoding, raw=raw)

    def get_content_writer(self, path: str, encoding: str | None = None) -> ContentWriter:
        """Writer for ``path``, creating the file first when it does not exist."""
        with self._cache.lock:
            if self.item_exists(path):
                item = self._cache.get_item(path)
            else:
                item = self._cache.create_file(path)
        if isinstance(item, CacheDirectoryNode):
            raise IsADirectoryError(f"{item.full_name} is a directory.")
        return ContentWriter(self._cache, item, encoding=encoding)

    def clear_content(self, path: str) -> None:
        item = self._cache.get_item(path)
        if isinstance(item, CacheDirectoryNode):
            raise IsADirectoryError(f"Cannot clear content of directory {item.full_name}")
        with ContentWriter(self._cache, item) as writer:
            writer.truncate()

    def clear_cache(self) -> None:
        self._cache.clear()

    def __repr__(self) -> str:
        return f"FTPDrive({self.site_name!r})"
