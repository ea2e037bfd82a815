"""
Tests for the RemoteClient Protocol and RemoteEntry record.

Verifies that FTPClient and the in-memory test double both satisfy the
RemoteClient protocol, so either can back a Cache.
"""

from datetime import datetime

import pytest

from ftp_navigator.ftp_client import FTPClient
from ftp_navigator.remote_client import EntryKind, RemoteClient, RemoteEntry

REQUIRED_METHODS = [
    "connect",
    "disconnect",
    "list_dir",
    "open_read",
    "open_write",
    "open_append",
    "create_dir",
    "delete_file",
    "delete_dir",
]


class TestRemoteClientProtocol:
    """Verify that concrete client classes satisfy the RemoteClient protocol."""

    def test_ftp_client_has_all_methods(self):
        for method in REQUIRED_METHODS:
            assert callable(getattr(FTPClient, method, None)), f"FTPClient missing method: {method}"

    def test_runtime_checkable_ftp(self, ftp_config, conn_config):
        assert isinstance(FTPClient(ftp_config, conn_config), RemoteClient)

    def test_runtime_checkable_fake(self, remote):
        assert isinstance(remote, RemoteClient)

    def test_object_without_methods_is_not_remote_client(self):
        assert not isinstance(object(), RemoteClient)


class TestRemoteEntry:
    """Tests for the RemoteEntry record."""

    def test_defaults(self):
        entry = RemoteEntry(name="a.txt", full_name="/a.txt", kind=EntryKind.FILE)

        assert entry.size == 0
        assert entry.modified is None
        assert entry.is_dir is False

    def test_is_dir(self):
        entry = RemoteEntry(name="d", full_name="/d", kind=EntryKind.DIRECTORY)

        assert entry.is_dir is True

    def test_entries_are_immutable(self):
        entry = RemoteEntry(
            name="a", full_name="/a", kind=EntryKind.FILE, modified=datetime(2024, 1, 1)
        )

        with pytest.raises(AttributeError):
            entry.kind = EntryKind.DIRECTORY
