"""
Shared pytest fixtures for FTP-Navigator tests.
"""

import ftplib
import io
from collections.abc import Generator
from datetime import datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from ftp_navigator.cache import Cache, join_path, split_path
from ftp_navigator.config import AppConfig, ConnectionConfig, FTPConfig, LogConfig
from ftp_navigator.ftp_client import FTPClient
from ftp_navigator.remote_client import EntryKind, RemoteEntry


class _UploadBuffer(io.BytesIO):
    """BytesIO that stores its contents in the fake tree when closed."""

    def __init__(self, remote: "FakeRemoteClient", path: str, initial: bytes = b""):
        super().__init__()
        self._remote = remote
        self._path = path
        self.write(initial)

    def close(self) -> None:
        if not self.closed:
            self._remote.files[self._path] = self.getvalue()
        super().close()


class FakeRemoteClient:
    """
    In-memory remote tree implementing the RemoteClient protocol.

    ``files`` maps path to bytes, ``dirs`` holds directory paths. Tests can
    edit both directly to simulate changes made by other clients, and read
    ``list_calls`` to see which directories were actually listed.
    """

    def __init__(self):
        self.files: dict[str, bytes] = {}
        self.dirs: set[str] = {"/"}
        self.extra_entries: dict[str, list[RemoteEntry]] = {}
        self.list_calls: list[str] = []
        self.connected = False

    # Tree setup helpers

    def add_dir(self, path: str) -> None:
        while path != "/":
            self.dirs.add(path)
            path = split_path(path)[0]

    def add_file(self, path: str, data: bytes = b"") -> None:
        self.add_dir(split_path(path)[0])
        self.files[path] = data

    def _entry(self, path: str) -> RemoteEntry:
        name = split_path(path)[1] or "/"
        if path in self.dirs:
            return RemoteEntry(name=name, full_name=path, kind=EntryKind.DIRECTORY)
        return RemoteEntry(
            name=name,
            full_name=path,
            kind=EntryKind.FILE,
            size=len(self.files[path]),
            modified=datetime(2024, 1, 15, 10, 30),
        )

    # RemoteClient

    def connect(self) -> None:
        self.connected = True

    def disconnect(self) -> None:
        self.connected = False

    def list_dir(self, path: str) -> list[RemoteEntry]:
        self.list_calls.append(path)
        if path in self.files:
            return [self._entry(path)]
        if path not in self.dirs:
            raise FileNotFoundError(f"Path not found: {path}")

        children = [
            p
            for p in list(self.dirs) + list(self.files)
            if p != "/" and split_path(p)[0] == path
        ]
        entries = [self._entry(p) for p in sorted(children)]
        return entries + self.extra_entries.get(path, [])

    def open_read(self, path: str) -> io.BytesIO:
        if path not in self.files:
            raise FileNotFoundError(f"Path not found: {path}")
        return io.BytesIO(self.files[path])

    def open_write(self, path: str) -> _UploadBuffer:
        self.files[path] = b""
        return _UploadBuffer(self, path)

    def open_append(self, path: str) -> _UploadBuffer:
        return _UploadBuffer(self, path, self.files.get(path, b""))

    def create_dir(self, path: str) -> None:
        if path in self.dirs or path in self.files:
            raise FileExistsError(f"Already exists: {path}")
        self.dirs.add(path)

    def delete_file(self, path: str) -> None:
        if path not in self.files:
            raise FileNotFoundError(f"Path not found: {path}")
        del self.files[path]

    def delete_dir(self, path: str, recurse: bool = False) -> None:
        if path not in self.dirs:
            raise FileNotFoundError(f"Path not found: {path}")
        prefix = join_path(path, "")
        nested = [p for p in list(self.dirs) + list(self.files) if p.startswith(prefix)]
        if nested and not recurse:
            raise OSError(f"Directory not empty: {path}")
        for p in nested:
            self.dirs.discard(p)
            self.files.pop(p, None)
        self.dirs.discard(path)


@pytest.fixture
def remote() -> FakeRemoteClient:
    """A small fake site: /docs/readme.txt, /docs/guide/intro.txt, /notes.txt."""
    fake = FakeRemoteClient()
    fake.add_file("/docs/readme.txt", b"hello\nworld\n")
    fake.add_file("/docs/guide/intro.txt", b"intro")
    fake.add_file("/notes.txt", b"line one\r\nline two")
    return fake


@pytest.fixture
def cache(remote: FakeRemoteClient) -> Cache:
    return Cache(remote)


@pytest.fixture
def tmp_config_file(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Creates a temporary INI configuration file for config tests.

    Returns:
        Path to the temporary config file.
    """
    config_content = """[ftp]
host = testserver.local
port = 2121
username = testuser
password = testpass
passive_mode = false
encoding = latin-1
encryption = explicit
verify_certificate = false

[connection]
timeout_seconds = 45
retry_attempts = 5
retry_delay_seconds = 2.5

[logging]
level = DEBUG
file = test.log
console = false

[general]
site = Test Server
"""
    config_path = tmp_path / "test_config.ini"
    config_path.write_text(config_content, encoding="utf-8")
    yield config_path


@pytest.fixture
def minimal_config_file(tmp_path: Path) -> Generator[Path, None, None]:
    """
    Creates a minimal INI configuration file with only required fields.

    Returns:
        Path to the temporary config file.
    """
    config_path = tmp_path / "minimal_config.ini"
    config_path.write_text("[ftp]\nhost = minimal.server.com\n", encoding="utf-8")
    yield config_path


@pytest.fixture
def mock_ftp() -> Generator[MagicMock, None, None]:
    """
    Creates a mocked ftplib.FTP instance.

    Returns:
        Mocked FTP object with common methods stubbed.
    """
    mock = MagicMock(spec=ftplib.FTP)
    mock.encoding = "utf-8"

    # Default responses
    mock.sendcmd.return_value = "200 OK"
    mock.voidcmd.return_value = None
    mock.login.return_value = "230 Login successful"
    mock.cwd.return_value = "250 OK"
    mock.pwd.return_value = "/"
    mock.quit.return_value = "221 Goodbye"

    yield mock


@pytest.fixture
def ftp_config() -> FTPConfig:
    """Creates a standard FTPConfig for testing."""
    return FTPConfig(
        host="test.ftp.local",
        port=2121,
        username="testuser",
        password="testpass",
        passive_mode=True,
        encoding="utf-8",
    )


@pytest.fixture
def conn_config() -> ConnectionConfig:
    """Creates a standard ConnectionConfig for testing."""
    return ConnectionConfig(
        timeout_seconds=30,
        retry_attempts=3,
        retry_delay_seconds=0,
    )


@pytest.fixture
def ftp_client(
    ftp_config: FTPConfig, conn_config: ConnectionConfig, mock_ftp: MagicMock
) -> Generator[FTPClient, None, None]:
    """
    Creates an FTPClient with a mocked FTP connection.

    Returns:
        FTPClient instance with mocked underlying FTP.
    """
    with patch("ftp_navigator.ftp_client.ftplib.FTP", return_value=mock_ftp):
        client = FTPClient(ftp_config, conn_config)
        client._ftp = mock_ftp
        client._connected = True
        client._supports_mlsd = True
        client._supports_mlst = True
        yield client


@pytest.fixture
def app_config(ftp_config: FTPConfig, conn_config: ConnectionConfig) -> AppConfig:
    """Creates a complete AppConfig for testing."""
    return AppConfig(
        ftp=ftp_config,
        connection=conn_config,
        logging=LogConfig(level="DEBUG", file="test.log", console=False),
        site="Test Server",
    )
