import ftplib
import io
import logging
import socket
import ssl
import threading
import time
from collections.abc import Callable
from datetime import datetime
from typing import TypeVar

from .cache import join_path, normalize_path, split_path
from .config import ConnectionConfig, FTPConfig
from .errors import ConnectionBusyError
from .remote_client import EntryKind, RemoteEntry

logger = logging.getLogger(__name__)

T = TypeVar("T")

MONTHS = {
    "jan": 1,
    "feb": 2,
    "mar": 3,
    "apr": 4,
    "may": 5,
    "jun": 6,
    "jul": 7,
    "aug": 8,
    "sep": 9,
    "oct": 10,
    "nov": 11,
    "dec": 12,
}


class ImplicitFTP_TLS(ftplib.FTP_TLS):
    """FTP_TLS for servers that expect TLS from the first byte (usually port 990)."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._sock = None

    @property
    def sock(self):
        return self._sock

    @sock.setter
    def sock(self, value):
        if value is not None and not isinstance(value, ssl.SSLSocket):
            value = self.context.wrap_socket(value, server_hostname=self.host)
        self._sock = value


class TransferStream(io.RawIOBase):
    """
    Raw stream over one FTP data connection.

    The control connection is reserved for this transfer until the stream is
    closed; closing waits for the server's transfer-complete reply.
    """

    def __init__(self, client: "FTPClient", conn: socket.socket, path: str, writable: bool):
        super().__init__()
        self._client = client
        self._conn = conn
        self._path = path
        self._writable = writable
        self._eof = False

    @property
    def path(self) -> str:
        return self._path

    def readable(self) -> bool:
        return not self._writable

    def writable(self) -> bool:
        return self._writable

    def readinto(self, buffer) -> int:
        if self._writable:
            raise io.UnsupportedOperation("stream is write-only")
        count = self._conn.recv_into(buffer)
        if count == 0:
            self._eof = True
        return count

    def write(self, data) -> int:
        if not self._writable:
            raise io.UnsupportedOperation("stream is read-only")
        self._conn.sendall(data)
        return len(data)

    def close(self) -> None:
        if self.closed:
            return
        try:
            super().close()
        finally:
            self._client._finish_transfer(self, self._conn, complete=self._writable or self._eof)


class FTPClient:
    """
    High-level wrapper around ftplib.FTP / ftplib.FTP_TLS with reconnects,
    retry logic, and the listing/stream API the cache consumes.
    """

    def __init__(self, ftp_config: FTPConfig, conn_config: ConnectionConfig):
        self.ftp_config = ftp_config
        self.conn_config = conn_config
        self._ftp: ftplib.FTP | None = None
        self._lock = threading.Lock()
        self._connected = False
        self._active_transfer: TransferStream | None = None
        # Track server capabilities
        self._supports_mlsd = None
        self._supports_mlst = None

    def connect(self) -> None:
        """
        Establish initial connection to the FTP server.
        Handles TLS negotiation, authentication and passive mode setting.
        """
        with self._lock:
            self._connect_internal()

    def _ssl_context(self) -> ssl.SSLContext:
        context = ssl.create_default_context(cafile=self.ftp_config.ca_file)
        if not self.ftp_config.verify_certificate:
            logger.warning("Certificate verification disabled for %s", self.ftp_config.host)
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context

    def _create_ftp(self) -> ftplib.FTP:
        encryption = self.ftp_config.encryption
        if encryption == "implicit":
            ftp = ImplicitFTP_TLS(context=self._ssl_context())
        elif encryption == "explicit":
            ftp = ftplib.FTP_TLS(context=self._ssl_context())
        else:
            ftp = ftplib.FTP()
        ftp.encoding = self.ftp_config.encoding
        return ftp

    def _connect_internal(self) -> None:
        """Internal connect without lock - caller must hold lock."""
        try:
            self._ftp = self._create_ftp()

            logger.debug(
                "Connecting to FTP server %s:%d (encryption=%s)",
                self.ftp_config.host,
                self.ftp_config.port,
                self.ftp_config.encryption,
            )

            self._ftp.connect(
                host=self.ftp_config.host,
                port=self.ftp_config.port,
                timeout=self.conn_config.timeout_seconds,
            )

            # Login - anonymous if no credentials. FTP_TLS.login sends AUTH TLS first.
            if self.ftp_config.username:
                logger.debug("Logging in as user: %s", self.ftp_config.username)
                self._ftp.login(
                    user=self.ftp_config.username, passwd=self.ftp_config.password or ""
                )
            else:
                logger.debug("Logging in anonymously")
                self._ftp.login()

            if self.ftp_config.secure:
                # Protect the data channel as well as the control channel
                self._ftp.prot_p()

            self._ftp.set_pasv(self.ftp_config.passive_mode)
            logger.debug("Passive mode: %s", self.ftp_config.passive_mode)

            self._connected = True
            logger.info("Connected to FTP server %s:%d", self.ftp_config.host, self.ftp_config.port)

            self._probe_capabilities()

        except (ftplib.error_perm, ftplib.error_temp) as e:
            self._connected = False
            self._ftp = None
            logger.error("FTP login failed: %s", e)
            raise PermissionError(f"FTP login failed: {e}") from e
        except TimeoutError as e:
            self._connected = False
            self._ftp = None
            logger.error("Connection timeout: %s", e)
            raise TimeoutError(f"Connection timeout: {e}") from e
        except ssl.SSLCertVerificationError as e:
            self._connected = False
            self._ftp = None
            logger.error("Certificate verification failed: %s", e)
            raise ConnectionError(f"Certificate verification failed: {e}") from e
        except OSError as e:
            self._connected = False
            self._ftp = None
            logger.error("Connection failed: %s", e)
            raise ConnectionError(f"Connection failed: {e}") from e

    def _probe_capabilities(self) -> None:
        """Probe server capabilities for MLSD and MLST support."""
        if not self._ftp:
            return

        features = []
        try:
            resp = self._ftp.sendcmd("FEAT")
            features = resp.upper().split()
        except ftplib.error_perm:
            logger.debug("Server does not support FEAT")
        except (ftplib.Error, OSError) as e:
            logger.warning("Failed to probe server capabilities: %s", e)

        # RFC 3659 advertises MLSD through the MLST feature line
        self._supports_mlst = "MLST" in features
        self._supports_mlsd = "MLSD" in features or self._supports_mlst

        logger.debug(
            "Server capabilities - MLSD: %s, MLST: %s",
            self._supports_mlsd,
            self._supports_mlst,
        )

    def disconnect(self) -> None:
        """Safely close connection(s)."""
        with self._lock:
            self._disconnect_internal()

    def _disconnect_internal(self) -> None:
        """Internal disconnect without lock - caller must hold lock."""
        self._active_transfer = None
        if self._ftp:
            try:
                self._ftp.quit()
                logger.debug("FTP connection closed gracefully")
            except (ftplib.Error, OSError, EOFError) as e:
                logger.debug("FTP quit failed, forcing close: %s", e)
                try:
                    self._ftp.close()
                except OSError as close_error:
                    logger.debug("FTP close failed: %s", close_error)
            finally:
                self._ftp = None
                self._connected = False

    def _ensure_connected(self) -> None:
        """Ensure connection is active, reconnect if needed. Caller must hold lock."""
        if not self._connected or not self._ftp:
            logger.debug("Connection not active, reconnecting")
            self._connect_internal()
            return

        try:
            self._ftp.voidcmd("NOOP")
        except (ftplib.Error, OSError, EOFError) as e:
            logger.debug("Connection lost, reconnecting: %s", e)
            self._disconnect_internal()
            self._connect_internal()

    def _check_idle(self, operation: str) -> None:
        if self._active_transfer is not None:
            raise ConnectionBusyError(
                f"Cannot run {operation}: transfer of {self._active_transfer.path} is still open"
            )

    def _with_retry(self, operation: str, func: Callable[[], T]) -> T:
        """
        Execute a function with retry logic.

        Transient failures (timeouts, 4xx replies, socket errors) are retried
        up to ``retry_attempts`` times with a reconnect in between. Permanent
        5xx replies are translated and raised immediately.
        """
        attempts = max(1, self.conn_config.retry_attempts)
        last_exception = None

        for attempt in range(attempts):
            try:
                with self._lock:
                    self._check_idle(operation)
                    self._ensure_connected()
                    return func()
            except ftplib.error_perm as e:
                raise self._translate_ftp_error(e) from e
            except (TimeoutError, ftplib.error_temp, ftplib.error_reply, OSError) as e:
                if isinstance(e, (FileNotFoundError, PermissionError, FileExistsError)):
                    raise
                last_exception = e
                logger.warning(
                    "%s failed (attempt %d/%d): %s",
                    operation,
                    attempt + 1,
                    attempts,
                    e,
                )

                if attempt < attempts - 1:
                    time.sleep(self.conn_config.retry_delay_seconds)
                    # Force reconnect on next attempt
                    with self._lock:
                        self._disconnect_internal()

        logger.error("%s failed after %d attempts", operation, attempts)
        if isinstance(last_exception, socket.timeout):
            raise TimeoutError(f"{operation} timed out") from last_exception
        raise OSError(f"{operation} failed: {last_exception}") from last_exception

    def _translate_ftp_error(self, error: ftplib.error_perm) -> Exception:
        """Translate FTP permanent errors to standard Python exceptions."""
        error_str = str(error).lower()
        error_code = str(error)[:3]

        if error_code == "550":
            if "exists" in error_str:
                return FileExistsError(str(error))
            if "permission" in error_str or "denied" in error_str:
                return PermissionError(str(error))
            if "not empty" in error_str:
                return OSError(str(error))
            return FileNotFoundError(str(error))
        if error_code == "553":
            return PermissionError(str(error))
        if error_code == "530":
            return PermissionError(f"Authentication required: {error}")
        return OSError(str(error))

    # Listing

    def list_dir(self, path: str) -> list[RemoteEntry]:
        """
        List contents of a directory.

        Args:
            path: Absolute FTP path.

        Returns:
            list[RemoteEntry]: Immediate children. If ``path`` is a file, a
            single entry for the file itself.

        Raises:
            FileNotFoundError: If path does not exist.
            PermissionError: If access denied.
        """
        path = normalize_path(path)
        logger.debug("Listing directory: %s", path)

        def _list_dir_internal() -> list[RemoteEntry]:
            try:
                return self._list_entries(path)
            except ftplib.error_perm as e:
                entry = self._lookup_entry(path)
                if entry is None:
                    # Some servers answer 501 for a missing directory
                    if isinstance(self._translate_ftp_error(e), PermissionError):
                        raise
                    raise FileNotFoundError(f"Path not found: {path}") from e
                if entry.kind is not EntryKind.DIRECTORY:
                    logger.debug("%s is not a directory; listing it as a single entry", path)
                    return [entry]
                raise

        return self._with_retry(f"list_dir({path})", _list_dir_internal)

    def _list_entries(self, path: str) -> list[RemoteEntry]:
        if self._supports_mlsd:
            return self._list_dir_mlsd(path)
        return self._list_dir_list(path)

    def _list_dir_mlsd(self, path: str) -> list[RemoteEntry]:
        """List directory using MLSD command (modern, structured)."""
        results = []
        for name, facts in self._ftp.mlsd(path):
            entry_type = facts.get("type", "").lower()
            if name in (".", "..") or entry_type in ("cdir", "pdir"):
                continue
            results.append(self._entry_from_facts(path, name, facts))

        logger.debug("MLSD listed %d entries in %s", len(results), path)
        return results

    def _entry_from_facts(self, parent: str, name: str, facts: dict[str, str]) -> RemoteEntry:
        kind = self._kind_from_mlsx_type(facts.get("type", ""))
        size = int(facts.get("size", 0)) if kind is EntryKind.FILE else 0
        return RemoteEntry(
            name=name,
            full_name=join_path(parent, name),
            kind=kind,
            size=size,
            modified=self._parse_mlsd_time(facts.get("modify", "")),
        )

    def _kind_from_mlsx_type(self, entry_type: str) -> EntryKind:
        entry_type = entry_type.lower()
        if entry_type in ("dir", "cdir", "pdir"):
            return EntryKind.DIRECTORY
        if entry_type == "file":
            return EntryKind.FILE
        if "link" in entry_type:
            # e.g. OS.unix=symlink, OS.unix=slink:/target
            return EntryKind.LINK
        return EntryKind.OTHER

    def _parse_mlsd_time(self, time_str: str) -> datetime | None:
        """Parse MLSD modify time format (YYYYMMDDHHmmSS or YYYYMMDDHHmmSS.sss)."""
        if not time_str:
            return None

        try:
            return datetime.strptime(time_str.split(".")[0], "%Y%m%d%H%M%S")
        except ValueError:
            logger.warning("Failed to parse MLSD time: %s", time_str)
            return None

    def _list_dir_list(self, path: str) -> list[RemoteEntry]:
        """List directory using LIST command (legacy, needs parsing)."""
        lines = []
        self._ftp.cwd(path)
        self._ftp.retrlines("LIST", lines.append)

        results = []
        for line in lines:
            entry = self._parse_list_line(path, line)
            if entry and entry.name not in (".", ".."):
                results.append(entry)

        logger.debug("LIST listed %d entries in %s", len(results), path)
        return results

    def _parse_list_line(self, parent: str, line: str) -> RemoteEntry | None:
        """
        Parse a single line from LIST output.
        Handles both Unix and Windows FTP server formats.
        """
        line = line.strip()
        if not line:
            return None

        parts = line.split()
        if len(parts) < 4:
            return None

        # Unix format: drwxr-xr-x  2 user group 4096 Dec 10 12:34 filename
        if len(parts[0]) >= 10 and parts[0][0] in "-dlbcps":
            return self._parse_unix_list_line(parent, parts, line)

        # Windows format: 12-10-20  12:34PM  <DIR>  dirname
        if "-" in parts[0] and len(parts[0]) <= 10:
            return self._parse_windows_list_line(parent, parts, line)

        logger.warning("Unknown LIST format: %s", line)
        return None

    def _parse_unix_list_line(
        self, parent: str, parts: list[str], original_line: str
    ) -> RemoteEntry | None:
        try:
            kind = {"-": EntryKind.FILE, "d": EntryKind.DIRECTORY, "l": EntryKind.LINK}.get(
                parts[0][0], EntryKind.OTHER
            )
            size = int(parts[4]) if kind is EntryKind.FILE else 0

            # Name is the remainder after the 8 leading fields; it may contain spaces
            name = original_line.split(None, 8)[8]
            if kind is EntryKind.LINK and " -> " in name:
                name = name.split(" -> ", 1)[0]

            return RemoteEntry(
                name=name,
                full_name=join_path(parent, name),
                kind=kind,
                size=size,
                modified=self._parse_unix_list_time(parts[5:8]),
            )
        except (IndexError, ValueError) as e:
            logger.warning("Failed to parse Unix LIST line: %s - %s", original_line, e)
            return None

    def _parse_unix_list_time(self, time_parts: list[str]) -> datetime | None:
        """Parse Unix LIST time format (e.g., 'Dec 10 12:34' or 'Dec 10  2020')."""
        if len(time_parts) < 3:
            return None

        month_str, day_str, time_or_year = time_parts
        try:
            month = MONTHS[month_str.lower()]
            day = int(day_str)

            if ":" in time_or_year:
                hour, minute = map(int, time_or_year.split(":"))
                year = datetime.now().year
            else:
                year = int(time_or_year)
                hour, minute = 0, 0

            return datetime(year, month, day, hour, minute)
        except (ValueError, KeyError):
            return None

    def _parse_windows_list_line(
        self, parent: str, parts: list[str], original_line: str
    ) -> RemoteEntry | None:
        try:
            is_dir = parts[2].upper() == "<DIR>"
            size = 0 if is_dir else int(parts[2])
            name = original_line.split(None, 3)[3]

            return RemoteEntry(
                name=name,
                full_name=join_path(parent, name),
                kind=EntryKind.DIRECTORY if is_dir else EntryKind.FILE,
                size=size,
                modified=self._parse_windows_list_time(parts[0], parts[1]),
            )
        except (IndexError, ValueError) as e:
            logger.warning("Failed to parse Windows LIST line: %s - %s", original_line, e)
            return None

    def _parse_windows_list_time(self, date_str: str, time_str: str) -> datetime | None:
        """Parse Windows LIST time format (MM-DD-YY HH:MMAM/PM)."""
        try:
            month, day, year = map(int, date_str.split("-"))
            if year < 100:
                year += 2000 if year < 70 else 1900

            time_str = time_str.upper()
            is_pm = "PM" in time_str
            hour, minute = map(int, time_str.replace("AM", "").replace("PM", "").split(":"))

            if is_pm and hour != 12:
                hour += 12
            elif not is_pm and hour == 12:
                hour = 0

            return datetime(year, month, day, hour, minute)
        except (ValueError, IndexError):
            return None

    def _lookup_entry(self, path: str) -> RemoteEntry | None:
        """Describe a single path, or None if the server does not know it."""
        if path == "/":
            return None

        try:
            if self._supports_mlst:
                return self._entry_mlst(path)

            parent, name = split_path(path)
            for entry in self._list_dir_list(parent):
                if entry.name == name:
                    return entry
        except ftplib.error_perm as e:
            logger.debug("Lookup of %s failed: %s", path, e)
        return None

    def _entry_mlst(self, path: str) -> RemoteEntry | None:
        """Get a single entry using the MLST command."""
        response = self._ftp.sendcmd(f"MLST {path}")

        # 250-Listing /path
        #  type=file;size=1234;modify=20201210123456; /path
        # 250 End
        for line in response.splitlines():
            if not line.startswith(" "):
                continue
            facts_str, _, _ = line.strip().partition(" ")
            facts = {}
            for part in facts_str.split(";"):
                if "=" in part:
                    key, value = part.split("=", 1)
                    facts[key.lower()] = value

            parent, name = split_path(path)
            return self._entry_from_facts(parent, name, facts)

        return None

    # Transfers

    def open_read(self, path: str) -> io.BufferedReader:
        """Open a binary stream over a remote file (RETR)."""
        return io.BufferedReader(self._open_transfer("RETR", path, writable=False))

    def open_write(self, path: str) -> io.BufferedWriter:
        """Open a binary stream that replaces a remote file (STOR)."""
        return io.BufferedWriter(self._open_transfer("STOR", path, writable=True))

    def open_append(self, path: str) -> io.BufferedWriter:
        """Open a binary stream that appends to a remote file (APPE)."""
        return io.BufferedWriter(self._open_transfer("APPE", path, writable=True))

    def _open_transfer(self, command: str, path: str, writable: bool) -> TransferStream:
        path = normalize_path(path)
        logger.debug("Opening %s transfer: %s", command, path)

        def _open_internal() -> TransferStream:
            self._ftp.voidcmd("TYPE I")
            conn = self._ftp.transfercmd(f"{command} {path}")
            stream = TransferStream(self, conn, path, writable)
            self._active_transfer = stream
            return stream

        return self._with_retry(f"{command.lower()}({path})", _open_internal)

    def _finish_transfer(self, stream: TransferStream, conn: socket.socket, complete: bool) -> None:
        """Close a data connection and collect the server's final reply."""
        with self._lock:
            if self._active_transfer is not stream:
                # Connection was reset while the stream was open
                conn.close()
                return
            self._active_transfer = None

            try:
                if isinstance(conn, ssl.SSLSocket):
                    conn.unwrap()
            except (ssl.SSLError, OSError) as e:
                logger.debug("TLS shutdown of data connection failed: %s", e)
            finally:
                conn.close()

            try:
                self._ftp.voidresp()
            except ftplib.error_perm as e:
                raise self._translate_ftp_error(e) from e
            except ftplib.error_temp as e:
                if complete:
                    raise OSError(f"Transfer of {stream.path} failed: {e}") from e
                # Reader closed before EOF; the server reports the aborted transfer
                logger.debug("Partial read of %s aborted: %s", stream.path, e)

            logger.debug("Transfer of %s finished", stream.path)

    # Mutations

    def create_dir(self, path: str) -> None:
        """Create a single directory."""
        path = normalize_path(path)
        logger.debug("Creating directory: %s", path)

        def _create_dir_internal() -> None:
            self._ftp.mkd(path)
            logger.debug("Created directory: %s", path)

        self._with_retry(f"create_dir({path})", _create_dir_internal)

    def delete_file(self, path: str) -> None:
        """Delete a file."""
        path = normalize_path(path)
        logger.debug("Deleting file: %s", path)

        def _delete_file_internal() -> None:
            self._ftp.delete(path)
            logger.debug("Deleted file: %s", path)

        self._with_retry(f"delete_file({path})", _delete_file_internal)

    def delete_dir(self, path: str, recurse: bool = False) -> None:
        """Delete a directory; with recurse, delete its contents first."""
        path = normalize_path(path)
        logger.debug("Deleting directory: %s (recurse=%s)", path, recurse)

        def _delete_dir_internal() -> None:
            if recurse:
                self._delete_tree(path)
            else:
                self._ftp.rmd(path)
            logger.debug("Deleted directory: %s", path)

        self._with_retry(f"delete_dir({path})", _delete_dir_internal)

    def _delete_tree(self, path: str) -> None:
        for entry in self._list_entries(path):
            if entry.kind is EntryKind.DIRECTORY:
                self._delete_tree(entry.full_name)
            else:
                self._ftp.delete(entry.full_name)
        self._ftp.rmd(path)
