__version__ = "0.1.0"

# Public API exports
from .cache import Cache, CacheDirectoryNode, CacheNode, ListingState, normalize_path
from .config import AppConfig, ConnectionConfig, FTPConfig, LogConfig, load_config
from .content import ContentReader, ContentWriter
from .drive import FTPDrive
from .errors import (
    AlreadyExistsError,
    ConnectionBusyError,
    NameConflictError,
    NavigationError,
    NotDirectoryError,
    NotFoundError,
    ProtocolAnomalyError,
)
from .ftp_client import FTPClient
from .remote_client import EntryKind, RemoteClient, RemoteEntry
from .sites import Site, UnknownSiteError, find_site, load_filezilla_sites

__all__ = [
    "__version__",
    # Configuration
    "AppConfig",
    "FTPConfig",
    "ConnectionConfig",
    "LogConfig",
    "load_config",
    "Site",
    "load_filezilla_sites",
    "find_site",
    "UnknownSiteError",
    # Clients
    "RemoteClient",
    "RemoteEntry",
    "EntryKind",
    "FTPClient",
    # Cache
    "Cache",
    "CacheNode",
    "CacheDirectoryNode",
    "ListingState",
    "normalize_path",
    # Drive
    "FTPDrive",
    "ContentReader",
    "ContentWriter",
    # Errors
    "NavigationError",
    "NotFoundError",
    "NotDirectoryError",
    "NameConflictError",
    "AlreadyExistsError",
    "ProtocolAnomalyError",
    "ConnectionBusyError",
]
