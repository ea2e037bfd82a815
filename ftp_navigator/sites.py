"""
Stored connection profiles from a FileZilla site manager file.

Only the fields needed to open a session are read: host, port, user,
password and the protocol number (mapped to an encryption mode).
"""

import base64
import binascii
import logging
import os
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path

from .config import FTPConfig

logger = logging.getLogger(__name__)

# FileZilla <Protocol> values
_PROTOCOL_ENCRYPTION = {
    0: "explicit",  # FTP, use explicit TLS if available
    3: "implicit",  # FTPS
    4: "explicit",  # FTPES
    6: "none",  # plain FTP, insecure
}


class UnknownSiteError(KeyError):
    """No stored profile has the requested name."""

    def __str__(self) -> str:
        return self.args[0]


@dataclass
class Site:
    name: str
    ftp: FTPConfig


def default_sitemanager_path() -> Path:
    """Location FileZilla uses for sitemanager.xml on this platform."""
    if sys.platform == "win32":
        appdata = os.environ.get("APPDATA") or str(Path.home() / "AppData" / "Roaming")
        return Path(appdata) / "FileZilla" / "sitemanager.xml"
    return Path.home() / ".config" / "filezilla" / "sitemanager.xml"


def load_filezilla_sites(path: str | Path | None = None) -> list[Site]:
    """
    Read every server entry from a FileZilla sitemanager.xml.

    A missing or malformed file yields an empty list; entries that cannot be
    parsed are skipped with a warning.
    """
    path = Path(path) if path is not None else default_sitemanager_path()

    try:
        root = ET.parse(path).getroot()
    except FileNotFoundError:
        logger.debug("No FileZilla site manager at %s", path)
        return []
    except (ET.ParseError, OSError) as e:
        logger.warning("Could not read FileZilla site manager %s: %s", path, e)
        return []

    sites = []
    for server in root.iter("Server"):
        try:
            sites.append(_parse_server(server))
        except (ValueError, binascii.Error) as e:
            logger.warning("Skipping unreadable site entry: %s", e)

    logger.debug("Loaded %d site(s) from %s", len(sites), path)
    return sites


def _parse_server(server: ET.Element) -> Site:
    host = (server.findtext("Host") or "").strip()
    if not host:
        raise ValueError("site has no host")

    port = int(server.findtext("Port") or 21)

    # Older files keep the site name as text directly inside <Server>
    name = (server.findtext("Name") or "").strip()
    if not name:
        name = "".join(text.strip() for text in _direct_text(server)) or host

    password = None
    pass_element = server.find("Pass")
    if pass_element is not None and pass_element.text:
        password = pass_element.text
        if pass_element.get("encoding") == "base64":
            password = base64.b64decode(password).decode("utf-8")

    protocol = int(server.findtext("Protocol") or 0)

    return Site(
        name=name,
        ftp=FTPConfig(
            host=host,
            port=port,
            username=(server.findtext("User") or "").strip() or None,
            password=password,
            encryption=_PROTOCOL_ENCRYPTION.get(protocol, "explicit"),
        ),
    )


def _direct_text(element: ET.Element) -> list[str]:
    texts = [element.text or ""]
    texts.extend(child.tail or "" for child in element)
    return texts


def find_site(sites: list[Site], name: str) -> Site:
    """Look a site up by name, ignoring case."""
    wanted = name.casefold()
    for site in sites:
        if site.name.casefold() == wanted:
            return site
    raise UnknownSiteError(f"No stored site named '{name}'")
