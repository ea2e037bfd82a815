"""
Unit tests for ftp_navigator.sites module.

Tests cover:
- Parsing server entries (host, port, user, plain and base64 passwords)
- Protocol number to encryption mode mapping
- Site names from <Name> or from text directly inside <Server>
- Missing, malformed and partially broken files
- Case-insensitive lookup by name
"""

import base64
import logging
from pathlib import Path

import pytest

from ftp_navigator.sites import (
    Site,
    UnknownSiteError,
    default_sitemanager_path,
    find_site,
    load_filezilla_sites,
)

SITEMANAGER_XML = """<?xml version="1.0" encoding="UTF-8" standalone="yes" ?>
<FileZilla3 version="3.60.0" platform="windows">
    <Servers>
        <Server>
            <Host>ftp.example.com</Host>
            <Port>21</Port>
            <Protocol>0</Protocol>
            <Type>0</Type>
            <User>alice</User>
            <Pass encoding="base64">{password}</Pass>
            <Name>Example</Name>
        </Server>
        <Folder expanded="1">Work
            <Server>
                <Host>files.internal</Host>
                <Port>990</Port>
                <Protocol>3</Protocol>
                <User>bob</User>
                <Pass>plain-secret</Pass>
                <Name>Internal</Name>
            </Server>
        </Folder>
        <Server>
            <Host>legacy.example.org</Host>
            <Port>2121</Port>
            <Protocol>6</Protocol>
            <User></User>
            Legacy Site
        </Server>
    </Servers>
</FileZilla3>
"""


@pytest.fixture
def sitemanager(tmp_path: Path) -> Path:
    path = tmp_path / "sitemanager.xml"
    password = base64.b64encode("s3cret".encode("utf-8")).decode("ascii")
    path.write_text(SITEMANAGER_XML.format(password=password), encoding="utf-8")
    return path


class TestLoadFileZillaSites:
    """Tests for load_filezilla_sites."""

    def test_loads_all_servers_including_folders(self, sitemanager: Path):
        sites = load_filezilla_sites(sitemanager)

        assert [s.name for s in sites] == ["Example", "Internal", "Legacy Site"]
        assert all(isinstance(s, Site) for s in sites)

    def test_base64_password_decoded(self, sitemanager: Path):
        site = load_filezilla_sites(sitemanager)[0]

        assert site.ftp.host == "ftp.example.com"
        assert site.ftp.port == 21
        assert site.ftp.username == "alice"
        assert site.ftp.password == "s3cret"

    def test_plain_password(self, sitemanager: Path):
        assert load_filezilla_sites(sitemanager)[1].ftp.password == "plain-secret"

    def test_protocol_mapping(self, sitemanager: Path):
        sites = load_filezilla_sites(sitemanager)

        assert sites[0].ftp.encryption == "explicit"
        assert sites[1].ftp.encryption == "implicit"
        assert sites[2].ftp.encryption == "none"

    @pytest.mark.parametrize(
        "protocol, expected",
        [("0", "explicit"), ("3", "implicit"), ("4", "explicit"), ("6", "none"), ("1", "explicit")],
    )
    def test_protocol_numbers(self, tmp_path: Path, protocol: str, expected: str):
        path = tmp_path / "one.xml"
        path.write_text(
            "<FileZilla3><Servers><Server><Host>h</Host><Port>21</Port>"
            f"<Protocol>{protocol}</Protocol><Name>n</Name></Server></Servers></FileZilla3>",
            encoding="utf-8",
        )

        assert load_filezilla_sites(path)[0].ftp.encryption == expected

    def test_empty_user_and_missing_password(self, sitemanager: Path):
        legacy = load_filezilla_sites(sitemanager)[2]

        assert legacy.ftp.username is None
        assert legacy.ftp.password is None
        assert legacy.ftp.port == 2121

    def test_missing_file_returns_empty(self, tmp_path: Path):
        assert load_filezilla_sites(tmp_path / "absent.xml") == []

    def test_malformed_file_returns_empty_and_warns(self, tmp_path: Path, caplog):
        path = tmp_path / "broken.xml"
        path.write_text("<FileZilla3><Servers>", encoding="utf-8")

        with caplog.at_level(logging.WARNING, logger="ftp_navigator.sites"):
            assert load_filezilla_sites(path) == []

        assert "Could not read FileZilla site manager" in caplog.text

    def test_bad_entry_skipped(self, tmp_path: Path):
        path = tmp_path / "partial.xml"
        path.write_text(
            "<FileZilla3><Servers>"
            "<Server><Host>good</Host><Port>21</Port><Name>Good</Name></Server>"
            "<Server><Host>bad</Host><Port>not-a-port</Port><Name>Bad</Name></Server>"
            "<Server><Port>21</Port><Name>No Host</Name></Server>"
            "</Servers></FileZilla3>",
            encoding="utf-8",
        )

        assert [s.name for s in load_filezilla_sites(path)] == ["Good"]

    def test_default_path_used(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(
            "ftp_navigator.sites.default_sitemanager_path", lambda: tmp_path / "none.xml"
        )

        assert load_filezilla_sites() == []

    def test_default_path_location(self):
        path = default_sitemanager_path()

        assert path.name == "sitemanager.xml"
        assert path.parent.name.lower() == "filezilla"


class TestFindSite:
    """Tests for find_site."""

    def test_case_insensitive(self, sitemanager: Path):
        sites = load_filezilla_sites(sitemanager)

        assert find_site(sites, "internal").ftp.host == "files.internal"
        assert find_site(sites, "LEGACY SITE").ftp.host == "legacy.example.org"

    def test_unknown_site_raises_key_error(self, sitemanager: Path):
        with pytest.raises(KeyError, match="No stored site named 'Nope'"):
            find_site(load_filezilla_sites(sitemanager), "Nope")

    def test_unknown_site_error_is_a_key_error(self, sitemanager: Path):
        with pytest.raises(UnknownSiteError) as exc_info:
            find_site(load_filezilla_sites(sitemanager), "Nope")

        assert isinstance(exc_info.value, KeyError)
        assert str(exc_info.value) == "No stored site named 'Nope'"
