"""
FTP-Navigator - Main Entry Point

This module provides the CLI interface: one-shot commands that each open a
session, run against the cached drive, and disconnect, plus an interactive
shell that keeps one session (and its cache) alive.
"""

import argparse
import logging
import sys

from .config import AppConfig, load_config
from .drive import FTPDrive
from .logger import setup_logging
from .sites import UnknownSiteError, find_site, load_filezilla_sites
from .shell import NavigatorShell, format_entry

logger = logging.getLogger(__name__)


def _add_connection_args(parser):
    parser.add_argument("--config", help="Path to configuration file")
    parser.add_argument("--site", help="Stored FileZilla site to connect to")
    parser.add_argument("--host", help="FTP Host")
    parser.add_argument("--port", type=int, help="FTP Port")
    parser.add_argument("--user", help="FTP Username")
    parser.add_argument("--password", help="FTP Password")
    parser.add_argument("--secure", action="store_true", help="Use explicit FTPS (AUTH TLS)")
    parser.add_argument("--implicit", action="store_true", help="Use implicit FTPS")
    parser.add_argument(
        "--insecure", action="store_true", help="Do not verify the server's TLS certificate"
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")


def build_parser():
    """Build the command-line parser."""
    parser = argparse.ArgumentParser(
        prog="ftp-navigator",
        description="FTP-Navigator - Browse and edit FTP servers through a cached tree",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  ftp-navigator ls /pub --host ftp.example.com
  ftp-navigator cat /notes/readme.txt --site "My Server"
  ftp-navigator put local.bin /upload/remote.bin --config config.ini
  ftp-navigator rm /old --recurse --host 192.168.0.130 --port 2121
  ftp-navigator shell --host ftp.example.com --secure
  ftp-navigator sites
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    ls_parser = subparsers.add_parser("ls", help="List a remote directory")
    ls_parser.add_argument("path", nargs="?", default="/", help="Remote path (default: /)")
    _add_connection_args(ls_parser)

    stat_parser = subparsers.add_parser("stat", help="Show one remote item")
    stat_parser.add_argument("path", help="Remote path")
    _add_connection_args(stat_parser)

    cat_parser = subparsers.add_parser("cat", help="Print a remote file")
    cat_parser.add_argument("path", help="Remote path")
    cat_parser.add_argument(
        "--encoding", help="Decode as text with this encoding (default: raw bytes)"
    )
    _add_connection_args(cat_parser)

    put_parser = subparsers.add_parser("put", help="Upload a local file")
    put_parser.add_argument("local", help="Local file ('-' for stdin)")
    put_parser.add_argument("path", help="Remote path")
    put_parser.add_argument("--append", action="store_true", help="Append instead of replacing")
    _add_connection_args(put_parser)

    mkdir_parser = subparsers.add_parser("mkdir", help="Create a directory and missing parents")
    mkdir_parser.add_argument("path", help="Remote path")
    _add_connection_args(mkdir_parser)

    touch_parser = subparsers.add_parser("touch", help="Create an empty file")
    touch_parser.add_argument("path", help="Remote path")
    _add_connection_args(touch_parser)

    rm_parser = subparsers.add_parser("rm", help="Remove a file or directory")
    rm_parser.add_argument("path", help="Remote path")
    rm_parser.add_argument(
        "--recurse", action="store_true", help="Remove directories with their contents"
    )
    _add_connection_args(rm_parser)

    sites_parser = subparsers.add_parser("sites", help="List stored FileZilla sites")
    sites_parser.add_argument("--file", help="Path to sitemanager.xml")

    shell_parser = subparsers.add_parser("shell", help="Start an interactive session")
    _add_connection_args(shell_parser)

    return parser


def parse_args(argv=None):
    """Parse command-line arguments."""
    return build_parser().parse_args(argv)


def resolve_config(args) -> AppConfig:
    """
    Build the AppConfig for a command.

    A stored FileZilla site fills in host, port, credentials and encryption;
    explicit command-line options still override it.
    """
    site = None
    if args.site:
        site = find_site(load_filezilla_sites(), args.site)

    cli = {
        "host": args.host,
        "port": args.port,
        "username": args.user,
        "password": args.password,
        "secure": args.secure or None,
        "implicit": args.implicit or None,
        "insecure": args.insecure or None,
        "site": args.site,
        "debug": args.verbose,
    }
    if site is not None:
        stored = site.ftp
        cli["host"] = args.host or stored.host
        cli["port"] = args.port or stored.port
        cli["username"] = args.user if args.user is not None else stored.username
        cli["password"] = args.password if args.password is not None else stored.password
        if not (args.secure or args.implicit):
            cli["encryption"] = stored.encryption
        cli["site"] = site.name

    return load_config(config_path=args.config, **cli)


def _open_drive(args):
    config = resolve_config(args)
    setup_logging(config.logging)
    from . import __version__

    logger.info("Starting FTP-Navigator v%s", __version__)
    logger.info("Connecting to %s:%d", config.ftp.host, config.ftp.port)

    drive = FTPDrive.from_config(config)
    drive.connect()
    logger.info("Connection established")
    return drive


def cmd_ls(drive, args):
    item = drive.get_item(args.path)
    if not item.is_dir:
        print(format_entry(item))
        return 0
    for child in sorted(drive.get_child_items(args.path), key=lambda c: c.name):
        print(format_entry(child))
    return 0


def cmd_stat(drive, args):
    item = drive.get_item(args.path)
    entry = item.entry
    print(f"  Path: {item.full_name}")
    print(f"  Type: {entry.kind.value}")
    print(f"  Size: {entry.size}")
    print(f"  Modified: {entry.modified.isoformat() if entry.modified else 'unknown'}")
    if item.is_dir:
        print(f"  Children: {len(drive.get_child_items(args.path))}")
    return 0


def cmd_cat(drive, args):
    with drive.get_content_reader(args.path, encoding=args.encoding) as reader:
        if args.encoding:
            while lines := reader.read():
                print(lines[0])
        else:
            out = sys.stdout.buffer
            while chunks := reader.read():
                out.write(chunks[0])
            out.flush()
    return 0


def cmd_put(drive, args):
    if args.local == "-":
        source = sys.stdin.buffer
    else:
        source = open(args.local, "rb")

    total = 0
    try:
        with drive.get_content_writer(args.path) as writer:
            if args.append:
                writer.seek(0, 2)
            else:
                writer.truncate()
            while chunk := source.read(65536):
                writer.write([chunk])
                total += len(chunk)
    finally:
        if source is not sys.stdin.buffer:
            source.close()

    print(f"[OK] {'Appended' if args.append else 'Uploaded'} {total} bytes to {args.path}")
    return 0


def cmd_mkdir(drive, args):
    node = drive.new_item(args.path, "directory")
    print(f"[OK] Created {node.full_name}")
    return 0


def cmd_touch(drive, args):
    if drive.item_exists(args.path):
        print(f"[OK] {drive.get_item(args.path).full_name} already exists")
        return 0
    node = drive.new_item(args.path, "file")
    print(f"[OK] Created {node.full_name}")
    return 0


def cmd_rm(drive, args):
    if drive.is_item_container(args.path) and not args.recurse:
        print(f"[ERROR] {args.path} is a directory; use --recurse to remove it")
        return 1
    drive.remove_item(args.path, recurse=args.recurse)
    print(f"[OK] Removed {args.path}")
    return 0


def cmd_shell(drive, args):
    NavigatorShell(drive).run()
    return 0


def cmd_sites(args):
    """List stored FileZilla profiles. Needs no connection."""
    sites = load_filezilla_sites(args.file)
    if not sites:
        print("No stored sites found.")
        return 0
    for site in sites:
        user = f"{site.ftp.username}@" if site.ftp.username else ""
        print(f"  {site.name}: {user}{site.ftp.host}:{site.ftp.port} ({site.ftp.encryption})")
    return 0


SESSION_COMMANDS = {
    "ls": cmd_ls,
    "stat": cmd_stat,
    "cat": cmd_cat,
    "put": cmd_put,
    "mkdir": cmd_mkdir,
    "touch": cmd_touch,
    "rm": cmd_rm,
    "shell": cmd_shell,
}


def run_session_command(args):
    """
    Connect, run one command against the drive, and disconnect.

    Maps connection, lookup and configuration failures onto an [ERROR] line
    and exit code 1.
    """
    drive = None
    try:
        try:
            drive = _open_drive(args)
        except ConnectionError as e:
            logger.error("Failed to connect to server: %s", e)
            print(f"[ERROR] Could not connect to server: {e}")
            return 1
        except PermissionError as e:
            logger.error("Authentication failed: %s", e)
            print(f"[ERROR] Authentication failed: {e}")
            return 1
        except TimeoutError as e:
            logger.error("Connection timed out: %s", e)
            print(f"[ERROR] Connection timed out: {e}")
            return 1

        return SESSION_COMMANDS[args.command](drive, args)

    except UnknownSiteError as e:
        print(f"[ERROR] {e}")
        return 1
    except ValueError as e:
        print(f"[ERROR] {e}")
        return 1
    except OSError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"[ERROR] {e}")
        return 1
    finally:
        if drive is not None:
            try:
                drive.close()
            except OSError as e:
                logger.warning("Error disconnecting: %s", e)


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    if args.command == "sites":
        return cmd_sites(args)
    elif args.command in SESSION_COMMANDS:
        return run_session_command(args)
    else:
        print("Usage: ftp-navigator <command> [options]")
        print()
        print("Commands:")
        print("  ls       List a remote directory")
        print("  stat     Show one remote item")
        print("  cat      Print a remote file")
        print("  put      Upload a local file")
        print("  mkdir    Create a directory")
        print("  touch    Create an empty file")
        print("  rm       Remove a file or directory")
        print("  sites    List stored FileZilla sites")
        print("  shell    Start an interactive session")
        print()
        print("Run 'ftp-navigator <command> --help' for more information.")
        return 1


if __name__ == "__main__":
    sys.exit(main() or 0)
