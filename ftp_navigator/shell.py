"""
Interactive navigator over a single FTPDrive session.

Listings are served from the drive's cache, so moving around a site only
costs a round trip for directories that have not been visited yet or were
changed by a command in this session.
"""

import logging
import shlex

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.styles import Style

from .cache import ROOT_PATH, join_path, normalize_path
from .drive import FTPDrive

logger = logging.getLogger(__name__)


class RemotePathCompleter(Completer):
    """Tab completion for remote paths, from whatever the cache already knows."""

    def __init__(self, shell: "NavigatorShell"):
        self.shell = shell

    def get_completions(self, document, complete_event):
        words = document.text_before_cursor.split(" ")
        if len(words) < 2:
            return

        partial = words[-1]
        directory, _, prefix = partial.rpartition("/")
        if partial.startswith("/") and not directory:
            directory = "/"

        try:
            children = self.shell.drive.get_child_items(self.shell.resolve(directory or "."))
        except (OSError, ValueError):
            return

        for child in children:
            if child.name.startswith(prefix):
                suffix = "/" if child.is_dir else ""
                yield Completion(child.name + suffix, start_position=-len(prefix))


class NavigatorShell:
    """Interactive shell with commands cd, pwd, ls, cat, mkdir, touch, rm, rmdir, refresh."""

    def __init__(self, drive: FTPDrive, session: PromptSession | None = None):
        self.drive = drive
        self.cwd = ROOT_PATH
        self.running = True
        self.session = session or PromptSession(
            completer=RemotePathCompleter(self),
            style=Style.from_dict({"prompt": "ansicyan bold"}),
        )

        self.commands = {
            "cd": self.cmd_cd,
            "pwd": self.cmd_pwd,
            "ls": self.cmd_ls,
            "cat": self.cmd_cat,
            "mkdir": self.cmd_mkdir,
            "touch": self.cmd_touch,
            "rm": self.cmd_rm,
            "rmdir": self.cmd_rmdir,
            "refresh": self.cmd_refresh,
            "help": self.cmd_help,
            "?": self.cmd_help,
            "exit": self.cmd_exit,
            "quit": self.cmd_exit,
        }

    def get_prompt(self) -> str:
        return f"{self.drive.site_name}:{self.cwd} $ "

    def resolve(self, path: str) -> str:
        """Absolute form of ``path`` relative to the working directory."""
        if not path.startswith("/"):
            path = join_path(self.cwd, path)

        resolved: list[str] = []
        for component in normalize_path(path).split("/"):
            if component in ("", "."):
                continue
            if component == "..":
                if resolved:
                    resolved.pop()
                continue
            resolved.append(component)
        return ROOT_PATH + "/".join(resolved)

    def run(self) -> None:
        print(f"Connected to {self.drive.site_name}")
        print("Type 'help' for available commands, 'exit' to quit.\n")

        while self.running:
            try:
                line = self.session.prompt(self.get_prompt()).strip()
            except KeyboardInterrupt:
                print("Use 'exit' or 'quit' to exit the shell.")
                continue
            except EOFError:
                break

            if line:
                self.execute(line)

    def execute(self, line: str) -> None:
        try:
            parts = shlex.split(line)
        except ValueError as e:
            print(f"Parse error: {e}")
            return

        if not parts:
            return

        cmd, args = parts[0], parts[1:]
        handler = self.commands.get(cmd)
        if handler is None:
            print(f"Unknown command: {cmd}. Type 'help' for available commands.")
            return

        try:
            handler(args)
        except (OSError, ValueError, RuntimeError) as e:
            logger.debug("Command %r failed: %s", line, e)
            print(f"{cmd}: {e}")

    def cmd_cd(self, args: list[str]) -> None:
        path = self.resolve(args[0]) if args else ROOT_PATH
        if not self.drive.is_item_container(path):
            print(f"cd: {path}: Not a directory")
            return
        self.cwd = path

    def cmd_pwd(self, args: list[str]) -> None:
        print(self.cwd)

    def cmd_ls(self, args: list[str]) -> None:
        path = self.resolve(args[0]) if args else self.cwd
        item = self.drive.get_item(path)
        if not item.is_dir:
            print(format_entry(item))
            return
        for child in sorted(self.drive.get_child_items(path), key=lambda c: c.name):
            print(format_entry(child))

    def cmd_cat(self, args: list[str]) -> None:
        if not args:
            print("Usage: cat <file>")
            return
        with self.drive.get_content_reader(self.resolve(args[0]), encoding="utf-8") as reader:
            while lines := reader.read():
                print(lines[0])

    def cmd_mkdir(self, args: list[str]) -> None:
        if not args:
            print("Usage: mkdir <directory>...")
            return
        for path in args:
            self.drive.new_item(self.resolve(path), "directory")

    def cmd_touch(self, args: list[str]) -> None:
        if not args:
            print("Usage: touch <file>...")
            return
        for path in args:
            path = self.resolve(path)
            if not self.drive.item_exists(path):
                self.drive.new_item(path, "file")

    def cmd_rm(self, args: list[str]) -> None:
        recurse = "-r" in args
        paths = [a for a in args if a != "-r"]
        if not paths:
            print("Usage: rm [-r] <path>...")
            return
        for path in paths:
            path = self.resolve(path)
            if self.drive.is_item_container(path) and not recurse:
                print(f"rm: {path}: is a directory (use -r)")
                continue
            self.drive.remove_item(path, recurse=recurse)

    def cmd_rmdir(self, args: list[str]) -> None:
        if not args:
            print("Usage: rmdir <directory>...")
            return
        for path in args:
            path = self.resolve(path)
            if not self.drive.is_item_container(path):
                print(f"rmdir: {path}: Not a directory")
                continue
            self.drive.remove_item(path)

    def cmd_refresh(self, args: list[str]) -> None:
        self.drive.clear_cache()
        if not self.drive.item_exists(self.cwd):
            self.cwd = ROOT_PATH
        print("Cache cleared")

    def cmd_help(self, args: list[str]) -> None:
        print(
            """Commands:
  cd [path]          Change directory (default: /)
  pwd                Print working directory
  ls [path]          List a directory
  cat <file>         Print a text file
  mkdir <dir>...     Create directories, including missing parents
  touch <file>...    Create empty files
  rm [-r] <path>...  Remove files (and directories with -r)
  rmdir <dir>...     Remove empty directories
  refresh            Discard cached listings
  exit, quit         Leave the shell"""
        )

    def cmd_exit(self, args: list[str]) -> None:
        self.running = False


def format_entry(node) -> str:
    """One ``ls`` line: type flag, size, modification time, name."""
    entry = node.entry
    flag = "d" if node.is_dir else "-"
    modified = entry.modified.strftime("%Y-%m-%d %H:%M") if entry.modified else "-" * 16
    name = node.name + ("/" if node.is_dir else "")
    return f"{flag} {entry.size:>12} {modified} {name}"
