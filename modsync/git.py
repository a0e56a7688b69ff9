from __future__ import annotations

import logging
import os
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from .errors import DomainError

logger = logging.getLogger(__name__)

NOTHING_TO_COMMIT_MARKERS = ("nothing to commit", "nothing added to commit", "no changes added to commit")


class GitError(DomainError):
    def __init__(self, command: list[str], returncode: int, output: str) -> None:
        self.command = command
        self.returncode = returncode
        self.output = output
        super().__init__(f"'{' '.join(command)}' failed with exit code {returncode}: {output.strip()}")


class NothingToCommitError(GitError):
    pass


class RepositoryClient(ABC):
    """Version-control operations on one working copy.

    Every implementation (the ``git`` executable, in-memory fakes) raises
    ``GitError`` on failure and ``NothingToCommitError`` from ``commit`` when
    the index holds no change.
    """

    def __init__(self, directory: Path) -> None:
        self.directory = directory

    @abstractmethod
    def is_cloned(self) -> bool: ...

    @abstractmethod
    def clone(self, remote: str) -> None: ...

    @abstractmethod
    def fetch(self) -> None: ...

    @abstractmethod
    def reset_hard(self, ref: str | None = None) -> None: ...

    @abstractmethod
    def clean(self) -> None: ...

    @abstractmethod
    def current_branch(self) -> str | None: ...

    @abstractmethod
    def local_branches(self) -> list[str]: ...

    @abstractmethod
    def remote_branches(self) -> list[str]:
        """Branch names on ``origin``, without the remote prefix."""

    @abstractmethod
    def remote_default_branch(self) -> str: ...

    @abstractmethod
    def checkout(self, ref: str) -> None: ...

    @abstractmethod
    def create_branch(self, name: str, start_point: str) -> None: ...

    @abstractmethod
    def add(self, path: str) -> None: ...

    @abstractmethod
    def remove(self, path: str) -> None: ...

    @abstractmethod
    def deleted_files(self) -> list[str]: ...

    @abstractmethod
    def untracked_files(self) -> list[str]: ...

    @abstractmethod
    def diff_head(self) -> str: ...

    @abstractmethod
    def commit(self, message: str, amend: bool = False) -> None: ...

    @abstractmethod
    def push(self, refspec: str, force: bool = False, remote: str = "origin") -> None: ...

    @abstractmethod
    def add_tag(self, name: str, message: str) -> None: ...

    @abstractmethod
    def remote_url(self, remote: str = "origin") -> str: ...


class GitClient(RepositoryClient):
    def __init__(self, directory: Path, executable: str = "git") -> None:
        super().__init__(directory)
        self.executable = executable

    def _run(self, *args: str, cwd: Path | None = None) -> str:
        command = [self.executable, *args]
        logger.debug("Running %s in %s", " ".join(command), cwd or self.directory)
        try:
            completed = subprocess.run(
                command,
                cwd=str(cwd or self.directory),
                env={**os.environ, "LC_ALL": "C"},
                capture_output=True,
                text=True,
                encoding="utf-8",
                check=False,
            )
        except OSError as error:
            raise GitError(command, -1, str(error)) from error

        if completed.returncode != 0:
            output = "\n".join(part for part in (completed.stdout, completed.stderr) if part)
            raise GitError(command, completed.returncode, output)
        return completed.stdout

    def is_cloned(self) -> bool:
        return (self.directory / ".git").exists()

    def clone(self, remote: str) -> None:
        self.directory.parent.mkdir(parents=True, exist_ok=True)
        self._run("clone", remote, str(self.directory.resolve()), cwd=Path.cwd())

    def fetch(self) -> None:
        self._run("fetch", "origin", "--prune")

    def reset_hard(self, ref: str | None = None) -> None:
        self._run("reset", "--hard", *([ref] if ref else []))

    def clean(self) -> None:
        self._run("clean", "-d", "-f")

    def current_branch(self) -> str | None:
        try:
            return self._run("symbolic-ref", "--short", "-q", "HEAD").strip() or None
        except GitError:
            return None

    def local_branches(self) -> list[str]:
        output = self._run("for-each-ref", "--format=%(refname:short)", "refs/heads")
        return [line.strip() for line in output.splitlines() if line.strip()]

    def remote_branches(self) -> list[str]:
        output = self._run("for-each-ref", "--format=%(refname)", "refs/remotes/origin")
        prefix = "refs/remotes/origin/"
        return [
            line.strip()[len(prefix):]
            for line in output.splitlines()
            if line.strip().startswith(prefix) and line.strip() != f"{prefix}HEAD"
        ]

    def remote_default_branch(self) -> str:
        try:
            ref = self._run("symbolic-ref", "--short", "refs/remotes/origin/HEAD").strip()
        except GitError:
            return "master"
        return ref.split("/", 1)[1] if "/" in ref else ref

    def checkout(self, ref: str) -> None:
        self._run("checkout", ref)

    def create_branch(self, name: str, start_point: str) -> None:
        self._run("checkout", "-b", name, start_point)

    def add(self, path: str) -> None:
        self._run("add", "--", path)

    def remove(self, path: str) -> None:
        self._run("rm", "--cached", "--quiet", "--", path)

    def _status_entries(self) -> list[tuple[str, str]]:
        # NUL-separated output leaves paths unquoted; renames carry their source as an extra field.
        fields = iter(self._run("status", "--porcelain", "-z", "--untracked-files=all").split("\0"))
        entries = []
        for entry in fields:
            if len(entry) < 4:
                continue
            code, path = entry[:2], entry[3:]
            if code[0] in "RC":
                next(fields, None)
            entries.append((code, path))
        return entries

    def deleted_files(self) -> list[str]:
        return [path for code, path in self._status_entries() if "D" in code]

    def untracked_files(self) -> list[str]:
        return [path for code, path in self._status_entries() if code == "??"]

    def diff_head(self) -> str:
        return self._run("diff", "HEAD", "--")

    def commit(self, message: str, amend: bool = False) -> None:
        try:
            self._run("commit", "-m", message, *(["--amend"] if amend else []))
        except GitError as error:
            if any(marker in error.output for marker in NOTHING_TO_COMMIT_MARKERS):
                raise NothingToCommitError(error.command, error.returncode, error.output) from error
            raise

    def push(self, refspec: str, force: bool = False, remote: str = "origin") -> None:
        self._run("push", *(["--force"] if force else []), remote, refspec)

    def add_tag(self, name: str, message: str) -> None:
        self._run("tag", "-a", name, "-m", message)

    def remote_url(self, remote: str = "origin") -> str:
        return self._run("remote", "get-url", remote).strip()
