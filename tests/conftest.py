from __future__ import annotations

from pathlib import Path

import pytest

from modsync.git import GitError, NothingToCommitError, RepositoryClient
from modsync.modules import ManagedModule


class FakeRepositoryClient(RepositoryClient):
    """In-memory stand-in for a git working copy and its ``origin`` remote."""

    def __init__(
        self,
        directory: Path,
        cloned: bool = False,
        remote_branches: tuple[str, ...] = ("master",),
        default_branch: str = "master",
    ) -> None:
        super().__init__(directory)
        self.cloned = cloned
        self.remote = list(remote_branches)
        self.default_branch = default_branch
        self.locals: list[str] = [default_branch] if cloned else []
        self.current: str | None = default_branch if cloned else None
        self.staged: list[str] = []
        self.removed: list[str] = []
        self.deleted: list[str] = []
        self.untracked: list[str] = []
        self.diff = ""
        self.commits: list[tuple[str, bool]] = []
        self.pushes: list[tuple[str, bool]] = []
        self.tags: list[str] = []
        self.calls: list[tuple] = []
        self.fail_on: dict[str, Exception] = {}
        if cloned:
            directory.mkdir(parents=True, exist_ok=True)

    def _record(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        if name in self.fail_on:
            raise self.fail_on[name]

    def is_cloned(self) -> bool:
        return self.cloned

    def clone(self, remote: str) -> None:
        self._record("clone", remote)
        self.directory.mkdir(parents=True, exist_ok=True)
        self.cloned = True
        self.locals = [self.default_branch]
        self.current = self.default_branch

    def fetch(self) -> None:
        self._record("fetch")

    def reset_hard(self, ref: str | None = None) -> None:
        self._record("reset_hard", ref)

    def clean(self) -> None:
        self._record("clean")

    def current_branch(self) -> str | None:
        return self.current

    def local_branches(self) -> list[str]:
        return list(self.locals)

    def remote_branches(self) -> list[str]:
        return list(self.remote)

    def remote_default_branch(self) -> str:
        return self.default_branch

    def checkout(self, ref: str) -> None:
        self._record("checkout", ref)
        self.current = ref

    def create_branch(self, name: str, start_point: str) -> None:
        self._record("create_branch", name, start_point)
        self.locals.append(name)
        self.current = name

    def add(self, path: str) -> None:
        self._record("add", path)
        self.staged.append(path)

    def remove(self, path: str) -> None:
        self._record("remove", path)
        self.removed.append(path)

    def deleted_files(self) -> list[str]:
        return list(self.deleted)

    def untracked_files(self) -> list[str]:
        return list(self.untracked)

    def diff_head(self) -> str:
        return self.diff

    def commit(self, message: str, amend: bool = False) -> None:
        self._record("commit", message, amend)
        if not (self.staged or self.removed or amend):
            raise NothingToCommitError(["git", "commit"], 1, "nothing to commit, working tree clean")
        self.commits.append((message, amend))
        self.staged = []
        self.removed = []

    def push(self, refspec: str, force: bool = False, remote: str = "origin") -> None:
        self._record("push", refspec, force)
        self.pushes.append((refspec, force))

    def add_tag(self, name: str, message: str) -> None:
        self._record("add_tag", name, message)
        self.tags.append(name)

    def remote_url(self, remote: str = "origin") -> str:
        return f"file:///remotes/{self.directory.name}"


@pytest.fixture
def fake_clients():
    """Factory handing out one FakeRepositoryClient per module, kept for inspection."""
    clients: dict[str, FakeRepositoryClient] = {}

    def factory(module: ManagedModule) -> FakeRepositoryClient:
        if module.given_name not in clients:
            clients[module.given_name] = FakeRepositoryClient(module.working_directory)
        return clients[module.given_name]

    factory.clients = clients
    return factory


@pytest.fixture
def git_failure() -> GitError:
    return GitError(["git", "checkout", "master"], 1, "error: Your local changes would be overwritten by checkout")


@pytest.fixture
def configs_dir(tmp_path: Path) -> Path:
    """A configs directory with two templates, defaults and a two-module registry."""
    configs = tmp_path / "configs"
    moduleroot = configs / "moduleroot"
    (moduleroot / "spec").mkdir(parents=True)
    (moduleroot / "README.md.j2").write_text(
        "# {{ metadata.module_name }}\n\nManaged by {{ configs.owner }}\n", encoding="utf-8"
    )
    (moduleroot / "spec" / "helper.rb.j2").write_text("require '{{ configs.helper }}'\n", encoding="utf-8")
    (moduleroot / "spec" / "helper.rb.j2").chmod(0o640)
    (configs / "config_defaults.yml").write_text(
        ":global:\n  owner: platform\nspec/helper.rb:\n  helper: spec_helper\n",
        encoding="utf-8",
    )
    (configs / "managed_modules.yml").write_text("---\n- alpha\n- beta\n", encoding="utf-8")
    return configs
