from __future__ import annotations

import logging
import re
import subprocess
from pathlib import Path

from .config import RunOptions, config_path
from .errors import DomainError
from .git import GitClient, NothingToCommitError, RepositoryClient
from .metadata import CHANGELOG_FILE, METADATA_FILE, bump_version, changelog_entry
from .modules import ManagedModule

logger = logging.getLogger(__name__)


def _pattern_regex(pattern: str) -> re.Pattern[str]:
    """Translate a .gitignore pattern; ``*`` and ``?`` never cross a ``/``."""
    directory_only = pattern.endswith("/")
    pattern = pattern.rstrip("/")
    anchored = "/" in pattern
    pattern = pattern.lstrip("/")

    body = []
    index = 0
    while index < len(pattern):
        if pattern.startswith("**/", index):
            body.append("(?:.*/)?")
            index += 3
            continue
        if pattern.startswith("**", index):
            body.append(".*")
            index += 2
            continue
        char = pattern[index]
        if char == "*":
            body.append("[^/]*")
        elif char == "?":
            body.append("[^/]")
        elif char == "[" and "]" in pattern[index + 2:]:
            end = pattern.index("]", index + 2)
            members = pattern[index + 1:end]
            if members.startswith("!"):
                members = "^" + members[1:]
            body.append(f"[{members}]")
            index = end
        else:
            body.append(re.escape(char))
        index += 1

    prefix = "" if anchored else "(?:.*/)?"
    # A match on a directory ignores everything below it.
    suffix = "/.*" if directory_only else "(?:/.*)?"
    return re.compile(prefix + "".join(body) + suffix)


def _ignore_patterns(gitignore: Path) -> list[re.Pattern[str]]:
    if not gitignore.is_file():
        return []
    patterns = []
    for line in gitignore.read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#") or line.startswith("!"):
            continue
        patterns.append(_pattern_regex(line))
    return patterns


def _is_ignored(path: str, patterns: list[re.Pattern[str]]) -> bool:
    return any(pattern.fullmatch(path) for pattern in patterns)


class Repository:
    """Working copy of one managed module.

    The workspace moves from absent, to cloned, to synced on the requested
    branch; rendering then leaves it clean or dirty, and ``submit_changes``
    turns a dirty workspace into a pushed commit.
    """

    def __init__(self, module: ManagedModule, client: RepositoryClient | None = None) -> None:
        self.module = module
        self.client = client or GitClient(module.working_directory)

    @property
    def directory(self) -> Path:
        return self.module.working_directory

    def is_cloned(self) -> bool:
        return self.client.is_cloned()

    def clone(self) -> None:
        logger.info("Cloning from '%s'", self.module.remote_url)
        self.client.clone(self.module.remote_url)

    def switch(self, branch: str | None = None) -> str:
        target = branch or self.client.remote_default_branch()
        if self.client.current_branch() == target:
            return target

        if target in self.client.local_branches():
            logger.info("Switching to branch %s", target)
            self.client.checkout(target)
        elif target in self.client.remote_branches():
            logger.info("Creating local branch %s from origin/%s", target, target)
            self.client.create_branch(target, f"origin/{target}")
        else:
            default = self.client.remote_default_branch()
            logger.info("Creating new branch %s from origin/%s", target, default)
            self.client.create_branch(target, f"origin/{default}")
        return target

    def prepare_workspace(self, branch: str | None, operate_offline: bool = False) -> str:
        if not self.is_cloned():
            if operate_offline:
                raise DomainError(f"Unable to clone '{self.module.given_name}' in offline mode")
            self.clone()
            return self.switch(branch)

        logger.info("Overriding any local changes to repository in '%s'", self.directory)
        if not operate_offline:
            self.client.fetch()
        self.client.reset_hard()
        target = self.switch(branch)
        if not operate_offline and target in self.client.remote_branches():
            self.client.reset_hard(f"origin/{target}")
        return target

    def reset_workspace(
        self,
        branch: str,
        source_branch: str | None = None,
        operate_offline: bool = False,
    ) -> None:
        target = self.prepare_workspace(branch, operate_offline=operate_offline)
        if source_branch is None:
            if target in self.client.remote_branches():
                source_branch = f"origin/{target}"
            else:
                source_branch = f"origin/{self.client.remote_default_branch()}"

        logger.info("Hard-resetting to '%s'", source_branch)
        self.client.reset_hard(source_branch)
        logger.info("Cleaning worktree")
        self.client.clean()

    def untracked_unignored_files(self) -> list[str]:
        # git may report ignored files as untracked, so .gitignore is applied here as well.
        patterns = _ignore_patterns(self.directory / ".gitignore")
        return [path for path in self.client.untracked_files() if not _is_ignored(path, patterns)]

    def show_changes(self) -> bool:
        diff = self.client.diff_head()
        added = self.untracked_unignored_files()

        logger.info("Files changed:\n%s", diff.rstrip() or "(none)")
        logger.info("Files added:\n%s", "\n".join(added) or "(none)")
        return bool(diff.strip() or added)

    def _refspec(self, remote_branch: str | None) -> str:
        branch = self.client.current_branch()
        if branch is None:
            raise DomainError(f"'{self.module.given_name}' is not on a branch, unable to push")
        return f"{branch}:{remote_branch}" if remote_branch else branch

    def _run_pre_commit(self, script: Path) -> None:
        logger.info("Running pre-commit script '%s'", script)
        try:
            subprocess.run([str(script), str(self.directory.resolve())], check=True)
        except (OSError, subprocess.CalledProcessError) as error:
            raise DomainError(f"Pre-commit script '{script}' failed: {error}") from error

    def submit_changes(self, files: list[str], options: RunOptions) -> bool:
        """Stage, commit and push ``files``; return False when nothing was committed."""
        deleted = set(self.client.deleted_files())
        for filename in files:
            if self.module.path(filename).exists():
                self.client.add(filename)
            elif filename in deleted:
                self.client.remove(filename)

        if options.pre_commit_script:
            self._run_pre_commit(config_path(options.pre_commit_script, options.configs))

        try:
            self.client.commit(options.message or "", amend=options.amend)
        except NothingToCommitError:
            logger.info("There were no changes in '%s'. Not committing.", self.module.given_name)
            return False

        self.client.push(self._refspec(options.remote_branch), force=options.force)
        return True

    def update_changelog(self, version: str, message: str) -> bool:
        changelog = self.directory / CHANGELOG_FILE
        if not changelog.is_file():
            logger.info("No %s file found, not updating.", CHANGELOG_FILE)
            return False

        logger.info("Updating %s for version %s", changelog, version)
        changes = changelog.read_text(encoding="utf-8")
        changelog.write_text(changelog_entry(version, message) + changes, encoding="utf-8")
        self.client.add(CHANGELOG_FILE)
        return True

    def bump(self, message: str, changelog: bool = False, remote_branch: str | None = None) -> str:
        version = bump_version(self.directory / METADATA_FILE)
        logger.info("Bumped to version %s", version)
        self.client.add(METADATA_FILE)
        if changelog:
            self.update_changelog(version, message)
        self.client.commit(f"Release version {version}")
        self.client.push(self._refspec(remote_branch))
        return version

    def tag(self, version: str, tag_pattern: str = "%s") -> str:
        try:
            name = tag_pattern % version
        except (TypeError, ValueError) as error:
            raise DomainError(f"Invalid tag pattern '{tag_pattern}': {error}") from error
        logger.info("Tagging with %s", name)
        self.client.add_tag(name, name)
        self.client.push(name)
        return name

    def push(self, branch: str, remote_branch: str | None = None) -> None:
        if not self.is_cloned():
            raise DomainError("Repository must be locally available before trying to push")

        remote_branch = remote_branch or branch
        logger.info("Push branch '%s' to '%s' (origin/%s)", branch, self.client.remote_url(), remote_branch)
        self.client.push(f"{branch}:{remote_branch}", force=True)
