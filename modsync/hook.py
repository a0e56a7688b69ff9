from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from .config import HOOK_FILE

logger = logging.getLogger(__name__)

HOOK_TEMPLATE = """#!/usr/bin/env bash

current_branch=`git symbolic-ref HEAD | sed -e 's,.*/\\(.*\\),\\1,'`
git_dir=`git rev-parse --show-toplevel`
message=`git log -1 --format=%B`
modsync update -m "$message" {arguments}
"""


@dataclass(frozen=True)
class Hook:
    hook_file: Path = Path(HOOK_FILE)
    namespace: str | None = None
    branch: str | None = None
    args: str | None = None

    def arguments(self) -> str:
        parts = []
        if self.namespace:
            parts.append(f"-n {self.namespace}")
        if self.branch:
            parts.append(f"-b {self.branch}")
        if self.args:
            parts.append(self.args)
        return " ".join(parts)

    def content(self) -> str:
        return HOOK_TEMPLATE.format(arguments=self.arguments())

    def activate(self) -> Path:
        self.hook_file.write_text(self.content(), encoding="utf-8")
        self.hook_file.chmod(0o755)
        logger.info("Activated pre-push hook at %s", self.hook_file)
        return self.hook_file

    def deactivate(self) -> bool:
        if not self.hook_file.exists():
            return False
        self.hook_file.unlink()
        logger.info("Removed pre-push hook at %s", self.hook_file)
        return True
