from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

import yaml

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

MODULE_FILES_DIR = "moduleroot"
CONF_FILE = "config_defaults.yml"
MODULE_CONF_FILE = ".sync.yml"
HOOK_FILE = ".git/hooks/pre-push"
GLOBAL_DEFAULTS_KEY = ":global"
TEMPLATE_SUFFIX = ".j2"
CLI_DEFAULTS_FILE = "modulesync.yml"


@dataclass(frozen=True)
class RunOptions:
    configs: Path = Path(".")
    managed_modules_conf: str = "managed_modules.yml"
    project_root: Path = Path("modules")
    namespace: str = "puppetlabs"
    git_base: str = "git@github.com:"
    tag_pattern: str = "%s"
    filter: str | None = None
    negative_filter: str | None = None
    branch: str | None = None
    remote_branch: str | None = None
    source_branch: str | None = None
    default_branch: bool = False
    message: str | None = None
    noop: bool = False
    offline: bool = False
    skip_broken: bool = False
    fail_on_warnings: bool = False
    fail_fast: bool = False
    bump: bool = False
    tag: bool = False
    changelog: bool = False
    amend: bool = False
    force: bool = False
    pre_commit_script: str | None = None
    pr: bool = False
    pr_title: str | None = None
    pr_labels: tuple[str, ...] = ()
    pr_target_branch: str | None = None
    hook_args: str | None = None


_OPTION_NAMES = {field.name for field in fields(RunOptions)}


def load_config(path: Path) -> Any:
    """Read a YAML document, returning ``{}`` for missing or empty files."""
    if not path.exists():
        logger.info("No config file under %s found, using default values", path)
        return {}

    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as error:
        raise ConfigurationError(f"Invalid YAML in {path}: {error}") from error
    return data or {}


def config_path(file: str | Path, configs: Path) -> Path:
    candidate = Path(file)
    if candidate.is_absolute():
        return candidate
    return configs / candidate


def load_cli_defaults(path: Path = Path(CLI_DEFAULTS_FILE)) -> dict[str, Any]:
    data = load_config(path) if path.exists() else {}
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a mapping of options in {path}")
    return {str(key).replace("-", "_"): value for key, value in data.items()}


def _normalize_labels(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        items = value.split(",")
    else:
        items = [str(item) for item in value]
    return tuple(item.strip() for item in items if item.strip())


def build_run_options(cli_defaults: dict[str, Any] | None = None, **overrides: Any) -> RunOptions:
    merged: dict[str, Any] = {}
    for source in (cli_defaults or {}, overrides):
        for key, value in source.items():
            if value is None:
                continue
            if key not in _OPTION_NAMES:
                raise ConfigurationError(f"Unknown option: {key}")
            merged[key] = value

    for key in ("configs", "project_root"):
        if key in merged:
            merged[key] = Path(merged[key])
    if "pr_labels" in merged:
        merged["pr_labels"] = _normalize_labels(merged["pr_labels"])

    return RunOptions(**merged)
