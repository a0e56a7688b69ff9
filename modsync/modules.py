from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

from .config import MODULE_CONF_FILE, RunOptions, config_path, load_config
from .errors import ConfigurationError


@dataclass(frozen=True)
class ManagedModule:
    given_name: str
    options: Mapping[str, Any] = field(default_factory=dict)
    default_namespace: str = "puppetlabs"
    project_root: Path = Path("modules")
    git_base: str = "git@github.com:"

    @property
    def repository_namespace(self) -> str:
        if "/" in self.given_name:
            return self.given_name.split("/", 1)[0]
        return str(self.options.get("namespace") or self.default_namespace)

    @property
    def repository_name(self) -> str:
        return self.given_name.split("/", 1)[-1]

    @property
    def repository_path(self) -> str:
        return f"{self.repository_namespace}/{self.repository_name}"

    @property
    def working_directory(self) -> Path:
        return self.project_root / self.repository_name

    @property
    def remote_url(self) -> str:
        remote = self.options.get("remote")
        if remote:
            return str(remote)
        if self.git_base.startswith("file://"):
            return f"{self.git_base}{self.repository_path}"
        return f"{self.git_base}{self.repository_path}.git"

    @property
    def branch(self) -> str | None:
        value = self.options.get("branch")
        return str(value) if value else None

    def path(self, filename: str) -> Path:
        return self.working_directory / filename

    def load_module_configs(self) -> dict[str, Any]:
        data = load_config(self.path(MODULE_CONF_FILE))
        if not isinstance(data, dict):
            raise ConfigurationError(f"Expected a mapping in {self.path(MODULE_CONF_FILE)}")
        return data


def _iter_entries(document: Any, source: Path):
    if isinstance(document, dict):
        for name, options in document.items():
            if options is not None and not isinstance(options, dict):
                raise ConfigurationError(f"Options for '{name}' in {source} must be a mapping")
            yield str(name), options or {}
    elif isinstance(document, list):
        for name in document:
            yield str(name), {}
    else:
        raise ConfigurationError(f"Expected a mapping or a list of modules in {source}")


def _compile(expression: str, option: str) -> re.Pattern[str]:
    try:
        return re.compile(expression)
    except re.error as error:
        raise ConfigurationError(f"Invalid --{option} expression '{expression}': {error}") from error


def load_managed_modules(options: RunOptions) -> list[ManagedModule]:
    source = config_path(options.managed_modules_conf, options.configs)
    document = load_config(source)
    if not document:
        raise ConfigurationError(
            f"No modules found in {source}. Check that you specified the right "
            "--configs directory and --managed-modules-conf file."
        )

    entries = list(_iter_entries(document, source))
    if options.filter:
        pattern = _compile(options.filter, "filter")
        entries = [entry for entry in entries if pattern.search(entry[0])]
    if options.negative_filter:
        pattern = _compile(options.negative_filter, "negative-filter")
        entries = [entry for entry in entries if not pattern.search(entry[0])]

    return [
        ManagedModule(
            given_name=name,
            options=module_options,
            default_namespace=options.namespace,
            project_root=options.project_root,
            git_base=options.git_base,
        )
        for name, module_options in entries
    ]
