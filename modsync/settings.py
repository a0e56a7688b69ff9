from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Any, Iterable, Mapping

from .config import GLOBAL_DEFAULTS_KEY


def _section(document: Mapping[str, Any], key: str) -> dict[str, Any]:
    value = document.get(key)
    return dict(value) if isinstance(value, Mapping) else {}


@dataclass(frozen=True)
class Settings:
    """Layered configuration for one module.

    ``build_file_configs`` merges, from least to most specific: the global
    defaults, the global per-file section, the module defaults and the module
    per-file section. The merge is shallow: a key set by a later layer replaces
    the whole value from an earlier one.
    """

    global_defaults: Mapping[str, Any]
    defaults: Mapping[str, Any]
    module_defaults: Mapping[str, Any]
    module_configs: Mapping[str, Any]
    additional_settings: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_documents(
        cls,
        defaults: Mapping[str, Any],
        module_configs: Mapping[str, Any],
        **additional_settings: Any,
    ) -> "Settings":
        return cls(
            global_defaults=_section(defaults, GLOBAL_DEFAULTS_KEY),
            defaults=defaults,
            module_defaults=_section(module_configs, GLOBAL_DEFAULTS_KEY),
            module_configs=module_configs,
            additional_settings=additional_settings,
        )

    def build_file_configs(self, filename: str) -> dict[str, Any]:
        configs: dict[str, Any] = {}
        for layer in (
            self.global_defaults,
            _section(self.defaults, filename),
            self.module_defaults,
            _section(self.module_configs, filename),
        ):
            configs.update(layer)
        return configs

    def is_managed(self, filename: str) -> bool:
        path = PurePosixPath(filename)
        for candidate in (path, *path.parents):
            if str(candidate) == ".":
                continue
            if self.build_file_configs(str(candidate)).get("unmanaged"):
                return False
        return True

    def candidates(self, template_files: Iterable[str]) -> list[str]:
        names = set(template_files)
        names.update(str(key) for key in self.defaults)
        names.update(str(key) for key in self.module_configs)
        names.discard(GLOBAL_DEFAULTS_KEY)
        return sorted(names)

    def managed_files(self, template_files: Iterable[str]) -> list[str]:
        templates = set(template_files)
        managed = []
        for filename in self.candidates(templates):
            if not self.is_managed(filename):
                continue
            if filename in templates or self.build_file_configs(filename).get("delete"):
                managed.append(filename)
        return managed

    def unmanaged_files(self, template_files: Iterable[str]) -> list[str]:
        templates = set(template_files)
        managed = set(self.managed_files(templates))
        return [filename for filename in self.candidates(templates) if filename not in managed]
