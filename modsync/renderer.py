from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping

from jinja2 import Environment, StrictUndefined, Template, TemplateError

from .config import MODULE_FILES_DIR, TEMPLATE_SUFFIX, config_path
from .errors import ConfigurationError, RenderError

logger = logging.getLogger(__name__)

_ENVIRONMENT = Environment(
    undefined=StrictUndefined,
    autoescape=False,
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
)


@dataclass(frozen=True)
class CompiledTemplate:
    path: Path
    mode: int
    template: Template | None = None
    literal: str | None = None


def find_template_files(template_dir: Path) -> list[str]:
    """List managed file names below ``template_dir``, without the template suffix."""
    if not template_dir.is_dir():
        raise ConfigurationError(
            f"{template_dir} does not exist. Check that you are working in your module configs "
            "directory or that you have passed in the correct directory with --configs."
        )

    return sorted(
        path.relative_to(template_dir).as_posix()[: -len(TEMPLATE_SUFFIX)]
        for path in template_dir.rglob(f"*{TEMPLATE_SUFFIX}")
        if path.is_file()
    )


def template_path(configs: Path, filename: str) -> Path:
    path = config_path(MODULE_FILES_DIR, configs) / filename
    templated = path.with_name(path.name + TEMPLATE_SUFFIX)
    if not templated.exists() and path.is_file():
        logger.warning("Using '%s' as template without '%s' suffix", path, TEMPLATE_SUFFIX)
        return path
    return templated


def build(path: Path) -> CompiledTemplate:
    if not path.is_file():
        raise RenderError(f"Template not found: {path}")

    source = path.read_text(encoding="utf-8")
    mode = path.stat().st_mode & 0o7777
    if not path.name.endswith(TEMPLATE_SUFFIX):
        return CompiledTemplate(path=path, mode=mode, literal=source)

    try:
        template = _ENVIRONMENT.from_string(source)
    except TemplateError as error:
        raise RenderError(f"Unable to parse template {path}: {error}") from error
    return CompiledTemplate(path=path, mode=mode, template=template)


def render(
    compiled: CompiledTemplate,
    configs: Mapping[str, Any] | None = None,
    metadata: Mapping[str, Any] | None = None,
) -> str:
    if compiled.template is None:
        return compiled.literal or ""

    try:
        return compiled.template.render(configs=dict(configs or {}), metadata=dict(metadata or {}))
    except Exception as error:
        raise RenderError(f"Unable to render {compiled.path}: {error}") from error


def sync(text: str, target: Path, mode: int) -> None:
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(text, encoding="utf-8")
    target.chmod(mode & 0o7777)


def remove(target: Path) -> None:
    if target.exists() or target.is_symlink():
        target.unlink()
