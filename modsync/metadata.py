from __future__ import annotations

import json
from datetime import date
from pathlib import Path

from packaging.version import InvalidVersion, Version

from .errors import DomainError

METADATA_FILE = "metadata.json"
CHANGELOG_FILE = "CHANGELOG.md"


def next_patch_version(current: str) -> str:
    try:
        version = Version(current)
    except InvalidVersion as error:
        raise DomainError(f"Invalid version '{current}': {error}") from error

    major, minor, patch = (list(version.release) + [0, 0, 0])[:3]
    return f"{major}.{minor}.{patch + 1}"


def bump_version(metadata_file: Path) -> str:
    """Increment the patch version stored in ``metadata_file`` and return it."""
    if not metadata_file.is_file():
        raise DomainError(f"Missing {metadata_file}, unable to bump version")

    try:
        metadata = json.loads(metadata_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as error:
        raise DomainError(f"Invalid JSON in {metadata_file}: {error}") from error
    if not isinstance(metadata, dict) or not metadata.get("version"):
        raise DomainError(f"No version found in {metadata_file}")

    metadata["version"] = next_patch_version(str(metadata["version"]))
    metadata_file.write_text(json.dumps(metadata, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")
    return metadata["version"]


def changelog_entry(version: str, message: str, day: date | None = None) -> str:
    day = day or date.today()
    return f"## {day.isoformat()} - Release {version}\n\n{message}\n\n"
