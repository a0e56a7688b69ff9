from pathlib import Path

import pytest

from modsync.config import RunOptions, build_run_options, config_path, load_cli_defaults, load_config
from modsync.errors import ConfigurationError


def test_load_config_missing_file_returns_empty_mapping(tmp_path: Path):
    assert load_config(tmp_path / "missing.yml") == {}


def test_load_config_empty_document_returns_empty_mapping(tmp_path: Path):
    path = tmp_path / "empty.yml"
    path.write_text("---\n", encoding="utf-8")

    assert load_config(path) == {}


def test_load_config_keeps_sequences(tmp_path: Path):
    path = tmp_path / "modules.yml"
    path.write_text("- alpha\n- beta\n", encoding="utf-8")

    assert load_config(path) == ["alpha", "beta"]


def test_load_config_invalid_yaml_is_configuration_error(tmp_path: Path):
    path = tmp_path / "broken.yml"
    path.write_text("key: [unclosed\n", encoding="utf-8")

    with pytest.raises(ConfigurationError, match="Invalid YAML"):
        load_config(path)


def test_config_path_joins_relative_and_keeps_absolute(tmp_path: Path):
    assert config_path("managed_modules.yml", tmp_path) == tmp_path / "managed_modules.yml"
    assert config_path(tmp_path / "other.yml", Path("configs")) == tmp_path / "other.yml"


def test_build_run_options_defaults():
    options = build_run_options()

    assert options == RunOptions()
    assert options.project_root == Path("modules")
    assert options.tag_pattern == "%s"


def test_build_run_options_flags_override_file_defaults():
    options = build_run_options(
        {"branch": "modulesync", "namespace": "voxpupuli", "noop": True},
        branch="release",
        noop=None,
        configs="templates",
    )

    assert options.branch == "release"
    assert options.namespace == "voxpupuli"
    assert options.noop is True
    assert options.configs == Path("templates")


def test_build_run_options_rejects_unknown_keys():
    with pytest.raises(ConfigurationError, match="Unknown option: colour"):
        build_run_options({"colour": "blue"})


def test_build_run_options_normalizes_labels():
    assert build_run_options(pr_labels="sync, automated,").pr_labels == ("sync", "automated")
    assert build_run_options({"pr_labels": ["sync"]}).pr_labels == ("sync",)


def test_load_cli_defaults_accepts_dashed_keys(tmp_path: Path):
    path = tmp_path / "modulesync.yml"
    path.write_text("namespace: voxpupuli\npre-commit-script: lint.sh\n", encoding="utf-8")

    assert load_cli_defaults(path) == {"namespace": "voxpupuli", "pre_commit_script": "lint.sh"}


def test_load_cli_defaults_missing_file(tmp_path: Path):
    assert load_cli_defaults(tmp_path / "modulesync.yml") == {}
