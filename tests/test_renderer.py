import logging
from pathlib import Path

import pytest

from modsync import renderer
from modsync.errors import ConfigurationError, RenderError


def test_find_template_files_strips_suffix(tmp_path: Path):
    (tmp_path / "spec" / "fixtures").mkdir(parents=True)
    (tmp_path / "README.md.j2").write_text("readme", encoding="utf-8")
    (tmp_path / "spec" / "fixtures" / "data.yml.j2").write_text("data", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("not a template", encoding="utf-8")

    assert renderer.find_template_files(tmp_path) == ["README.md", "spec/fixtures/data.yml"]


def test_find_template_files_missing_directory(tmp_path: Path):
    with pytest.raises(ConfigurationError, match="--configs"):
        renderer.find_template_files(tmp_path / "moduleroot")


def test_build_missing_template_is_render_error(tmp_path: Path):
    with pytest.raises(RenderError, match="Template not found"):
        renderer.build(tmp_path / "missing.j2")


def test_render_exposes_configs_and_metadata(tmp_path: Path):
    template = tmp_path / "README.md.j2"
    template.write_text("{{ metadata.module_name }} uses {{ configs.ruby }}\n", encoding="utf-8")

    text = renderer.render(renderer.build(template), {"ruby": "3.2"}, {"module_name": "alpha"})

    assert text == "alpha uses 3.2\n"


def test_render_failure_keeps_original_cause(tmp_path: Path):
    template = tmp_path / "README.md.j2"
    template.write_text("{{ configs.missing.key }}", encoding="utf-8")

    with pytest.raises(RenderError) as excinfo:
        renderer.render(renderer.build(template), {}, {})

    assert excinfo.value.__cause__ is not None


def test_bare_template_is_used_literally(tmp_path: Path, caplog):
    moduleroot = tmp_path / "moduleroot"
    moduleroot.mkdir()
    (moduleroot / "Rakefile").write_text("task :default => {{ not evaluated }}\n", encoding="utf-8")

    with caplog.at_level(logging.WARNING, logger="modsync"):
        path = renderer.template_path(tmp_path, "Rakefile")

    assert path == moduleroot / "Rakefile"
    assert "without '.j2' suffix" in caplog.text
    assert renderer.render(renderer.build(path), {}, {}) == "task :default => {{ not evaluated }}\n"


def test_suffixed_template_wins_over_bare_name(tmp_path: Path):
    moduleroot = tmp_path / "moduleroot"
    moduleroot.mkdir()
    (moduleroot / "Rakefile").write_text("bare", encoding="utf-8")
    (moduleroot / "Rakefile.j2").write_text("templated", encoding="utf-8")

    assert renderer.template_path(tmp_path, "Rakefile") == moduleroot / "Rakefile.j2"


def test_sync_creates_parents_and_is_idempotent(tmp_path: Path):
    target = tmp_path / "module" / "bin" / "setup"

    for _ in range(2):
        renderer.sync("#!/bin/sh\n", target, 0o755)
        assert target.read_text(encoding="utf-8") == "#!/bin/sh\n"
        assert target.stat().st_mode & 0o777 == 0o755


def test_build_records_template_mode(tmp_path: Path):
    template = tmp_path / "setup.j2"
    template.write_text("#!/bin/sh\n", encoding="utf-8")
    template.chmod(0o750)

    assert renderer.build(template).mode == 0o750


def test_remove_is_idempotent(tmp_path: Path):
    target = tmp_path / ".travis.yml"
    target.write_text("language: ruby\n", encoding="utf-8")

    renderer.remove(target)
    renderer.remove(target)

    assert not target.exists()
