"""Tests for project config and job file loading."""

from __future__ import annotations

from pathlib import Path

import pytest

from task_orchestrator.config import OrchestratorConfig, load_config, load_job
from task_orchestrator.constants import DEFAULT_SEPARATOR


def _write_config(project: Path, text: str) -> None:
    path = project / ".task_orchestrator" / "config.yaml"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


class TestLoadConfig:
    def test_missing_config_uses_defaults(self, tmp_path: Path) -> None:
        config, err = load_config(tmp_path)
        assert err is None
        assert config == OrchestratorConfig()
        assert config.separator == DEFAULT_SEPARATOR

    def test_empty_config(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "")
        config, err = load_config(tmp_path)
        assert err is None
        assert config.log_level == "INFO"

    def test_values_and_relative_template_dirs(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "log_level: DEBUG\nseparator: ' | '\ntemplate_dirs: [ci/templates, /abs]\n")
        config, err = load_config(tmp_path)
        assert err is None
        assert config.log_level == "DEBUG"
        assert config.separator == " | "
        assert config.template_dirs == [tmp_path.resolve() / "ci" / "templates", Path("/abs")]

    def test_invalid_values_return_error(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "refresh_per_second: 0\n")
        config, err = load_config(tmp_path)
        assert err is not None and "refresh_per_second" in err
        assert config == OrchestratorConfig()

    def test_non_mapping_returns_error(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "- a\n- b\n")
        _, err = load_config(tmp_path)
        assert "mapping" in err

    def test_unparseable_yaml_returns_error(self, tmp_path: Path) -> None:
        _write_config(tmp_path, "log_level: [oops\n")
        _, err = load_config(tmp_path)
        assert err.startswith("Failed to read")


class TestLoadJob:
    def test_mapping_job(self, tmp_path: Path) -> None:
        path = tmp_path / "job.yaml"
        path.write_text("name: Deploy\ncwd: app\ntasks:\n  - build\n  - [test, lint]\n", encoding="utf-8")
        job = load_job(path)
        assert job.name == "Deploy"
        assert job.cwd == str((tmp_path / "app").resolve())
        assert job.tasks == ["build", ["test", "lint"]]

    def test_bare_list_job_is_named_after_file(self, tmp_path: Path) -> None:
        path = tmp_path / "release.yaml"
        path.write_text("- build\n- deploy\n", encoding="utf-8")
        job = load_job(path)
        assert job.name == "release"
        assert job.cwd is None
        assert job.tasks == ["build", "deploy"]

    def test_missing_tasks(self, tmp_path: Path) -> None:
        path = tmp_path / "job.yaml"
        path.write_text("name: nothing\n", encoding="utf-8")
        with pytest.raises(ValueError, match="Invalid job file"):
            load_job(path)

    def test_scalar_job(self, tmp_path: Path) -> None:
        path = tmp_path / "job.yaml"
        path.write_text("just a string\n", encoding="utf-8")
        with pytest.raises(ValueError, match="mapping or a list"):
            load_job(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError, match="Failed to read"):
            load_job(tmp_path / "absent.yaml")
