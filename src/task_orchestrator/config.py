"""Load optional configuration from `.task_orchestrator/config.yaml` and job files."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError

from .constants import CONFIG_FILE, DEFAULT_REFRESH_PER_SECOND, DEFAULT_SEPARATOR, STATE_DIR_NAME


class OrchestratorConfig(BaseModel):
    """Project-level settings."""

    log_level: str = "INFO"
    template_dirs: list[Path] = Field(default_factory=list)
    separator: str = DEFAULT_SEPARATOR
    refresh_per_second: float = Field(default=DEFAULT_REFRESH_PER_SECOND, gt=0)


class JobFile(BaseModel):
    """A job: a name, an optional working directory and the task sections."""

    name: str = "orchestrated job"
    cwd: Optional[str] = None
    tasks: list[Any]


def _read_yaml(path: Path) -> Any:
    with open(path, "r") as handle:
        return yaml.safe_load(handle)


def load_config(project_dir: Path) -> tuple[OrchestratorConfig, str | None]:
    """Load the optional project config file.

    Args:
        project_dir: Project root directory.

    Returns:
        A tuple of `(config, error_message)`. If the file is missing or invalid,
        the default config is returned, with the error message in the invalid case.
    """
    project_dir = project_dir.resolve()
    path = project_dir / STATE_DIR_NAME / CONFIG_FILE
    if not path.exists():
        return OrchestratorConfig(), None
    try:
        data = _read_yaml(path)
    except (OSError, yaml.YAMLError) as exc:
        return OrchestratorConfig(), f"Failed to read {path}: {exc}"
    if data is None:
        data = {}
    if not isinstance(data, dict):
        return OrchestratorConfig(), f"{path}: root must be a mapping"
    try:
        config = OrchestratorConfig.model_validate(data)
    except ValidationError as exc:
        return OrchestratorConfig(), f"{path}: {exc}"
    config.template_dirs = [d if d.is_absolute() else project_dir / d for d in config.template_dirs]
    return config, None


def load_job(path: Path) -> JobFile:
    """Load a job file. A bare list is read as the task list.

    Raises:
        ValueError: if the file cannot be read or does not describe a job.
    """
    try:
        data = _read_yaml(path)
    except (OSError, yaml.YAMLError) as exc:
        raise ValueError(f"Failed to read job file {path}: {exc}") from exc
    if isinstance(data, list):
        data = {"name": path.stem, "tasks": data}
    if not isinstance(data, dict):
        raise ValueError(f"Job file {path} must be a mapping or a list of tasks")
    data.setdefault("name", path.stem)
    try:
        job = JobFile.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid job file {path}: {exc}") from exc
    if job.cwd is not None and not Path(job.cwd).is_absolute():
        job.cwd = str((path.parent / job.cwd).resolve())
    return job
