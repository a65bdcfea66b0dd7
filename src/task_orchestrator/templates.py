"""Task template registry.

A *TaskTemplate* turns a set of parameters into a :class:`TaskDefinition`.  The
registry starts with the built-in templates and accepts custom ones, either
registered in code or loaded from YAML files.  Templates placed in
``<project>/.task_orchestrator/templates/`` are picked up automatically when a
lookup is scoped to that directory.

Lookups and builds are coroutines so that callers never block on template
discovery or on builders that do IO.
"""

from __future__ import annotations

import asyncio
import inspect
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping, Optional, Union

import yaml
from loguru import logger

from .constants import STATE_DIR_NAME, TEMPLATES_DIR, TaskTag
from .definitions import TaskDefinition

BuildResult = Union[TaskDefinition, Mapping[str, Any], None]
Builder = Callable[[dict[str, Any]], Union[BuildResult, Awaitable[BuildResult]]]

_PARAM_TYPES: dict[str, Callable[[Any], bool]] = {
    "string": lambda v: isinstance(v, str),
    "number": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool),
    "bool": lambda v: isinstance(v, bool),
    "list": lambda v: isinstance(v, (list, tuple)),
    "dict": lambda v: isinstance(v, Mapping),
    "opaque": lambda v: True,
}


# ---------------------------------------------------------------------------
# Template model
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ParamDef:
    """Schema for one template parameter."""
    type: str = "string"
    default: Any = None
    optional: bool = False
    description: str = ""

    def __post_init__(self) -> None:
        if self.type not in _PARAM_TYPES:
            known = ", ".join(sorted(_PARAM_TYPES))
            raise ValueError(f"Unknown param type '{self.type}' (known: {known})")

    def accepts(self, value: Any) -> bool:
        return _PARAM_TYPES[self.type](value)


@dataclass(frozen=True)
class SearchParams:
    """Scope of a template lookup."""
    dir: str = field(default_factory=os.getcwd)
    tags: tuple[TaskTag, ...] = ()


@dataclass(frozen=True)
class TemplateCondition:
    """Restricts where a template is available (empty = everywhere)."""
    dirs: tuple[str, ...] = ()

    def matches(self, search: SearchParams) -> bool:
        if not self.dirs:
            return True
        target = Path(search.dir).expanduser().resolve()
        return any(target.is_relative_to(Path(d).expanduser().resolve()) for d in self.dirs)


@dataclass(frozen=True)
class TaskTemplate:
    """Immutable recipe for building a task definition."""
    name: str
    builder: Builder
    params: Mapping[str, ParamDef] = field(default_factory=dict)
    description: str = ""
    tags: tuple[TaskTag, ...] = ()
    condition: TemplateCondition = field(default_factory=TemplateCondition)

    def matches(self, search: SearchParams) -> bool:
        if search.tags and not set(search.tags) & set(self.tags):
            return False
        return self.condition.matches(search)


# Only `{param}` for a resolved param is replaced. Other braces, including shell
# expansions such as `{}` or `${VAR:-x}`, pass through untouched.
_PLACEHOLDER = re.compile(r"(?<!\$)\{(\w+)\}")


def _substitute(value: Any, params: Mapping[str, Any]) -> Any:
    if isinstance(value, str):
        return _PLACEHOLDER.sub(
            lambda m: str(params[m.group(1)]) if m.group(1) in params else m.group(0), value,
        )
    if isinstance(value, list):
        return [_substitute(v, params) for v in value]
    if isinstance(value, dict):
        return {k: _substitute(v, params) for k, v in value.items()}
    return value


# ---------------------------------------------------------------------------
# Built-in templates
# ---------------------------------------------------------------------------

def _build_shell(params: dict[str, Any]) -> TaskDefinition:
    cmd = params["cmd"]
    name = params.get("name") or (" ".join(cmd) if isinstance(cmd, (list, tuple)) else cmd)
    return TaskDefinition(name=name, cmd=list(cmd) if isinstance(cmd, tuple) else cmd)


SHELL_TEMPLATE = TaskTemplate(
    name="shell",
    description="Run a shell command",
    builder=_build_shell,
    params={
        "cmd": ParamDef(type="opaque", description="Command to run"),
        "name": ParamDef(type="string", optional=True, description="Task name"),
    },
)

BUILTIN_TEMPLATES: dict[str, TaskTemplate] = {t.name: t for t in [SHELL_TEMPLATE]}


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------

class TemplateRegistry:
    """Registry of task templates.

    Starts with built-in templates and allows registration of custom templates
    (e.g. loaded from YAML files under ``.task_orchestrator/templates/``).
    """

    def __init__(self, *, include_builtins: bool = True, project_templates: bool = True) -> None:
        self._templates: dict[str, TaskTemplate] = dict(BUILTIN_TEMPLATES) if include_builtins else {}
        self._project_templates = project_templates
        self._dir_cache: dict[Path, dict[str, TaskTemplate]] = {}

    # -- query ---------------------------------------------------------------

    def get(self, name: str) -> TaskTemplate:
        if name not in self._templates:
            available = ", ".join(sorted(self._templates.keys()))
            raise KeyError(f"Unknown template '{name}' (available: {available})")
        return self._templates[name]

    def has(self, name: str) -> bool:
        return name in self._templates

    def list_templates(self, search: Optional[SearchParams] = None) -> list[TaskTemplate]:
        """Return templates visible from *search* (all global ones if omitted)."""
        merged = dict(self._templates)
        if search is not None:
            if self._project_templates:
                merged.update(self._scan_dir(_project_dir_key(search.dir)))
            return [t for t in merged.values() if t.matches(search)]
        return list(merged.values())

    async def get_by_name(self, name: str, search: Optional[SearchParams] = None) -> Optional[TaskTemplate]:
        """Look up a template visible from *search*; None if there is none."""
        search = search or SearchParams()
        local: dict[str, TaskTemplate] = {}
        if self._project_templates:
            key = _project_dir_key(search.dir)
            local = self._dir_cache.get(key)
            if local is None:
                local = await asyncio.to_thread(self._scan_dir, key)
                self._dir_cache[key] = local
        tmpl = local.get(name) or self._templates.get(name)
        if tmpl is None or not tmpl.matches(search):
            return None
        return tmpl

    async def build_task_args(
        self,
        template: TaskTemplate,
        *,
        search: Optional[SearchParams] = None,
        params: Optional[Mapping[str, Any]] = None,
    ) -> Optional[TaskDefinition]:
        """Build a task definition from *template*.

        Returns None (the build is canceled) when params are missing or invalid,
        or when the builder itself produces nothing.
        """
        search = search or SearchParams()
        resolved = _resolve_params(template, dict(params or {}))
        if resolved is None:
            return None
        result = template.builder(resolved)
        if inspect.isawaitable(result):
            result = await result
        if result is None:
            return None
        definition = result if isinstance(result, TaskDefinition) else TaskDefinition.from_dict(result)
        if definition.cwd is None:
            definition.cwd = search.dir
        elif not Path(definition.cwd).is_absolute():
            definition.cwd = str(Path(search.dir) / definition.cwd)
        return definition

    # -- mutation ------------------------------------------------------------

    def register(self, template: TaskTemplate) -> None:
        self._templates[template.name] = template

    def unregister(self, name: str) -> None:
        self._templates.pop(name, None)

    def clear_cache(self) -> None:
        self._dir_cache.clear()

    # -- YAML loading --------------------------------------------------------

    def load_from_yaml(self, path: Path) -> None:
        """Load templates from a YAML file or a directory of YAML files."""
        for template in _load_yaml_templates(path):
            self.register(template)

    def _scan_dir(self, key: Path) -> dict[str, TaskTemplate]:
        path = key / STATE_DIR_NAME / TEMPLATES_DIR
        if not path.is_dir():
            return {}
        return {t.name: t for t in _load_yaml_templates(path)}


def _project_dir_key(directory: str) -> Path:
    return Path(directory).expanduser().resolve()


def _resolve_params(template: TaskTemplate, params: dict[str, Any]) -> Optional[dict[str, Any]]:
    resolved = dict(params)
    for name, schema in template.params.items():
        if name not in resolved or resolved[name] is None:
            if schema.default is not None:
                resolved[name] = schema.default
            elif not schema.optional:
                logger.warning("Template '{}' is missing required param '{}'", template.name, name)
                return None
            continue
        if not schema.accepts(resolved[name]):
            logger.warning(
                "Template '{}' param '{}' expects {}, got {}",
                template.name, name, schema.type, type(resolved[name]).__name__,
            )
            return None
    return resolved


def _load_yaml_templates(path: Path) -> list[TaskTemplate]:
    if path.is_dir():
        templates = []
        for child in sorted(path.iterdir()):
            if child.suffix in (".yaml", ".yml") and child.is_file():
                tmpl = _parse_yaml_template(child)
                if tmpl is not None:
                    templates.append(tmpl)
        return templates
    if path.is_file():
        tmpl = _parse_yaml_template(path)
        return [tmpl] if tmpl is not None else []
    logger.debug("Template YAML path does not exist: {}", path)
    return []


def _parse_yaml_template(path: Path) -> Optional[TaskTemplate]:
    """Parse one YAML file into a ``TaskTemplate``; malformed files are skipped."""
    try:
        with open(path, "r") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        logger.warning("Failed to parse template YAML {}: {}", path, exc)
        return None

    if not isinstance(data, dict):
        logger.warning("Template YAML root is not a mapping: {}", path)
        return None

    name = data.get("name")
    if not name:
        logger.warning("Template YAML missing 'name': {}", path)
        return None

    raw_params = data.get("params") or {}
    if not isinstance(raw_params, dict):
        logger.warning("Template YAML 'params' is not a mapping: {}", path)
        return None
    try:
        params = {
            key: ParamDef(**{k: v for k, v in (spec or {}).items() if k in ParamDef.__dataclass_fields__})
            for key, spec in raw_params.items()
        }
        tags = tuple(TaskTag(str(t).upper()) for t in data.get("tags") or ())
    except (TypeError, ValueError) as exc:
        logger.warning("Invalid template YAML {}: {}", path, exc)
        return None

    # Relative condition dirs are relative to the YAML file
    raw_condition = data.get("condition") or {}
    dirs = (raw_condition.get("dirs") or ()) if isinstance(raw_condition, dict) else ()
    condition = TemplateCondition(
        dirs=tuple(d if Path(d).is_absolute() else str(path.parent / d) for d in dirs)
    )

    body = {
        k: data[k] for k in ("cmd", "cwd", "env", "components", "strategy", "metadata") if k in data
    }
    display = data.get("task_name", name)

    def _build(resolved: dict[str, Any]) -> TaskDefinition:
        built = {k: _substitute(v, resolved) for k, v in body.items()}
        built["name"] = _substitute(display, resolved)
        return TaskDefinition.from_dict(built)

    return TaskTemplate(
        name=name,
        builder=_build,
        params=params,
        description=data.get("description", ""),
        tags=tags,
        condition=condition,
    )
