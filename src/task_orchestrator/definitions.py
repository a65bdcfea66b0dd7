"""Declarative job definitions.

A *job* is an ordered list of entries.  Each entry is either a single task spec
or a list of task specs; a list is run in parallel as one *section*.  Sections
run strictly one after another::

    [
        "make clean",                                   # section 1
        ["npm build", {"template": "shell", "cmd": "lessc a.less a.css"}],
        "npm serve",                                    # section 3
    ]

A task spec names a template and optionally carries parameters.  The ``cwd`` and
``env`` keys are not passed to the template; they are lifted out as overrides
applied on top of whatever the template builds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence, Union

_OVERRIDE_KEYS = ("cwd", "env")


# ---------------------------------------------------------------------------
# Task spec
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TaskSpec:
    """One declarative task: template name, params and overrides."""

    name: str
    params: Mapping[str, Any] = field(default_factory=dict)
    cwd: Optional[str] = None
    env: Optional[Mapping[str, str]] = None

    def __post_init__(self) -> None:
        if not isinstance(self.name, str) or not self.name:
            raise ValueError(f"Task spec needs a non-empty template name, got {self.name!r}")
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))
        if self.env is not None:
            object.__setattr__(self, "env", MappingProxyType(dict(self.env)))

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"template": self.name, **dict(self.params)}
        if self.cwd is not None:
            data["cwd"] = self.cwd
        if self.env is not None:
            data["env"] = dict(self.env)
        return data


Section = tuple[TaskSpec, ...]
SpecLike = Union[str, Mapping[str, Any], tuple, TaskSpec]


def split_config(entry: Any) -> tuple[str, dict[str, Any]]:
    """Split a raw spec into ``(template_name, params)``."""
    if isinstance(entry, str):
        return entry, {}
    if isinstance(entry, tuple):
        if len(entry) == 1:
            return entry[0], {}
        if len(entry) == 2 and isinstance(entry[1], Mapping):
            return entry[0], dict(entry[1])
        raise ValueError(f"Task spec tuple must be (name,) or (name, params), got {entry!r}")
    if isinstance(entry, Mapping):
        params = dict(entry)
        name = params.pop("template", None)
        if name is None:
            raise ValueError(f"Task spec mapping is missing the 'template' key: {entry!r}")
        return name, params
    raise ValueError(f"Unsupported task spec: {entry!r}")


def parse_task_spec(entry: SpecLike) -> TaskSpec:
    if isinstance(entry, TaskSpec):
        return entry
    name, params = split_config(entry)
    cwd = params.pop("cwd", None)
    env = params.pop("env", None)
    if env is not None and not isinstance(env, Mapping):
        raise ValueError(f"'env' for task '{name}' must be a mapping, got {type(env).__name__}")
    if cwd is not None:
        cwd = str(cwd)
    return TaskSpec(name=name, params=params, cwd=cwd, env=env)


def normalize_job(entries: Sequence[Any]) -> tuple[Section, ...]:
    """Normalize a job definition into a tuple of sections.

    Raises:
        ValueError: if the job is not a list or an entry is malformed.
    """
    if not isinstance(entries, (list, tuple)) or isinstance(entries, str):
        raise ValueError(f"Job tasks must be a list, got {type(entries).__name__}")
    sections: list[Section] = []
    for idx, entry in enumerate(entries):
        if isinstance(entry, list):
            specs = []
            for sub in entry:
                if isinstance(sub, list):
                    raise ValueError(f"Section {idx + 1}: parallel sections cannot be nested")
                specs.append(parse_task_spec(sub))
            sections.append(tuple(specs))
        else:
            sections.append((parse_task_spec(entry),))
    return tuple(sections)


# ---------------------------------------------------------------------------
# Built task definition
# ---------------------------------------------------------------------------

@dataclass
class TaskDefinition:
    """Concrete arguments for constructing a task, as produced by a template."""

    name: str
    cmd: Optional[Union[str, list[str]]] = None
    cwd: Optional[str] = None
    env: Optional[dict[str, str]] = None
    components: list[Any] = field(default_factory=list)
    strategy: Any = "shell"
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TaskDefinition":
        known = {k: data[k] for k in cls.__dataclass_fields__ if k in data}
        if "name" not in known:
            cmd = known.get("cmd")
            known["name"] = " ".join(cmd) if isinstance(cmd, list) else str(cmd or "task")
        if known.get("env") is not None:
            known["env"] = dict(known["env"])
        known["components"] = list(known.get("components") or [])
        known["metadata"] = dict(known.get("metadata") or {})
        return cls(**known)

    def apply_overrides(self, spec: TaskSpec) -> "TaskDefinition":
        """Apply the spec's ``cwd``/``env`` overrides in place.

        ``cwd`` replaces the built value.  ``env`` is merged over the built
        environment, with the override winning on conflicting keys.
        """
        if spec.cwd:
            self.cwd = spec.cwd
        if self.env is not None or spec.env is not None:
            merged = dict(self.env or {})
            merged.update(spec.env or {})
            self.env = merged
        return self
