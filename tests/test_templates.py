"""Tests for the task template registry."""

from __future__ import annotations

import asyncio
from pathlib import Path

import pytest

from task_orchestrator.constants import TaskTag
from task_orchestrator.definitions import TaskDefinition
from task_orchestrator.templates import (
    ParamDef,
    SearchParams,
    TaskTemplate,
    TemplateCondition,
    TemplateRegistry,
)

PYTEST_YAML = """\
name: pytest
task_name: "pytest {target}"
description: Run the test suite
tags: [test]
cmd: ["pytest", "{target}"]
env:
  PYTEST_ADDOPTS: "{opts}"
params:
  target: {type: string, default: tests}
  opts: {type: string, optional: true}
"""


def _write(path: Path, text: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


class TestRegistry:
    def setup_method(self):
        self.registry = TemplateRegistry(project_templates=False)

    def test_builtin_shell_template(self):
        assert self.registry.has("shell")
        assert self.registry.get("shell").name == "shell"

    def test_unknown_template_lists_available(self):
        with pytest.raises(KeyError, match="shell"):
            self.registry.get("nope")

    def test_register_and_unregister(self):
        tmpl = TaskTemplate(name="noop", builder=lambda params: TaskDefinition(name="noop"))
        self.registry.register(tmpl)
        assert self.registry.get("noop") is tmpl
        self.registry.unregister("noop")
        assert not self.registry.has("noop")

    def test_without_builtins(self):
        assert TemplateRegistry(include_builtins=False).list_templates() == []

    def test_get_by_name_missing_returns_none(self):
        assert asyncio.run(self.registry.get_by_name("nope")) is None

    def test_build_shell_task(self, tmp_path):
        async def _run() -> TaskDefinition:
            search = SearchParams(dir=str(tmp_path))
            tmpl = await self.registry.get_by_name("shell", search)
            return await self.registry.build_task_args(tmpl, search=search, params={"cmd": ["make", "all"]})

        defn = asyncio.run(_run())
        assert defn.name == "make all"
        assert defn.cmd == ["make", "all"]
        assert defn.cwd == str(tmp_path)
        assert defn.strategy == "shell"

    def test_shell_name_param(self):
        tmpl = self.registry.get("shell")
        defn = asyncio.run(self.registry.build_task_args(tmpl, params={"cmd": "make", "name": "build"}))
        assert defn.name == "build"

    def test_missing_required_param_cancels(self):
        tmpl = self.registry.get("shell")
        assert asyncio.run(self.registry.build_task_args(tmpl, params={})) is None

    def test_wrong_param_type_cancels(self):
        tmpl = TaskTemplate(
            name="typed",
            builder=lambda params: TaskDefinition(name="typed"),
            params={"count": ParamDef(type="number")},
        )
        assert asyncio.run(self.registry.build_task_args(tmpl, params={"count": "three"})) is None
        assert asyncio.run(self.registry.build_task_args(tmpl, params={"count": True})) is None
        assert asyncio.run(self.registry.build_task_args(tmpl, params={"count": 3})) is not None

    def test_unknown_param_type_rejected(self):
        with pytest.raises(ValueError, match="Unknown param type"):
            ParamDef(type="float")

    def test_async_builder_and_mapping_result(self, tmp_path):
        async def _builder(params):
            await asyncio.sleep(0)
            return {"cmd": "make", "cwd": "sub"}

        tmpl = TaskTemplate(name="async", builder=_builder)
        defn = asyncio.run(self.registry.build_task_args(tmpl, search=SearchParams(dir=str(tmp_path))))
        assert defn.name == "make"
        assert defn.cwd == str(tmp_path / "sub")

    def test_builder_returning_none_cancels(self):
        tmpl = TaskTemplate(name="none", builder=lambda params: None)
        assert asyncio.run(self.registry.build_task_args(tmpl)) is None


class TestSearch:
    def setup_method(self):
        self.registry = TemplateRegistry(project_templates=False)

    def test_tag_filter(self):
        self.registry.register(TaskTemplate(
            name="unit", builder=lambda params: None, tags=(TaskTag.TEST,),
        ))
        names = {t.name for t in self.registry.list_templates(SearchParams(tags=(TaskTag.TEST,)))}
        assert names == {"unit"}
        assert asyncio.run(self.registry.get_by_name("shell", SearchParams(tags=(TaskTag.BUILD,)))) is None

    def test_condition_dirs(self, tmp_path):
        project = tmp_path / "project"
        (project / "pkg").mkdir(parents=True)
        condition = TemplateCondition(dirs=(str(project),))
        assert condition.matches(SearchParams(dir=str(project / "pkg")))
        assert not condition.matches(SearchParams(dir=str(tmp_path)))
        assert TemplateCondition().matches(SearchParams(dir=str(tmp_path)))


class TestYamlTemplates:
    def test_load_and_build(self, tmp_path):
        path = _write(tmp_path / "templates" / "pytest.yaml", PYTEST_YAML)
        registry = TemplateRegistry(project_templates=False)
        registry.load_from_yaml(path.parent)
        tmpl = registry.get("pytest")
        assert tmpl.tags == (TaskTag.TEST,)
        assert tmpl.params["target"].default == "tests"

        defn = asyncio.run(registry.build_task_args(tmpl, params={"target": "tests/unit", "opts": "-x"}))
        assert defn.name == "pytest tests/unit"
        assert defn.cmd == ["pytest", "tests/unit"]
        assert defn.env == {"PYTEST_ADDOPTS": "-x"}

    def test_defaults_and_unknown_placeholders(self, tmp_path):
        path = _write(tmp_path / "pytest.yaml", PYTEST_YAML)
        registry = TemplateRegistry(project_templates=False)
        registry.load_from_yaml(path)
        defn = asyncio.run(registry.build_task_args(registry.get("pytest")))
        assert defn.cmd == ["pytest", "tests"]
        assert defn.env == {"PYTEST_ADDOPTS": "{opts}"}

    def test_shell_braces_are_left_alone(self, tmp_path):
        _write(tmp_path / "clean.yaml", "name: clean\ncmd: find . -name '*.tmp' -exec rm {} +\n")
        _write(
            tmp_path / "greet.yaml",
            "name: greet\ncmd: echo ${GREETING:-hi} {target}\nparams:\n  target: {type: string, default: world}\n",
        )
        registry = TemplateRegistry(include_builtins=False, project_templates=False)
        registry.load_from_yaml(tmp_path)

        clean = asyncio.run(registry.build_task_args(registry.get("clean")))
        assert clean.cmd == "find . -name '*.tmp' -exec rm {} +"
        greet = asyncio.run(registry.build_task_args(registry.get("greet"), params={"target": "there"}))
        assert greet.cmd == "echo ${GREETING:-hi} there"

    def test_malformed_files_are_skipped(self, tmp_path):
        templates = tmp_path / "templates"
        _write(templates / "broken.yaml", "name: [unclosed\n")
        _write(templates / "list.yaml", "- not a mapping\n")
        _write(templates / "nameless.yaml", "cmd: make\n")
        _write(templates / "badtype.yaml", "name: bad\nparams:\n  x: {type: float}\n")
        _write(templates / "ok.yml", "name: ok\ncmd: make\n")
        _write(templates / "notes.txt", "name: ignored\n")
        registry = TemplateRegistry(include_builtins=False, project_templates=False)
        registry.load_from_yaml(templates)
        assert [t.name for t in registry.list_templates()] == ["ok"]

    def test_missing_path_loads_nothing(self, tmp_path):
        registry = TemplateRegistry(include_builtins=False, project_templates=False)
        registry.load_from_yaml(tmp_path / "absent")
        assert registry.list_templates() == []

    def test_condition_dirs_relative_to_file(self, tmp_path):
        _write(tmp_path / "templates" / "web.yaml", "name: web\ncmd: npm start\ncondition:\n  dirs: [../web]\n")
        (tmp_path / "web").mkdir()
        registry = TemplateRegistry(include_builtins=False, project_templates=False)
        registry.load_from_yaml(tmp_path / "templates")
        assert [t.name for t in registry.list_templates(SearchParams(dir=str(tmp_path / "web")))] == ["web"]
        assert registry.list_templates(SearchParams(dir=str(tmp_path))) == []


class TestProjectTemplates:
    def test_project_templates_are_discovered(self, tmp_path):
        _write(tmp_path / ".task_orchestrator" / "templates" / "pytest.yaml", PYTEST_YAML)
        registry = TemplateRegistry()
        search = SearchParams(dir=str(tmp_path))

        tmpl = asyncio.run(registry.get_by_name("pytest", search))
        assert tmpl is not None
        assert not registry.has("pytest")
        assert asyncio.run(registry.get_by_name("pytest", SearchParams(dir=str(tmp_path / "..")))) is None
        assert "pytest" in {t.name for t in registry.list_templates(search)}

    def test_lookups_are_cached_per_directory(self, tmp_path):
        path = _write(tmp_path / ".task_orchestrator" / "templates" / "pytest.yaml", PYTEST_YAML)
        registry = TemplateRegistry()
        search = SearchParams(dir=str(tmp_path))
        assert asyncio.run(registry.get_by_name("pytest", search)) is not None
        path.unlink()
        assert asyncio.run(registry.get_by_name("pytest", search)) is not None
        registry.clear_cache()
        assert asyncio.run(registry.get_by_name("pytest", search)) is None

    def test_project_template_shadows_global(self, tmp_path):
        _write(tmp_path / ".task_orchestrator" / "templates" / "shell.yaml", "name: shell\ncmd: echo local\n")
        registry = TemplateRegistry()
        tmpl = asyncio.run(registry.get_by_name("shell", SearchParams(dir=str(tmp_path))))
        assert tmpl is not registry.get("shell")
