"""Command-line entry point: run, check and list templates for orchestrated jobs."""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path
from typing import Optional

from loguru import logger
from rich.console import Console
from rich.table import Table

from .config import JobFile, OrchestratorConfig, load_config, load_job
from .constants import DEFAULT_SEPARATOR, Status, TaskTag
from .definitions import normalize_job
from .logging_utils import configure_logging, summarize_task
from .render import GridBuffer, LiveRenderer, Renderer
from .strategies import OrchestratorStrategy
from .task import Task
from .task_list import TaskList
from .templates import SearchParams, TemplateRegistry


def _resolve_project_dir(project_dir: Optional[str]) -> Path:
    return Path(project_dir).expanduser().resolve() if project_dir else Path.cwd().resolve()


def _ctx(args: argparse.Namespace) -> tuple[Path, OrchestratorConfig, TemplateRegistry]:
    project_dir = _resolve_project_dir(args.project_dir)
    config, err = load_config(project_dir)
    configure_logging(args.log_level or config.log_level)
    if err:
        logger.warning("Ignoring invalid config: {}", err)
    templates = TemplateRegistry()
    for template_dir in config.template_dirs:
        templates.load_from_yaml(template_dir)
    return project_dir, config, templates


async def run_job(
    job: JobFile,
    *,
    cwd: Path,
    templates: TemplateRegistry,
    renderer: Optional[Renderer] = None,
    separator: Optional[str] = None,
) -> Task:
    """Run *job* as a meta-task and return it once it has finished."""
    task_list = TaskList()
    strategy = OrchestratorStrategy(
        job.tasks,
        templates=templates,
        task_list=task_list,
        renderer=renderer,
        separator=separator or DEFAULT_SEPARATOR,
    )
    meta = Task(job.name, cwd=job.cwd or str(cwd), strategy=strategy, task_list=task_list)
    meta.start()
    try:
        await meta.wait()
        await strategy.wait_idle()
        for subtask in task_list.list_tasks(include_in_bundle=False):
            logger.info("{}", summarize_task(subtask))
    finally:
        meta.dispose()
    return meta


def _run(args: argparse.Namespace) -> int:
    project_dir, config, templates = _ctx(args)
    try:
        job = load_job(Path(args.job_file))
        normalize_job(job.tasks)
    except ValueError as exc:
        sys.stderr.write(f"{exc}\n")
        return 1

    console = Console()
    renderer: Renderer
    if args.no_live:
        renderer = GridBuffer()
    else:
        renderer = LiveRenderer(console, refresh_per_second=config.refresh_per_second)
    try:
        meta = asyncio.run(
            run_job(job, cwd=project_dir, templates=templates, renderer=renderer, separator=config.separator)
        )
    except KeyboardInterrupt:
        sys.stderr.write("Interrupted\n")
        return 130

    if args.no_live and isinstance(renderer, GridBuffer) and renderer.grid is not None:
        console.print(renderer.grid.to_text())
    console.print(f"[bold]{meta.name}[/bold]: {meta.status.value}")
    return 0 if meta.status == Status.SUCCESS else 1


def _check(args: argparse.Namespace) -> int:
    _ctx(args)
    try:
        job = load_job(Path(args.job_file))
        sections = normalize_job(job.tasks)
    except ValueError as exc:
        sys.stderr.write(f"{exc}\n")
        return 1

    table = Table(title=job.name)
    table.add_column("Section", justify="right")
    table.add_column("Template")
    table.add_column("Params")
    table.add_column("Overrides")
    for idx, section in enumerate(sections, start=1):
        for spec in section:
            overrides = []
            if spec.cwd:
                overrides.append(f"cwd={spec.cwd}")
            if spec.env:
                overrides.append("env=" + ",".join(sorted(spec.env)))
            params = ", ".join(f"{k}={v!r}" for k, v in spec.params.items())
            table.add_row(str(idx), spec.name, params, " ".join(overrides))
    Console().print(table)
    return 0


def _templates(args: argparse.Namespace) -> int:
    project_dir, _, templates = _ctx(args)
    tags = tuple(TaskTag(t.upper()) for t in args.tag or [])
    search = SearchParams(dir=str(project_dir), tags=tags)

    table = Table(title="Templates")
    table.add_column("Name")
    table.add_column("Tags")
    table.add_column("Params")
    table.add_column("Description")
    for tmpl in sorted(templates.list_templates(search), key=lambda t: t.name):
        params = ", ".join(
            name if schema.optional or schema.default is not None else f"{name}*"
            for name, schema in tmpl.params.items()
        )
        table.add_row(tmpl.name, ",".join(t.value for t in tmpl.tags), params, tmpl.description)
    Console().print(table)
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="task-orchestrator",
        description="Run sections of tasks in order, the tasks of each section in parallel",
    )
    parser.add_argument("--project-dir", default=None, help="Project directory (default: current directory)")
    parser.add_argument("--log-level", default=None, help="Log level (default: from config, INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a job file")
    run.add_argument("job_file")
    run.add_argument("--no-live", action="store_true", help="Print the final grid instead of a live view")
    run.set_defaults(func=_run)

    check = sub.add_parser("check", help="Validate a job file and show its sections")
    check.add_argument("job_file")
    check.set_defaults(func=_check)

    tmpl = sub.add_parser("templates", help="List available templates")
    tmpl.add_argument("--tag", action="append", choices=[t.value for t in TaskTag], type=str.upper)
    tmpl.set_defaults(func=_templates)
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))

