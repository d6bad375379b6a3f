from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

import typer
import yaml

from .config import Settings, apply_overrides, load_settings
from .domain import Importance, Project, Status, Task
from .errors import TrackerError
from .pit_logging import setup_logging
from .progress import progress_bar, render_tree
from .schema import SchemaError, validate_workspace
from .service import ProgressService, ProjectService, TaskService
from .store import YamlStore

app = typer.Typer(help="Project, issue and task progress tracker")


@dataclass
class Services:
    store: YamlStore
    progress: ProgressService
    tasks: TaskService
    projects: ProjectService


_state: dict = {}


@app.callback()
def main(
    data_file: Optional[Path] = typer.Option(None, "--data-file", help="Workspace YAML file."),
    log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level, e.g. INFO or DEBUG."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Answer yes to completion prompts."),
):
    """Track progress of projects, issues and tasks."""
    with reporting():
        settings = apply_overrides(load_settings(), data_file=data_file, log_level=log_level)
    setup_logging(settings.log_level, settings.log_file)
    _state["settings"] = settings
    _state["yes"] = yes


def _settings() -> Settings:
    return _state.get("settings") or load_settings()


def _confirm_completion(task: Task) -> bool:
    if _state.get("yes"):
        return True
    return typer.confirm(f"All checklist items of '{task.title}' are done. Mark it completed?", default=True)


def open_services(require_file: bool = True) -> Services:
    settings = _settings()
    if require_file and not settings.data_file.exists():
        raise typer.BadParameter(f"Workspace not initialised: {settings.data_file} not found")
    store = YamlStore(settings.data_file)
    progress = ProgressService(store, settings.query_timeout, settings.preview_size)
    return Services(
        store=store,
        progress=progress,
        tasks=TaskService(store, progress, confirm=_confirm_completion),
        projects=ProjectService(store, progress),
    )


@contextmanager
def reporting() -> Iterator[None]:
    """Turn tracker and validation errors into a message and exit code 1."""
    try:
        yield
    except (TrackerError, SchemaError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)


def split_path(path: str) -> List[str]:
    return [p for p in path.split('/') if p]


def find_project(services: Services, name: str) -> Project:
    for project in services.store.list_projects():
        if project.name == name:
            return project
    raise typer.BadParameter(f"Project not found: {name}")


def resolve(services: Services, path: str, depth: int) -> Tuple[str, ...]:
    """Return the ids along a ``Project/Issue/Task`` name path."""
    parts = split_path(path)
    if len(parts) != depth:
        raise typer.BadParameter(f"Expected {depth} path segments, got '{path}'")
    project = find_project(services, parts[0])
    ids = [project.id]
    if depth > 1:
        issue = next((i for i in project.issues if i.name == parts[1]), None)
        if issue is None:
            raise typer.BadParameter(f"Issue path not found: {'/'.join(parts[:2])}")
        ids.append(issue.id)
        if depth > 2:
            task = next((t for t in issue.tasks if t.title == parts[2]), None)
            if task is None:
                raise typer.BadParameter(f"Task path not found: {'/'.join(parts)}")
            ids.append(task.id)
    return tuple(ids)


def _report_transition(path: str, transition) -> None:
    if transition.pending:
        typer.echo(f"{path}: completion not confirmed, nothing saved")
    else:
        typer.echo(f"{path}: {transition.status.value}")


@app.command()
def init(project_name: str = typer.Argument(None, help="Name of the first project. Defaults to the current directory name.")):
    """Create a workspace file with one project."""
    settings = _settings()
    if settings.data_file.exists():
        raise typer.BadParameter(f"Workspace already initialised at {settings.data_file.resolve()}")
    if project_name is None:
        project_name = Path('.').resolve().name
    services = open_services(require_file=False)
    with reporting():
        services.projects.create_project(project_name)
    typer.echo(f"Initialised project '{project_name}' in {settings.data_file}")


@app.command("add-project")
def add_project(name: str, end_date: str = typer.Option(None, help="ISO end date.")):
    """Add another project to the workspace."""
    services = open_services()
    with reporting():
        services.projects.create_project(name, end_date=end_date)
    typer.echo(f"Added project '{name}'")


@app.command("add-issue")
def add_issue(path: str, end_date: str = typer.Option(None, help="ISO end date.")):
    """Add an issue, addressed as PROJECT/ISSUE."""
    services = open_services()
    parts = split_path(path)
    (project_id,) = resolve(services, '/'.join(parts[:1]), 1)
    if len(parts) != 2:
        raise typer.BadParameter(f"Expected PROJECT/ISSUE, got '{path}'")
    with reporting():
        services.projects.create_issue(project_id, parts[1], end_date=end_date)
    typer.echo(f"Added issue '{path}'")


@app.command("add-task")
def add_task(
    path: str,
    status: Status = typer.Option(Status.INCOMPLETE, help="Initial status."),
    importance: Importance = typer.Option(None, help="Critical, High, Medium or Low."),
    end_date: str = typer.Option(None, help="ISO end date."),
    item: List[str] = typer.Option(None, "--item", help="Checklist item text; repeatable."),
):
    """Add a task, addressed as PROJECT/ISSUE/TASK."""
    services = open_services()
    parts = split_path(path)
    if len(parts) != 3:
        raise typer.BadParameter(f"Expected PROJECT/ISSUE/TASK, got '{path}'")
    project_id, issue_id = resolve(services, '/'.join(parts[:2]), 2)
    checklist = [{"text": text} for text in item or []]
    with reporting():
        task = services.tasks.create_task(
            project_id, issue_id, parts[2],
            status=status, importance=importance, checklist=checklist, end_date=end_date,
        )
    typer.echo(f"Added task '{path}' ({task.progress:.1f}%)")


@app.command("add-item")
def add_item(path: str, text: str):
    """Append a checklist item to a task."""
    services = open_services()
    ids = resolve(services, path, 3)
    with reporting():
        transition = services.tasks.add_item(*ids, text)
    _report_transition(path, transition)


def _set_item(path: str, number: int, completed: bool) -> None:
    services = open_services()
    ids = resolve(services, path, 3)
    task = services.tasks.get_task(*ids)
    if not 1 <= number <= len(task.checklist):
        raise typer.BadParameter(f"Task '{path}' has no checklist item {number}")
    with reporting():
        transition = services.tasks.set_item(*ids, task.checklist[number - 1].id, completed)
    _report_transition(path, transition)


@app.command()
def check(path: str, number: int = typer.Argument(..., help="1-based checklist item number.")):
    """Mark a checklist item done."""
    _set_item(path, number, True)


@app.command()
def uncheck(path: str, number: int = typer.Argument(..., help="1-based checklist item number.")):
    """Mark a checklist item not done."""
    _set_item(path, number, False)


@app.command("set-status")
def set_status(path: str, status: Status):
    """Explicitly set a task's status."""
    services = open_services()
    ids = resolve(services, path, 3)
    with reporting():
        task = services.tasks.set_status(*ids, status)
    typer.echo(f"{path}: {task.status.value} ({task.progress:.1f}%)")


@app.command()
def complete(path: str):
    """Mark a task completed at 100%."""
    services = open_services()
    ids = resolve(services, path, 3)
    with reporting():
        services.tasks.mark_completed(*ids)
    typer.echo(f"{path}: completed")


@app.command()
def importance(path: str, level: Importance):
    """Change a task's importance."""
    services = open_services()
    ids = resolve(services, path, 3)
    with reporting():
        services.tasks.set_importance(*ids, level)
    typer.echo(f"{path}: importance {level.value}")


@app.command()
def archive(path: str, restore: bool = typer.Option(False, "--restore", help="Unarchive instead.")):
    """Archive (or restore) an issue or a task."""
    services = open_services()
    depth = len(split_path(path))
    if depth not in (2, 3):
        raise typer.BadParameter(f"Expected PROJECT/ISSUE or PROJECT/ISSUE/TASK, got '{path}'")
    ids = resolve(services, path, depth)
    with reporting():
        if depth == 3:
            services.tasks.archive_task(*ids, archived=not restore)
        else:
            services.projects.archive_issue(*ids, archived=not restore)
    typer.echo(f"{'Restored' if restore else 'Archived'} '{path}'")


@app.command()
def delete(path: str):
    """Delete an issue or a task."""
    services = open_services()
    depth = len(split_path(path))
    if depth not in (2, 3):
        raise typer.BadParameter(f"Expected PROJECT/ISSUE or PROJECT/ISSUE/TASK, got '{path}'")
    ids = resolve(services, path, depth)
    if typer.confirm(f"Are you sure you want to delete '{path}'?"):
        with reporting():
            if depth == 3:
                services.tasks.delete_task(*ids)
            else:
                services.projects.delete_issue(*ids)
        typer.echo(f"Deleted '{path}'")


def progress_tree(project: Project, include_archived: bool = False) -> dict:
    issues = []
    for issue in project.issues:
        if issue.archived and not include_archived:
            continue
        tasks = [
            {"label": f"{t.title} ({t.status.value})", "percent": t.progress}
            for t in issue.tasks
            if include_archived or not t.archived
        ]
        issues.append({"label": issue.name, "percent": issue.progress, "children": tasks})
    return {"label": project.name, "percent": project.progress, "children": issues}


@app.command()
def status(
    project_name: str = typer.Argument(None, help="Only show this project."),
    all_: bool = typer.Option(False, "--all", help="Include archived issues and tasks."),
):
    """Show progress of every project, issue and task."""
    services = open_services()
    projects = services.store.list_projects()
    if project_name is not None:
        projects = [find_project(services, project_name)]
    for project in projects:
        typer.echo(render_tree(progress_tree(project, include_archived=all_)))


@app.command()
def preview(path: str, limit: int = typer.Option(None, "--limit", min=0, help="Number of tasks to list.")):
    """Show an issue's live summary and its most important tasks."""
    services = open_services()
    ids = resolve(services, path, 2)
    summary = services.progress.preview_issue(*ids, size=limit)
    if summary.progress is None:
        typer.echo(f"{path}: no progress yet")
    else:
        typer.echo(f"{path}: [{progress_bar(summary.progress)}] {summary.progress:.1f}% of {summary.count} task(s)")
    for task in summary.preview:
        label = task.importance.value if task.importance else "Low"
        due = f" due {task.end_date.date().isoformat()}" if task.end_date else ""
        typer.echo(f"  - {task.title} [{label}]{due} {task.progress:.1f}%")


@app.command()
def validate(file: Path):
    """Check that a workspace file is well formed."""
    if not file.exists():
        typer.echo(f"File not found: {file}", err=True)
        raise typer.Exit(code=1)
    try:
        validate_workspace(yaml.safe_load(file.read_text()))
    except (yaml.YAMLError, SchemaError) as e:
        typer.echo(f"Invalid workspace: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"{file} is valid")


if __name__ == "__main__":
    app()
