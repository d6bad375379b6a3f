from __future__ import annotations

from typing import Any, Dict

from .domain import Importance, Status, normalize_date

MAX_CHECKLIST_ITEMS = 200
MAX_TAGS = 10
MAX_NAME_LENGTH = 80

_STATUSES = {s.value for s in Status}
_IMPORTANCES = {i.value for i in Importance}


class SchemaError(ValueError):
    """Raised when a record does not conform to the expected schema."""


def _check_name(data: Dict[str, Any], key: str, kind: str) -> None:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise SchemaError(f"{kind} must have a non-empty '{key}' string")
    if len(value) > MAX_NAME_LENGTH:
        raise SchemaError(f"{kind} '{key}' must be at most {MAX_NAME_LENGTH} characters")


def _check_dates(data: Dict[str, Any], kind: str) -> None:
    for key in ("start_date", "end_date"):
        if data.get(key) and normalize_date(data[key]) is None:
            raise SchemaError(f"{kind} '{key}' is not a valid date")
    start = normalize_date(data.get("start_date"))
    end = normalize_date(data.get("end_date"))
    if start and end and start > end:
        raise SchemaError(f"{kind} start date must not be after its end date")


def _check_progress(data: Dict[str, Any], kind: str) -> None:
    if data.get("progress") is None:
        return
    progress = data["progress"]
    if isinstance(progress, bool) or not isinstance(progress, (int, float)):
        raise SchemaError(f"{kind} 'progress' must be a number")
    if not 0 <= progress <= 100:
        raise SchemaError(f"{kind} 'progress' must be between 0 and 100")


def validate_task(task: Any) -> None:
    """Validate a task dict.

    Expected keys:
    - title: required string, at most 80 characters
    - status: optional, one of the task statuses
    - importance: optional, Critical/High/Medium/Low
    - checklist: optional list of at most 200 ``{text, completed}`` items
    - tag_ids: optional list of at most 10 tags
    - progress: optional number between 0 and 100
    - start_date/end_date: optional dates, start not after end
    """
    if not isinstance(task, dict):
        raise SchemaError("task must be a dict")

    _check_name(task, "title", "task")

    if "status" in task and task["status"] not in _STATUSES:
        raise SchemaError(f"unknown task status: {task['status']!r}")

    if task.get("importance") is not None and task["importance"] not in _IMPORTANCES:
        raise SchemaError(f"unknown importance: {task['importance']!r}")

    checklist = task.get("checklist", [])
    if not isinstance(checklist, list):
        raise SchemaError("'checklist' must be a list")
    if len(checklist) > MAX_CHECKLIST_ITEMS:
        raise SchemaError(f"a task can have at most {MAX_CHECKLIST_ITEMS} checklist items")
    for item in checklist:
        if not isinstance(item, dict) or not isinstance(item.get("text", ""), str):
            raise SchemaError("checklist items must be dicts with a 'text' string")
        if "completed" in item and not isinstance(item["completed"], bool):
            raise SchemaError("checklist 'completed' must be a boolean")

    tags = task.get("tag_ids", [])
    if not isinstance(tags, list):
        raise SchemaError("'tag_ids' must be a list")
    if len(tags) > MAX_TAGS:
        raise SchemaError(f"a task can have at most {MAX_TAGS} tags")

    _check_progress(task, "task")
    _check_dates(task, "task")


def validate_issue(issue: Any) -> None:
    """Validate an issue dict and each of its tasks."""
    if not isinstance(issue, dict):
        raise SchemaError("issue must be a dict")
    _check_name(issue, "name", "issue")
    _check_progress(issue, "issue")
    _check_dates(issue, "issue")
    tasks = issue.get("tasks", [])
    if not isinstance(tasks, list):
        raise SchemaError("'tasks' must be a list")
    for task in tasks:
        validate_task(task)


def validate_project(project: Any) -> None:
    if not isinstance(project, dict):
        raise SchemaError("project must be a dict")
    _check_name(project, "name", "project")
    _check_progress(project, "project")
    _check_dates(project, "project")
    issues = project.get("issues", [])
    if not isinstance(issues, list):
        raise SchemaError("'issues' must be a list")
    for issue in issues:
        validate_issue(issue)


def validate_workspace(data: Any) -> None:
    """Validate the root schema, a mapping with a ``projects`` list."""
    if not isinstance(data, dict):
        raise SchemaError("root must be a mapping")
    projects = data.get("projects", [])
    if not isinstance(projects, list):
        raise SchemaError("'projects' must be a list")
    for project in projects:
        validate_project(project)
