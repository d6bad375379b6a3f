"""CRUD services that keep task, issue and project progress consistent.

Every task mutation follows the same order: decide the status (when the
checklist changed), recompute the task's progress with that status, persist
the task, then re-aggregate the owning issue from the freshly stored task
set and the owning project from its issues.

Rollups are read-then-write without a transaction. Two writers editing
sibling tasks may race and leave the issue with a percentage computed from
a slightly stale sibling set; the next write under that issue recomputes it
from scratch.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FuturesTimeout
from dataclasses import replace
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from .aggregate import DEFAULT_PREVIEW_SIZE, Aggregate, aggregate, aggregate_project
from .domain import ChecklistItem, Importance, Issue, Project, Status, Task, normalize_date
from .errors import NotFoundError, QueryTimeout
from .pit_logging import log_operation
from .progress import calculate_progress
from .schema import SchemaError, validate_issue, validate_project, validate_task
from .store import MemoryStore
from .transition import Transition, apply_transition

logger = logging.getLogger(__name__)

Confirm = Callable[[Task], bool]

_TASK_FIELDS = {"title", "description", "start_date", "end_date", "importance", "tag_ids", "assignee_ids"}
_ISSUE_FIELDS = {"name", "description", "start_date", "end_date"}
_PROJECT_FIELDS = {"name", "description", "goal", "start_date", "end_date"}
_DATE_FIELDS = {"start_date", "end_date"}


def _changes(changes: Dict[str, Any], allowed: Iterable[str], kind: str) -> Dict[str, Any]:
    unknown = set(changes) - set(allowed)
    if unknown:
        raise SchemaError(f"cannot update {kind} field(s): {', '.join(sorted(unknown))}")
    cleaned = dict(changes)
    for key in _DATE_FIELDS & set(cleaned):
        if cleaned[key] is not None and normalize_date(cleaned[key]) is None:
            raise SchemaError(f"{kind} '{key}' is not a valid date")
        cleaned[key] = normalize_date(cleaned[key])
    if "importance" in cleaned and cleaned["importance"] is not None:
        importance = Importance.coerce(cleaned["importance"])
        if importance is None:
            raise SchemaError(f"unknown importance: {cleaned['importance']!r}")
        cleaned["importance"] = importance
    return cleaned


def _status(value: Any) -> Status:
    try:
        return Status(value)
    except ValueError:
        raise SchemaError(f"unknown task status: {value!r}") from None


def _as_items(checklist: Optional[Sequence[Any]]) -> List[ChecklistItem]:
    items = []
    for item in checklist or ():
        if isinstance(item, ChecklistItem):
            items.append(replace(item))
        else:
            items.append(ChecklistItem.from_dict(item))
    return items


class ProgressService:
    """Re-aggregate issue and project progress from stored children."""

    def __init__(
        self,
        store: MemoryStore,
        timeout: Optional[float] = None,
        preview_size: int = DEFAULT_PREVIEW_SIZE,
    ) -> None:
        self.store = store
        self.timeout = timeout
        self.preview_size = preview_size

    def _fetch(self, fn: Callable[..., Any], *args: Any) -> Any:
        if self.timeout is None:
            return fn(*args)
        executor = ThreadPoolExecutor(max_workers=1)
        try:
            return executor.submit(fn, *args).result(timeout=self.timeout)
        except FuturesTimeout:
            raise QueryTimeout(f"{fn.__name__}{args} exceeded {self.timeout}s") from None
        finally:
            executor.shutdown(wait=False)

    def refresh_issue(self, project_id: str, issue_id: str) -> Optional[float]:
        """Recompute and store an issue's progress; return the stored value.

        On a timed-out read the cached value is kept.
        """
        issue = self.store.get_issue(project_id, issue_id)
        try:
            tasks = self._fetch(self.store.list_tasks, project_id, issue_id)
        except QueryTimeout as e:
            logger.warning("keeping cached progress for issue %s: %s", issue_id, e)
            return issue.progress
        result = aggregate(tasks, issue.progress)
        if result.progress != issue.progress:
            self.store.write_issue_progress(project_id, issue_id, result.progress)
        logger.debug("issue %s progress %s (%d active tasks)", issue_id, result.progress, result.count)
        return result.progress

    def refresh_project(self, project_id: str) -> Optional[float]:
        project = self.store.get_project(project_id)
        try:
            issues = self._fetch(self.store.list_issues, project_id)
        except QueryTimeout as e:
            logger.warning("keeping cached progress for project %s: %s", project_id, e)
            return project.progress
        result = aggregate_project(project, issues)
        if result.progress != project.progress:
            self.store.write_project_progress(project_id, result.progress)
        logger.debug("project %s progress %s (%d issues)", project_id, result.progress, result.count)
        return result.progress

    def refresh(self, project_id: str, issue_id: str) -> None:
        """Re-aggregate an issue, then its project."""
        self.refresh_issue(project_id, issue_id)
        self.refresh_project(project_id)

    def preview_issue(
        self,
        project_id: str,
        issue_id: str,
        tasks: Optional[Sequence[Any]] = None,
        size: Optional[int] = None,
    ) -> Aggregate:
        """Compute an issue summary without storing anything.

        ``tasks`` lets a caller preview unsaved edits; by default the stored
        tasks are used.
        """
        issue = self.store.get_issue(project_id, issue_id)
        children = issue.tasks if tasks is None else tasks
        return aggregate(children, issue.progress, preview_size=self.preview_size if size is None else size)

    def preview_project(self, project_id: str, size: Optional[int] = None) -> Aggregate:
        project = self.store.get_project(project_id)
        return aggregate_project(project, preview_size=self.preview_size if size is None else size)


class TaskService:
    """Create, edit and remove tasks, keeping progress and rollups in step.

    ``confirm`` is asked before a checklist edit moves a task to
    ``completed``. Without it, such an edit is not stored and the pending
    :class:`~pit.transition.Transition` is returned so the caller can ask
    and call again with ``confirmed``.
    """

    def __init__(self, store: MemoryStore, progress: ProgressService, confirm: Optional[Confirm] = None) -> None:
        self.store = store
        self.progress = progress
        self.confirm = confirm

    def get_task(self, project_id: str, issue_id: str, task_id: str) -> Task:
        return self.store.get_task(project_id, issue_id, task_id)

    def list_tasks(self, project_id: str, issue_id: str, include_archived: bool = True) -> List[Task]:
        tasks = self.store.list_tasks(project_id, issue_id)
        return tasks if include_archived else [t for t in tasks if not t.archived]

    def _check_title(self, project_id: str, issue_id: str, title: str, task_id: Optional[str] = None) -> None:
        wanted = title.strip().lower()
        for task in self.store.list_tasks(project_id, issue_id):
            if task.id != task_id and task.title.strip().lower() == wanted:
                raise SchemaError(f"a task named '{title}' already exists in this issue")

    def _persist(self, project_id: str, issue_id: str, task: Task, expected_version: Optional[int]) -> Task:
        validate_task(task.to_dict())
        saved = self.store.save_task(project_id, issue_id, task, expected_version)
        self.progress.refresh(project_id, issue_id)
        return saved

    def create_task(
        self,
        project_id: str,
        issue_id: str,
        title: str,
        status: Any = Status.INCOMPLETE,
        importance: Any = None,
        checklist: Optional[Sequence[Any]] = None,
        **fields: Any,
    ) -> Task:
        """Create a task whose progress reflects its initial checklist and status."""
        values = _changes(dict(fields, importance=importance), _TASK_FIELDS, "task")
        status = _status(status)
        items = _as_items(checklist)
        task = Task(
            title=title,
            status=status,
            checklist=items,
            progress=calculate_progress(items, status),
            **values,
        )
        with log_operation("create_task", project_id=project_id, issue_id=issue_id):
            validate_task(task.to_dict())
            self._check_title(project_id, issue_id, title)
            stored = self.store.add_task(project_id, issue_id, task)
            self.progress.refresh(project_id, issue_id)
        return stored

    def update_task(
        self,
        project_id: str,
        issue_id: str,
        task_id: str,
        expected_version: Optional[int] = None,
        **changes: Any,
    ) -> Task:
        """Update plain task fields such as title, dates or importance.

        Importance only changes the task's weight in its issue, but the issue
        is re-aggregated all the same.
        """
        values = _changes(changes, _TASK_FIELDS, "task")
        task = self.store.get_task(project_id, issue_id, task_id)
        if "title" in values:
            self._check_title(project_id, issue_id, values["title"], task_id)
        with log_operation("update_task", task_id=task_id, fields=sorted(values)):
            return self._persist(project_id, issue_id, replace(task, **values), expected_version)

    def set_importance(self, project_id: str, issue_id: str, task_id: str, importance: Any) -> Task:
        return self.update_task(project_id, issue_id, task_id, importance=importance)

    def update_checklist(
        self,
        project_id: str,
        issue_id: str,
        task_id: str,
        checklist: Sequence[Any],
        confirmed: Optional[bool] = None,
        expected_version: Optional[int] = None,
    ) -> Transition:
        """Replace a task's checklist, moving its status as the edit implies.

        Returns the transition applied. A transition that still requires
        confirmation means nothing was stored.
        """
        task = self.store.get_task(project_id, issue_id, task_id)
        items = _as_items(checklist)
        transition, progress = apply_transition(items, task.status, task.checklist, confirmed)
        if transition.pending and self.confirm is not None:
            transition, progress = apply_transition(items, task.status, task.checklist, self.confirm(task))
        if transition.pending:
            logger.debug("task %s awaits completion confirmation", task_id)
            return transition

        updated = replace(task, checklist=items, status=transition.status, progress=progress)
        with log_operation("update_checklist", task_id=task_id, status=transition.status.value):
            self._persist(project_id, issue_id, updated, expected_version)
        return transition

    def add_item(
        self,
        project_id: str,
        issue_id: str,
        task_id: str,
        text: str,
        completed: bool = False,
        confirmed: Optional[bool] = None,
    ) -> Transition:
        task = self.store.get_task(project_id, issue_id, task_id)
        items = task.checklist + [ChecklistItem(text=text, completed=completed)]
        return self.update_checklist(project_id, issue_id, task_id, items, confirmed)

    def set_item(
        self,
        project_id: str,
        issue_id: str,
        task_id: str,
        item_id: str,
        completed: bool,
        confirmed: Optional[bool] = None,
    ) -> Transition:
        """Check or uncheck one checklist item."""
        task = self.store.get_task(project_id, issue_id, task_id)
        if not any(item.id == item_id for item in task.checklist):
            raise NotFoundError(f"checklist item not found: {item_id}")
        items = [replace(item, completed=completed) if item.id == item_id else item for item in task.checklist]
        return self.update_checklist(project_id, issue_id, task_id, items, confirmed)

    def remove_item(
        self,
        project_id: str,
        issue_id: str,
        task_id: str,
        item_id: str,
        confirmed: Optional[bool] = None,
    ) -> Transition:
        task = self.store.get_task(project_id, issue_id, task_id)
        items = [item for item in task.checklist if item.id != item_id]
        if len(items) == len(task.checklist):
            raise NotFoundError(f"checklist item not found: {item_id}")
        return self.update_checklist(project_id, issue_id, task_id, items, confirmed)

    def set_status(
        self,
        project_id: str,
        issue_id: str,
        task_id: str,
        status: Any,
        expected_version: Optional[int] = None,
    ) -> Task:
        """Explicitly change a task's status, including out of a sticky one."""
        status = _status(status)
        task = self.store.get_task(project_id, issue_id, task_id)
        updated = replace(task, status=status, progress=calculate_progress(task.checklist, status))
        with log_operation("set_status", task_id=task_id, status=status.value):
            return self._persist(project_id, issue_id, updated, expected_version)

    def mark_completed(self, project_id: str, issue_id: str, task_id: str) -> Task:
        """Set ``completed`` and 100% together, whatever the checklist says."""
        task = self.store.get_task(project_id, issue_id, task_id)
        updated = replace(task, status=Status.COMPLETED, progress=100.0)
        with log_operation("mark_completed", task_id=task_id):
            return self._persist(project_id, issue_id, updated, None)

    def archive_task(self, project_id: str, issue_id: str, task_id: str, archived: bool = True) -> Task:
        task = self.store.get_task(project_id, issue_id, task_id)
        with log_operation("archive_task", task_id=task_id, archived=archived):
            return self._persist(project_id, issue_id, replace(task, archived=archived), None)

    def delete_task(self, project_id: str, issue_id: str, task_id: str) -> None:
        with log_operation("delete_task", task_id=task_id):
            self.store.delete_task(project_id, issue_id, task_id)
            self.progress.refresh(project_id, issue_id)


class ProjectService:
    """Project and issue metadata. Progress fields are never set here."""

    def __init__(self, store: MemoryStore, progress: ProgressService) -> None:
        self.store = store
        self.progress = progress

    def create_project(self, name: str, **fields: Any) -> Project:
        values = _changes(fields, _PROJECT_FIELDS, "project")
        project = Project(name=name, **values)
        validate_project(project.to_dict())
        with log_operation("create_project"):
            return self.store.add_project(project)

    def update_project(self, project_id: str, expected_version: Optional[int] = None, **changes: Any) -> Project:
        """Update project metadata; a stale ``expected_version`` raises ConflictError."""
        values = _changes(changes, _PROJECT_FIELDS, "project")
        project = replace(self.store.get_project(project_id), **values)
        validate_project(replace(project, issues=[]).to_dict())
        with log_operation("update_project", project_id=project_id):
            return self.store.save_project(project, expected_version)

    def archive_project(self, project_id: str, archived: bool = True) -> Project:
        project = self.store.get_project(project_id)
        with log_operation("archive_project", project_id=project_id, archived=archived):
            return self.store.save_project(replace(project, archived=archived))

    def create_issue(self, project_id: str, name: str, **fields: Any) -> Issue:
        values = _changes(fields, _ISSUE_FIELDS, "issue")
        issue = Issue(name=name, **values)
        validate_issue(issue.to_dict())
        wanted = name.strip().lower()
        if any(i.name.strip().lower() == wanted for i in self.store.list_issues(project_id)):
            raise SchemaError(f"an issue named '{name}' already exists in this project")
        with log_operation("create_issue", project_id=project_id):
            return self.store.add_issue(project_id, issue)

    def update_issue(
        self,
        project_id: str,
        issue_id: str,
        expected_version: Optional[int] = None,
        **changes: Any,
    ) -> Issue:
        values = _changes(changes, _ISSUE_FIELDS, "issue")
        issue = replace(self.store.get_issue(project_id, issue_id), **values)
        validate_issue(replace(issue, tasks=[]).to_dict())
        with log_operation("update_issue", issue_id=issue_id):
            return self.store.save_issue(project_id, issue, expected_version)

    def archive_issue(self, project_id: str, issue_id: str, archived: bool = True) -> Issue:
        issue = self.store.get_issue(project_id, issue_id)
        with log_operation("archive_issue", issue_id=issue_id, archived=archived):
            saved = self.store.save_issue(project_id, replace(issue, archived=archived))
            self.progress.refresh_project(project_id)
        return saved

    def delete_issue(self, project_id: str, issue_id: str) -> None:
        with log_operation("delete_issue", issue_id=issue_id):
            self.store.delete_issue(project_id, issue_id)
            self.progress.refresh_project(project_id)


__all__ = ["ProgressService", "TaskService", "ProjectService", "Confirm"]
