"""Record storage for projects, issues and tasks.

:class:`MemoryStore` keeps a :class:`~pit.domain.Workspace` in memory and
behaves like a small document database: reads hand out copies, and each
metadata write bumps the record's ``version``. A write carrying an
``expected_version`` that no longer matches raises
:class:`~pit.errors.ConflictError`.

Cached rollup values are written with :meth:`MemoryStore.write_issue_progress`
and :meth:`MemoryStore.write_project_progress`. These are plain overwrites:
they neither check nor bump versions, so a concurrent rollup can briefly
leave a stale percentage that the next task write corrects.

:class:`YamlStore` backs the store with a YAML file shared between
processes. Every write holds an exclusive lock on a sibling ``.lock`` file,
reloads the workspace from disk, checks versions against what it read and
replaces the file atomically.
"""

from __future__ import annotations

import fcntl
import logging
import os
import tempfile
from contextlib import contextmanager
from copy import deepcopy
from dataclasses import replace
from pathlib import Path
from typing import Iterator, List, Optional

from .domain import Issue, Project, Task, Workspace
from .errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


def save(workspace: Workspace, path: Path) -> None:
    """Save ``workspace`` to ``path`` in YAML format.

    The data goes to a temporary file in the same directory first, which then
    replaces ``path``, so readers never see a half-written file.
    """
    path = Path(path)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(workspace.to_yaml())
        os.replace(tmp, path)
    except BaseException:
        os.unlink(tmp)
        raise


def load(path: Path) -> Workspace:
    """Return a :class:`Workspace` loaded from ``path``."""
    with Path(path).open("r", encoding="utf-8") as f:
        return Workspace.from_yaml(f.read())


def _check_version(kind: str, record_id: str, current: int, expected: Optional[int]) -> None:
    if expected is not None and expected != current:
        raise ConflictError(kind, record_id, expected, current)


class MemoryStore:
    """In-process store over a :class:`Workspace`."""

    def __init__(self, workspace: Optional[Workspace] = None) -> None:
        self._ws = workspace or Workspace()

    @contextmanager
    def _reading(self) -> Iterator[None]:
        """Wrap every read; subclasses refresh ``_ws`` here."""
        yield

    @contextmanager
    def _writing(self) -> Iterator[None]:
        """Wrap every write; ``_commit`` runs only if the body succeeds."""
        yield
        self._commit()

    def _commit(self) -> None:
        """Hook called after every successful write."""

    # lookups on the live records

    def _project(self, project_id: str) -> Project:
        project = self._ws.get_project(project_id)
        if project is None:
            raise NotFoundError(f"project not found: {project_id}")
        return project

    def _issue(self, project_id: str, issue_id: str) -> Issue:
        issue = self._project(project_id).get_issue(issue_id)
        if issue is None:
            raise NotFoundError(f"issue not found: {issue_id}")
        return issue

    def _task(self, project_id: str, issue_id: str, task_id: str) -> Task:
        task = self._issue(project_id, issue_id).get_task(task_id)
        if task is None:
            raise NotFoundError(f"task not found: {task_id}")
        return task

    # reads

    def workspace(self) -> Workspace:
        with self._reading():
            return deepcopy(self._ws)

    def list_projects(self) -> List[Project]:
        with self._reading():
            return deepcopy(self._ws.projects)

    def get_project(self, project_id: str) -> Project:
        with self._reading():
            return deepcopy(self._project(project_id))

    def list_issues(self, project_id: str) -> List[Issue]:
        with self._reading():
            return deepcopy(self._project(project_id).issues)

    def get_issue(self, project_id: str, issue_id: str) -> Issue:
        with self._reading():
            return deepcopy(self._issue(project_id, issue_id))

    def list_tasks(self, project_id: str, issue_id: str) -> List[Task]:
        with self._reading():
            return deepcopy(self._issue(project_id, issue_id).tasks)

    def get_task(self, project_id: str, issue_id: str, task_id: str) -> Task:
        with self._reading():
            return deepcopy(self._task(project_id, issue_id, task_id))

    # creates

    def add_project(self, project: Project) -> Project:
        with self._writing():
            stored = replace(deepcopy(project), version=1)
            self._ws.add_project(stored)
        return deepcopy(stored)

    def add_issue(self, project_id: str, issue: Issue) -> Issue:
        with self._writing():
            stored = replace(deepcopy(issue), version=1)
            self._project(project_id).add_issue(stored)
        return deepcopy(stored)

    def add_task(self, project_id: str, issue_id: str, task: Task) -> Task:
        with self._writing():
            stored = replace(deepcopy(task), version=1)
            self._issue(project_id, issue_id).add_task(stored)
        return deepcopy(stored)

    # updates

    def save_project(self, project: Project, expected_version: Optional[int] = None) -> Project:
        """Replace a project's own fields; its issues are left as stored."""
        with self._writing():
            current = self._project(project.id)
            _check_version("project", project.id, current.version, expected_version)
            stored = replace(deepcopy(project), issues=current.issues, version=current.version + 1)
            projects = self._ws.projects
            projects[projects.index(current)] = stored
        return deepcopy(stored)

    def save_issue(self, project_id: str, issue: Issue, expected_version: Optional[int] = None) -> Issue:
        """Replace an issue's own fields; its tasks are left as stored."""
        with self._writing():
            current = self._issue(project_id, issue.id)
            _check_version("issue", issue.id, current.version, expected_version)
            stored = replace(deepcopy(issue), tasks=current.tasks, version=current.version + 1)
            issues = self._project(project_id).issues
            issues[issues.index(current)] = stored
        return deepcopy(stored)

    def save_task(
        self,
        project_id: str,
        issue_id: str,
        task: Task,
        expected_version: Optional[int] = None,
    ) -> Task:
        with self._writing():
            current = self._task(project_id, issue_id, task.id)
            _check_version("task", task.id, current.version, expected_version)
            stored = replace(deepcopy(task), version=current.version + 1)
            tasks = self._issue(project_id, issue_id).tasks
            tasks[tasks.index(current)] = stored
        return deepcopy(stored)

    def write_issue_progress(self, project_id: str, issue_id: str, progress: Optional[float]) -> None:
        with self._writing():
            self._issue(project_id, issue_id).progress = progress

    def write_project_progress(self, project_id: str, progress: Optional[float]) -> None:
        with self._writing():
            self._project(project_id).progress = progress

    # deletes

    def delete_task(self, project_id: str, issue_id: str, task_id: str) -> None:
        with self._writing():
            current = self._task(project_id, issue_id, task_id)
            self._issue(project_id, issue_id).tasks.remove(current)

    def delete_issue(self, project_id: str, issue_id: str) -> None:
        with self._writing():
            current = self._issue(project_id, issue_id)
            self._project(project_id).issues.remove(current)

    def delete_project(self, project_id: str) -> None:
        with self._writing():
            self._ws.projects.remove(self._project(project_id))


class YamlStore(MemoryStore):
    """Store over a YAML file that other processes may write too.

    Reads take a shared lock and writes an exclusive one. The lock lives in
    ``<file>.lock`` because :func:`save` swaps the data file's inode.
    """

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.lock_path = self.path.with_name(self.path.name + ".lock")
        super().__init__()

    @contextmanager
    def _locked(self, operation: int) -> Iterator[None]:
        with self.lock_path.open("a") as lock:
            fcntl.flock(lock, operation)
            try:
                yield
            finally:
                fcntl.flock(lock, fcntl.LOCK_UN)

    def _reload(self) -> None:
        self._ws = load(self.path) if self.path.exists() else Workspace()

    @contextmanager
    def _reading(self) -> Iterator[None]:
        with self._locked(fcntl.LOCK_SH):
            self._reload()
            yield

    @contextmanager
    def _writing(self) -> Iterator[None]:
        with self._locked(fcntl.LOCK_EX):
            self._reload()
            yield
            self._commit()

    def _commit(self) -> None:
        save(self._ws, self.path)
        logger.debug("saved workspace to %s", self.path)


__all__ = ["MemoryStore", "YamlStore", "save", "load"]
