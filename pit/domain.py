from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, List, Optional
import json
import uuid
import yaml


class Status(str, Enum):
    """Lifecycle state of a task."""

    INCOMPLETE = "incomplete"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ON_HOLD = "on_hold"
    DISCARDED = "discarded"

    @classmethod
    def coerce(cls, value: Any) -> 'Status':
        """Return the matching status, treating anything unknown as incomplete."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.INCOMPLETE


class Importance(str, Enum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @classmethod
    def coerce(cls, value: Any) -> Optional['Importance']:
        if value is None or isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


def new_id() -> str:
    return uuid.uuid4().hex[:12]


def normalize_date(value: Any) -> Optional[datetime]:
    """Return ``value`` as a :class:`datetime`, or ``None`` if it is not a date.

    Accepts datetimes, dates and ISO 8601 strings. Aware values are converted
    to naive UTC. Anything unparsable is treated as missing rather than raising.
    """
    if not value:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _date_to_str(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class ChecklistItem:
    """A single checkable line inside a task."""

    text: str
    completed: bool = False
    id: str = field(default_factory=new_id)

    def to_dict(self) -> dict:
        return {'id': self.id, 'text': self.text, 'completed': self.completed}

    @classmethod
    def from_dict(cls, data: dict) -> 'ChecklistItem':
        return cls(
            id=str(data.get('id') or new_id()),
            text=data.get('text', ''),
            completed=data.get('completed') is True,
        )


@dataclass
class Task:
    """Leaf work item owned by an issue."""

    title: str
    status: Status = Status.INCOMPLETE
    importance: Optional[Importance] = None
    checklist: List[ChecklistItem] = field(default_factory=list)
    progress: float = 0.0
    archived: bool = False
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    tag_ids: List[str] = field(default_factory=list)
    assignee_ids: List[str] = field(default_factory=list)
    id: str = field(default_factory=new_id)
    version: int = 0

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            'id': self.id,
            'title': self.title,
            'status': self.status.value,
            'progress': self.progress,
            'archived': self.archived,
            'version': self.version,
        }
        if self.importance is not None:
            data['importance'] = self.importance.value
        if self.description:
            data['description'] = self.description
        if self.start_date:
            data['start_date'] = _date_to_str(self.start_date)
        if self.end_date:
            data['end_date'] = _date_to_str(self.end_date)
        if self.tag_ids:
            data['tag_ids'] = list(self.tag_ids)
        if self.assignee_ids:
            data['assignee_ids'] = list(self.assignee_ids)
        if self.checklist:
            data['checklist'] = [item.to_dict() for item in self.checklist]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Task':
        return cls(
            id=str(data.get('id') or new_id()),
            title=data.get('title', ''),
            status=Status.coerce(data.get('status')),
            importance=Importance.coerce(data.get('importance')),
            checklist=[ChecklistItem.from_dict(i) for i in data.get('checklist', [])],
            progress=data.get('progress', 0.0),
            archived=data.get('archived') is True,
            description=data.get('description'),
            start_date=normalize_date(data.get('start_date')),
            end_date=normalize_date(data.get('end_date')),
            tag_ids=list(data.get('tag_ids', [])),
            assignee_ids=list(data.get('assignee_ids', [])),
            version=int(data.get('version', 0)),
        )


@dataclass
class Issue:
    """Groups tasks; its progress is a cached rollup of them."""

    name: str
    tasks: List[Task] = field(default_factory=list)
    progress: Optional[float] = None
    archived: bool = False
    description: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    id: str = field(default_factory=new_id)
    version: int = 0

    def add_task(self, task: Task) -> None:
        self.tasks.append(task)

    def get_task(self, task_id: str) -> Optional[Task]:
        return next((t for t in self.tasks if t.id == task_id), None)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            'id': self.id,
            'name': self.name,
            'archived': self.archived,
            'version': self.version,
        }
        if self.progress is not None:
            data['progress'] = self.progress
        if self.description:
            data['description'] = self.description
        if self.start_date:
            data['start_date'] = _date_to_str(self.start_date)
        if self.end_date:
            data['end_date'] = _date_to_str(self.end_date)
        if self.tasks:
            data['tasks'] = [t.to_dict() for t in self.tasks]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Issue':
        issue = cls(
            id=str(data.get('id') or new_id()),
            name=data.get('name', ''),
            progress=data.get('progress'),
            archived=data.get('archived') is True,
            description=data.get('description'),
            start_date=normalize_date(data.get('start_date')),
            end_date=normalize_date(data.get('end_date')),
            version=int(data.get('version', 0)),
        )
        for t in data.get('tasks', []):
            issue.add_task(Task.from_dict(t))
        return issue


@dataclass
class Project:
    """Top-level container of issues."""

    name: str
    issues: List[Issue] = field(default_factory=list)
    progress: Optional[float] = None
    archived: bool = False
    description: Optional[str] = None
    goal: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    id: str = field(default_factory=new_id)
    version: int = 0

    def add_issue(self, issue: Issue) -> None:
        self.issues.append(issue)

    def get_issue(self, issue_id: str) -> Optional[Issue]:
        return next((i for i in self.issues if i.id == issue_id), None)

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            'id': self.id,
            'name': self.name,
            'archived': self.archived,
            'version': self.version,
        }
        if self.progress is not None:
            data['progress'] = self.progress
        if self.description:
            data['description'] = self.description
        if self.goal:
            data['goal'] = self.goal
        if self.start_date:
            data['start_date'] = _date_to_str(self.start_date)
        if self.end_date:
            data['end_date'] = _date_to_str(self.end_date)
        if self.issues:
            data['issues'] = [i.to_dict() for i in self.issues]
        return data

    @classmethod
    def from_dict(cls, data: dict) -> 'Project':
        project = cls(
            id=str(data.get('id') or new_id()),
            name=data.get('name', ''),
            progress=data.get('progress'),
            archived=data.get('archived') is True,
            description=data.get('description'),
            goal=data.get('goal'),
            start_date=normalize_date(data.get('start_date')),
            end_date=normalize_date(data.get('end_date')),
            version=int(data.get('version', 0)),
        )
        for i in data.get('issues', []):
            project.add_issue(Issue.from_dict(i))
        return project


@dataclass
class Workspace:
    """Everything one data file holds."""

    projects: List[Project] = field(default_factory=list)

    def add_project(self, project: Project) -> None:
        self.projects.append(project)

    def get_project(self, project_id: str) -> Optional[Project]:
        return next((p for p in self.projects if p.id == project_id), None)

    def to_dict(self) -> dict:
        return {'projects': [p.to_dict() for p in self.projects]}

    @classmethod
    def from_dict(cls, data: dict) -> 'Workspace':
        ws = cls()
        for p in (data or {}).get('projects', []):
            ws.add_project(Project.from_dict(p))
        return ws

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, text: str) -> 'Workspace':
        return cls.from_dict(json.loads(text))

    def to_yaml(self) -> str:
        return yaml.dump(self.to_dict(), sort_keys=False)

    @classmethod
    def from_yaml(cls, text: str) -> 'Workspace':
        return cls.from_dict(yaml.safe_load(text))
