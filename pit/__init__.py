"""Progress rollup and task lifecycle engine for a project/issue/task tracker."""

from .aggregate import Aggregate, aggregate, aggregate_issue, aggregate_project
from .domain import ChecklistItem, Importance, Issue, Project, Status, Task, Workspace
from .errors import ConflictError, NotFoundError, QueryTimeout, TrackerError
from .progress import calculate_progress, progress_bar, render_tree
from .transition import STICKY_STATUSES, Transition, next_status

__all__ = [
    "Aggregate",
    "aggregate",
    "aggregate_issue",
    "aggregate_project",
    "ChecklistItem",
    "Importance",
    "Issue",
    "Project",
    "Status",
    "Task",
    "Workspace",
    "ConflictError",
    "NotFoundError",
    "QueryTimeout",
    "TrackerError",
    "calculate_progress",
    "progress_bar",
    "render_tree",
    "STICKY_STATUSES",
    "Transition",
    "next_status",
]
