"""Importance-weighted progress rollup from tasks to issues to projects.

:func:`aggregate` is a pure function of its inputs. It filters out archived
and discarded children, averages the remaining progress values weighted by
importance (or uniformly, for issues rolling into a project), and picks a
ranked preview subset for summary display. Persisting the result and
re-running the level above is the caller's job.

Children can be domain objects or plain mappings; any of ``progress``,
``importance``, ``archived``, ``status`` and ``end_date`` may be missing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional, Sequence, Tuple

from .domain import Issue, Project, Status, Task, normalize_date
from .progress import calculate_progress
from .weights import UNIFORM_WEIGHT, clamp_progress, importance_weight, round1

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_SIZE = 3


@dataclass(frozen=True)
class Aggregate:
    """Result of rolling up a set of children."""

    progress: Optional[float]
    preview: List[Any] = field(default_factory=list)
    count: int = 0


def _get(child: Any, name: str, default: Any = None) -> Any:
    if isinstance(child, dict):
        return child.get(name, default)
    return getattr(child, name, default)


def is_active(child: Any) -> bool:
    """Return ``True`` if ``child`` takes part in its parent's rollup."""
    if _get(child, "archived") is True:
        return False
    return Status.coerce(_get(child, "status")) is not Status.DISCARDED


def child_weight(child: Any, uniform: bool = False) -> int:
    if uniform:
        return UNIFORM_WEIGHT
    return importance_weight(_get(child, "importance"))


def child_progress(child: Any) -> float:
    """Return the child's cached progress, clamped to ``[0, 100]``.

    A child without a cached value gets one computed from its checklist and
    status.
    """
    value = _get(child, "progress")
    if value is None:
        value = calculate_progress(_get(child, "checklist"), _get(child, "status"))
    return clamp_progress(value)


def _end_key(child: Any) -> Tuple[int, datetime]:
    end = normalize_date(_get(child, "end_date"))
    if end is None:
        return (1, datetime.max)
    return (0, end)


def rank_preview(children: Sequence[Any], size: int, uniform: bool = False) -> List[Any]:
    """Return up to ``size`` children, most important first.

    Ties go to the earliest end date; children without one come after every
    dated child. Equal keys keep their input order.
    """
    if size <= 0:
        return []
    ranked = sorted(children, key=lambda c: (-child_weight(c, uniform), _end_key(c)))
    return ranked[:size]


def aggregate(
    children: Sequence[Any],
    previous: Optional[float] = None,
    *,
    uniform: bool = False,
    preview_size: int = 0,
) -> Aggregate:
    """Roll up ``children`` into their parent's progress.

    Parameters
    ----------
    children:
        Sibling tasks (or issues, with ``uniform=True``).
    previous:
        The parent's stored progress. Returned unchanged when no child is
        active, so a parent whose children are all archived or discarded
        keeps its last value.
    uniform:
        Give every child weight 1 instead of its importance weight.
    preview_size:
        How many representative children to return in ``preview``.
    """
    active = [c for c in children or () if is_active(c)]
    if not active:
        return Aggregate(progress=previous, preview=[], count=0)

    total = 0.0
    weights = 0
    for child in active:
        weight = child_weight(child, uniform)
        total += child_progress(child) * weight
        weights += weight

    progress = round1(clamp_progress(total / weights))
    logger.debug("aggregated %d children to %.1f", len(active), progress)
    return Aggregate(
        progress=progress,
        preview=rank_preview(active, preview_size, uniform),
        count=len(active),
    )


def aggregate_issue(issue: Issue, tasks: Optional[Sequence[Task]] = None, preview_size: int = 0) -> Aggregate:
    """Aggregate an issue from ``tasks`` (defaults to the issue's own tasks)."""
    return aggregate(
        issue.tasks if tasks is None else tasks,
        issue.progress,
        preview_size=preview_size,
    )


def aggregate_project(project: Project, issues: Optional[Sequence[Issue]] = None, preview_size: int = 0) -> Aggregate:
    """Aggregate a project from its issues with uniform weights.

    Issues whose progress was never computed are left out.
    """
    pool = project.issues if issues is None else issues
    rated = [i for i in pool if _get(i, "progress") is not None]
    return aggregate(rated, project.progress, uniform=True, preview_size=preview_size)


__all__ = [
    "Aggregate",
    "DEFAULT_PREVIEW_SIZE",
    "aggregate",
    "aggregate_issue",
    "aggregate_project",
    "child_progress",
    "child_weight",
    "is_active",
    "rank_preview",
]
