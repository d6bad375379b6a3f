"""Task progress calculation.

A task's progress comes from its checklist when it has one: the share of
completed items, as a percentage rounded to one decimal. A task without a
checklist falls back to a fixed value per status.

Checklist items may be :class:`~pit.domain.ChecklistItem` objects or plain
dictionaries with a ``completed`` key; only ``completed is True`` counts.

The module also holds the text helpers used to draw progress in the CLI:
:func:`progress_bar` and :func:`render_tree`.
"""

from __future__ import annotations

from fractions import Fraction
from typing import Any, Dict, List, Optional, Sequence

from .domain import Status
from .weights import round1

STATUS_PROGRESS: Dict[Status, float] = {
    Status.COMPLETED: 100.0,
    Status.IN_PROGRESS: 50.0,
    Status.ON_HOLD: 25.0,
    Status.DISCARDED: 0.0,
    Status.INCOMPLETE: 0.0,
}

ProgressNode = Dict[str, Any]


def is_item_completed(item: Any) -> bool:
    """Return ``True`` when a checklist item is marked completed."""
    if isinstance(item, dict):
        return item.get("completed") is True
    return getattr(item, "completed", False) is True


def count_completed(checklist: Optional[Sequence[Any]]) -> int:
    return sum(1 for item in checklist or () if is_item_completed(item))


def calculate_progress(checklist: Optional[Sequence[Any]], status: Any = None) -> float:
    """Return the progress percentage for a task.

    Parameters
    ----------
    checklist:
        The task's checklist items. Every item counts toward the total,
        whatever its text.
    status:
        Used only when the checklist is empty. Unknown or missing values
        behave like ``incomplete``.
    """
    items = list(checklist or ())
    if not items:
        return STATUS_PROGRESS[Status.coerce(status)]
    ratio = Fraction(100 * count_completed(items), len(items))
    return round1(float(ratio))


def progress_bar(percent: float, width: int = 20) -> str:
    """Return a fixed-width text bar for ``percent``."""
    percent = min(100.0, max(0.0, float(percent or 0)))
    filled = int(round(width * percent / 100))
    return "#" * filled + "-" * (width - filled)


def render_tree(node: ProgressNode, indent: int = 0, width: int = 20) -> str:
    """Render a progress tree as indented lines.

    Each node is a mapping with ``label``, ``percent`` (``None`` draws as
    ``n/a``) and an optional ``children`` list.
    """
    lines: List[str] = []
    _render(node, indent, width, lines)
    return "\n".join(lines)


def _render(node: ProgressNode, depth: int, width: int, lines: List[str]) -> None:
    pad = "  " * depth
    percent = node.get("percent")
    if percent is None:
        lines.append(f"{pad}{node.get('label', '')} [{' ' * width}]   n/a")
    else:
        lines.append(f"{pad}{node.get('label', '')} [{progress_bar(percent, width)}] {percent:5.1f}%")
    for child in node.get("children", []):
        _render(child, depth + 1, width, lines)


__all__ = [
    "STATUS_PROGRESS",
    "is_item_completed",
    "count_completed",
    "calculate_progress",
    "progress_bar",
    "render_tree",
]
