"""Checklist-driven status transitions for tasks.

Given an edited checklist and the task's current status,
:func:`next_status` decides which status the task should move to. The rules:

* ``on_hold`` and ``discarded`` are sticky. Checklist edits never move a
  task out of them; only an explicit status change does.
* Emptying a checklist while ``in_progress`` or ``completed`` resets the
  task to ``incomplete``. Otherwise an empty checklist leaves the status
  alone.
* All items completed targets ``completed``, but the move needs the user's
  confirmation unless the task is already ``completed``. Declining falls
  back to ``in_progress``.
* Some items completed gives ``in_progress``; none completed gives
  ``incomplete``.

Confirmation is returned as data instead of prompting. Callers ask the user
however suits them and either call :meth:`Transition.resolve` or call
:func:`next_status` again with ``confirmed`` set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, FrozenSet, Optional, Sequence

from .domain import Status
from .progress import calculate_progress, count_completed

logger = logging.getLogger(__name__)

STICKY_STATUSES: FrozenSet[Status] = frozenset({Status.ON_HOLD, Status.DISCARDED})


@dataclass(frozen=True)
class Transition:
    """Outcome of a checklist edit.

    ``status`` is the target status. When ``requires_confirmation`` is set,
    ``status`` is only applied once the user agrees; ``fallback`` is used
    otherwise.
    """

    status: Status
    requires_confirmation: bool = False
    fallback: Optional[Status] = None

    def resolve(self, confirmed: bool) -> Status:
        """Return the status to persist given the user's answer."""
        if not self.requires_confirmation:
            return self.status
        if confirmed:
            return self.status
        return self.fallback if self.fallback is not None else self.status

    @property
    def pending(self) -> bool:
        return self.requires_confirmation


def next_status(
    checklist: Optional[Sequence[Any]],
    current: Any,
    previous: Optional[Sequence[Any]] = None,
    confirmed: Optional[bool] = None,
) -> Transition:
    """Decide the status that follows a checklist edit.

    Parameters
    ----------
    checklist:
        The checklist after the edit.
    current:
        The task's status before the edit. Unknown values count as
        ``incomplete``.
    previous:
        The checklist before the edit, if known. Only consulted when the
        edit leaves the checklist empty; ``None`` is treated as a removal.
    confirmed:
        The user's answer to a completion prompt. When given, a transition
        that needs confirmation comes back already resolved.
    """
    status = Status.coerce(current)
    items = list(checklist or ())

    if status in STICKY_STATUSES:
        return Transition(status)

    if not items:
        removed = previous is None or len(previous) > 0
        if removed and status in (Status.IN_PROGRESS, Status.COMPLETED):
            logger.debug("checklist emptied, resetting %s to incomplete", status.value)
            return Transition(Status.INCOMPLETE)
        return Transition(status)

    done = count_completed(items)
    if done == len(items):
        if status is Status.COMPLETED:
            return Transition(Status.COMPLETED)
        transition = Transition(
            Status.COMPLETED,
            requires_confirmation=True,
            fallback=Status.IN_PROGRESS,
        )
        if confirmed is not None:
            return Transition(transition.resolve(confirmed))
        return transition
    if done > 0:
        return Transition(Status.IN_PROGRESS)
    return Transition(Status.INCOMPLETE)


def apply_transition(
    checklist: Optional[Sequence[Any]],
    current: Any,
    previous: Optional[Sequence[Any]] = None,
    confirmed: Optional[bool] = None,
) -> tuple[Transition, Optional[float]]:
    """Run the transition and then recompute progress with the new status.

    Returns the transition and the matching progress, or ``None`` for the
    progress while the transition still awaits confirmation.
    """
    transition = next_status(checklist, current, previous, confirmed)
    if transition.pending:
        return transition, None
    progress = calculate_progress(checklist, transition.status)
    logger.debug("transition to %s, progress %.1f", transition.status.value, progress)
    return transition, progress


__all__ = ["STICKY_STATUSES", "Transition", "next_status", "apply_transition"]
