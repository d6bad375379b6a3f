import pytest

from pit.domain import Status
from pit.transition import STICKY_STATUSES, Transition, apply_transition, next_status


def items(*flags):
    return [{"text": str(i), "completed": flag} for i, flag in enumerate(flags)]


@pytest.mark.parametrize("status", sorted(STICKY_STATUSES))
@pytest.mark.parametrize(
    "checklist",
    [[], items(False), items(True, False), items(True, True)],
)
def test_sticky_statuses_never_move(status, checklist):
    result = next_status(checklist, status, previous=items(False))
    assert result.status == status
    assert not result.requires_confirmation


def test_all_completed_requires_confirmation():
    result = next_status(items(True, True), Status.INCOMPLETE)
    assert result.status is Status.COMPLETED
    assert result.requires_confirmation
    assert result.fallback is Status.IN_PROGRESS


def test_completing_last_item_asks_for_confirmation():
    before = items(True, False)
    after = items(True, True)
    result = next_status(after, Status.INCOMPLETE, previous=before)
    assert result.requires_confirmation
    assert result.status is Status.COMPLETED


def test_declined_confirmation_falls_back():
    pending = next_status(items(True), "in_progress")
    assert pending.resolve(False) is Status.IN_PROGRESS
    assert pending.resolve(True) is Status.COMPLETED
    assert next_status(items(True), "incomplete", confirmed=False) == Transition(Status.IN_PROGRESS)
    assert next_status(items(True), "incomplete", confirmed=True) == Transition(Status.COMPLETED)


def test_already_completed_needs_no_confirmation():
    result = next_status(items(True, True), Status.COMPLETED)
    assert result == Transition(Status.COMPLETED)


def test_unchecking_drops_out_of_completed():
    result = next_status(items(True, False, True), Status.COMPLETED, previous=items(True, True, True))
    assert result.status is Status.IN_PROGRESS
    assert not result.requires_confirmation


def test_none_completed_is_incomplete():
    assert next_status(items(False, False), Status.IN_PROGRESS).status is Status.INCOMPLETE


@pytest.mark.parametrize("status", [Status.IN_PROGRESS, Status.COMPLETED])
def test_emptying_checklist_resets(status):
    assert next_status([], status, previous=items(True)).status is Status.INCOMPLETE
    assert next_status([], status).status is Status.INCOMPLETE


def test_empty_checklist_that_was_empty_keeps_status():
    assert next_status([], Status.IN_PROGRESS, previous=[]).status is Status.IN_PROGRESS
    assert next_status([], Status.INCOMPLETE, previous=items(True)).status is Status.INCOMPLETE


def test_unknown_status_treated_as_incomplete():
    assert next_status([], "bogus").status is Status.INCOMPLETE


def test_apply_transition_recomputes_progress_with_new_status():
    transition, progress = apply_transition([], Status.IN_PROGRESS, previous=items(True))
    assert transition.status is Status.INCOMPLETE
    assert progress == 0.0


def test_apply_transition_waits_for_confirmation():
    transition, progress = apply_transition(items(True), Status.INCOMPLETE)
    assert transition.pending
    assert progress is None
    transition, progress = apply_transition(items(True), Status.INCOMPLETE, confirmed=True)
    assert transition.status is Status.COMPLETED
    assert progress == 100.0
