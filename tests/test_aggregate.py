from datetime import date, datetime

import pytest

from pit.aggregate import aggregate, aggregate_issue, aggregate_project, rank_preview
from pit.domain import Importance, Issue, Project, Status, Task


def child(progress, importance=None, **extra):
    data = {"progress": progress, "importance": importance, "status": "in_progress", "archived": False}
    data.update(extra)
    return data


def test_weighted_average_critical_and_low():
    result = aggregate([child(100, "Critical"), child(0, "Low")])
    assert result.progress == 80.0


def test_weighted_average_three_siblings():
    result = aggregate([child(100, "High"), child(50, "Medium"), child(0, "Low")])
    assert result.progress == 66.7
    assert result.count == 3


def test_idempotent():
    children = [child(33.3, "High"), child(71, None), child(12.5, "Critical")]
    assert aggregate(children).progress == aggregate(children).progress


def test_archived_and_discarded_children_are_ignored():
    children = [
        child(100, "Low"),
        child(0, "Critical", archived=True),
        child(0, "High", status="discarded"),
    ]
    assert aggregate(children).progress == 100.0


def test_empty_set_keeps_previous_progress():
    assert aggregate([], previous=42.5).progress == 42.5
    assert aggregate([child(0, archived=True)], previous=10.0).progress == 10.0
    result = aggregate([], previous=None)
    assert result.progress is None
    assert result.preview == []


def test_out_of_range_children_are_clamped():
    result = aggregate([child(250, "Low"), child(-40, "Low")])
    assert result.progress == 50.0


def test_malformed_children_do_not_raise():
    result = aggregate([{"progress": "n/a"}, {}, {"progress": 60, "importance": "Huge"}])
    assert 0 <= result.progress <= 100


def test_missing_progress_computed_from_checklist():
    result = aggregate([{"checklist": [{"completed": True}, {"completed": False}]}])
    assert result.progress == 50.0


def test_uniform_weights_for_projects():
    result = aggregate([child(100, "Critical"), child(0, "Low")], uniform=True)
    assert result.progress == 50.0


def test_preview_orders_by_importance_then_end_date():
    a = child(0, "Low", title="a", end_date=date(2024, 1, 1))
    b = child(0, "High", title="b")
    c = child(0, "High", title="c", end_date="2024-06-01")
    d = child(0, "High", title="d", end_date=datetime(2024, 3, 1))
    ranked = rank_preview([a, b, c, d], 4)
    assert [x["title"] for x in ranked] == ["d", "c", "b", "a"]


def test_preview_compares_end_dates_across_offsets():
    # 09:00 in Tokyo is 00:00 UTC, an hour before 01:00 UTC
    tokyo = child(0, "High", title="tokyo", end_date="2024-03-01T09:00:00+09:00")
    utc = child(0, "High", title="utc", end_date="2024-03-01T01:00:00Z")
    naive = child(0, "High", title="naive", end_date="2024-03-01T00:30:00")
    ranked = rank_preview([utc, naive, tokyo], 3)
    assert [x["title"] for x in ranked] == ["tokyo", "naive", "utc"]


def test_preview_size_and_progress_independent():
    children = [child(100, "Low"), child(0, "Critical")]
    small = aggregate(children, preview_size=1)
    large = aggregate(children, preview_size=3)
    assert small.progress == large.progress == 20.0
    assert len(small.preview) == 1
    assert small.preview[0]["importance"] == "Critical"
    assert len(large.preview) == 2


def test_preview_excludes_inactive_children():
    result = aggregate([child(0, "Critical", archived=True), child(10)], preview_size=3)
    assert len(result.preview) == 1


def test_aggregate_issue_uses_tasks_and_cached_progress():
    issue = Issue(name="Login", progress=35.0)
    assert aggregate_issue(issue).progress == 35.0
    issue.add_task(Task(title="a", progress=100.0, importance=Importance.CRITICAL, status=Status.COMPLETED))
    issue.add_task(Task(title="b", progress=0.0))
    assert aggregate_issue(issue).progress == 80.0


def test_aggregate_project_skips_issues_never_rated():
    project = Project(name="App", progress=12.0)
    project.add_issue(Issue(name="a", progress=100.0))
    project.add_issue(Issue(name="b", progress=50.0))
    project.add_issue(Issue(name="c"))
    project.add_issue(Issue(name="d", progress=0.0, archived=True))
    assert aggregate_project(project).progress == 75.0


def test_aggregate_project_all_archived_freezes():
    project = Project(name="App", progress=12.0)
    project.add_issue(Issue(name="a", progress=100.0, archived=True))
    assert aggregate_project(project).progress == 12.0


@pytest.mark.parametrize("values", [[0], [100], [0, 100, 55.55], [99.99, 99.99]])
def test_bounds(values):
    result = aggregate([child(v, "Medium") for v in values])
    assert 0 <= result.progress <= 100
