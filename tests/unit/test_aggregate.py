"""Unit tests for the milestone date roll-up."""

import itertools

from core.aggregate import aggregate
from core.models import DateTuple, Task


def make_task(task_id, ps=None, pe=None, as_=None, ae=None):
    return Task(id=task_id, project_id="p1", name=task_id, planned_start_date=ps,
                planned_end_date=pe, actual_start_date=as_, actual_end_date=ae)


class TestAggregate:
    """Field-wise reduction of task dates."""

    def test_empty_input_is_all_absent(self):
        result = aggregate([])
        assert result == DateTuple()
        assert result.is_empty()

    def test_starts_take_earliest_and_ends_take_latest(self):
        tasks = [
            make_task("t1", "2024-01-01", "2024-01-10", "2024-01-03", "2024-01-11"),
            make_task("t2", "2024-01-05", "2024-01-20", "2024-01-02", "2024-01-09"),
        ]
        assert aggregate(tasks) == DateTuple("2024-01-01", "2024-01-20", "2024-01-02", "2024-01-11")

    def test_absent_values_are_ignored_per_field(self):
        tasks = [
            make_task("t1", ps="2024-01-01"),
            make_task("t2", pe="2024-01-20", ae="2024-01-25"),
        ]
        assert aggregate(tasks) == DateTuple("2024-01-01", "2024-01-20", None, "2024-01-25")

    def test_field_absent_only_when_no_member_has_it(self):
        result = aggregate([make_task("t1"), make_task("t2", as_="2024-02-02")])
        assert result.actual_start_date == "2024-02-02"
        assert result.planned_start_date is None
        assert result.planned_end_date is None
        assert result.actual_end_date is None

    def test_order_independent(self):
        tasks = [
            make_task("t1", "2024-01-01", "2024-01-10"),
            make_task("t2", "2024-01-05", "2024-03-01", "2024-01-06"),
            make_task("t3", None, "2024-02-01", "2024-01-04", "2024-02-02"),
        ]
        results = {aggregate(p) for p in itertools.permutations(tasks)}
        assert len(results) == 1

    def test_deterministic_and_no_drift(self):
        tasks = [make_task("t1", "2024-01-01", "2024-01-10"), make_task("t2", "2024-01-05", "2024-01-20")]
        first = aggregate(tasks)
        assert aggregate(tasks) == first
        # feeding the aggregate back in as a single member changes nothing
        assert aggregate([first]) == first

    def test_accepts_generators(self):
        result = aggregate(t for t in [make_task("t1", pe="2024-05-05")])
        assert result.planned_end_date == "2024-05-05"
