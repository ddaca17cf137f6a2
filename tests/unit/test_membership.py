"""Unit tests for the membership index."""

import threading
from unittest.mock import patch

import pytest

from core.exceptions import IntegrityError
from core.membership import MembershipIndex, dedupe_links
from core.models import MembershipLink, Milestone, Task
from storage.memory import InMemoryStore


@pytest.fixture
def index():
    return MembershipIndex(InMemoryStore())


class TestDedupe:
    """Duplicate link handling."""

    def test_dedupe_links_keeps_first_of_each_pair(self):
        links = [MembershipLink("m1", "t1"), MembershipLink("m1", "t2"),
                 MembershipLink("m1", "t1"), MembershipLink("m2", "t3")]
        assert dedupe_links(links) == [MembershipLink("m1", "t1"), MembershipLink("m1", "t2"),
                                       MembershipLink("m2", "t3")]

    def test_replace_counts_duplicate_pairs_once(self, index):
        index.replace("p1", [MembershipLink("m1", "t1")] * 3 + [MembershipLink("m1", "t2")])
        assert index.tasks_of("m1") == {"t1", "t2"}
        assert index.milestone_of("t1") == "m1"


class TestLookups:
    """Queries in both directions."""

    def test_unknown_milestone_has_no_tasks(self, index):
        assert index.tasks_of("nope") == frozenset()

    def test_unassigned_task_has_no_owner(self, index):
        index.replace("p1", [MembershipLink("m1", "t1")])
        assert index.milestone_of("t9") is None

    def test_two_owners_is_an_integrity_error(self, index):
        index.replace("p1", [MembershipLink("m1", "t1"), MembershipLink("m2", "t1")])
        assert index.milestones_of("t1") == {"m1", "m2"}
        with pytest.raises(IntegrityError):
            index.milestone_of("t1")

    def test_scopes_are_independent(self, index):
        index.replace("p1", [MembershipLink("m1", "t1")])
        index.replace("p2", [MembershipLink("m2", "t2")])
        index.replace("p1", [])
        assert index.tasks_of("m1") == frozenset()
        assert index.tasks_of("m2") == {"t2"}

    def test_forget_drops_scope(self, index):
        index.replace("p1", [MembershipLink("m1", "t1")])
        index.forget("p1")
        assert index.milestone_of("t1") is None
        assert index.age("p1") is None


class TestRebuild:
    """Reloading from the store."""

    def test_rebuild_reads_links_of_project_tasks(self):
        store = InMemoryStore()
        t1 = store.upsert_task(Task(id="", project_id="p1", name="a"))
        t2 = store.upsert_task(Task(id="", project_id="p1", name="b"))
        other = store.upsert_task(Task(id="", project_id="p2", name="c"))
        m = store.upsert_milestone(Milestone(id="", project_id="p1", name="M"))
        m2 = store.upsert_milestone(Milestone(id="", project_id="p2", name="M2"))
        store.insert_membership([MembershipLink(m.id, t1.id), MembershipLink(m.id, t1.id),
                                 MembershipLink(m2.id, other.id)])

        index = MembershipIndex(store)
        assert index.age("p1") is None
        index.rebuild("p1")

        assert index.tasks_of(m.id) == {t1.id}
        assert index.milestone_of(t2.id) is None
        assert index.tasks_of(m2.id) == frozenset()
        assert index.age("p1") >= 0

    def test_rebuild_of_empty_project(self):
        index = MembershipIndex(InMemoryStore())
        index.rebuild("empty")
        assert index.age("empty") is not None

    def test_slow_older_rebuild_cannot_overwrite_newer_one(self):
        """A rebuild that read links before an insert never lands after one that read them later."""
        store = InMemoryStore()
        t1 = store.upsert_task(Task(id="", project_id="p1", name="a"))
        m = store.upsert_milestone(Milestone(id="", project_id="p1", name="M"))
        index = MembershipIndex(store)

        real_load = store.load_membership
        entered, release = threading.Event(), threading.Event()
        calls = []

        def first_read_stalls(task_ids):
            calls.append(task_ids)
            links = real_load(task_ids)
            if len(calls) == 1:
                entered.set()
                release.wait(timeout=5)
            return links

        with patch.object(store, "load_membership", side_effect=first_read_stalls):
            older = threading.Thread(target=index.rebuild, args=("p1",))
            older.start()
            assert entered.wait(timeout=5)

            store.insert_membership([MembershipLink(m.id, t1.id)])
            newer = threading.Thread(target=index.rebuild, args=("p1",))
            newer.start()
            newer.join(timeout=0.2)
            release.set()
            older.join(timeout=5)
            newer.join(timeout=5)

        assert index.tasks_of(m.id) == {t1.id}
        assert index.milestone_of(t1.id) == m.id
