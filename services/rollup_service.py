"""Keeps milestone dates equal to the roll-up of their member tasks.

Every task or membership mutation runs in two ordered steps: the mutation is
persisted first, then the owning milestone is recomputed from a fresh read of
its members and written back. The recompute step for one milestone is
serialized by a per-milestone lock, so a write based on an older member
snapshot can never land after one based on a newer snapshot.

The two steps are not one transaction. If the second fails the milestone is
stale until the next mutation of one of its tasks or a ``reconcile`` call.
"""

import datetime as dt
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple

from core import config
from core.aggregate import aggregate
from core.exceptions import NotFoundError, StoreError, ValidationError, IntegrityError
from core.membership import MembershipIndex
from core.models import DATE_FIELDS, Milestone, MembershipLink, Task, normalize_date

logger = logging.getLogger(__name__)


@dataclass
class RollupResult:
    task: Optional[Task] = None
    milestone: Optional[Milestone] = None
    # set when the task change was saved but the milestone could not be updated
    recompute_error: Optional[Exception] = None


def parse_date_input(value) -> Optional[str]:
    """Validate a user-entered date; blank clears the field.

    Unlike store records, user input is never truncated: the whole string has
    to be a calendar date.
    """
    if value is None or isinstance(value, dt.date):
        return normalize_date(value)
    text = str(value).strip()
    if not text:
        return None
    try:
        return dt.date.fromisoformat(text).isoformat()
    except ValueError as e:
        raise ValidationError(f"invalid date {value!r}, expected YYYY-MM-DD") from e


class RollupCoordinator:
    def __init__(self, store, index: Optional[MembershipIndex] = None,
                 membership_retries: int = config.MEMBERSHIP_INSERT_RETRIES):
        self.store = store
        self.index = index or MembershipIndex(store)
        self.membership_retries = membership_retries
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    # ---------- locking / recompute ----------
    def _milestone_lock(self, milestone_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(milestone_id, threading.Lock())

    def _ensure_scope(self, project_id: str) -> None:
        if self.index.age(project_id) is None:
            self.index.rebuild(project_id)

    def _recompute(self, milestone_id: str) -> Tuple[Milestone, bool]:
        """Re-derive and persist one milestone's dates. Returns (milestone, changed)."""
        with self._milestone_lock(milestone_id):
            milestone = self.store.get_milestone(milestone_id)
            member_ids = self.index.tasks_of(milestone_id)
            members = [t for t in self.store.load_tasks(milestone.project_id) if t.id in member_ids]
            dates = aggregate(members)
            if dates == milestone.dates:
                logger.debug("milestone %s already consistent", milestone_id)
                return milestone, False
            saved = self.store.upsert_milestone(milestone.with_dates(dates))
            logger.info("milestone %s recomputed from %d tasks: %s",
                        milestone_id, len(members), dates.as_tuple())
            return saved, True

    def _recompute_reporting(self, milestone_id: str, result: RollupResult) -> RollupResult:
        try:
            result.milestone, _ = self._recompute(milestone_id)
        except (StoreError, NotFoundError) as e:
            logger.error("milestone %s left stale: %s", milestone_id, e)
            result.recompute_error = e
        return result

    # ---------- task mutations ----------
    def on_task_field_changed(self, task_id: str, field: str, value) -> RollupResult:
        if field not in DATE_FIELDS:
            raise ValidationError(f"{field!r} is not a task date field")
        value = parse_date_input(value)
        task = self.store.get_task(task_id)
        self._ensure_scope(task.project_id)
        owner = self.index.milestone_of(task_id)

        # only the edited field is sent, so concurrent edits of other fields survive;
        # a failure here propagates with nothing written
        saved = self.store.patch_task(task_id, **{field: value})
        result = RollupResult(task=saved)
        if owner is None:
            return result
        return self._recompute_reporting(owner, result)

    def on_task_added(self, project_id: str, name: Optional[str] = None) -> Task:
        if name is None:
            name = f"Task {len(self.store.load_tasks(project_id)) + 1}"
        task = self.store.upsert_task(Task(id="", project_id=project_id, name=name))
        logger.info("task %s added to project %s", task.id, project_id)
        return task

    def on_task_removed(self, task_id: str) -> RollupResult:
        task = self.store.get_task(task_id)
        self._ensure_scope(task.project_id)
        owner = self.index.milestone_of(task_id)

        detached = self.store.delete_membership(task_id)
        # the store knows the owners even when the index is stale
        owners = {l.milestone_id for l in detached}
        if owner is not None:
            owners.add(owner)
        delete_error = None
        try:
            self.store.delete_task(task_id)
        except StoreError as e:
            # the task is already detached; the milestone still has to drop it
            delete_error = e
        self.index.rebuild(task.project_id)

        result = RollupResult(task=task)
        for milestone_id in sorted(owners):
            self._recompute_reporting(milestone_id, result)
        if delete_error is not None:
            raise delete_error
        logger.info("task %s removed", task_id)
        return result

    # ---------- milestone mutations ----------
    def on_milestone_created(self, project_id: str, name: str, task_ids: Iterable[str]) -> Milestone:
        task_ids = set(task_ids)
        if not name or not name.strip():
            raise ValidationError("Please enter a milestone name")
        if not task_ids:
            raise ValidationError("Please select at least one task for the milestone")

        tasks = {t.id: t for t in self.store.load_tasks(project_id)}
        missing = task_ids - tasks.keys()
        if missing:
            raise NotFoundError(f"tasks not in project {project_id}: {sorted(missing)}")
        self.index.rebuild(project_id)
        for task_id in sorted(task_ids):
            owners = self.index.milestones_of(task_id)
            if owners:
                raise IntegrityError(f"task {task_id} already belongs to milestone {sorted(owners)[0]}")

        dates = aggregate(tasks[t] for t in task_ids)
        milestone = self.store.upsert_milestone(
            Milestone(id="", project_id=project_id, name=name.strip()).with_dates(dates))
        links = [MembershipLink(milestone.id, t) for t in sorted(task_ids)]
        self._link_or_rollback(milestone, links)
        self.index.rebuild(project_id)

        # members may have been edited between the first aggregate and the links landing
        milestone, _ = self._recompute(milestone.id)
        logger.info("milestone %s created with %d tasks", milestone.id, len(links))
        return milestone

    def _link_or_rollback(self, milestone: Milestone, links: List[MembershipLink]) -> None:
        last_error = None
        for attempt in range(1 + self.membership_retries):
            try:
                self.store.insert_membership(links)
                return
            except NotFoundError as e:
                # a selected task vanished; retrying cannot help
                last_error = e
                logger.warning("linking tasks to milestone %s failed: %s", milestone.id, e)
                break
            except StoreError as e:
                last_error = e
                logger.warning("linking tasks to milestone %s failed (attempt %d): %s",
                               milestone.id, attempt + 1, e)
        try:
            self.store.delete_milestone(milestone.id)
        except (StoreError, NotFoundError) as e:
            logger.error("rollback of milestone %s failed, reconcile project %s: %s",
                         milestone.id, milestone.project_id, e)
        raise last_error

    def on_milestone_deleted(self, milestone_id: str) -> None:
        milestone = self.store.get_milestone(milestone_id)
        with self._milestone_lock(milestone_id):
            self.store.delete_milestone(milestone_id)
        with self._locks_guard:
            self._locks.pop(milestone_id, None)
        self.index.rebuild(milestone.project_id)
        logger.info("milestone %s deleted, its tasks are unassigned", milestone_id)

    # ---------- reconciliation ----------
    def reconcile(self, project_id: str) -> List[str]:
        """Rewrite every stale milestone of the project; returns the ids rewritten."""
        self.index.rebuild(project_id)
        rewritten = []
        for milestone in self.store.load_milestones(project_id):
            _, changed = self._recompute(milestone.id)
            if changed:
                rewritten.append(milestone.id)
        if rewritten:
            logger.info("reconciled project %s: %d milestones rewritten", project_id, len(rewritten))
        return rewritten
