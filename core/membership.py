"""Milestone <-> task membership cache.

The authoritative links live in the store's ``milestone_tasks`` collection;
this index is a per-project snapshot of them, replaced wholesale by
``rebuild``. Between a store mutation and the next rebuild the index may be
stale, so callers that change membership rebuild the affected project right
after.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Iterable, List, Optional

from core.exceptions import IntegrityError
from core.models import MembershipLink

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Scope:
    by_milestone: Dict[str, FrozenSet[str]] = field(default_factory=dict)
    by_task: Dict[str, FrozenSet[str]] = field(default_factory=dict)
    built_at: float = 0.0


def dedupe_links(links: Iterable[MembershipLink]) -> List[MembershipLink]:
    """Drop repeated (milestone, task) pairs, keeping first-seen order."""
    seen = set()
    unique = []
    for link in links:
        key = (link.milestone_id, link.task_id)
        if key in seen:
            continue
        seen.add(key)
        unique.append(link)
    return unique


def _build_scope(links: Iterable[MembershipLink]) -> _Scope:
    by_milestone: Dict[str, set] = {}
    by_task: Dict[str, set] = {}
    for link in dedupe_links(links):
        by_milestone.setdefault(link.milestone_id, set()).add(link.task_id)
        by_task.setdefault(link.task_id, set()).add(link.milestone_id)
    return _Scope(
        by_milestone={k: frozenset(v) for k, v in by_milestone.items()},
        by_task={k: frozenset(v) for k, v in by_task.items()},
        built_at=time.monotonic(),
    )


class MembershipIndex:
    def __init__(self, store):
        self.store = store
        self._lock = threading.Lock()
        self._scopes: Dict[str, _Scope] = {}
        self._rebuild_locks: Dict[str, threading.Lock] = {}

    # ---------- writes ----------
    def _rebuild_lock(self, project_id: str) -> threading.Lock:
        with self._lock:
            return self._rebuild_locks.setdefault(project_id, threading.Lock())

    def rebuild(self, project_id: str) -> None:
        """Reload the project's links from the store and swap them in.

        Rebuilds of one project run one at a time, so the scope left behind
        always comes from the most recent store read.
        """
        with self._rebuild_lock(project_id):
            task_ids = {t.id for t in self.store.load_tasks(project_id)}
            links = self.store.load_membership(task_ids) if task_ids else []
            self.replace(project_id, links)

    def replace(self, project_id: str, links: Iterable[MembershipLink]) -> None:
        scope = _build_scope(links)
        # readers hold a reference to the old scope or the new one, never a mix
        with self._lock:
            self._scopes[project_id] = scope
        logger.debug("membership index for project %s: %d milestones, %d tasks",
                     project_id, len(scope.by_milestone), len(scope.by_task))

    def forget(self, project_id: str) -> None:
        with self._lock:
            self._scopes.pop(project_id, None)

    # ---------- reads ----------
    def _snapshot(self) -> List[_Scope]:
        with self._lock:
            return list(self._scopes.values())

    def tasks_of(self, milestone_id: str) -> FrozenSet[str]:
        for scope in self._snapshot():
            if milestone_id in scope.by_milestone:
                return scope.by_milestone[milestone_id]
        return frozenset()

    def milestones_of(self, task_id: str) -> FrozenSet[str]:
        owners: FrozenSet[str] = frozenset()
        for scope in self._snapshot():
            owners = owners | scope.by_task.get(task_id, frozenset())
        return owners

    def milestone_of(self, task_id: str) -> Optional[str]:
        owners = self.milestones_of(task_id)
        if len(owners) > 1:
            raise IntegrityError(
                f"task {task_id} is linked to {len(owners)} milestones: {sorted(owners)}")
        return next(iter(owners), None)

    def age(self, project_id: str) -> Optional[float]:
        """Seconds since the project's scope was last rebuilt, None if never."""
        with self._lock:
            scope = self._scopes.get(project_id)
        if scope is None:
            return None
        return time.monotonic() - scope.built_at
