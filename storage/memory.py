from __future__ import annotations
import datetime as dt
import threading
import time
import uuid
from dataclasses import replace
from typing import Dict, Iterable, List

from core.exceptions import NotFoundError
from core.models import Project, Task, Milestone, MembershipLink


def _new_id() -> str:
    return uuid.uuid4().hex[:15]


def _now() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


class InMemoryStore:
    """Process-local store with the same interface as PocketBaseClient.

    ``latency`` (seconds) is slept on every call, to mimic a remote round trip.
    Returned objects are copies; mutating them does not touch stored state.
    """

    def __init__(self, latency: float = 0.0):
        self.latency = latency
        self._lock = threading.Lock()
        self.projects: Dict[str, Project] = {}
        self.tasks: Dict[str, Task] = {}
        self.milestones: Dict[str, Milestone] = {}
        self.links: List[MembershipLink] = []

    def _wait(self):
        if self.latency:
            time.sleep(self.latency)

    # ---------- projects ----------
    def list_projects(self) -> List[Project]:
        self._wait()
        with self._lock:
            return sorted((replace(p) for p in self.projects.values()),
                          key=lambda p: p.created_at or "", reverse=True)

    def create_project(self, *, name: str, start_date: str, end_date: str) -> Project:
        self._wait()
        project = Project(id=_new_id(), name=name, start_date=start_date,
                          end_date=end_date, created_at=_now())
        with self._lock:
            self.projects[project.id] = project
        return replace(project)

    # ---------- tasks ----------
    def load_tasks(self, project_id: str) -> List[Task]:
        self._wait()
        with self._lock:
            return [replace(t) for t in self.tasks.values() if t.project_id == project_id]

    def get_task(self, task_id: str) -> Task:
        self._wait()
        with self._lock:
            if task_id not in self.tasks:
                raise NotFoundError(f"task {task_id} not found")
            return replace(self.tasks[task_id])

    def upsert_task(self, task: Task) -> Task:
        self._wait()
        with self._lock:
            if task.id and task.id not in self.tasks:
                raise NotFoundError(f"task {task.id} not found")
            stored = replace(task, id=task.id or _new_id(), created_at=task.created_at or _now())
            self.tasks[stored.id] = stored
            return replace(stored)

    def patch_task(self, task_id: str, **fields) -> Task:
        self._wait()
        with self._lock:
            if task_id not in self.tasks:
                raise NotFoundError(f"task {task_id} not found")
            # read-modify-write under the lock, like a single-row UPDATE
            self.tasks[task_id] = replace(self.tasks[task_id], **fields)
            return replace(self.tasks[task_id])

    def delete_task(self, task_id: str) -> None:
        self._wait()
        with self._lock:
            if self.tasks.pop(task_id, None) is None:
                raise NotFoundError(f"task {task_id} not found")

    # ---------- milestones ----------
    def load_milestones(self, project_id: str) -> List[Milestone]:
        self._wait()
        with self._lock:
            return [replace(m) for m in self.milestones.values() if m.project_id == project_id]

    def get_milestone(self, milestone_id: str) -> Milestone:
        self._wait()
        with self._lock:
            if milestone_id not in self.milestones:
                raise NotFoundError(f"milestone {milestone_id} not found")
            return replace(self.milestones[milestone_id])

    def upsert_milestone(self, milestone: Milestone) -> Milestone:
        self._wait()
        with self._lock:
            if milestone.id and milestone.id not in self.milestones:
                raise NotFoundError(f"milestone {milestone.id} not found")
            stored = replace(milestone, id=milestone.id or _new_id(),
                             created_at=milestone.created_at or _now())
            self.milestones[stored.id] = stored
            return replace(stored)

    def delete_milestone(self, milestone_id: str) -> None:
        self._wait()
        with self._lock:
            if self.milestones.pop(milestone_id, None) is None:
                raise NotFoundError(f"milestone {milestone_id} not found")
            self.links = [l for l in self.links if l.milestone_id != milestone_id]

    # ---------- membership ----------
    def load_membership(self, task_ids: Iterable[str]) -> List[MembershipLink]:
        self._wait()
        wanted = set(task_ids)
        with self._lock:
            return [l for l in self.links if l.task_id in wanted]

    def insert_membership(self, links: Iterable[MembershipLink]) -> None:
        self._wait()
        links = list(links)
        with self._lock:
            missing = [l for l in links if l.milestone_id not in self.milestones or l.task_id not in self.tasks]
            if missing:
                raise NotFoundError(f"cannot link unknown records: {missing}")
            self.links.extend(links)

    def delete_membership(self, task_id: str) -> List[MembershipLink]:
        self._wait()
        with self._lock:
            removed = [l for l in self.links if l.task_id == task_id]
            self.links = [l for l in self.links if l.task_id != task_id]
            return removed
