from __future__ import annotations
import logging
import requests
from typing import List, Dict, Any, Iterable, Optional
from core import config
from core.exceptions import StoreError, NotFoundError
from core.models import Project, Task, Milestone, MembershipLink

logger = logging.getLogger(__name__)

# ids per "task = ... || task = ..." filter; keeps the query string short
FILTER_CHUNK = 50


def _any_of(field: str, values: Iterable[str]) -> str:
    return " || ".join(f'{field} = "{v}"' for v in values)


class PocketBaseClient:
    """Project/task/milestone store backed by a PocketBase server.

    Collections: ``projects``, ``tasks`` (relation ``project``),
    ``milestones`` (relation ``project``) and ``milestone_tasks``
    (relations ``milestone`` and ``task``).
    """

    def __init__(self, base_url: str, timeout: float = config.REQUEST_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.session = requests.Session()
        self.timeout = timeout
        self.token: Optional[str] = ""
        self.user_id: Optional[str] = ""

    # ---------- http ----------
    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error("%s %s failed: %s", method, path, e)
            raise StoreError(f"{method} {path}: {e}") from e
        if r.status_code == 404:
            raise NotFoundError(f"{method} {path}: not found")
        if not r.ok:
            logger.error("%s %s -> %s %s", method, path, r.status_code, r.text)
            raise StoreError(f"{method} {path}: {r.status_code} {r.text}", r.status_code)
        return r

    def _records(self, collection: str) -> str:
        return f"/api/collections/{collection}/records"

    def _list(self, collection: str, filt: str, sort: Optional[str] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"perPage": config.PER_PAGE, "page": 1}
        if filt:
            params["filter"] = filt
        if sort:
            params["sort"] = sort
        items: List[Dict[str, Any]] = []
        while True:
            data = self._request("GET", self._records(collection), params=params).json()
            items.extend(data.get("items", []))
            if params["page"] >= data.get("totalPages", 1):
                return items
            params["page"] += 1

    # ---------- auth ----------
    def login(self, identity: str, password: str) -> bool:
        try:
            r = self._request("POST", "/api/collections/users/auth-with-password",
                              json={"identity": identity, "password": password})
        except NotFoundError as e:
            raise StoreError(f"Login failed: {e}") from e
        data = r.json()
        self.token = data.get("token")
        self.user_id = data.get("record", {}).get("id")
        if not self.token or not self.user_id:
            raise StoreError("Missing token or user id in login response")
        self.session.headers.update({"Authorization": f"Bearer {self.token}"})
        return True

    # ---------- projects ----------
    def list_projects(self) -> List[Project]:
        items = self._list("projects", "", sort="-created")
        return [Project.from_record(i) for i in items]

    def create_project(self, *, name: str, start_date: str, end_date: str) -> Project:
        payload = {"name": name, "start_date": start_date, "end_date": end_date}
        r = self._request("POST", self._records("projects"), json=payload)
        return Project.from_record(r.json())

    # ---------- tasks ----------
    def load_tasks(self, project_id: str) -> List[Task]:
        items = self._list("tasks", f'project = "{project_id}"', sort="created")
        return [Task.from_record(i) for i in items]

    def get_task(self, task_id: str) -> Task:
        return Task.from_record(self._request("GET", f"{self._records('tasks')}/{task_id}").json())

    def upsert_task(self, task: Task) -> Task:
        if task.id:
            r = self._request("PATCH", f"{self._records('tasks')}/{task.id}", json=task.to_record())
        else:
            r = self._request("POST", self._records("tasks"), json=task.to_record())
        return Task.from_record(r.json())

    def patch_task(self, task_id: str, **fields) -> Task:
        """Update only the given fields; PocketBase clears a date with ''."""
        payload = {k: ("" if v is None else v) for k, v in fields.items()}
        r = self._request("PATCH", f"{self._records('tasks')}/{task_id}", json=payload)
        return Task.from_record(r.json())

    def delete_task(self, task_id: str) -> None:
        self._request("DELETE", f"{self._records('tasks')}/{task_id}")

    # ---------- milestones ----------
    def load_milestones(self, project_id: str) -> List[Milestone]:
        items = self._list("milestones", f'project = "{project_id}"', sort="created")
        return [Milestone.from_record(i) for i in items]

    def get_milestone(self, milestone_id: str) -> Milestone:
        r = self._request("GET", f"{self._records('milestones')}/{milestone_id}")
        return Milestone.from_record(r.json())

    def upsert_milestone(self, milestone: Milestone) -> Milestone:
        if milestone.id:
            r = self._request("PATCH", f"{self._records('milestones')}/{milestone.id}",
                              json=milestone.to_record())
        else:
            r = self._request("POST", self._records("milestones"), json=milestone.to_record())
        return Milestone.from_record(r.json())

    def delete_milestone(self, milestone_id: str) -> None:
        # links go first so no milestone_tasks row outlives its milestone
        links = self._list("milestone_tasks", f'milestone = "{milestone_id}"')
        self._batch([{"method": "DELETE", "url": f"{self._records('milestone_tasks')}/{l['id']}"}
                     for l in links])
        self._request("DELETE", f"{self._records('milestones')}/{milestone_id}")

    # ---------- membership ----------
    def load_membership(self, task_ids: Iterable[str]) -> List[MembershipLink]:
        ids = sorted(set(task_ids))
        links: List[MembershipLink] = []
        for i in range(0, len(ids), FILTER_CHUNK):
            chunk = ids[i:i + FILTER_CHUNK]
            items = self._list("milestone_tasks", _any_of("task", chunk))
            links.extend(MembershipLink.from_record(item) for item in items)
        return links

    def insert_membership(self, links: Iterable[MembershipLink]) -> None:
        """Create all links in one transactional batch request."""
        self._batch([{"method": "POST", "url": self._records("milestone_tasks"), "body": l.to_record()}
                     for l in links])

    def delete_membership(self, task_id: str) -> List[MembershipLink]:
        """Remove every link of ``task_id`` and return what was removed."""
        items = self._list("milestone_tasks", f'task = "{task_id}"')
        self._batch([{"method": "DELETE", "url": f"{self._records('milestone_tasks')}/{i['id']}"}
                     for i in items])
        return [MembershipLink.from_record(i) for i in items]

    def _batch(self, requests_: List[Dict[str, Any]]) -> None:
        if not requests_:
            return
        self._request("POST", "/api/batch", json={"requests": requests_})
