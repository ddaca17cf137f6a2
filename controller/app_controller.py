import datetime as dt
from typing import List, Dict, Any, Iterable, Optional
from core.exceptions import ValidationError
from core.models import Project, Task, Milestone
from core.status import Status, classify
from services.rollup_service import RollupCoordinator, RollupResult, parse_date_input


def _unique_by_id(items):
    """First record per id, keeping order (reloads can return repeats)."""
    seen = {}
    for item in items:
        seen.setdefault(item.id, item)
    return list(seen.values())


class AppController:
    """Coordinates the presentation layer with the store and the roll-up service."""
    def __init__(self, client, rollup: Optional[RollupCoordinator] = None):
        self.client = client
        self.rollup = rollup or RollupCoordinator(client)

    # ---- projects ----
    def load_projects(self) -> List[Project]:
        return _unique_by_id(self.client.list_projects())

    def create_project(self, name: str, start_date: str, end_date: str) -> Project:
        if not name or not name.strip() or not start_date or not end_date:
            raise ValidationError("Please fill in all project fields")
        return self.client.create_project(name=name.strip(),
                                          start_date=parse_date_input(start_date),
                                          end_date=parse_date_input(end_date))

    # ---- tasks ----
    def list_tasks(self, project_id: str) -> List[Task]:
        return _unique_by_id(self.client.load_tasks(project_id))

    def add_task(self, project_id: str) -> Task:
        return self.rollup.on_task_added(project_id)

    def update_task(self, task_id: str, field: str, value: Optional[str]) -> RollupResult:
        """Edit one date of a task; its milestone follows."""
        return self.rollup.on_task_field_changed(task_id, field, value)

    def rename_task(self, task_id: str, new_name: str) -> Task:
        if not new_name or not new_name.strip():
            raise ValidationError("Task name cannot be blank")
        return self.client.patch_task(task_id, name=new_name.strip())

    def delete_task(self, task_id: str) -> RollupResult:
        return self.rollup.on_task_removed(task_id)

    def task_status(self, task_id: str, today: Optional[dt.date] = None) -> Status:
        task = self.client.get_task(task_id)
        return classify(*task.dates.as_tuple(), today=today)

    # ---- milestones ----
    def list_milestones(self, project_id: str) -> List[Milestone]:
        return _unique_by_id(self.client.load_milestones(project_id))

    def create_milestone(self, project_id: str, name: str, task_ids: Iterable[str]) -> Milestone:
        return self.rollup.on_milestone_created(project_id, name, task_ids)

    def delete_milestone(self, milestone_id: str) -> None:
        self.rollup.on_milestone_deleted(milestone_id)

    def milestone_status(self, milestone_id: str, today: Optional[dt.date] = None) -> Status:
        milestone = self.client.get_milestone(milestone_id)
        return classify(*milestone.dates.as_tuple(), today=today)

    def milestone_rows(self, project_id: str, today: Optional[dt.date] = None) -> List[Dict[str, Any]]:
        """Milestones of a project with status and member ids, ready for display."""
        self.rollup.index.rebuild(project_id)
        rows = []
        for m in self.list_milestones(project_id):
            rows.append({
                "milestone": m,
                "status": classify(*m.dates.as_tuple(), today=today),
                "task_ids": sorted(self.rollup.index.tasks_of(m.id)),
            })
        return rows

    def reconcile(self, project_id: str) -> List[str]:
        return self.rollup.reconcile(project_id)
