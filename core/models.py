import datetime as dt
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple

DATE_FIELDS = (
    "planned_start_date",
    "planned_end_date",
    "actual_start_date",
    "actual_end_date",
)


def normalize_date(value: Any) -> Optional[str]:
    """Reduce a store/user date value to ``YYYY-MM-DD`` or None.

    PocketBase date fields come back as ``"2024-01-01 00:00:00.000Z"``; the
    empty string is its representation of an unset date.
    """
    if value is None:
        return None
    if isinstance(value, dt.datetime):
        return value.date().isoformat()
    if isinstance(value, dt.date):
        return value.isoformat()
    text = str(value).strip()
    if not text:
        return None
    return text[:10]


@dataclass(frozen=True)
class DateTuple:
    planned_start_date: Optional[str] = None
    planned_end_date: Optional[str] = None
    actual_start_date: Optional[str] = None
    actual_end_date: Optional[str] = None

    def as_tuple(self) -> Tuple[Optional[str], ...]:
        return (self.planned_start_date, self.planned_end_date,
                self.actual_start_date, self.actual_end_date)

    def is_empty(self) -> bool:
        return all(v is None for v in self.as_tuple())

    def to_record(self) -> Dict[str, Any]:
        # PocketBase clears a date field with ""
        return {name: (getattr(self, name) or "") for name in DATE_FIELDS}


@dataclass
class Project:
    id: str
    name: str
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    created_at: Optional[str] = None

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Project":
        return cls(
            id=data["id"],
            name=data.get("name", ""),
            start_date=normalize_date(data.get("start_date")),
            end_date=normalize_date(data.get("end_date")),
            created_at=data.get("created"),
        )


@dataclass
class Task:
    id: str
    project_id: str
    name: str
    planned_start_date: Optional[str] = None
    planned_end_date: Optional[str] = None
    actual_start_date: Optional[str] = None
    actual_end_date: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def dates(self) -> DateTuple:
        return DateTuple(self.planned_start_date, self.planned_end_date,
                         self.actual_start_date, self.actual_end_date)

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Task":
        return cls(
            id=data["id"],
            project_id=data.get("project", ""),
            name=data.get("name", ""),
            created_at=data.get("created"),
            **{name: normalize_date(data.get(name)) for name in DATE_FIELDS},
        )

    def to_record(self) -> Dict[str, Any]:
        payload = {"project": self.project_id, "name": self.name}
        payload.update(self.dates.to_record())
        return payload


@dataclass
class Milestone:
    """Milestone whose four dates are derived from its member tasks."""
    id: str
    project_id: str
    name: str
    planned_start_date: Optional[str] = None
    planned_end_date: Optional[str] = None
    actual_start_date: Optional[str] = None
    actual_end_date: Optional[str] = None
    created_at: Optional[str] = None

    @property
    def dates(self) -> DateTuple:
        return DateTuple(self.planned_start_date, self.planned_end_date,
                         self.actual_start_date, self.actual_end_date)

    def with_dates(self, dates: DateTuple) -> "Milestone":
        return replace(self, **{name: getattr(dates, name) for name in DATE_FIELDS})

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "Milestone":
        return cls(
            id=data["id"],
            project_id=data.get("project", ""),
            name=data.get("name", ""),
            created_at=data.get("created"),
            **{name: normalize_date(data.get(name)) for name in DATE_FIELDS},
        )

    def to_record(self) -> Dict[str, Any]:
        payload = {"project": self.project_id, "name": self.name}
        payload.update(self.dates.to_record())
        return payload


@dataclass(frozen=True)
class MembershipLink:
    milestone_id: str
    task_id: str

    @classmethod
    def from_record(cls, data: Dict[str, Any]) -> "MembershipLink":
        return cls(milestone_id=data["milestone"], task_id=data["task"])

    def to_record(self) -> Dict[str, Any]:
        return {"milestone": self.milestone_id, "task": self.task_id}
