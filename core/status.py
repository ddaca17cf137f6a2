import datetime as dt
from enum import Enum
from typing import Optional, Union

from core.models import normalize_date

DateLike = Union[str, dt.date, None]


class Status(str, Enum):
    NOT_STARTED = "Not Started"
    STARTED = "Started"
    IN_PROGRESS = "In Progress"
    COMPLETED = "Completed"


def classify(planned_start: DateLike, planned_end: DateLike, actual_start: DateLike,
             actual_end: DateLike, today: Optional[dt.date] = None) -> Status:
    """Lifecycle state of a date tuple; the first matching rule wins.

    ``planned_end`` takes no part in the decision. A milestone counts as
    completed as soon as its aggregate carries an actual end, even if some
    member task is still open.
    """
    if normalize_date(actual_end):
        return Status.COMPLETED
    if normalize_date(actual_start):
        return Status.IN_PROGRESS
    start = normalize_date(planned_start)
    if today is None:
        today = dt.date.today()
    if start and start <= today.isoformat():
        return Status.STARTED
    return Status.NOT_STARTED
