from typing import Iterable, Optional

from core.models import DateTuple

# field -> reduction; starts take the earliest date, ends the latest
REDUCERS = {
    "planned_start_date": min,
    "planned_end_date": max,
    "actual_start_date": min,
    "actual_end_date": max,
}


def _reduce(values, reducer) -> Optional[str]:
    present = [v for v in values if v]
    if not present:
        return None
    return reducer(present)


def aggregate(tasks: Iterable) -> DateTuple:
    """Roll the dates of ``tasks`` up into one milestone date tuple.

    Accepts anything exposing the four ``*_date`` attributes (tasks,
    milestones, DateTuples). ISO ``YYYY-MM-DD`` strings order the same as the
    calendar dates they name, so plain min/max suffices. An empty input
    yields an all-absent tuple.
    """
    tasks = list(tasks)
    return DateTuple(**{
        name: _reduce((getattr(t, name) for t in tasks), reducer)
        for name, reducer in REDUCERS.items()
    })
