"""Turn a weekly schedule template into candidate slot start times.

Nothing here touches the database: occupancy is layered on top by the
callers, so the same template and range always produce the same slots.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterator

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

Window = tuple[time | None, time | None]


@dataclass(frozen=True)
class WeeklyTemplate:
    """Working windows indexed by ``date.weekday()`` (Monday is 0)."""

    windows: tuple[Window, ...]
    slot_duration: int = 30
    break_start: time | None = None
    break_end: time | None = None

    def __post_init__(self) -> None:
        if len(self.windows) != len(WEEKDAYS):
            raise ValueError("A weekly template needs exactly seven windows.")
        if self.slot_duration <= 0:
            raise ValueError("Slot duration must be a positive number of minutes.")

    def window_for(self, day: date) -> Window:
        return self.windows[day.weekday()]

    def is_break(self, slot_time: time) -> bool:
        if self.break_start is None or self.break_end is None:
            return False
        return self.break_start <= slot_time < self.break_end


def iterate_day_slots(template: WeeklyTemplate, day: date) -> Iterator[datetime]:
    start, end = template.window_for(day)
    if start is None or end is None:
        return

    current = datetime.combine(day, start)
    day_end = datetime.combine(day, end)
    step = timedelta(minutes=template.slot_duration)

    while current < day_end:
        if not template.is_break(current.time()):
            yield current
        current += step


class SlotSequence:
    """Lazy, restartable sequence of slot starts over a closed date range."""

    def __init__(self, template: WeeklyTemplate, start_date: date, end_date: date) -> None:
        self.template = template
        self.start_date = start_date
        self.end_date = end_date

    def __iter__(self) -> Iterator[datetime]:
        current_day = self.start_date
        while current_day <= self.end_date:
            yield from iterate_day_slots(self.template, current_day)
            current_day += timedelta(days=1)

    def __repr__(self) -> str:
        return f"SlotSequence({self.start_date.isoformat()}..{self.end_date.isoformat()})"


def generate_slots(template: WeeklyTemplate, start_date: date, end_date: date) -> SlotSequence:
    return SlotSequence(template, start_date, end_date)
