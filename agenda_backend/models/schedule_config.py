"""Weekly schedule template per professional."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Time
from agenda_backend.core.clock import utcnow
from agenda_backend.database import Base
from agenda_backend.scheduling.slots import WEEKDAYS, WeeklyTemplate

DEFAULT_SLOT_DURATION_MINUTES = 30


class ScheduleConfig(Base):
    """Working window for each weekday, slot size and an optional daily break."""
    __tablename__ = "professional_schedules"

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    monday_start = Column(Time)
    monday_end = Column(Time)
    tuesday_start = Column(Time)
    tuesday_end = Column(Time)
    wednesday_start = Column(Time)
    wednesday_end = Column(Time)
    thursday_start = Column(Time)
    thursday_end = Column(Time)
    friday_start = Column(Time)
    friday_end = Column(Time)
    saturday_start = Column(Time)
    saturday_end = Column(Time)
    sunday_start = Column(Time)
    sunday_end = Column(Time)
    slot_duration = Column(Integer, nullable=False, default=DEFAULT_SLOT_DURATION_MINUTES)
    break_start = Column(Time)
    break_end = Column(Time)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    def to_template(self) -> WeeklyTemplate:
        return WeeklyTemplate(
            windows=tuple(
                (getattr(self, f"{day}_start"), getattr(self, f"{day}_end")) for day in WEEKDAYS
            ),
            slot_duration=self.slot_duration or DEFAULT_SLOT_DURATION_MINUTES,
            break_start=self.break_start,
            break_end=self.break_end,
        )
