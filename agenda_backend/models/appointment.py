"""Appointment model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship
from agenda_backend.core.clock import utcnow
from agenda_backend.database import Base
from agenda_backend.models.user import User

APPOINTMENT_STATUSES = ("scheduled", "confirmed", "in_progress", "completed", "cancelled")
CANCELLED_STATUS = "cancelled"


class Appointment(Base):
    """Represents a scheduled appointment."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointments_professional_date", "professional_id", "date"),
        # At most one live booking per professional and timestamp.
        Index(
            "uq_appointments_active_slot",
            "professional_id",
            "date",
            unique=True,
            postgresql_where=text("status <> 'cancelled'"),
            sqlite_where=text("status <> 'cancelled'"),
        ),
    )

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    date = Column(DateTime, nullable=False)
    status = Column(String, nullable=False, default="scheduled")
    notes = Column(String)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    patient = relationship(User, foreign_keys=[patient_id])


class BlockedTime(Base):
    """A timestamp the professional has closed for bookings."""
    __tablename__ = "blocked_times"

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(DateTime, nullable=False)
    reason = Column(String)
    created_at = Column(DateTime, default=utcnow)
