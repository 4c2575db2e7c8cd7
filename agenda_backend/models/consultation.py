"""Convenio consultation model definitions."""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Integer, Numeric
from agenda_backend.core.clock import utcnow
from agenda_backend.database import Base


class Consultation(Base):
    """A billable consultation for a member client or one of their dependents."""
    __tablename__ = "consultations"
    __table_args__ = (
        CheckConstraint(
            "(client_id IS NULL) <> (dependent_id IS NULL)",
            name="ck_consultations_single_patient",
        ),
    )

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    dependent_id = Column(Integer, ForeignKey("dependents.id"), nullable=True)
    service_id = Column(Integer, nullable=False)
    value = Column(Numeric(10, 2), nullable=False)
    date = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=utcnow)
