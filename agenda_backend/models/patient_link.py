"""Professional patient roster."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from agenda_backend.core.clock import utcnow
from agenda_backend.database import Base


class ProfessionalPatient(Base):
    """Links a patient to the professional allowed to book them."""
    __tablename__ = "professional_patients"
    __table_args__ = (UniqueConstraint("professional_id", "patient_id", name="uq_professional_patient"),)

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    notes = Column(String)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
