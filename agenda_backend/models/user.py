"""User model definitions."""

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String
from agenda_backend.database import Base


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String)
    email = Column(String, unique=True, index=True)
    roles = Column(JSON, default=list)  # client/professional/clinic/admin
    # Client convenio membership, distinct from the agenda subscription.
    subscription_status = Column(String, default="pending")
    subscription_expiry = Column(DateTime, nullable=True)


class Dependent(Base):
    """A dependent covered by a client's membership."""
    __tablename__ = "dependents"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    name = Column(String)
