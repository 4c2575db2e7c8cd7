"""Agenda subscription and payment model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String
from agenda_backend.core.clock import utcnow
from agenda_backend.database import Base


class AgendaSubscription(Base):
    """Current time-boxed agenda grant of a professional, superseded in place."""
    __tablename__ = "agenda_subscriptions"

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    status = Column(String, nullable=False, default="none")  # none/pending/active/expired
    expires_at = Column(DateTime, nullable=True)
    last_payment_id = Column(Integer, ForeignKey("agenda_payments.id"), nullable=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)


class AgendaPayment(Base):
    """A payment intent issued at the gateway for an agenda subscription."""
    __tablename__ = "agenda_payments"

    id = Column(Integer, primary_key=True)
    professional_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String, nullable=False, default="pending")  # pending/paid
    gateway_intent_id = Column(String, unique=True, nullable=False)
    gateway_payment_id = Column(String, unique=True, nullable=True)
    external_reference = Column(String, unique=True, nullable=False)
    paid_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)  # access granted by this payment
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)
