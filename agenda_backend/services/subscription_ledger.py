"""Subscription ledger - one current agenda grant per professional"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agenda_backend.core.clock import utcnow
from agenda_backend.core.errors import TransientStorageError
from agenda_backend.database import storage_errors
from agenda_backend.models.subscription import AgendaPayment, AgendaSubscription
from agenda_backend.scheduling import access_gate

logger = logging.getLogger(__name__)

PENDING_STATUS = 'pending'


@dataclass(frozen=True)
class SubscriptionStatus:
    status: str
    expires_at: datetime | None
    days_remaining: int
    can_use_agenda: bool
    last_payment_at: datetime | None = None


class SubscriptionLedger:
    def __init__(self, db: Session):
        self.db = db

    def get_record(self, professional_id: int, for_update: bool = False) -> AgendaSubscription | None:
        query = self.db.query(AgendaSubscription).filter(
            AgendaSubscription.professional_id == professional_id
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def can_use_agenda(self, professional_id: int, now: datetime | None = None) -> bool:
        with storage_errors(self.db):
            return access_gate.can_use_agenda(self.get_record(professional_id), now)

    def get_status(self, professional_id: int, now: datetime | None = None) -> SubscriptionStatus:
        """Never fails for a professional without a record; reports ``none`` instead."""
        now = now or utcnow()
        with storage_errors(self.db):
            subscription = self.get_record(professional_id)
            last_payment_at = None
            if subscription is not None and subscription.last_payment_id is not None:
                payment = self.db.get(AgendaPayment, subscription.last_payment_id)
                last_payment_at = payment.paid_at if payment else None

        return SubscriptionStatus(
            status=access_gate.effective_status(subscription, now),
            expires_at=subscription.expires_at if subscription else None,
            days_remaining=access_gate.days_remaining(subscription, now),
            can_use_agenda=access_gate.can_use_agenda(subscription, now),
            last_payment_at=last_payment_at,
        )

    def activate(self, professional_id: int, expires_at: datetime, payment_id: int | None) -> AgendaSubscription:
        """Upsert the grant as active until ``expires_at``.

        Last write wins: remaining days of a still-valid grant are not added.
        Does not commit; the caller owns the transaction.
        """
        subscription = self.get_record(professional_id, for_update=True)
        if subscription is None:
            subscription = AgendaSubscription(professional_id=professional_id)
            self.db.add(subscription)

        subscription.status = access_gate.ACTIVE_STATUS
        subscription.expires_at = expires_at
        subscription.last_payment_id = payment_id

        try:
            self.db.flush()
        except IntegrityError as exc:
            # Another transaction created the row first; the caller retries.
            self.db.rollback()
            logger.warning('Concurrent subscription creation for professional %s', professional_id)
            raise TransientStorageError() from exc

        logger.info('Agenda subscription active for professional %s until %s', professional_id, expires_at)
        return subscription

    def mark_pending(self, professional_id: int, now: datetime | None = None) -> AgendaSubscription:
        """Flag a checkout in progress unless the professional already has access. Does not commit."""
        subscription = self.get_record(professional_id, for_update=True)
        if subscription is None:
            subscription = AgendaSubscription(professional_id=professional_id, status=PENDING_STATUS)
            self.db.add(subscription)
        elif not access_gate.can_use_agenda(subscription, now):
            subscription.status = PENDING_STATUS

        self.db.flush()
        return subscription
