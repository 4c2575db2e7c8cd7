"""Webhook reconciler - turn gateway payment notifications into agenda access.

Notifications carry only the gateway payment id, may repeat, and may arrive
concurrently or out of order. The payment row moves from ``pending`` to
``paid`` through a single conditional UPDATE; only the delivery whose UPDATE
matched the row grants the subscription, so duplicates never extend it twice.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum

from sqlalchemy import update
from sqlalchemy.orm import Session

from agenda_backend.core import config
from agenda_backend.core.clock import utcnow
from agenda_backend.database import storage_errors
from agenda_backend.models.subscription import AgendaPayment
from agenda_backend.payments import references
from agenda_backend.payments.mercadopago import MercadoPagoGateway
from agenda_backend.services.subscription_ledger import SubscriptionLedger

logger = logging.getLogger(__name__)

PAYMENT_NOTIFICATION_TYPES = {'payment'}


class ReconcileOutcome(str, Enum):
    IGNORED = 'ignored'
    NOT_APPROVED = 'not_approved'
    QUARANTINED = 'quarantined'
    DUPLICATE = 'duplicate'
    ACTIVATED = 'activated'


@dataclass(frozen=True)
class ReconcileResult:
    outcome: ReconcileOutcome
    gateway_payment_id: str | None = None
    professional_id: int | None = None
    expires_at: datetime | None = None


class WebhookReconciler:
    def __init__(self, db: Session, gateway: MercadoPagoGateway, subscriptions: SubscriptionLedger | None = None):
        self.db = db
        self.gateway = gateway
        self.subscriptions = subscriptions or SubscriptionLedger(db)

    def reconcile(self, notification_type: str | None, gateway_payment_id: str | None) -> ReconcileResult:
        if (notification_type or '').lower() not in PAYMENT_NOTIFICATION_TYPES or not gateway_payment_id:
            logger.info('Ignoring webhook notification type=%s id=%s', notification_type, gateway_payment_id)
            return ReconcileResult(ReconcileOutcome.IGNORED, gateway_payment_id)

        payment = self.gateway.get_payment(gateway_payment_id)
        if not payment.is_approved:
            logger.info('Agenda payment %s not approved yet (status=%s)', gateway_payment_id, payment.status)
            return ReconcileResult(ReconcileOutcome.NOT_APPROVED, gateway_payment_id)

        try:
            professional_id = references.parse(payment.external_reference, config.AGENDA_REFERENCE_DOMAIN)
        except ValueError as exc:
            logger.warning('Quarantined agenda payment %s: %s', gateway_payment_id, exc)
            return ReconcileResult(ReconcileOutcome.QUARANTINED, gateway_payment_id)

        with storage_errors(self.db):
            return self._settle(
                gateway_payment_id,
                payment.external_reference,
                professional_id,
                payment.transaction_amount,
            )

    def _settle(
        self,
        gateway_payment_id: str,
        external_reference: str,
        professional_id: int,
        paid_amount: Decimal | None = None,
    ) -> ReconcileResult:
        record = self.db.query(AgendaPayment).filter(
            AgendaPayment.external_reference == external_reference,
        ).first()
        if record is None or record.professional_id != professional_id:
            logger.warning(
                'Quarantined agenda payment %s: no pending record matches reference %s',
                gateway_payment_id,
                external_reference,
            )
            return ReconcileResult(ReconcileOutcome.QUARANTINED, gateway_payment_id, professional_id)

        if paid_amount is not None and paid_amount != record.amount:
            logger.warning(
                'Quarantined agenda payment %s: paid %s but %s was issued for reference %s',
                gateway_payment_id,
                paid_amount,
                record.amount,
                external_reference,
            )
            return ReconcileResult(ReconcileOutcome.QUARANTINED, gateway_payment_id, professional_id)

        now = utcnow()
        expires_at = now + timedelta(days=config.AGENDA_SUBSCRIPTION_DAYS)
        result = self.db.execute(
            update(AgendaPayment)
            .where(
                AgendaPayment.id == record.id,
                AgendaPayment.status == 'pending',
            )
            .values(
                status='paid',
                gateway_payment_id=gateway_payment_id,
                paid_at=now,
                expires_at=expires_at,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            self.db.rollback()
            logger.info('Agenda payment %s already reconciled', gateway_payment_id)
            return ReconcileResult(ReconcileOutcome.DUPLICATE, gateway_payment_id, professional_id)

        self.subscriptions.activate(professional_id, expires_at, record.id)
        self.db.commit()

        logger.info(
            'Agenda payment %s settled; professional %s active until %s',
            gateway_payment_id,
            professional_id,
            expires_at,
        )
        return ReconcileResult(ReconcileOutcome.ACTIVATED, gateway_payment_id, professional_id, expires_at)
