"""Payment intent issuer - checkout preferences for the agenda subscription"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from agenda_backend.core import config
from agenda_backend.database import storage_errors
from agenda_backend.models.subscription import AgendaPayment
from agenda_backend.models.user import User
from agenda_backend.payments import references
from agenda_backend.payments.mercadopago import MercadoPagoGateway
from agenda_backend.services.subscription_ledger import SubscriptionLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IssuedIntent:
    payment_id: int
    intent_id: str
    external_reference: str
    redirect_url: str
    sandbox_redirect_url: str | None


class PaymentIntentIssuer:
    def __init__(self, db: Session, gateway: MercadoPagoGateway, subscriptions: SubscriptionLedger | None = None):
        self.db = db
        self.gateway = gateway
        self.subscriptions = subscriptions or SubscriptionLedger(db)

    def create_intent(
        self,
        professional: User,
        amount: Decimal | None = None,
        description: str | None = None,
    ) -> IssuedIntent:
        """Open a checkout at the gateway, then record it as pending.

        The gateway call comes first so a failed call leaves nothing behind.
        """
        amount = amount if amount is not None else config.AGENDA_SUBSCRIPTION_PRICE
        description = description or config.AGENDA_SUBSCRIPTION_DESCRIPTION
        external_reference = references.mint(config.AGENDA_REFERENCE_DOMAIN, professional.id)

        intent = self.gateway.create_preference(
            title=f'Assinatura Agenda Profissional - {professional.name or professional.id}',
            description=description,
            amount=amount,
            external_reference=external_reference,
            payer_name=professional.name,
            payer_email=professional.email,
        )

        with storage_errors(self.db):
            payment = AgendaPayment(
                professional_id=professional.id,
                amount=amount,
                status='pending',
                gateway_intent_id=intent.id,
                external_reference=external_reference,
            )
            self.db.add(payment)
            self.db.flush()
            self.subscriptions.mark_pending(professional.id)
            self.db.commit()
            self.db.refresh(payment)

        logger.info(
            'Issued agenda payment %s (intent %s) for professional %s',
            payment.id,
            intent.id,
            professional.id,
        )
        return IssuedIntent(
            payment_id=payment.id,
            intent_id=intent.id,
            external_reference=external_reference,
            redirect_url=intent.init_point,
            sandbox_redirect_url=intent.sandbox_init_point,
        )

    def payment_history(self, professional_id: int, limit: int = 10) -> list[AgendaPayment]:
        with storage_errors(self.db):
            return self.db.query(AgendaPayment).filter(
                AgendaPayment.professional_id == professional_id,
            ).order_by(AgendaPayment.created_at.desc(), AgendaPayment.id.desc()).limit(limit).all()
