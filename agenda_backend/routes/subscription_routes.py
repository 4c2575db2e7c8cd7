import logging
from datetime import datetime

from fastapi import APIRouter, Body, Depends, HTTPException, Request, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from agenda_backend.auth.dependencies import require_professional
from agenda_backend.core import config
from agenda_backend.database import ensure_database_ready, get_db
from agenda_backend.models.user import User
from agenda_backend.payments.mercadopago import MercadoPagoGateway, get_payment_gateway
from agenda_backend.payments.signature import verify_signature
from agenda_backend.services.payment_intents import PaymentIntentIssuer
from agenda_backend.services.subscription_ledger import SubscriptionLedger
from agenda_backend.services.webhook_reconciler import WebhookReconciler

router = APIRouter(tags=['agenda-subscription'])

logger = logging.getLogger(__name__)


class SubscriptionStatusResponse(BaseModel):
    status: str
    expires_at: datetime | None = None
    days_remaining: int
    can_use_agenda: bool
    last_payment: datetime | None = None


class SubscriptionPaymentResponse(BaseModel):
    payment_id: int
    intent_id: str
    external_reference: str
    redirect_url: str
    sandbox_redirect_url: str | None = None


class PaymentHistoryResponse(BaseModel):
    id: int
    amount: float
    status: str
    gateway_intent_id: str
    gateway_payment_id: str | None = None
    paid_at: datetime | None = None
    expires_at: datetime | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class WebhookData(BaseModel):
    id: str | int | None = None


class WebhookNotification(BaseModel):
    type: str | None = None
    topic: str | None = None
    action: str | None = None
    data: WebhookData | None = None


def extract_notification(payload: WebhookNotification | None, query_params) -> tuple[str | None, str | None]:
    """Read the notification type and payment id from the body, falling back to the query string."""
    notification_type = None
    payment_id = None
    if payload is not None:
        notification_type = payload.type or payload.topic
        if payload.data is not None and payload.data.id is not None:
            payment_id = str(payload.data.id)

    notification_type = notification_type or query_params.get('type') or query_params.get('topic')
    payment_id = payment_id or query_params.get('data.id') or query_params.get('id')
    return notification_type, payment_id


@router.get('/subscription-status', response_model=SubscriptionStatusResponse)
def get_subscription_status(
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    subscription = SubscriptionLedger(db).get_status(professional.id)
    return SubscriptionStatusResponse(
        status=subscription.status,
        expires_at=subscription.expires_at,
        days_remaining=subscription.days_remaining,
        can_use_agenda=subscription.can_use_agenda,
        last_payment=subscription.last_payment_at,
    )


@router.post('/create-subscription-payment', response_model=SubscriptionPaymentResponse)
def create_subscription_payment(
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
    gateway: MercadoPagoGateway = Depends(get_payment_gateway),
):
    ensure_database_ready()
    intent = PaymentIntentIssuer(db, gateway).create_intent(professional)
    return SubscriptionPaymentResponse(
        payment_id=intent.payment_id,
        intent_id=intent.intent_id,
        external_reference=intent.external_reference,
        redirect_url=intent.redirect_url,
        sandbox_redirect_url=intent.sandbox_redirect_url,
    )


@router.get('/payment-history', response_model=list[PaymentHistoryResponse])
def get_payment_history(
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
    gateway: MercadoPagoGateway = Depends(get_payment_gateway),
):
    ensure_database_ready()
    return PaymentIntentIssuer(db, gateway).payment_history(professional.id)


@router.post('/webhook')
def receive_payment_webhook(
    request: Request,
    payload: WebhookNotification | None = Body(default=None),
    db: Session = Depends(get_db),
    gateway: MercadoPagoGateway = Depends(get_payment_gateway),
):
    """Gateway callback. Always 200 unless processing hit a retryable failure."""
    notification_type, payment_id = extract_notification(payload, request.query_params)

    if config.MP_WEBHOOK_SECRET and not verify_signature(
        config.MP_WEBHOOK_SECRET,
        request.headers.get('x-signature'),
        request.headers.get('x-request-id'),
        payment_id,
    ):
        logger.warning('Rejected agenda webhook with invalid signature (id=%s)', payment_id)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Invalid webhook signature.')

    ensure_database_ready()
    result = WebhookReconciler(db, gateway).reconcile(notification_type, payment_id)
    return {'received': True, 'outcome': result.outcome.value}
