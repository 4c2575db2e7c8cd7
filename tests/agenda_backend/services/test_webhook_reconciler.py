import threading
from datetime import timedelta
from decimal import Decimal

import pytest

from agenda_backend.core.clock import utcnow
from agenda_backend.core.errors import UpstreamError
from agenda_backend.models.subscription import AgendaPayment, AgendaSubscription
from agenda_backend.services.payment_intents import PaymentIntentIssuer
from agenda_backend.services.webhook_reconciler import ReconcileOutcome, WebhookReconciler
from conftest import FakeGateway, add_subscription, add_user


@pytest.fixture
def issued(db_session, professional, fake_gateway):
    return PaymentIntentIssuer(db_session, fake_gateway).create_intent(professional)


def test_approved_payment_activates_subscription(db_session, professional, fake_gateway, issued) -> None:
    fake_gateway.settle('mp-1', issued.external_reference)
    before = utcnow()

    result = WebhookReconciler(db_session, fake_gateway).reconcile('payment', 'mp-1')

    assert result.outcome is ReconcileOutcome.ACTIVATED
    assert result.professional_id == professional.id
    payment = db_session.get(AgendaPayment, issued.payment_id)
    assert payment.status == 'paid'
    assert payment.gateway_payment_id == 'mp-1'
    subscription = db_session.query(AgendaSubscription).filter_by(professional_id=professional.id).one()
    assert subscription.status == 'active'
    assert subscription.last_payment_id == payment.id
    assert payment.expires_at == subscription.expires_at
    assert before + timedelta(days=30) <= subscription.expires_at <= utcnow() + timedelta(days=30)


def test_duplicate_delivery_grants_only_once(db_session, professional, fake_gateway, issued) -> None:
    fake_gateway.settle('mp-1', issued.external_reference)
    reconciler = WebhookReconciler(db_session, fake_gateway)

    first = reconciler.reconcile('payment', 'mp-1')
    expiry_after_first = db_session.query(AgendaSubscription).filter_by(professional_id=professional.id).one().expires_at
    second = reconciler.reconcile('payment', 'mp-1')

    assert first.outcome is ReconcileOutcome.ACTIVATED
    assert second.outcome is ReconcileOutcome.DUPLICATE
    db_session.expire_all()
    subscription = db_session.query(AgendaSubscription).filter_by(professional_id=professional.id).one()
    assert subscription.expires_at == expiry_after_first
    assert db_session.get(AgendaPayment, issued.payment_id).status == 'paid'


def test_not_approved_payment_changes_nothing(db_session, professional, fake_gateway, issued) -> None:
    fake_gateway.settle('mp-1', issued.external_reference, status='in_process')

    result = WebhookReconciler(db_session, fake_gateway).reconcile('payment', 'mp-1')

    assert result.outcome is ReconcileOutcome.NOT_APPROVED
    assert db_session.get(AgendaPayment, issued.payment_id).status == 'pending'
    assert db_session.query(AgendaSubscription).filter_by(professional_id=professional.id).one().status == 'pending'


def test_later_approval_after_pending_delivery_activates(db_session, professional, fake_gateway, issued) -> None:
    reconciler = WebhookReconciler(db_session, fake_gateway)
    fake_gateway.settle('mp-1', issued.external_reference, status='pending')
    assert reconciler.reconcile('payment', 'mp-1').outcome is ReconcileOutcome.NOT_APPROVED

    fake_gateway.settle('mp-1', issued.external_reference)

    assert reconciler.reconcile('payment', 'mp-1').outcome is ReconcileOutcome.ACTIVATED


def test_matching_paid_amount_activates(db_session, fake_gateway, issued) -> None:
    fake_gateway.settle('mp-1', issued.external_reference, amount=Decimal('49.9'))

    result = WebhookReconciler(db_session, fake_gateway).reconcile('payment', 'mp-1')

    assert result.outcome is ReconcileOutcome.ACTIVATED


def test_underpaid_payment_is_quarantined(db_session, professional, fake_gateway, issued) -> None:
    fake_gateway.settle('mp-1', issued.external_reference, amount=Decimal('1.00'))

    result = WebhookReconciler(db_session, fake_gateway).reconcile('payment', 'mp-1')

    assert result.outcome is ReconcileOutcome.QUARANTINED
    assert db_session.get(AgendaPayment, issued.payment_id).status == 'pending'
    subscription = db_session.query(AgendaSubscription).filter_by(professional_id=professional.id).one()
    assert subscription.status == 'pending'


@pytest.mark.parametrize(('notification_type', 'payment_id'), [('merchant_order', 'mo-1'), ('payment', None), (None, None)])
def test_irrelevant_notifications_are_ignored(db_session, fake_gateway, notification_type, payment_id) -> None:
    result = WebhookReconciler(db_session, fake_gateway).reconcile(notification_type, payment_id)

    assert result.outcome is ReconcileOutcome.IGNORED
    assert fake_gateway.payment_lookups == 0


@pytest.mark.parametrize('reference', [None, 'agenda_abc_123', 'client-subscription-7', 'other_1_123', 'agenda_0_123'])
def test_unparseable_reference_is_quarantined(db_session, fake_gateway, issued, reference) -> None:
    fake_gateway.settle('mp-1', reference)

    result = WebhookReconciler(db_session, fake_gateway).reconcile('payment', 'mp-1')

    assert result.outcome is ReconcileOutcome.QUARANTINED
    assert db_session.get(AgendaPayment, issued.payment_id).status == 'pending'


def test_reference_without_payment_record_is_quarantined(db_session, professional, fake_gateway) -> None:
    fake_gateway.settle('mp-1', f'agenda_{professional.id}_1700000000000')

    result = WebhookReconciler(db_session, fake_gateway).reconcile('payment', 'mp-1')

    assert result.outcome is ReconcileOutcome.QUARANTINED
    assert db_session.query(AgendaSubscription).filter_by(professional_id=professional.id).first() is None


def test_reference_for_another_professional_is_quarantined(db_session, professional, fake_gateway, issued) -> None:
    intruder = add_user(db_session, 'Ivo', ['professional'])
    db_session.add(
        AgendaPayment(
            professional_id=professional.id,
            amount=Decimal('49.90'),
            status='pending',
            gateway_intent_id='pref-forged',
            external_reference=f'agenda_{intruder.id}_1700000000000',
        )
    )
    db_session.commit()
    fake_gateway.settle('mp-9', f'agenda_{intruder.id}_1700000000000')

    result = WebhookReconciler(db_session, fake_gateway).reconcile('payment', 'mp-9')

    assert result.outcome is ReconcileOutcome.QUARANTINED
    assert db_session.query(AgendaSubscription).filter_by(professional_id=intruder.id).first() is None


def test_gateway_failure_propagates_for_redelivery(db_session, fake_gateway) -> None:
    fake_gateway.fail_with = UpstreamError()

    with pytest.raises(UpstreamError):
        WebhookReconciler(db_session, fake_gateway).reconcile('payment', 'mp-1')


def test_renewal_overwrites_expiry_without_stacking(db_session, professional, fake_gateway) -> None:
    add_subscription(db_session, professional.id, expires_at=utcnow() + timedelta(days=20))
    intent = PaymentIntentIssuer(db_session, fake_gateway).create_intent(professional)
    fake_gateway.settle('mp-2', intent.external_reference)

    result = WebhookReconciler(db_session, fake_gateway).reconcile('payment', 'mp-2')

    assert result.outcome is ReconcileOutcome.ACTIVATED
    subscription = db_session.query(AgendaSubscription).filter_by(professional_id=professional.id).one()
    assert subscription.expires_at <= utcnow() + timedelta(days=30)
    assert subscription.expires_at > utcnow() + timedelta(days=29)


def test_concurrent_duplicate_deliveries_activate_once(session_factory) -> None:
    gateway = FakeGateway()
    setup = session_factory()
    professional = add_user(setup, 'Paula', ['professional'])
    intent = PaymentIntentIssuer(setup, gateway).create_intent(professional)
    professional_id = professional.id
    setup.close()
    gateway.settle('mp-1', intent.external_reference)

    deliveries = 4
    barrier = threading.Barrier(deliveries)
    outcomes: list[ReconcileOutcome] = []
    lock = threading.Lock()

    def deliver() -> None:
        db = session_factory()
        try:
            barrier.wait()
            result = WebhookReconciler(db, gateway).reconcile('payment', 'mp-1')
        finally:
            db.close()
        with lock:
            outcomes.append(result.outcome)

    threads = [threading.Thread(target=deliver) for _ in range(deliveries)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count(ReconcileOutcome.ACTIVATED) == 1
    assert outcomes.count(ReconcileOutcome.DUPLICATE) == deliveries - 1
    check = session_factory()
    try:
        assert check.query(AgendaSubscription).filter_by(professional_id=professional_id).count() == 1
        assert check.query(AgendaPayment).filter_by(status='paid').count() == 1
    finally:
        check.close()
