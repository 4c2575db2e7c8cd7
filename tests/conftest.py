import os
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from agenda_backend.core.clock import utcnow  # noqa: E402
from agenda_backend.database import Base  # noqa: E402
from agenda_backend.main import app  # noqa: E402,F401
from agenda_backend.models.patient_link import ProfessionalPatient  # noqa: E402
from agenda_backend.models.subscription import AgendaSubscription  # noqa: E402
from agenda_backend.models.user import User  # noqa: E402
from agenda_backend.payments.mercadopago import GatewayPayment, PaymentIntent  # noqa: E402
from agenda_backend.core.errors import UpstreamError  # noqa: E402


class FakeGateway:
    """In-memory stand-in for the Mercado Pago client."""

    def __init__(self):
        self.preferences: list[dict] = []
        self.payments: dict[str, GatewayPayment] = {}
        self.fail_with: Exception | None = None
        self.payment_lookups = 0

    def is_available(self) -> bool:
        return True

    def create_preference(self, **kwargs) -> PaymentIntent:
        if self.fail_with is not None:
            raise self.fail_with
        self.preferences.append(kwargs)
        intent_id = f'pref-{len(self.preferences)}'
        return PaymentIntent(
            id=intent_id,
            init_point=f'https://mp.example.com/checkout/{intent_id}',
            sandbox_init_point=f'https://sandbox.mp.example.com/checkout/{intent_id}',
        )

    def settle(
        self,
        payment_id: str,
        external_reference: str | None,
        status: str = 'approved',
        amount: Decimal | None = None,
    ) -> None:
        self.payments[payment_id] = GatewayPayment(
            id=payment_id,
            status=status,
            external_reference=external_reference,
            transaction_amount=amount,
        )

    def get_payment(self, payment_id: str) -> GatewayPayment:
        self.payment_lookups += 1
        if self.fail_with is not None:
            raise self.fail_with
        if payment_id not in self.payments:
            raise UpstreamError()
        return self.payments[payment_id]


@pytest.fixture
def db_session():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def session_factory(tmp_path):
    """File-backed database so separate threads get separate connections."""
    engine = create_engine(
        f'sqlite:///{tmp_path / "agenda.db"}',
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        engine.dispose()


@pytest.fixture
def fake_gateway():
    return FakeGateway()


@pytest.fixture(autouse=True)
def skip_schema_bootstrap(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr('agenda_backend.routes.agenda_routes.ensure_database_ready', lambda: None)
    monkeypatch.setattr('agenda_backend.routes.subscription_routes.ensure_database_ready', lambda: None)


def add_user(db, name: str, roles: list[str] | None = None, **fields) -> User:
    user = User(name=name, email=f'{name.lower()}@example.com', roles=roles or [], **fields)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def add_subscription(db, professional_id: int, expires_at: datetime | None = None, status: str = 'active') -> AgendaSubscription:
    subscription = AgendaSubscription(
        professional_id=professional_id,
        status=status,
        expires_at=expires_at if expires_at is not None else utcnow() + timedelta(days=10),
    )
    db.add(subscription)
    db.commit()
    return subscription


def link_patient(db, professional_id: int, patient_id: int) -> None:
    db.add(ProfessionalPatient(professional_id=professional_id, patient_id=patient_id))
    db.commit()


@pytest.fixture
def professional(db_session) -> User:
    return add_user(db_session, 'Paula', ['professional'])


@pytest.fixture
def active_professional(db_session, professional) -> User:
    add_subscription(db_session, professional.id)
    return professional
