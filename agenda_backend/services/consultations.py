"""Convenio consultations, gated by the client's membership instead of the agenda subscription."""

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy.orm import Session

from agenda_backend.core.clock import utcnow
from agenda_backend.core.errors import AuthorizationError, NotFoundError, ValidationError
from agenda_backend.database import storage_errors
from agenda_backend.models.consultation import Consultation
from agenda_backend.models.user import Dependent, User

logger = logging.getLogger(__name__)


def membership_is_active(client: User, now: datetime | None = None) -> bool:
    if client.subscription_status != 'active' or client.subscription_expiry is None:
        return False
    return client.subscription_expiry > (now or utcnow())


class ConsultationService:
    def __init__(self, db: Session):
        self.db = db

    def _resolve_client(self, client_id: int | None, dependent_id: int | None) -> User:
        if dependent_id is not None:
            dependent = self.db.get(Dependent, dependent_id)
            if dependent is None:
                raise NotFoundError('Dependent not found.')
            client_id = dependent.client_id

        client = self.db.get(User, client_id)
        if client is None:
            raise NotFoundError('Client not found.')
        return client

    def record(
        self,
        professional_id: int,
        service_id: int,
        value: Decimal,
        when: datetime,
        client_id: int | None = None,
        dependent_id: int | None = None,
    ) -> Consultation:
        if (client_id is None) == (dependent_id is None):
            raise ValidationError('Provide exactly one of client_id or dependent_id.')
        if value < 0:
            raise ValidationError('Consultation value must not be negative.')

        with storage_errors(self.db):
            client = self._resolve_client(client_id, dependent_id)
            if not membership_is_active(client):
                raise AuthorizationError('Client membership is not active.')

            consultation = Consultation(
                professional_id=professional_id,
                client_id=client_id,
                dependent_id=dependent_id,
                service_id=service_id,
                value=value,
                date=when.replace(second=0, microsecond=0),
            )
            self.db.add(consultation)
            self.db.commit()
            self.db.refresh(consultation)

        logger.info('Recorded consultation %s for professional %s', consultation.id, professional_id)
        return consultation
