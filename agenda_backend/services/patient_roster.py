import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agenda_backend.core.errors import AuthorizationError, ConflictError, NotFoundError
from agenda_backend.database import storage_errors
from agenda_backend.models.patient_link import ProfessionalPatient
from agenda_backend.models.user import User
from agenda_backend.services.subscription_ledger import SubscriptionLedger

logger = logging.getLogger(__name__)


class PatientRoster:
    def __init__(self, db: Session, subscriptions: SubscriptionLedger | None = None):
        self.db = db
        self.subscriptions = subscriptions or SubscriptionLedger(db)

    def is_linked(self, professional_id: int, patient_id: int) -> bool:
        link = self.db.query(ProfessionalPatient.id).filter(
            ProfessionalPatient.professional_id == professional_id,
            ProfessionalPatient.patient_id == patient_id,
        ).first()
        return link is not None

    def list_patients(self, professional_id: int) -> list[tuple[ProfessionalPatient, User]]:
        with storage_errors(self.db):
            return self.db.query(ProfessionalPatient, User).join(
                User, User.id == ProfessionalPatient.patient_id
            ).filter(
                ProfessionalPatient.professional_id == professional_id,
            ).order_by(User.name.asc()).all()

    def link(self, professional_id: int, patient_id: int, notes: str | None = None) -> ProfessionalPatient:
        if not self.subscriptions.can_use_agenda(professional_id):
            raise AuthorizationError('An active agenda subscription is required.')

        with storage_errors(self.db):
            if self.db.get(User, patient_id) is None:
                raise NotFoundError('Patient not found.')

            link = ProfessionalPatient(professional_id=professional_id, patient_id=patient_id, notes=notes)
            self.db.add(link)
            try:
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                raise ConflictError('This patient is already linked to your agenda.') from exc

            self.db.refresh(link)
            logger.info('Linked patient %s to professional %s', patient_id, professional_id)
            return link

    def update_notes(self, professional_id: int, patient_id: int, notes: str | None) -> ProfessionalPatient:
        with storage_errors(self.db):
            link = self.db.query(ProfessionalPatient).filter(
                ProfessionalPatient.professional_id == professional_id,
                ProfessionalPatient.patient_id == patient_id,
            ).first()
            if link is None:
                raise NotFoundError('Patient not found.')

            link.notes = notes
            self.db.commit()
            self.db.refresh(link)
            return link
