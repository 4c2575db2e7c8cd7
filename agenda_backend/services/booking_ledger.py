"""Booking ledger - appointments and blocked times of a professional.

Double booking is prevented by the partial unique index on
``(professional_id, date)`` for non-cancelled rows, not by a read-then-write
check: whichever insert commits second fails and is reported as a conflict.
"""

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agenda_backend.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from agenda_backend.database import storage_errors
from agenda_backend.models.appointment import (
    APPOINTMENT_STATUSES,
    CANCELLED_STATUS,
    Appointment,
    BlockedTime,
)
from agenda_backend.services.patient_roster import PatientRoster
from agenda_backend.services.subscription_ledger import SubscriptionLedger

logger = logging.getLogger(__name__)

SCHEDULED_STATUS = 'scheduled'

# Marks an update argument that was not supplied, as opposed to an explicit None.
UNCHANGED = object()

ALLOWED_TRANSITIONS = {
    'scheduled': {'confirmed', 'in_progress', 'completed', 'cancelled'},
    'confirmed': {'scheduled', 'in_progress', 'completed', 'cancelled'},
    'in_progress': {'completed', 'cancelled'},
    'completed': set(),
    'cancelled': {'scheduled'},
}


def normalize_slot(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def day_bounds(start_date: date, end_date: date) -> tuple[datetime, datetime]:
    """Half-open datetime range covering both dates in full."""
    if end_date < start_date:
        raise ValidationError('end_date must not be before start_date.')
    return datetime.combine(start_date, time.min), datetime.combine(end_date + timedelta(days=1), time.min)


def check_transition(current: str, new: str) -> None:
    if new not in APPOINTMENT_STATUSES:
        raise ValidationError(f'Invalid appointment status: {new}.')
    if current == new:
        return
    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValidationError(f'Cannot change appointment status from {current} to {new}.')


class BookingLedger:
    def __init__(
        self,
        db: Session,
        subscriptions: SubscriptionLedger | None = None,
        roster: PatientRoster | None = None,
    ):
        self.db = db
        self.subscriptions = subscriptions or SubscriptionLedger(db)
        self.roster = roster or PatientRoster(db, self.subscriptions)

    def list_appointments(self, professional_id: int, start_date: date, end_date: date) -> list[Appointment]:
        range_start, range_end = day_bounds(start_date, end_date)
        with storage_errors(self.db):
            return self.db.query(Appointment).filter(
                Appointment.professional_id == professional_id,
                Appointment.date >= range_start,
                Appointment.date < range_end,
            ).order_by(Appointment.date.asc(), Appointment.id.asc()).all()

    def book(self, professional_id: int, patient_id: int, when: datetime, notes: str | None = None) -> Appointment:
        slot = normalize_slot(when)

        if not self.subscriptions.can_use_agenda(professional_id):
            raise AuthorizationError('An active agenda subscription is required.')

        with storage_errors(self.db):
            if not self.roster.is_linked(professional_id, patient_id):
                raise AuthorizationError('Patient is not linked to your agenda.')

            if self._is_blocked(professional_id, slot):
                raise ConflictError('This time is blocked.')

            appointment = Appointment(
                professional_id=professional_id,
                patient_id=patient_id,
                date=slot,
                status=SCHEDULED_STATUS,
                notes=notes,
            )
            self.db.add(appointment)
            self._commit_slot(professional_id, slot)
            self.db.refresh(appointment)

        logger.info('Booked appointment %s for professional %s at %s', appointment.id, professional_id, slot)
        return appointment

    def patient_history(self, professional_id: int, patient_id: int) -> list[Appointment]:
        """Every appointment of a linked patient with this professional, newest first."""
        with storage_errors(self.db):
            if not self.roster.is_linked(professional_id, patient_id):
                raise NotFoundError('Patient not found.')

            return self.db.query(Appointment).filter(
                Appointment.professional_id == professional_id,
                Appointment.patient_id == patient_id,
            ).order_by(Appointment.date.desc(), Appointment.id.desc()).all()

    def get_owned(self, appointment_id: int, professional_id: int) -> Appointment:
        appointment = self.db.query(Appointment).filter(
            Appointment.id == appointment_id,
            Appointment.professional_id == professional_id,
        ).first()
        if appointment is None:
            raise NotFoundError('Appointment not found.')
        return appointment

    def update(
        self,
        appointment_id: int,
        professional_id: int,
        status: str | None = None,
        notes=UNCHANGED,
        when: datetime | None = None,
    ) -> Appointment:
        """Apply the given changes; pass ``notes=None`` to clear the notes."""
        with storage_errors(self.db):
            appointment = self.get_owned(appointment_id, professional_id)

            if status is not None:
                check_transition(appointment.status, status)
            slot = normalize_slot(when) if when is not None else appointment.date
            if slot != appointment.date and self._is_blocked(professional_id, slot):
                raise ConflictError('This time is blocked.')

            if status is not None:
                appointment.status = status
            if notes is not UNCHANGED:
                appointment.notes = notes
            appointment.date = slot

            self._commit_slot(professional_id, appointment.date)
            self.db.refresh(appointment)
            return appointment

    def cancel(self, appointment_id: int, professional_id: int) -> Appointment:
        with storage_errors(self.db):
            appointment = self.get_owned(appointment_id, professional_id)
            if appointment.status != CANCELLED_STATUS:
                appointment.status = CANCELLED_STATUS
                self.db.commit()
                self.db.refresh(appointment)
                logger.info('Cancelled appointment %s for professional %s', appointment_id, professional_id)
            return appointment

    def _commit_slot(self, professional_id: int, slot: datetime) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            logger.info('Slot %s already taken for professional %s', slot, professional_id)
            raise ConflictError('This time is already booked.') from exc

    def _is_blocked(self, professional_id: int, slot: datetime) -> bool:
        blocked = self.db.query(BlockedTime.id).filter(
            BlockedTime.professional_id == professional_id,
            BlockedTime.date == slot,
        ).first()
        return blocked is not None

    def block(self, professional_id: int, when: datetime, reason: str | None = None) -> BlockedTime:
        with storage_errors(self.db):
            blocked_time = BlockedTime(professional_id=professional_id, date=normalize_slot(when), reason=reason)
            self.db.add(blocked_time)
            self.db.commit()
            self.db.refresh(blocked_time)
            return blocked_time

    def list_blocked(self, professional_id: int, start_date: date, end_date: date) -> list[BlockedTime]:
        range_start, range_end = day_bounds(start_date, end_date)
        with storage_errors(self.db):
            return self.db.query(BlockedTime).filter(
                BlockedTime.professional_id == professional_id,
                BlockedTime.date >= range_start,
                BlockedTime.date < range_end,
            ).order_by(BlockedTime.date.asc()).all()

    def unblock(self, blocked_id: int, professional_id: int) -> None:
        with storage_errors(self.db):
            blocked_time = self.db.query(BlockedTime).filter(
                BlockedTime.id == blocked_id,
                BlockedTime.professional_id == professional_id,
            ).first()
            if blocked_time is None:
                raise NotFoundError('Blocked time not found.')

            self.db.delete(blocked_time)
            self.db.commit()
