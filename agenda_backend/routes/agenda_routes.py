from datetime import date, datetime, time, timedelta
from decimal import Decimal

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from agenda_backend.auth.dependencies import require_professional
from agenda_backend.core import config
from agenda_backend.core.errors import ValidationError
from agenda_backend.database import ensure_database_ready, get_db
from agenda_backend.models.appointment import APPOINTMENT_STATUSES, CANCELLED_STATUS, Appointment
from agenda_backend.models.patient_link import ProfessionalPatient
from agenda_backend.models.user import User
from agenda_backend.scheduling.slots import generate_slots
from agenda_backend.services.booking_ledger import UNCHANGED, BookingLedger
from agenda_backend.services.consultations import ConsultationService
from agenda_backend.services.patient_roster import PatientRoster
from agenda_backend.services.schedule_config_store import ScheduleConfigStore

router = APIRouter(tags=['agenda'])

MAX_APPOINTMENT_NOTES_LENGTH = 600
MAX_SLOT_DURATION_MINUTES = 480


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


class ScheduleConfigRequest(BaseModel):
    monday_start: time | None = None
    monday_end: time | None = None
    tuesday_start: time | None = None
    tuesday_end: time | None = None
    wednesday_start: time | None = None
    wednesday_end: time | None = None
    thursday_start: time | None = None
    thursday_end: time | None = None
    friday_start: time | None = None
    friday_end: time | None = None
    saturday_start: time | None = None
    saturday_end: time | None = None
    sunday_start: time | None = None
    sunday_end: time | None = None
    slot_duration: int = 30
    break_start: time | None = None
    break_end: time | None = None

    @field_validator('slot_duration')
    @classmethod
    def validate_slot_duration(cls, value: int) -> int:
        if value <= 0 or value > MAX_SLOT_DURATION_MINUTES:
            raise ValueError(f'Slot duration must be between 1 and {MAX_SLOT_DURATION_MINUTES} minutes.')
        return value


class ScheduleConfigResponse(ScheduleConfigRequest):
    professional_id: int

    class Config:
        from_attributes = True


class SlotResponse(BaseModel):
    start_time: datetime
    end_time: datetime
    status: str
    is_available: bool


class AppointmentResponse(BaseModel):
    id: int
    professional_id: int
    patient_id: int
    patient_name: str | None = None
    date: datetime
    status: str
    notes: str | None = None
    created_at: datetime | None = None


class CreateAppointmentRequest(BaseModel):
    patient_id: int
    date: datetime
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class UpdateAppointmentRequest(BaseModel):
    status: str | None = None
    notes: str | None = None
    date: datetime | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in APPOINTMENT_STATUSES:
            raise ValueError('Invalid appointment status.')
        return normalized


class LinkPatientRequest(BaseModel):
    patient_id: int
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class UpdatePatientRequest(BaseModel):
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class PatientResponse(BaseModel):
    id: int
    name: str | None = None
    email: str | None = None
    notes: str | None = None
    linked_at: datetime | None = None


class CreateBlockedTimeRequest(BaseModel):
    date: datetime
    reason: str | None = None


class BlockedTimeResponse(BaseModel):
    id: int
    date: datetime
    reason: str | None = None

    class Config:
        from_attributes = True


class CreateConsultationRequest(BaseModel):
    client_id: int | None = None
    dependent_id: int | None = None
    service_id: int
    value: Decimal
    date: datetime


class ConsultationResponse(BaseModel):
    id: int
    professional_id: int
    client_id: int | None = None
    dependent_id: int | None = None
    service_id: int
    value: float
    date: datetime

    class Config:
        from_attributes = True


def to_appointment_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        professional_id=appointment.professional_id,
        patient_id=appointment.patient_id,
        patient_name=appointment.patient.name if appointment.patient else None,
        date=appointment.date,
        status=appointment.status,
        notes=appointment.notes,
        created_at=appointment.created_at,
    )


def to_patient_response(link: ProfessionalPatient, patient: User) -> PatientResponse:
    return PatientResponse(id=patient.id, name=patient.name, email=patient.email, notes=link.notes, linked_at=link.created_at)


def validate_slot_range(start_date: date, end_date: date) -> None:
    if end_date < start_date:
        raise ValidationError('end_date must not be before start_date.')
    if (end_date - start_date).days + 1 > config.MAX_SLOT_RANGE_DAYS:
        raise ValidationError(f'Date range cannot exceed {config.MAX_SLOT_RANGE_DAYS} days.')


@router.get('/schedule-config', response_model=ScheduleConfigResponse)
def get_schedule_config(
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    return ScheduleConfigStore(db).get(professional.id)


@router.put('/schedule-config', response_model=ScheduleConfigResponse)
def update_schedule_config(
    data: ScheduleConfigRequest,
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    return ScheduleConfigStore(db).put(professional.id, data.model_dump())


@router.get('/slots', response_model=list[SlotResponse])
def list_slots(
    start_date: date = Query(...),
    end_date: date = Query(...),
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
):
    validate_slot_range(start_date, end_date)
    ensure_database_ready()

    schedule = ScheduleConfigStore(db).get(professional.id)
    ledger = BookingLedger(db)
    booked = {
        appointment.date
        for appointment in ledger.list_appointments(professional.id, start_date, end_date)
        if appointment.status != CANCELLED_STATUS
    }
    blocked = {blocked_time.date for blocked_time in ledger.list_blocked(professional.id, start_date, end_date)}

    template = schedule.to_template()
    slot_length = timedelta(minutes=template.slot_duration)
    slots: list[SlotResponse] = []
    for slot_start in generate_slots(template, start_date, end_date):
        if slot_start in blocked:
            slot_status = 'blocked'
        elif slot_start in booked:
            slot_status = 'booked'
        else:
            slot_status = 'available'
        slots.append(
            SlotResponse(
                start_time=slot_start,
                end_time=slot_start + slot_length,
                status=slot_status,
                is_available=slot_status == 'available',
            )
        )
    return slots


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_appointments(
    start_date: date = Query(...),
    end_date: date = Query(...),
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    appointments = BookingLedger(db).list_appointments(professional.id, start_date, end_date)
    return [to_appointment_response(appointment) for appointment in appointments]


@router.post('/appointments', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    appointment = BookingLedger(db).book(professional.id, data.patient_id, data.date, data.notes)
    return to_appointment_response(appointment)


@router.put('/appointments/{appointment_id}', response_model=AppointmentResponse)
def update_appointment(
    appointment_id: int,
    data: UpdateAppointmentRequest,
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    appointment = BookingLedger(db).update(
        appointment_id,
        professional.id,
        status=data.status,
        notes=data.notes if 'notes' in data.model_fields_set else UNCHANGED,
        when=data.date,
    )
    return to_appointment_response(appointment)


@router.delete('/appointments/{appointment_id}', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    return to_appointment_response(BookingLedger(db).cancel(appointment_id, professional.id))


@router.get('/patients', response_model=list[PatientResponse])
def list_patients(
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    return [
        to_patient_response(link, patient)
        for link, patient in PatientRoster(db).list_patients(professional.id)
    ]


@router.post('/patients', response_model=PatientResponse, status_code=status.HTTP_201_CREATED)
def link_patient(
    data: LinkPatientRequest,
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    link = PatientRoster(db).link(professional.id, data.patient_id, data.notes)
    return to_patient_response(link, db.get(User, link.patient_id))


@router.put('/patients/{patient_id}', response_model=PatientResponse)
def update_patient(
    patient_id: int,
    data: UpdatePatientRequest,
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    link = PatientRoster(db).update_notes(professional.id, patient_id, data.notes)
    return to_patient_response(link, db.get(User, link.patient_id))


@router.get('/patients/{patient_id}/history', response_model=list[AppointmentResponse])
def get_patient_history(
    patient_id: int,
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    appointments = BookingLedger(db).patient_history(professional.id, patient_id)
    return [to_appointment_response(appointment) for appointment in appointments]


@router.get('/blocked-times', response_model=list[BlockedTimeResponse])
def list_blocked_times(
    start_date: date = Query(...),
    end_date: date = Query(...),
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    return BookingLedger(db).list_blocked(professional.id, start_date, end_date)


@router.post('/blocked-times', response_model=BlockedTimeResponse, status_code=status.HTTP_201_CREATED)
def create_blocked_time(
    data: CreateBlockedTimeRequest,
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    return BookingLedger(db).block(professional.id, data.date, data.reason)


@router.delete('/blocked-times/{blocked_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_blocked_time(
    blocked_id: int,
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    BookingLedger(db).unblock(blocked_id, professional.id)


@router.post('/consultations', response_model=ConsultationResponse, status_code=status.HTTP_201_CREATED)
def create_consultation(
    data: CreateConsultationRequest,
    professional: User = Depends(require_professional),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    return ConsultationService(db).record(
        professional.id,
        service_id=data.service_id,
        value=data.value,
        when=data.date,
        client_id=data.client_id,
        dependent_id=data.dependent_id,
    )
