from datetime import date, datetime

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from backend.auth.dependencies import can_manage_resource, get_current_user
from backend.booking.errors import BookingError, NotFoundError
from backend.booking.events import EventBus, ReservationEvent, get_event_bus
from backend.booking.reservations import ReservationService
from backend.booking.slots import normalize_label
from backend.core import config
from backend.database import get_db
from backend.models.reservation import ReservationStatus
from backend.models.user import User
from backend.routes.availability_routes import ensure_database_ready, get_clock
from backend.routes.errors import to_http_exception
from backend.stores import ReservationStore, ResourceStore

router = APIRouter(tags=['reservations'])


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > config.MAX_RESERVATION_NOTES_LENGTH:
        raise ValueError(f'Notes must be {config.MAX_RESERVATION_NOTES_LENGTH} characters or fewer.')

    return normalized


def _normalize_time_slot(value: str) -> str:
    try:
        return normalize_label(value)
    except BookingError as exc:
        raise ValueError(exc.message) from exc


class CreateReservationRequest(BaseModel):
    resource_id: int
    subject_id: int
    date: date
    time_slot: str
    notes: str | None = None

    @field_validator('time_slot')
    @classmethod
    def validate_time_slot(cls, value: str) -> str:
        return _normalize_time_slot(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class CancelReservationRequest(BaseModel):
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_notes(value)


class UpdateStatusRequest(BaseModel):
    status: ReservationStatus
    reason: str | None = None


class RescheduleRequest(BaseModel):
    date: date
    time_slot: str

    @field_validator('time_slot')
    @classmethod
    def validate_time_slot(cls, value: str) -> str:
        return _normalize_time_slot(value)


class ReservationResponse(BaseModel):
    id: int
    reference: str
    resource_id: int
    requester_id: int
    subject_id: int
    date: date
    time_slot: str
    status: ReservationStatus
    notes: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class BackgroundEventPublisher:
    """Delivers reservation events once the response has been sent."""

    def __init__(self, background_tasks: BackgroundTasks, bus: EventBus):
        self.background_tasks = background_tasks
        self.bus = bus

    def publish(self, event: ReservationEvent) -> None:
        self.background_tasks.add_task(self.bus.publish, event)


def get_reservation_service(
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    events: EventBus = Depends(get_event_bus),
    clock=Depends(get_clock),
) -> ReservationService:
    ensure_database_ready()
    return ReservationService(db, BackgroundEventPublisher(background_tasks, events), clock=clock)


def manages_reservation(service: ReservationService, reservation_id: int, user: User) -> bool:
    reservation = ReservationStore.get(service.db, reservation_id)
    if reservation is None:
        return False
    return can_manage_resource(user, ResourceStore.get(service.db, reservation.resource_id))


@router.post('/reservations', response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
def create_reservation(
    data: CreateReservationRequest,
    current_user: User = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service),
):
    try:
        return service.reserve(
            resource_id=data.resource_id,
            requester_id=current_user.id,
            subject_id=data.subject_id,
            slot_date=data.date,
            time_slot=data.time_slot,
            notes=data.notes,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc


@router.get('/reservations/{reference}', response_model=ReservationResponse)
def get_reservation(
    reference: str,
    current_user: User = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service),
):
    try:
        reservation = service.get_by_reference(reference)
    except BookingError as exc:
        raise to_http_exception(exc) from exc

    if reservation.requester_id != current_user.id and not manages_reservation(service, reservation.id, current_user):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Reservation not found.',
        )
    return reservation


@router.patch('/reservations/{reservation_id}/cancel', response_model=ReservationResponse)
def cancel_reservation(
    reservation_id: int,
    data: CancelReservationRequest | None = None,
    current_user: User = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service),
):
    requester_id = None if manages_reservation(service, reservation_id, current_user) else current_user.id

    try:
        return service.cancel(
            reservation_id,
            reason=data.reason if data else None,
            requester_id=requester_id,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc


@router.patch('/reservations/{reservation_id}/reschedule', response_model=ReservationResponse)
def reschedule_reservation(
    reservation_id: int,
    data: RescheduleRequest,
    current_user: User = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service),
):
    requester_id = None if manages_reservation(service, reservation_id, current_user) else current_user.id

    try:
        return service.reschedule(reservation_id, data.date, data.time_slot, requester_id=requester_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc


@router.patch('/reservations/{reservation_id}/status', response_model=ReservationResponse)
def update_reservation_status(
    reservation_id: int,
    data: UpdateStatusRequest,
    current_user: User = Depends(get_current_user),
    service: ReservationService = Depends(get_reservation_service),
):
    if ReservationStore.get(service.db, reservation_id) is None:
        raise to_http_exception(NotFoundError('Reservation not found.'))
    if not manages_reservation(service, reservation_id, current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the garage owner or an administrator can perform this action.',
        )

    try:
        return service.transition(reservation_id, data.status, reason=data.reason)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
