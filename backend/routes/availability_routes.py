from collections.abc import Callable
from datetime import date, datetime
from typing import TypeVar

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import can_manage_resource, get_current_user
from backend.booking.availability import day_availability, compute_available_slots
from backend.booking.errors import BookingError, NotFoundError
from backend.booking.slots import label_to_minutes, normalize_label
from backend.core import config
from backend.database import ensure_reservation_schema, ensure_schedule_schema, get_db
from backend.models.resource import Resource
from backend.models.user import User
from backend.routes.errors import database_unavailable, to_http_exception
from backend.stores import BlockStore, ResourceStore, ScheduleStore

router = APIRouter(tags=['availability'])

MAX_BLOCK_REASON_LENGTH = 200

T = TypeVar('T')


def get_clock():
    return datetime.now


def _normalize_time(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        return normalize_label(value)
    except BookingError as exc:
        raise ValueError(exc.message) from exc


class AvailabilityResponse(BaseModel):
    resource_id: int
    date: date
    available_slots: list[str]
    total_slots: int
    blocked_slots: int
    booked_slots: int
    closed_reason: str | None = None


class WeeklyScheduleRequest(BaseModel):
    is_open: bool = True
    open_time: str = '09:00'
    close_time: str = '17:00'
    slot_duration_minutes: int = config.DEFAULT_SLOT_DURATION_MINUTES

    @field_validator('open_time', 'close_time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return _normalize_time(value)

    @field_validator('slot_duration_minutes')
    @classmethod
    def validate_slot_duration(cls, value: int) -> int:
        if value <= 0:
            raise ValueError('Slot duration must be a positive number of minutes.')
        return value

    @model_validator(mode='after')
    def validate_hours(self) -> 'WeeklyScheduleRequest':
        if self.is_open and label_to_minutes(self.open_time) >= label_to_minutes(self.close_time):
            raise ValueError('Opening time must be before closing time.')
        return self


class WeeklyScheduleResponse(BaseModel):
    day_of_week: int
    is_open: bool
    open_time: str
    close_time: str
    slot_duration_minutes: int

    class Config:
        from_attributes = True


class ScheduleExceptionRequest(BaseModel):
    is_closed: bool = False
    open_time: str | None = None
    close_time: str | None = None
    reason: str | None = None

    @field_validator('open_time', 'close_time')
    @classmethod
    def validate_time(cls, value: str | None) -> str | None:
        return _normalize_time(value)

    @model_validator(mode='after')
    def validate_hours(self) -> 'ScheduleExceptionRequest':
        if self.is_closed:
            return self
        if (self.open_time is None) != (self.close_time is None):
            raise ValueError('Override hours need both an opening and a closing time.')
        if self.open_time and label_to_minutes(self.open_time) >= label_to_minutes(self.close_time):
            raise ValueError('Opening time must be before closing time.')
        return self


class ScheduleExceptionResponse(BaseModel):
    date: date
    is_closed: bool
    open_time: str | None = None
    close_time: str | None = None
    reason: str | None = None

    class Config:
        from_attributes = True


class CreateBlockRequest(BaseModel):
    date: date
    time_slot: str
    reason: str | None = None

    @field_validator('time_slot')
    @classmethod
    def validate_time_slot(cls, value: str) -> str:
        return _normalize_time(value)

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        if not normalized:
            return None
        if len(normalized) > MAX_BLOCK_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_BLOCK_REASON_LENGTH} characters or fewer.')
        return normalized


class BlockResponse(BaseModel):
    id: int
    date: date
    time_slot: str
    reason: str

    class Config:
        from_attributes = True


def ensure_database_ready() -> None:
    try:
        ensure_schedule_schema()
        ensure_reservation_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def require_resource(db: Session, resource_id: int) -> Resource:
    resource = ResourceStore.get(db, resource_id)
    if resource is None:
        raise to_http_exception(NotFoundError('Resource not found.'))
    return resource


def require_resource_manager(
    resource_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> Resource:
    ensure_database_ready()

    try:
        resource = require_resource(db, resource_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if not can_manage_resource(current_user, resource):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the garage owner or an administrator can perform this action.',
        )
    return resource


def commit_upsert(db: Session, write: Callable[[], T]) -> T:
    """Run ``write`` and commit it.

    A concurrent request may insert the same row between the lookup and the
    insert; the unique constraint rejects ours, and one more pass then finds
    and updates that row.
    """
    try:
        result = write()
        db.commit()
    except IntegrityError:
        db.rollback()
        result = write()
        db.commit()
    return result


@router.get('/resources/{resource_id}/availability', response_model=AvailabilityResponse)
def get_availability(
    resource_id: int,
    date: str = Query(..., description='Civil date, YYYY-MM-DD'),
    time_slot: str | None = Query(default=None),
    exclude_reservation_id: int | None = Query(default=None),
    db: Session = Depends(get_db),
    clock=Depends(get_clock),
):
    ensure_database_ready()

    try:
        now = clock()
        summary = day_availability(db, resource_id, date, now, exclude_reservation_id)
        if time_slot is not None:
            summary.available_slots = compute_available_slots(
                db,
                resource_id,
                summary.date,
                now,
                requested_slot=time_slot,
                exclude_reservation_id=exclude_reservation_id,
            )
        return AvailabilityResponse(**summary.__dict__)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/resources/{resource_id}/schedule', response_model=list[WeeklyScheduleResponse])
def list_weekly_schedule(resource_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        require_resource(db, resource_id)
        return ScheduleStore.list_week(db, resource_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/resources/{resource_id}/schedule/{day_of_week}', response_model=WeeklyScheduleResponse)
def set_weekly_schedule(
    day_of_week: int,
    data: WeeklyScheduleRequest,
    db: Session = Depends(get_db),
    resource: Resource = Depends(require_resource_manager),
):
    if not 0 <= day_of_week <= 6:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Weekday must be between 0 (Monday) and 6 (Sunday).',
        )

    try:
        entry = commit_upsert(
            db,
            lambda: ScheduleStore.upsert_weekly_entry(
                db,
                resource.id,
                day_of_week,
                is_open=data.is_open,
                open_time=data.open_time,
                close_time=data.close_time,
                slot_duration_minutes=data.slot_duration_minutes,
            ),
        )
        db.refresh(entry)
        return entry
    except BookingError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/resources/{resource_id}/exceptions/{exception_date}', response_model=ScheduleExceptionResponse)
def set_schedule_exception(
    exception_date: date,
    data: ScheduleExceptionRequest,
    db: Session = Depends(get_db),
    resource: Resource = Depends(require_resource_manager),
):
    try:
        exception = commit_upsert(
            db,
            lambda: ScheduleStore.upsert_exception(
                db,
                resource.id,
                exception_date,
                is_closed=data.is_closed,
                open_time=None if data.is_closed else data.open_time,
                close_time=None if data.is_closed else data.close_time,
                reason=data.reason,
            ),
        )
        db.refresh(exception)
        return exception
    except BookingError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/resources/{resource_id}/exceptions/{exception_date}', status_code=status.HTTP_204_NO_CONTENT)
def remove_schedule_exception(
    exception_date: date,
    db: Session = Depends(get_db),
    resource: Resource = Depends(require_resource_manager),
):
    try:
        if not ScheduleStore.delete_exception(db, resource.id, exception_date):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Schedule exception not found.',
            )
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/resources/{resource_id}/blocks', response_model=list[BlockResponse])
def list_blocks(resource_id: int, date: date = Query(...), db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        require_resource(db, resource_id)
        return BlockStore.list_for_day(db, resource_id, date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/resources/{resource_id}/blocks', response_model=BlockResponse)
def create_block(
    data: CreateBlockRequest,
    response: Response,
    db: Session = Depends(get_db),
    resource: Resource = Depends(require_resource_manager),
):
    try:
        block, created = commit_upsert(
            db,
            lambda: BlockStore.block(db, resource.id, data.date, data.time_slot, data.reason),
        )
        db.refresh(block)
        response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
        return block
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/resources/{resource_id}/blocks/{block_date}/{time_slot}', status_code=status.HTTP_204_NO_CONTENT)
def remove_block(
    block_date: date,
    time_slot: str,
    db: Session = Depends(get_db),
    resource: Resource = Depends(require_resource_manager),
):
    try:
        if not BlockStore.unblock(db, resource.id, block_date, time_slot):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='Blocked time not found.',
            )
        db.commit()
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
