"""Bookable slot computation for one resource on one civil date.

Layers are applied in a fixed order: weekly template, date exception,
past-time filter (today only), administrator blocks, active reservations.
The result is always in ascending chronological order and an empty list is
the normal answer for "nothing is bookable".
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy.orm import Session

from backend.booking.errors import NotFoundError
from backend.booking.slots import generate_slot_labels, normalize_label, parse_slot_date, slot_start
from backend.stores import BlockStore, ReservationStore, ResourceStore, ScheduleStore

logger = logging.getLogger(__name__)


@dataclass
class DayAvailability:
    resource_id: int
    date: date
    available_slots: list[str] = field(default_factory=list)
    total_slots: int = 0
    blocked_slots: int = 0
    booked_slots: int = 0
    closed_reason: str | None = None


def opening_hours(db: Session, resource_id: int, slot_date: date) -> tuple[str, str, int] | str:
    """Effective ``(open, close, slot_duration)`` for a date, or why the day is closed."""
    entry = ScheduleStore.get_weekly_entry(db, resource_id, slot_date.weekday())
    if entry is None or not entry.is_open:
        return 'closed by default schedule'

    open_time = entry.open_time
    close_time = entry.close_time

    exception = ScheduleStore.get_exception(db, resource_id, slot_date)
    if exception is not None:
        if exception.is_closed:
            return 'explicitly closed'
        if exception.overrides_hours:
            open_time = exception.open_time
            close_time = exception.close_time

    return open_time, close_time, entry.slot_duration_minutes


def day_availability(
    db: Session,
    resource_id: int,
    slot_date: date | str,
    now: datetime,
    exclude_reservation_id: int | None = None,
) -> DayAvailability:
    slot_date = parse_slot_date(slot_date)

    if ResourceStore.get(db, resource_id) is None:
        raise NotFoundError('Resource not found.')

    summary = DayAvailability(resource_id=resource_id, date=slot_date)

    hours = opening_hours(db, resource_id, slot_date)
    if isinstance(hours, str):
        summary.closed_reason = hours
        logger.debug("Resource %s has no slots on %s: %s", resource_id, slot_date, hours)
        return summary

    open_time, close_time, duration_minutes = hours
    candidates = generate_slot_labels(open_time, close_time, duration_minutes)
    summary.total_slots = len(candidates)

    if slot_date == now.date():
        candidates = [label for label in candidates if slot_start(slot_date, label) >= now]

    blocked = BlockStore.labels_for_day(db, resource_id, slot_date)
    booked = ReservationStore.active_labels_for_day(db, resource_id, slot_date, exclude_reservation_id)
    summary.blocked_slots = len(blocked)
    summary.booked_slots = len(booked)

    summary.available_slots = [
        label for label in candidates
        if label not in blocked and label not in booked
    ]
    return summary


def compute_available_slots(
    db: Session,
    resource_id: int,
    slot_date: date | str,
    now: datetime,
    requested_slot: str | None = None,
    exclude_reservation_id: int | None = None,
) -> list[str]:
    """Ordered ``HH:MM`` labels still bookable at ``resource_id`` on ``slot_date``.

    With ``requested_slot`` the answer collapses to ``[requested_slot]`` when
    that slot is free and ``[]`` otherwise.

    Raises ``NotFoundError`` for an unknown resource and ``InvalidSlotError``
    for an unparseable date or slot label.
    """
    if requested_slot is not None:
        requested_slot = normalize_label(requested_slot)

    summary = day_availability(db, resource_id, slot_date, now, exclude_reservation_id)

    if requested_slot is None:
        return summary.available_slots

    if requested_slot in summary.available_slots:
        return [requested_slot]
    return []
