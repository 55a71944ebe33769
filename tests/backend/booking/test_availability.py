from datetime import date, datetime

import pytest

from backend.booking.availability import compute_available_slots, day_availability
from backend.booking.errors import InvalidSlotError, NotFoundError
from backend.models.block import TimeSlotBlock
from backend.models.reservation import Reservation, ReservationStatus
from backend.models.schedule import ScheduleException, WeeklyScheduleEntry
from backend.stores import ScheduleStore

MONDAY = date(2026, 3, 9)
TUESDAY = date(2026, 3, 10)
FUTURE_NOW = datetime(2026, 3, 2, 8, 0)

FULL_DAY = ['09:00', '10:00', '11:00', '12:00', '13:00', '14:00', '15:00', '16:00']


def _reserve(db, garage, vehicle, slot_date, time_slot, status=ReservationStatus.CONFIRMED, reference='MOTTEST0001'):
    reservation = Reservation(
        reference=reference,
        resource_id=garage.id,
        requester_id=vehicle.owner_id,
        subject_id=vehicle.id,
        date=slot_date,
        time_slot=time_slot,
        status=status,
    )
    db.add(reservation)
    db.commit()
    return reservation


def test_open_weekday_lists_every_slot_that_fits(db, garage) -> None:
    assert compute_available_slots(db, garage.id, MONDAY, FUTURE_NOW) == FULL_DAY


def test_saturday_uses_its_own_hours(db, garage) -> None:
    assert compute_available_slots(db, garage.id, date(2026, 3, 14), FUTURE_NOW) == [
        '09:00', '10:00', '11:00', '12:00',
    ]


def test_closed_weekday_returns_no_slots(db, garage) -> None:
    summary = day_availability(db, garage.id, date(2026, 3, 15), FUTURE_NOW)

    assert summary.available_slots == []
    assert summary.closed_reason == 'closed by default schedule'


def test_missing_weekly_entry_means_closed(db, garage) -> None:
    db.query(WeeklyScheduleEntry).filter(WeeklyScheduleEntry.day_of_week == 2).delete()
    db.commit()

    assert compute_available_slots(db, garage.id, date(2026, 3, 11), FUTURE_NOW) == []


def test_closed_exception_supersedes_weekly_template(db, garage) -> None:
    db.add(ScheduleException(resource_id=garage.id, date=MONDAY, is_closed=True, reason='Bank holiday'))
    db.commit()

    summary = day_availability(db, garage.id, MONDAY, FUTURE_NOW)

    assert summary.available_slots == []
    assert summary.closed_reason == 'explicitly closed'
    assert compute_available_slots(db, garage.id, date(2026, 3, 16), FUTURE_NOW) == FULL_DAY


def test_exception_override_hours_keep_weekly_slot_duration(db, garage) -> None:
    db.add(ScheduleException(resource_id=garage.id, date=TUESDAY, open_time='10:00', close_time='12:00'))
    db.commit()

    assert compute_available_slots(db, garage.id, TUESDAY, FUTURE_NOW) == ['10:00', '11:00']


def test_open_exception_without_hours_keeps_weekly_hours(db, garage) -> None:
    db.add(ScheduleException(resource_id=garage.id, date=TUESDAY, is_closed=False, reason='Reopened'))
    db.commit()

    assert compute_available_slots(db, garage.id, TUESDAY, FUTURE_NOW) == FULL_DAY


def test_exception_on_normally_closed_day_does_not_open_it(db, garage) -> None:
    sunday = date(2026, 3, 15)
    db.add(ScheduleException(resource_id=garage.id, date=sunday, open_time='10:00', close_time='12:00'))
    db.commit()

    assert compute_available_slots(db, garage.id, sunday, FUTURE_NOW) == []


def test_trailing_partial_slot_is_not_offered(db, garage) -> None:
    ScheduleStore.upsert_weekly_entry(
        db,
        garage.id,
        0,
        is_open=True,
        open_time='09:00',
        close_time='10:45',
        slot_duration_minutes=30,
    )
    db.commit()

    assert compute_available_slots(db, garage.id, MONDAY, FUTURE_NOW) == ['09:00', '09:30', '10:00']


def test_block_removes_unbooked_slot(db, garage) -> None:
    db.add(TimeSlotBlock(resource_id=garage.id, date=MONDAY, time_slot='11:00'))
    db.commit()

    slots = compute_available_slots(db, garage.id, MONDAY, FUTURE_NOW)

    assert '11:00' not in slots
    assert slots == [label for label in FULL_DAY if label != '11:00']


def test_block_only_applies_to_its_own_date(db, garage) -> None:
    db.add(TimeSlotBlock(resource_id=garage.id, date=MONDAY, time_slot='11:00'))
    db.commit()

    assert '11:00' in compute_available_slots(db, garage.id, TUESDAY, FUTURE_NOW)


def test_past_slots_are_filtered_only_for_today(db, garage) -> None:
    now = datetime(2026, 3, 9, 11, 30)

    today = compute_available_slots(db, garage.id, MONDAY, now)
    tomorrow = compute_available_slots(db, garage.id, TUESDAY, now)

    assert today == ['12:00', '13:00', '14:00', '15:00', '16:00']
    assert '09:00' in tomorrow
    assert tomorrow == FULL_DAY


def test_slot_starting_exactly_now_is_still_offered(db, garage) -> None:
    now = datetime(2026, 3, 9, 12, 0)

    assert compute_available_slots(db, garage.id, MONDAY, now)[0] == '12:00'


@pytest.mark.parametrize(
    'status',
    [ReservationStatus.PENDING, ReservationStatus.CONFIRMED, ReservationStatus.IN_PROGRESS],
)
def test_active_reservations_occupy_their_slot(db, garage, vehicle, status) -> None:
    _reserve(db, garage, vehicle, MONDAY, '10:00', status=status)

    assert '10:00' not in compute_available_slots(db, garage.id, MONDAY, FUTURE_NOW)


@pytest.mark.parametrize(
    'status',
    [ReservationStatus.CANCELLED, ReservationStatus.COMPLETED, ReservationStatus.NO_SHOW],
)
def test_finished_reservations_do_not_occupy_their_slot(db, garage, vehicle, status) -> None:
    _reserve(db, garage, vehicle, MONDAY, '10:00', status=status)

    assert '10:00' in compute_available_slots(db, garage.id, MONDAY, FUTURE_NOW)


def test_excluded_reservation_does_not_occupy_its_slot(db, garage, vehicle) -> None:
    reservation = _reserve(db, garage, vehicle, MONDAY, '10:00')

    slots = compute_available_slots(db, garage.id, MONDAY, FUTURE_NOW, exclude_reservation_id=reservation.id)

    assert '10:00' in slots


def test_requested_slot_collapses_to_singleton_when_free(db, garage) -> None:
    assert compute_available_slots(db, garage.id, MONDAY, FUTURE_NOW, requested_slot='14:00') == ['14:00']
    assert compute_available_slots(db, garage.id, MONDAY, FUTURE_NOW, requested_slot='9:00') == ['09:00']


def test_requested_slot_returns_empty_when_taken_or_not_generated(db, garage, vehicle) -> None:
    _reserve(db, garage, vehicle, MONDAY, '14:00')

    assert compute_available_slots(db, garage.id, MONDAY, FUTURE_NOW, requested_slot='14:00') == []
    assert compute_available_slots(db, garage.id, MONDAY, FUTURE_NOW, requested_slot='14:30') == []
    assert compute_available_slots(db, garage.id, MONDAY, FUTURE_NOW, requested_slot='17:00') == []


def test_day_summary_counts_blocks_and_bookings(db, garage, vehicle) -> None:
    _reserve(db, garage, vehicle, MONDAY, '09:00')
    db.add(TimeSlotBlock(resource_id=garage.id, date=MONDAY, time_slot='10:00'))
    db.commit()

    summary = day_availability(db, garage.id, '2026-03-09', FUTURE_NOW)

    assert summary.total_slots == 8
    assert summary.booked_slots == 1
    assert summary.blocked_slots == 1
    assert summary.available_slots == FULL_DAY[2:]


def test_unknown_resource_raises_not_found(db) -> None:
    with pytest.raises(NotFoundError):
        compute_available_slots(db, 999, MONDAY, FUTURE_NOW)


def test_unparseable_date_raises_invalid_slot(db, garage) -> None:
    with pytest.raises(InvalidSlotError):
        compute_available_slots(db, garage.id, 'next monday', FUTURE_NOW)


def test_malformed_requested_slot_raises_invalid_slot(db, garage) -> None:
    with pytest.raises(InvalidSlotError):
        compute_available_slots(db, garage.id, MONDAY, FUTURE_NOW, requested_slot='25:00')
