from datetime import date

import pytest

from backend.booking.errors import InvalidSlotError
from backend.booking.quota import bookable_resources, is_bookable, quota_summary
from backend.models.reservation import ReservationStatus
from backend.models.resource import Resource

MONDAY = date(2026, 3, 9)
LABELS = ['09:00', '10:00', '11:00', '12:00', '13:00', '14:00', '15:00', '16:00']


@pytest.fixture
def small_garage(db, garage):
    garage.quota_allotted = 10
    db.commit()
    return garage


def _fill(service, garage, customer, vehicle, count):
    reservations = []
    for index in range(count):
        slot_date = MONDAY if index < len(LABELS) else date(2026, 3, 10)
        reservations.append(
            service.reserve(garage.id, customer.id, vehicle.id, slot_date, LABELS[index % len(LABELS)])
        )
    return reservations


def test_quota_gate_blocks_reservation_at_the_boundary(db, service, small_garage, customer, vehicle) -> None:
    reservations = _fill(service, small_garage, customer, vehicle, 10)

    assert is_bookable(db, small_garage) is False
    assert small_garage not in bookable_resources(db)

    with pytest.raises(InvalidSlotError) as exception_info:
        service.reserve(small_garage.id, customer.id, vehicle.id, date(2026, 3, 11), '09:00')
    assert exception_info.value.message == 'Resource is not bookable.'

    service.cancel(reservations[0].id)

    assert is_bookable(db, small_garage) is True
    assert small_garage in bookable_resources(db)
    eleventh = service.reserve(small_garage.id, customer.id, vehicle.id, date(2026, 3, 11), '09:00')
    assert eleventh.status == ReservationStatus.PENDING


def test_completed_reservations_still_consume_quota(db, service, small_garage, customer, vehicle) -> None:
    reservations = _fill(service, small_garage, customer, vehicle, 10)
    first = reservations[0]
    for status in (ReservationStatus.CONFIRMED, ReservationStatus.IN_PROGRESS, ReservationStatus.COMPLETED):
        service.transition(first.id, status)

    assert is_bookable(db, small_garage) is False


def test_resource_not_accepting_bookings_is_hidden(db, garage) -> None:
    garage.accepts_bookings = False
    db.commit()

    assert is_bookable(db, garage) is False
    assert bookable_resources(db) == []


def test_resource_without_quota_is_not_bookable(db) -> None:
    resource = Resource(name='Unpaid Garage', accepts_bookings=True, quota_allotted=0)
    db.add(resource)
    db.commit()

    assert is_bookable(db, resource) is False


def test_bookable_resources_are_sorted_by_name(db, garage) -> None:
    db.add(Resource(name='Abbey Motors', accepts_bookings=True, quota_allotted=5))
    db.add(Resource(name='Zenith Autos', accepts_bookings=False, quota_allotted=5))
    db.commit()

    assert [resource.name for resource in bookable_resources(db)] == ['Abbey Motors', 'Northside Garage']


def test_quota_summary_reports_near_limit_and_exhaustion(db, service, small_garage, customer, vehicle) -> None:
    _fill(service, small_garage, customer, vehicle, 8)

    near = quota_summary(db, small_garage)
    assert near.consumed == 8
    assert near.remaining == 2
    assert near.is_near_limit is True
    assert near.is_exhausted is False

    for label in ('09:00', '10:00'):
        service.reserve(small_garage.id, customer.id, vehicle.id, date(2026, 3, 10), label)

    full = quota_summary(db, small_garage)
    assert full.remaining == 0
    assert full.is_near_limit is False
    assert full.is_exhausted is True
