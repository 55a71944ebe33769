import os
from datetime import datetime

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from backend.booking.events import EventBus  # noqa: E402
from backend.booking.reservations import ReservationService  # noqa: E402
from backend.database import Base, build_engine  # noqa: E402
from backend.models.block import TimeSlotBlock  # noqa: E402,F401
from backend.models.reservation import Reservation  # noqa: E402,F401
from backend.models.resource import Resource  # noqa: E402
from backend.models.schedule import ScheduleException, WeeklyScheduleEntry  # noqa: E402,F401
from backend.models.user import User  # noqa: E402
from backend.models.vehicle import Vehicle  # noqa: E402

# Monday 2 March 2026, quarter past ten.
NOW = datetime(2026, 3, 2, 10, 15)


def add_weekly_schedule(db, resource_id, slot_duration_minutes=60):
    for day_of_week in range(5):
        db.add(WeeklyScheduleEntry(
            resource_id=resource_id,
            day_of_week=day_of_week,
            open_time='09:00',
            close_time='17:00',
            slot_duration_minutes=slot_duration_minutes,
        ))
    db.add(WeeklyScheduleEntry(
        resource_id=resource_id,
        day_of_week=5,
        open_time='09:00',
        close_time='13:00',
        slot_duration_minutes=slot_duration_minutes,
    ))
    db.add(WeeklyScheduleEntry(resource_id=resource_id, day_of_week=6, is_open=False))
    db.commit()


@pytest.fixture
def engine():
    test_engine = build_engine('sqlite://', poolclass=StaticPool)
    Base.metadata.create_all(bind=test_engine)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(bind=test_engine)
        test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def garage(db):
    resource = Resource(name='Northside Garage', accepts_bookings=True, quota_allotted=100)
    db.add(resource)
    db.commit()
    db.refresh(resource)
    add_weekly_schedule(db, resource.id)
    return resource


@pytest.fixture
def customer(db):
    user = User(email='driver@example.com', name='Dana Driver', role='customer')
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def vehicle(db, customer):
    car = Vehicle(owner_id=customer.id, registration='AB12 CDE', make='Ford', model='Focus')
    db.add(car)
    db.commit()
    db.refresh(car)
    return car


@pytest.fixture
def recorded_events():
    return []


@pytest.fixture
def event_bus(recorded_events):
    bus = EventBus()
    bus.subscribe(recorded_events.append)
    return bus


@pytest.fixture
def service(db, event_bus):
    return ReservationService(db, event_bus, clock=lambda: NOW)


@pytest.fixture
def now():
    return NOW
