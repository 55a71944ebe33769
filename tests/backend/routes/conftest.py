import pytest
from fastapi.testclient import TestClient

from backend.auth.jwt_handler import create_access_token
from backend.booking.events import get_event_bus
from backend.database import get_db
from backend.main import app
from backend.models.resource import Resource
from backend.models.user import User
from backend.routes import availability_routes, reservation_routes, resource_routes
from backend.routes.availability_routes import get_clock


@pytest.fixture
def owner(db, garage):
    user = User(email='owner@northside.example.com', name='Olive Owner', role='garage_owner')
    db.add(user)
    db.commit()
    garage.owner_id = user.id
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def platform_admin(db):
    user = User(email='support@admin.example.com', name='Pat Support', role='admin')
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def rival_owner(db):
    user = User(email='owner@southside.example.com', name='Rory Rival', role='garage_owner')
    db.add(user)
    db.commit()
    db.add(Resource(name='Southside Garage', owner_id=user.id, accepts_bookings=True, quota_allotted=100))
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def auth_header():
    def build(user: User) -> dict[str, str]:
        return {'Authorization': f'Bearer {create_access_token(user.email, role=user.role)}'}

    return build


@pytest.fixture
def client(db, event_bus, now, monkeypatch: pytest.MonkeyPatch):
    for module in (availability_routes, reservation_routes, resource_routes):
        monkeypatch.setattr(module, 'ensure_database_ready', lambda: None)

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_event_bus] = lambda: event_bus
    app.dependency_overrides[get_clock] = lambda: (lambda: now)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
