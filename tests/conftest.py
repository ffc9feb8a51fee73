import os

# Must be set before n2wash.config is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SMSAPI_TOKEN"] = ""
os.environ["DB_LOG_SLOW_QUERIES"] = "false"

from datetime import date, timedelta

import pytest
from fastapi.testclient import TestClient

from n2wash import config
from n2wash.database import Base, SessionLocal, engine
from n2wash.main import app
from n2wash.models import (
    ROLE_ADMIN,
    ROLE_SUPER_ADMIN,
    Instance,
    Service,
    Station,
    User,
    UserRole,
)
from n2wash.security import create_access_token, hash_password
from n2wash.shared.timeutils import WEEKDAY_KEYS, to_local, utcnow

ALL_WEEK = {day: {"open": "08:00", "close": "18:00"} for day in WEEKDAY_KEYS}


@pytest.fixture(autouse=True)
def dev_mode(monkeypatch):
    """No real SMS or push traffic from tests"""
    monkeypatch.setattr(config, "SMSAPI_TOKEN", None)
    monkeypatch.setattr(config, "VAPID_PUBLIC_KEY", None)
    monkeypatch.setattr(config, "VAPID_PRIVATE_KEY", None)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    return TestClient(app)


def local_today(tz_name="Europe/Warsaw") -> date:
    return to_local(utcnow(), tz_name).date()


@pytest.fixture
def booking_day() -> date:
    """A day comfortably inside the booking window"""
    return local_today() + timedelta(days=7)


def make_instance(db, slug="studio", **kwargs) -> Instance:
    instance = Instance(name=kwargs.pop("name", "Studio Detailingu"), slug=slug, working_hours=ALL_WEEK, **kwargs)
    db.add(instance)
    db.commit()
    db.refresh(instance)
    return instance


def make_user(db, instance, username, role=ROLE_ADMIN, hall_id=None, password="secret123") -> User:
    user = User(
        instance_id=instance.id if instance else None,
        username=username,
        password_hash=hash_password(password),
    )
    user.roles.append(
        UserRole(role=role, instance_id=instance.id if instance and role != ROLE_SUPER_ADMIN else None, hall_id=hall_id)
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id, user.instance_id)}"}


@pytest.fixture
def instance(db):
    return make_instance(db)


@pytest.fixture
def admin(db, instance):
    return make_user(db, instance, "admin")


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


@pytest.fixture
def super_admin(db):
    return make_user(db, None, "root", role=ROLE_SUPER_ADMIN)


@pytest.fixture
def station(db, instance):
    station = Station(instance_id=instance.id, name="Stanowisko 1", type="washing", sort_order=1)
    db.add(station)
    db.commit()
    db.refresh(station)
    return station


@pytest.fixture
def wash_service(db, instance):
    service = Service(
        instance_id=instance.id,
        name="Mycie premium",
        duration_minutes=90,
        price_small=120,
        price_medium=150,
        price_large=180,
    )
    db.add(service)
    db.commit()
    db.refresh(service)
    return service


def reservation_payload(station_id, day, start="10:00", end="11:00", **overrides) -> dict:
    payload = {
        "stationId": station_id,
        "customerName": "Jan Kowalski",
        "customerPhone": "600 123 456",
        "vehiclePlate": "WA 12345",
        "reservationDate": day.isoformat(),
        "startTime": start,
        "endTime": end,
    }
    payload.update(overrides)
    return payload
