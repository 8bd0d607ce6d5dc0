import os

# Point the settings at SQLite before anything imports app.db.session
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import get_db
from app.main import app
from app.models import Facility, FacilityRoute, FacilityType, ApprovalRoute, User, UserRole
from app.schemas.reservation import BookingCreate

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Fixed reference instant; bookings in tests are placed relative to it
NOW = datetime(2030, 3, 4, 8, 0, tzinfo=timezone.utc)


def at(days: int, hour: int) -> datetime:
    return (NOW + timedelta(days=days)).replace(hour=hour, minute=0)


@pytest.fixture
def db():
    Base.metadata.create_all(bind=engine)
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def client(db):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    # No context manager: the lifespan would try to reach PostgreSQL
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def _make(role: UserRole = UserRole.END_USER, full_name: str = None, **kwargs) -> User:
        counter["n"] += 1
        n = counter["n"]
        user = User(
            email=kwargs.pop("email", f"{role.value}{n}@example.com"),
            password_hash=kwargs.pop("password_hash", "not-a-real-hash"),
            full_name=full_name or f"{role.value.replace('_', ' ').title()} {n}",
            phone=kwargs.pop("phone", f"0917000{n:04d}"),
            role=role,
            created_at=NOW - timedelta(days=30) + timedelta(minutes=n),
            **kwargs,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def make_facility(db):
    def _make(name: str = "Covered Court", price="0", capacity: int = 100,
              route: ApprovalRoute = None, **kwargs) -> Facility:
        facility = Facility(
            name=name,
            location=kwargs.pop("location", "Barangay Hall Compound"),
            capacity=capacity,
            type=kwargs.pop("type", FacilityType.INDOOR),
            price_per_hour=Decimal(price),
            **kwargs,
        )
        db.add(facility)
        db.flush()
        if route is not None:
            db.add(FacilityRoute(facility_id=facility.id, route=route))
        db.commit()
        db.refresh(facility)
        return facility

    return _make


@pytest.fixture
def staff(make_user):
    """One active user per approver role."""
    return {
        UserRole.ADMIN: make_user(UserRole.ADMIN, full_name="Ada Admin"),
        UserRole.MDRR_STAFF: make_user(UserRole.MDRR_STAFF, full_name="Mara Staff"),
        UserRole.PAYMENT_COLLECTOR: make_user(UserRole.PAYMENT_COLLECTOR, full_name="Paco Collector"),
    }


def booking_request(facility: Facility, start: datetime, end: datetime, **kwargs) -> BookingCreate:
    if facility.is_priced:
        kwargs.setdefault("receipt_image_url", "https://receipts.example.com/r/1.jpg")
    return BookingCreate(facility_id=facility.id, start_time=start, end_time=end, **kwargs)


def auth_headers(user: User) -> dict:
    token = create_access_token(subject=str(user.id), role=UserRole(user.role).value)
    return {"Authorization": f"Bearer {token}"}
