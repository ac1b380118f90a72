import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")

from datetime import date, datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from donorhub.database import get_db
from donorhub.models.all_models import (
    Base, BloodBank, BloodInventory, BloodType, DonorProfile, HealthcareFacility, User, UserRole,
)
from donorhub.utils.auth import create_access_token, hash_password
from donorhub.utils.clock import Clock, get_clock
from main import app

# Monday 2024-06-10 is the reference booking day
NOW = datetime(2024, 6, 1, 8, 0)
WEEKDAY_HOURS = {
    day: {"open": "09:00", "close": "17:00", "closed": False}
    for day in ["monday", "tuesday", "wednesday", "thursday", "friday"]
}
WEEKDAY_HOURS["saturday"] = {"closed": True}
WEEKDAY_HOURS["sunday"] = {"closed": True}


class FrozenClock(Clock):
    def __init__(self, now: datetime):
        super().__init__()
        self.current = now

    def now(self) -> datetime:
        return self.current

    def advance_to(self, when: datetime):
        self.current = when


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(autocommit=False, autoflush=False, bind=engine)()
    yield session
    session.close()


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def client(db, clock):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_clock] = lambda: clock
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


# ================================
# FACTORIES
# ================================

@pytest.fixture
def make_user(db):
    counter = {"n": 0}

    def factory(role=UserRole.DONOR, email=None, password="Secret123", is_active=True):
        counter["n"] += 1
        user = User(
            email=email or f"{role.value}{counter['n']}@example.com",
            password=hash_password(password),
            role=role,
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return factory


@pytest.fixture
def make_donor(db, make_user):
    def factory(blood_type=BloodType.O_POS, user=None, **fields):
        user = user or make_user(UserRole.DONOR)
        donor = DonorProfile(
            user_id=user.id,
            first_name=fields.pop("first_name", "Chikondi"),
            last_name=fields.pop("last_name", "Banda"),
            date_of_birth=fields.pop("date_of_birth", date(1990, 5, 17)),
            blood_type=blood_type,
            **fields,
        )
        db.add(donor)
        db.commit()
        db.refresh(donor)
        return donor

    return factory


@pytest.fixture
def make_bank(db, make_user):
    def factory(name="Queen Elizabeth Blood Bank", capacity=20, operating_hours=None, operator=None, **fields):
        operator = operator or make_user(UserRole.BLOOD_BANK)
        bank = BloodBank(
            user_id=operator.id,
            name=name,
            capacity=capacity,
            operating_hours=WEEKDAY_HOURS if operating_hours is None else operating_hours,
            is_active=fields.pop("is_active", True),
            **fields,
        )
        db.add(bank)
        db.commit()
        db.refresh(bank)
        return bank

    return factory


@pytest.fixture
def make_facility(db, make_user):
    def factory(name="Kamuzu Central Hospital", user=None, **fields):
        user = user or make_user(UserRole.FACILITY)
        facility = HealthcareFacility(user_id=user.id, name=name, is_active=True, **fields)
        db.add(facility)
        db.commit()
        db.refresh(facility)
        return facility

    return factory


@pytest.fixture
def make_inventory(db):
    def factory(bank, blood_type, units_available, units_reserved=0, minimum_threshold=10, **fields):
        inventory = BloodInventory(
            blood_bank_id=bank.id,
            blood_type=blood_type,
            units_available=units_available,
            units_reserved=units_reserved,
            minimum_threshold=minimum_threshold,
            **fields,
        )
        db.add(inventory)
        db.commit()
        db.refresh(inventory)
        return inventory

    return factory


@pytest.fixture
def auth_headers():
    def factory(user):
        token = create_access_token({"sub": str(user.id), "role": user.role.value, "email": user.email})
        return {"Authorization": f"Bearer {token}"}

    return factory
