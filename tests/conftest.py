# tests/conftest.py
"""
Shared fixtures: an in-memory SQLite database with the real schema (partial
unique indexes included), a pinned facility clock and spot helpers.
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("EXPIRY_SWEEP_ENABLED", "false")

import pytest
from datetime import datetime
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from plaza_engine.clock import FixedClock
from plaza_engine.database import create_tables
from plaza_engine.models.reservation import Reservation, ReservationStatus
from plaza_engine.models.spot import Spot, SpotStatus, VehicleCategory

FACILITY = 1


@pytest.fixture
def engine():
    eng = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    create_tables(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def clock():
    """Facility clock pinned to 2025-03-10 08:00 local."""
    return FixedClock(datetime(2025, 3, 10, 8, 0))


def at(hour, minute=0, day=10):
    return datetime(2025, 3, day, hour, minute)


def add_spots(db, numbers, facility_id=FACILITY, zone="A", category=VehicleCategory.CAR):
    for n in numbers:
        db.add(Spot(facility_id=facility_id, spot_number=n, vehicle_category=category,
                    zone=zone, status=SpotStatus.FREE))
    db.commit()


def status_of(db, spot_number, facility_id=FACILITY) -> SpotStatus:
    return db.query(Spot.status).filter(Spot.facility_id == facility_id,
                                        Spot.spot_number == spot_number).scalar()


def reservation_status(db, code) -> ReservationStatus:
    return db.query(Reservation.status).filter(Reservation.code == code).scalar()


@pytest.fixture
def spots(db):
    add_spots(db, range(1, 13))
    return db
