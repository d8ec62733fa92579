# tests/test_occupancy.py
"""Check-in / check-out through the coordinator, plus the storage-level guards."""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import pytest
from decimal import Decimal
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from conftest import FACILITY, at, status_of
from plaza_engine.errors import (
    AlreadyClosed, DuplicateActiveOccupancy, NotFound, SpotUnavailable, ValidationFailed,
)
from plaza_engine.models.occupancy import Occupancy
from plaza_engine.models.reservation import Reservation, ReservationStatus
from plaza_engine.models.spot import SpotStatus
from plaza_engine.services import spot_state
from plaza_engine.services.spot_status_coordinator import request_occupy, request_release


def _confirmed_reservation(db, spot_number, plate="RES001", code="RES-20250310-AAAAAA"):
    db.add(Reservation(
        code=code, facility_id=FACILITY, spot_number=spot_number, vehicle_plate=plate,
        driver_id="driver-9", hold_start=at(11), hold_end=at(12), amount=Decimal("500.00"),
        status=ReservationStatus.CONFIRMED, grace_period_minutes=15, created_at=at(8),
    ))
    db.commit()


class TestCheckin:
    @pytest.mark.asyncio
    async def test_spot_cannot_be_taken_twice_until_released(self, spots, clock):
        db = spots
        first = await request_occupy(db, FACILITY, 5, "XYZ999", entry_time=at(9), clock=clock)
        assert status_of(db, 5) == SpotStatus.OCCUPIED

        with pytest.raises(SpotUnavailable):
            await request_occupy(db, FACILITY, 5, "QWE456", entry_time=at(9, 5), clock=clock)
        assert status_of(db, 5) == SpotStatus.OCCUPIED

        await request_release(db, first.id, exit_time=at(10), clock=clock)
        assert status_of(db, 5) == SpotStatus.FREE

        second = await request_occupy(db, FACILITY, 5, "QWE456", entry_time=at(10, 5), clock=clock)
        assert second.spot_number == 5
        assert status_of(db, 5) == SpotStatus.OCCUPIED

    @pytest.mark.asyncio
    async def test_plate_is_normalized(self, spots, clock):
        occupancy = await request_occupy(spots, FACILITY, 1, "  ab 123 ", entry_time=at(9), clock=clock)
        assert occupancy.vehicle_plate == "AB 123"

    @pytest.mark.asyncio
    async def test_same_plate_twice_is_rejected(self, spots, clock):
        db = spots
        await request_occupy(db, FACILITY, 1, "XYZ999", entry_time=at(9), clock=clock)
        with pytest.raises(DuplicateActiveOccupancy):
            await request_occupy(db, FACILITY, 2, "xyz999", entry_time=at(9, 1), clock=clock)
        # rolled back: spot 2 untouched
        assert status_of(db, 2) == SpotStatus.FREE

    @pytest.mark.asyncio
    async def test_checkin_without_spot_leaves_spots_alone(self, spots, clock):
        db = spots
        occupancy = await request_occupy(db, FACILITY, None, "NOSPOT1", entry_time=at(9), clock=clock)
        assert occupancy.spot_number is None
        assert occupancy.is_active
        assert all(status_of(db, n) == SpotStatus.FREE for n in range(1, 13))

    @pytest.mark.asyncio
    async def test_spot_in_maintenance_is_unavailable(self, spots, clock):
        db = spots
        spot_state.transition(db, spot_state.lock_spot(db, FACILITY, 8), spot_state.SpotEvent.BLOCK, at(8))
        db.commit()
        with pytest.raises(SpotUnavailable):
            await request_occupy(db, FACILITY, 8, "XYZ999", entry_time=at(9), clock=clock)
        assert db.query(Occupancy).count() == 0

    @pytest.mark.asyncio
    async def test_unknown_spot(self, spots, clock):
        with pytest.raises(NotFound):
            await request_occupy(spots, FACILITY, 99, "XYZ999", clock=clock)

    @pytest.mark.asyncio
    async def test_blank_plate(self, spots, clock):
        with pytest.raises(ValidationFailed):
            await request_occupy(spots, FACILITY, 1, "   ", clock=clock)
        assert status_of(spots, 1) == SpotStatus.FREE

    @pytest.mark.asyncio
    async def test_entry_defaults_to_clock(self, spots, clock):
        occupancy = await request_occupy(spots, FACILITY, 1, "XYZ999", clock=clock)
        assert occupancy.entry_time == clock.now()


class TestCheckout:
    @pytest.mark.asyncio
    async def test_release_twice_reports_already_closed(self, spots, clock):
        db = spots
        occupancy = await request_occupy(db, FACILITY, 5, "XYZ999", entry_time=at(9), clock=clock)
        await request_release(db, occupancy.id, exit_time=at(10), clock=clock)

        with pytest.raises(AlreadyClosed):
            await request_release(db, occupancy.id, exit_time=at(10, 1), clock=clock)
        assert db.get(Occupancy, occupancy.id).exit_time == at(10)
        assert status_of(db, 5) == SpotStatus.FREE

    @pytest.mark.asyncio
    async def test_exit_before_entry_is_rejected(self, spots, clock):
        db = spots
        occupancy = await request_occupy(db, FACILITY, 5, "XYZ999", entry_time=at(9), clock=clock)
        with pytest.raises(ValidationFailed):
            await request_release(db, occupancy.id, exit_time=at(8), clock=clock)
        assert status_of(db, 5) == SpotStatus.OCCUPIED
        assert db.get(Occupancy, occupancy.id).exit_time is None

    @pytest.mark.asyncio
    async def test_release_hands_spot_to_waiting_reservation(self, spots, clock):
        db = spots
        occupancy = await request_occupy(db, FACILITY, 6, "XYZ999", entry_time=at(9), clock=clock)
        _confirmed_reservation(db, 6)

        await request_release(db, occupancy.id, exit_time=at(10), clock=clock)
        assert status_of(db, 6) == SpotStatus.RESERVED

    @pytest.mark.asyncio
    async def test_spotless_release(self, spots, clock):
        db = spots
        occupancy = await request_occupy(db, FACILITY, None, "NOSPOT1", entry_time=at(9), clock=clock)
        released = await request_release(db, occupancy.id, exit_time=at(9, 30), clock=clock)
        assert released.exit_time == at(9, 30)

    @pytest.mark.asyncio
    async def test_unknown_occupancy(self, spots, clock):
        with pytest.raises(NotFound):
            await request_release(spots, 4242, clock=clock)


class TestStorageGuards:
    def test_second_active_row_for_spot_violates_index(self, spots):
        db = spots
        db.add(Occupancy(facility_id=FACILITY, spot_number=3, vehicle_plate="AAA111", entry_time=at(9)))
        db.commit()
        db.add(Occupancy(facility_id=FACILITY, spot_number=3, vehicle_plate="BBB222", entry_time=at(9)))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

    def test_second_active_row_for_plate_violates_index(self, spots):
        db = spots
        db.add(Occupancy(facility_id=FACILITY, spot_number=3, vehicle_plate="AAA111", entry_time=at(9)))
        db.commit()
        db.add(Occupancy(facility_id=FACILITY, spot_number=4, vehicle_plate="AAA111", entry_time=at(9)))
        with pytest.raises(IntegrityError):
            db.commit()
        db.rollback()

    def test_closed_rows_do_not_count(self, spots):
        db = spots
        db.add(Occupancy(facility_id=FACILITY, spot_number=3, vehicle_plate="AAA111",
                         entry_time=at(8), exit_time=at(9)))
        db.add(Occupancy(facility_id=FACILITY, spot_number=3, vehicle_plate="AAA111", entry_time=at(9)))
        db.commit()
        assert db.query(Occupancy).count() == 2

    def test_spotless_rows_do_not_collide(self, spots):
        db = spots
        db.add(Occupancy(facility_id=FACILITY, spot_number=None, vehicle_plate="AAA111", entry_time=at(9)))
        db.add(Occupancy(facility_id=FACILITY, spot_number=None, vehicle_plate="BBB222", entry_time=at(9)))
        db.commit()
        assert db.query(Occupancy).count() == 2

    @pytest.mark.asyncio
    async def test_lost_race_on_spot_row_is_spot_unavailable(self, spots, clock):
        db = spots
        spot_state.lock_spot(db, FACILITY, 5)
        # A concurrent check-in committed between our read and write
        db.execute(text("UPDATE spots SET status = 'Occupied', version = version + 1 "
                        "WHERE facility_id = 1 AND spot_number = 5"))
        db.execute(text("INSERT INTO occupancies (facility_id, spot_number, vehicle_plate, entry_time) "
                        "VALUES (1, 5, 'OTHER1', '2025-03-10 08:59:00.000000')"))

        with pytest.raises(SpotUnavailable):
            await request_occupy(db, FACILITY, 5, "XYZ999", entry_time=at(9), clock=clock)

        assert status_of(db, 5) == SpotStatus.FREE
        assert db.query(Occupancy).count() == 0
