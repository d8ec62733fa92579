# plaza_engine/services/occupancy_ledger.py
"""
Occupancy Ledger — check-in, check-out and relocation of parked vehicles.

The partial unique indexes on `occupancies` decide who wins a concurrent
check-in; a violation is expected control flow and comes back as a typed error
(DuplicateActiveOccupancy for the plate, SpotUnavailable for the spot).
Nothing here commits: the coordinator wraps each command in one transaction.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from plaza_engine.errors import (
    AlreadyClosed, DuplicateActiveOccupancy, NotFound, SpotUnavailable, ValidationFailed,
)
from plaza_engine.models.occupancy import Occupancy, ACTIVE_SPOT_INDEX
from plaza_engine.models.spot import SpotStatus
from plaza_engine.services import movement_recorder, spot_state
from plaza_engine.services.spot_state import SpotEvent
from plaza_engine.utils.logger import get_logger

logger = get_logger(__name__)


def normalize_plate(plate: str) -> str:
    plate = (plate or "").strip().upper()
    if not plate:
        raise ValidationFailed("Vehicle plate is required")
    return plate


def _is_spot_violation(exc: IntegrityError) -> bool:
    # PostgreSQL names the index; SQLite lists the columns
    message = str(exc.orig)
    return ACTIVE_SPOT_INDEX in message or "spot_number" in message


def get_occupancy(db: Session, occupancy_id: int, for_update: bool = False) -> Occupancy:
    q = db.query(Occupancy).filter(Occupancy.id == occupancy_id)
    if for_update:
        q = q.with_for_update()
    occupancy = q.first()
    if occupancy is None:
        raise NotFound(f"Occupancy {occupancy_id} not found", occupancy_id=occupancy_id)
    return occupancy


def active_for_plate(db: Session, facility_id: int, plate: str) -> Optional[Occupancy]:
    return db.query(Occupancy).filter(
        Occupancy.facility_id == facility_id,
        Occupancy.vehicle_plate == normalize_plate(plate),
        Occupancy.exit_time == None,  # noqa: E711
    ).first()


def active_for_spot(db: Session, facility_id: int, spot_number: int) -> Optional[Occupancy]:
    return db.query(Occupancy).filter(
        Occupancy.facility_id == facility_id,
        Occupancy.spot_number == spot_number,
        Occupancy.exit_time == None,  # noqa: E711
    ).first()


def checkin(db: Session, facility_id: int, spot_number: Optional[int], plate: str,
            entry_time: datetime, tariff_ref: str = None, payment_ref: str = None,
            reservation_code: str = None) -> Occupancy:
    """Insert an active occupancy. Does not touch spot status."""
    plate = normalize_plate(plate)

    existing = active_for_plate(db, facility_id, plate)
    if existing is not None:
        raise DuplicateActiveOccupancy(
            f"Vehicle {plate} is already parked (occupancy {existing.id})",
            facility_id=facility_id, vehicle_plate=plate, occupancy_id=existing.id,
        )

    occupancy = Occupancy(
        facility_id=facility_id,
        spot_number=spot_number,
        vehicle_plate=plate,
        entry_time=entry_time,
        tariff_ref=tariff_ref,
        payment_ref=payment_ref,
        reservation_code=reservation_code,
    )
    db.add(occupancy)
    try:
        db.flush()
    except IntegrityError as exc:
        # Lost a race the lookup above could not see
        if _is_spot_violation(exc):
            raise SpotUnavailable(
                f"Spot {facility_id}/{spot_number} already has an active occupancy",
                facility_id=facility_id, spot_number=spot_number,
            )
        raise DuplicateActiveOccupancy(
            f"Vehicle {plate} is already parked",
            facility_id=facility_id, vehicle_plate=plate,
        )

    logger.info(f"[CHECKIN] {plate} -> {facility_id}/{spot_number or '-'} (occupancy {occupancy.id})")
    return occupancy


def checkout(db: Session, occupancy: Occupancy, exit_time: datetime) -> Occupancy:
    if occupancy.exit_time is not None:
        raise AlreadyClosed(
            f"Occupancy {occupancy.id} already closed at {occupancy.exit_time}",
            occupancy_id=occupancy.id, exit_time=occupancy.exit_time.isoformat(),
        )
    if exit_time < occupancy.entry_time:
        raise ValidationFailed("Exit time precedes entry time",
                               occupancy_id=occupancy.id,
                               entry_time=occupancy.entry_time.isoformat(),
                               exit_time=exit_time.isoformat())
    occupancy.exit_time = exit_time
    db.flush()
    logger.info(f"[CHECKOUT] {occupancy.vehicle_plate} left {occupancy.facility_id}/"
                f"{occupancy.spot_number or '-'} (occupancy {occupancy.id})")
    return occupancy


def relocate(db: Session, occupancy_id: int, new_spot_number: int, operator_id: str,
             reason: str, at: datetime):
    """
    Move an active stay to a Free spot: origin released, destination occupied,
    occupancy updated and one Movement recorded. Returns (occupancy, movement).
    """
    occupancy = get_occupancy(db, occupancy_id, for_update=True)
    if occupancy.exit_time is not None:
        raise AlreadyClosed(f"Occupancy {occupancy_id} is no longer active",
                            occupancy_id=occupancy_id)

    origin = occupancy.spot_number
    if origin == new_spot_number:
        raise ValidationFailed("Origin and destination spot are the same",
                               occupancy_id=occupancy_id, spot_number=new_spot_number)

    destination = spot_state.lock_spot(db, occupancy.facility_id, new_spot_number)
    if destination.status != SpotStatus.FREE:
        raise SpotUnavailable(
            f"Spot {occupancy.facility_id}/{new_spot_number} is {destination.status.value}",
            facility_id=occupancy.facility_id, spot_number=new_spot_number,
            current=destination.status.value,
        )

    move_reason = reason or "Manual move"
    if origin is not None:
        origin_spot = spot_state.lock_spot(db, occupancy.facility_id, origin)
        spot_state.transition(db, origin_spot, SpotEvent.RELEASE, at,
                              reason=f"Vehicle moved: {move_reason}", actor_id=operator_id)
    spot_state.transition(db, destination, SpotEvent.OCCUPY, at,
                          reason=f"Vehicle moved: {move_reason}", actor_id=operator_id)

    occupancy.spot_number = new_spot_number
    try:
        db.flush()
    except IntegrityError:
        raise SpotUnavailable(
            f"Spot {occupancy.facility_id}/{new_spot_number} already has an active occupancy",
            facility_id=occupancy.facility_id, spot_number=new_spot_number,
        )

    movement = movement_recorder.record(
        db, occupancy.facility_id, occupancy.vehicle_plate, origin, new_spot_number,
        operator_id, move_reason, at,
    )
    return occupancy, movement
