# plaza_engine/services/movement_recorder.py
"""
Vehicle movement audit trail.
Writes one Movement per relocation and answers "where did this stay move?".
There is intentionally no update or delete here.
"""

from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy.orm import Session

from plaza_engine.config import settings
from plaza_engine.errors import NotFound
from plaza_engine.models.movement import Movement
from plaza_engine.models.occupancy import Occupancy
from plaza_engine.models.spot import Spot
from plaza_engine.utils.logger import get_logger

logger = get_logger(__name__)


def record(db: Session, facility_id: int, vehicle_plate: str, origin_spot: Optional[int],
           destination_spot: int, operator_id: Optional[str], reason: Optional[str],
           moved_at: datetime) -> Movement:
    movement = Movement(
        facility_id=facility_id,
        vehicle_plate=vehicle_plate,
        origin_spot=origin_spot,
        destination_spot=destination_spot,
        moved_at=moved_at,
        operator_id=operator_id,
        reason=reason or "Manual move",
    )
    db.add(movement)
    db.flush()
    logger.info(f"[MOVE] {vehicle_plate} {origin_spot} -> {destination_spot} "
                f"by {operator_id or 'system'} ({movement.reason})")
    return movement


def history_for_stay(db: Session, occupancy_id: int, newest_first: bool = True,
                     buffer_seconds: int = None) -> list[Movement]:
    """
    Movements of the stay's vehicle inside the stay's entry/exit window,
    widened on both sides by a small buffer for clock skew.
    """
    occupancy = db.query(Occupancy).filter(Occupancy.id == occupancy_id).first()
    if occupancy is None:
        raise NotFound(f"Occupancy {occupancy_id} not found", occupancy_id=occupancy_id)

    if buffer_seconds is None:
        buffer_seconds = settings.MOVEMENT_HISTORY_BUFFER_SECONDS
    buffer = timedelta(seconds=buffer_seconds)

    q = db.query(Movement).filter(
        Movement.facility_id == occupancy.facility_id,
        Movement.vehicle_plate == occupancy.vehicle_plate,
        Movement.moved_at >= occupancy.entry_time - buffer,
    )
    if occupancy.exit_time is not None:
        q = q.filter(Movement.moved_at <= occupancy.exit_time + buffer)

    order = (Movement.moved_at.desc(), Movement.id.desc()) if newest_first \
        else (Movement.moved_at.asc(), Movement.id.asc())
    return q.order_by(*order).all()


def recent(db: Session, facility_id: int, plate: str = None, limit: int = 50) -> list[Movement]:
    """Facility-wide movement feed, newest first."""
    q = db.query(Movement).filter(Movement.facility_id == facility_id)
    if plate:
        q = q.filter(Movement.vehicle_plate == plate.strip().upper())
    return q.order_by(Movement.moved_at.desc(), Movement.id.desc()).limit(limit).all()


def zones_for(db: Session, facility_id: int, spot_numbers: Iterable[Optional[int]]) -> dict:
    """spot_number -> zone label, for the spots that exist and have one."""
    numbers = {n for n in spot_numbers if n is not None}
    if not numbers:
        return {}
    rows = (
        db.query(Spot.spot_number, Spot.zone)
        .filter(Spot.facility_id == facility_id, Spot.spot_number.in_(numbers))
        .all()
    )
    return {number: zone for number, zone in rows if zone}
