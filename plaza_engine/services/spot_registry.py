# plaza_engine/services/spot_registry.py
"""
Spot Registry — provisioning and read access for a facility's spots.
Provisioning creates rows (always Free); it never changes an existing spot's
status. Status changes belong to spot_state.
"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from plaza_engine.clock import FacilityClock, facility_clock
from plaza_engine.errors import NotFound, SpotHasActiveReservation, SpotOccupied, ValidationFailed
from plaza_engine.models.occupancy import Occupancy
from plaza_engine.models.reservation import Reservation, HOLDING_STATUSES
from plaza_engine.models.spot import Spot, SpotStatus, VehicleCategory
from plaza_engine.models.spot_status_change import SpotStatusChange
from plaza_engine.services.spot_status_coordinator import unit_of_work
from plaza_engine.utils.logger import get_logger

logger = get_logger(__name__)

# Numbering order used when a facility's capacity is rebuilt from scratch
_RESET_ORDER = (VehicleCategory.CAR, VehicleCategory.MOTORCYCLE, VehicleCategory.VAN)


def get_spot(db: Session, facility_id: int, spot_number: int) -> Spot:
    spot = db.query(Spot).filter(Spot.facility_id == facility_id,
                                 Spot.spot_number == spot_number).first()
    if spot is None:
        raise NotFound(f"Spot {facility_id}/{spot_number} not found",
                       facility_id=facility_id, spot_number=spot_number)
    return spot


def list_spots(db: Session, facility_id: int, zone: str = None,
               status: Optional[SpotStatus] = None) -> list[Spot]:
    q = db.query(Spot).filter(Spot.facility_id == facility_id)
    if zone:
        q = q.filter(Spot.zone == zone)
    if status:
        q = q.filter(Spot.status == status)
    return q.order_by(Spot.spot_number).all()


def status_summary(db: Session, facility_id: int) -> dict:
    """Count of spots per status, every status present."""
    rows = (
        db.query(Spot.status, func.count(Spot.spot_number))
        .filter(Spot.facility_id == facility_id)
        .group_by(Spot.status)
        .all()
    )
    summary = {s.value: 0 for s in SpotStatus}
    for status, count in rows:
        summary[status.value] = count
    return summary


def status_changes(db: Session, facility_id: int, spot_number: int = None,
                   limit: int = 50) -> list[SpotStatusChange]:
    q = db.query(SpotStatusChange).filter(SpotStatusChange.facility_id == facility_id)
    if spot_number is not None:
        q = q.filter(SpotStatusChange.spot_number == spot_number)
    return q.order_by(SpotStatusChange.changed_at.desc(), SpotStatusChange.id.desc()).limit(limit).all()


async def provision_zone(db: Session, facility_id: int, zone: str, count: int,
                         vehicle_category: VehicleCategory = VehicleCategory.CAR,
                         clock: FacilityClock = facility_clock) -> list[Spot]:
    """Add `count` Free spots to `zone`, numbered after the facility's highest spot."""
    if count < 1:
        raise ValidationFailed("Spot count must be positive", count=count)
    zone = (zone or "").strip()
    if not zone:
        raise ValidationFailed("Zone name is required")

    now = clock.now()
    with unit_of_work(db, "PROVISION"):
        highest = db.query(func.max(Spot.spot_number)).filter(Spot.facility_id == facility_id).scalar() or 0
        spots = [
            Spot(facility_id=facility_id, spot_number=highest + i, vehicle_category=vehicle_category,
                 zone=zone, status=SpotStatus.FREE, updated_at=now)
            for i in range(1, count + 1)
        ]
        db.add_all(spots)
        db.flush()
    logger.info(f"[REGISTRY] Facility {facility_id}: zone '{zone}' +{count} "
                f"{vehicle_category.value} spots ({highest + 1}..{highest + count})")
    return spots


async def reset_capacity(db: Session, facility_id: int, capacity: dict,
                         clock: FacilityClock = facility_clock) -> list[Spot]:
    """
    Drop and recreate every spot of the facility from {category: count}.
    Refused while any vehicle is parked or any hold is pending in the facility.
    """
    if any(n < 0 for n in capacity.values()):
        raise ValidationFailed("Capacity counts cannot be negative")

    now = clock.now()
    with unit_of_work(db, "RESET_CAPACITY"):
        parked = db.query(func.count(Occupancy.id)).filter(
            Occupancy.facility_id == facility_id,
            Occupancy.spot_number != None,  # noqa: E711
            Occupancy.exit_time == None,  # noqa: E711
        ).scalar()
        if parked:
            raise SpotOccupied(f"Facility {facility_id} has {parked} parked vehicle(s)",
                               facility_id=facility_id, active_occupancies=parked)
        held = db.query(func.count(Reservation.id)).filter(
            Reservation.facility_id == facility_id,
            Reservation.status.in_(HOLDING_STATUSES),
        ).scalar()
        if held:
            raise SpotHasActiveReservation(f"Facility {facility_id} has {held} pending reservation(s)",
                                           facility_id=facility_id, holding_reservations=held)

        db.query(Spot).filter(Spot.facility_id == facility_id).delete(synchronize_session="fetch")

        spots = []
        number = 0
        for category in _RESET_ORDER:
            for _ in range(capacity.get(category, 0)):
                number += 1
                spots.append(Spot(facility_id=facility_id, spot_number=number,
                                  vehicle_category=category, status=SpotStatus.FREE, updated_at=now))
        db.add_all(spots)
        db.flush()
    logger.info(f"[REGISTRY] Facility {facility_id} capacity reset to {len(spots)} spots "
                f"({', '.join(f'{c.value}={capacity.get(c, 0)}' for c in _RESET_ORDER)})")
    return spots
