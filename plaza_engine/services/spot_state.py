# plaza_engine/services/spot_state.py
"""
Spot state machine — the only code that writes Spot.status.

Legal transitions are the TRANSITIONS table below. Anything else raises
InvalidTransition; nothing is silently ignored. Each applied transition is a
compare-and-set on the spot's version column and leaves one SpotStatusChange
row behind. Callers own the transaction: this module only flushes.
"""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from plaza_engine.errors import InvalidTransition, NotFound, SpotUnavailable
from plaza_engine.models.spot import Spot, SpotStatus
from plaza_engine.models.spot_status_change import SpotStatusChange
from plaza_engine.utils.logger import get_logger

logger = get_logger(__name__)


class SpotEvent(str, enum.Enum):
    OCCUPY = "occupy"
    RELEASE = "release"
    RELEASE_TO_RESERVATION = "release_to_reservation"
    RESERVE = "reserve"
    UNRESERVE = "unreserve"
    BLOCK = "block"
    UNBLOCK = "unblock"


# event -> {source status: target status}
TRANSITIONS = {
    SpotEvent.OCCUPY: {SpotStatus.FREE: SpotStatus.OCCUPIED,
                       SpotStatus.RESERVED: SpotStatus.OCCUPIED},
    SpotEvent.RELEASE: {SpotStatus.OCCUPIED: SpotStatus.FREE},
    SpotEvent.RELEASE_TO_RESERVATION: {SpotStatus.OCCUPIED: SpotStatus.RESERVED},
    SpotEvent.RESERVE: {SpotStatus.FREE: SpotStatus.RESERVED},
    SpotEvent.UNRESERVE: {SpotStatus.RESERVED: SpotStatus.FREE},
    SpotEvent.BLOCK: {SpotStatus.FREE: SpotStatus.MAINTENANCE},
    SpotEvent.UNBLOCK: {SpotStatus.MAINTENANCE: SpotStatus.FREE},
}


def next_status(current: SpotStatus, event: SpotEvent) -> Optional[SpotStatus]:
    """Target status for (current, event), or None when the table has no such edge."""
    return TRANSITIONS[event].get(current)


def lock_spot(db: Session, facility_id: int, spot_number: int) -> Spot:
    """Load a spot for mutation (row lock where the backend supports it)."""
    spot = (
        db.query(Spot)
        .filter(Spot.facility_id == facility_id, Spot.spot_number == spot_number)
        .with_for_update()
        .first()
    )
    if spot is None:
        raise NotFound(f"Spot {facility_id}/{spot_number} not found",
                       facility_id=facility_id, spot_number=spot_number)
    return spot


def transition(db: Session, spot: Spot, event: SpotEvent, at: datetime,
               reason: str = None, actor_id: str = None) -> SpotStatus:
    """Apply `event` to `spot` or raise InvalidTransition. Returns the new status."""
    previous = spot.status
    target = next_status(previous, event)
    if target is None:
        logger.warning(
            f"[STATE] Rejected {event.value} on spot {spot.facility_id}/{spot.spot_number} "
            f"(status={previous.value}, reason={reason}, actor={actor_id})"
        )
        raise InvalidTransition("spot", f"{spot.facility_id}/{spot.spot_number}",
                                event.value, previous.value)

    spot.status = target
    spot.updated_at = at
    db.add(SpotStatusChange(
        facility_id=spot.facility_id,
        spot_number=spot.spot_number,
        previous_status=previous,
        new_status=target,
        event=event.value,
        reason=reason,
        actor_id=actor_id,
        changed_at=at,
    ))
    try:
        db.flush()
    except StaleDataError:
        # Another writer changed the row between our read and this update
        raise SpotUnavailable(
            f"Spot {spot.facility_id}/{spot.spot_number} changed concurrently",
            facility_id=spot.facility_id, spot_number=spot.spot_number,
            attempted=event.value, current=previous.value,
        )

    logger.info(f"[STATE] Spot {spot.facility_id}/{spot.spot_number}: "
                f"{previous.value} -> {target.value} ({event.value})")
    return target


def try_transition(db: Session, spot: Spot, event: SpotEvent, at: datetime,
                   reason: str = None, actor_id: str = None) -> bool:
    """
    Apply `event` only if the spot is in one of its source states.
    Used where relaxing a hold must not disturb a spot somebody else already
    took over (Occupied, Maintenance). Returns whether anything changed.
    """
    if next_status(spot.status, event) is None:
        logger.info(f"[STATE] Spot {spot.facility_id}/{spot.spot_number} left as "
                    f"{spot.status.value} ({event.value} not applicable)")
        return False
    transition(db, spot, event, at, reason=reason, actor_id=actor_id)
    return True
