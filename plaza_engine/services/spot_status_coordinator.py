# plaza_engine/services/spot_status_coordinator.py
"""
Spot Status Coordinator — the command surface of the engine.

Every command runs as one unit of work: spot status, status audit and the
occupancy / reservation rows it touches commit together, or the whole thing is
rolled back and the typed error propagates to the caller. Routers, the expiry
sweeper and scripts call these functions; nothing else commits engine state.
"""

from contextlib import contextmanager
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from plaza_engine.clock import FacilityClock, facility_clock
from plaza_engine.errors import (
    EngineError, SpotHasActiveReservation, SpotOccupied, SpotUnavailable,
)
from plaza_engine.models.occupancy import Occupancy
from plaza_engine.models.reservation import Reservation, ReservationStatus
from plaza_engine.models.spot import SpotStatus
from plaza_engine.services import (
    occupancy_ledger, reservation_manager, spot_state,
)
from plaza_engine.services.spot_state import SpotEvent
from plaza_engine.utils.logger import get_logger

logger = get_logger(__name__)


@contextmanager
def unit_of_work(db: Session, command: str):
    """Commit on success, roll back on any error and let it propagate."""
    try:
        yield
        db.commit()
    except EngineError as e:
        db.rollback()
        logger.warning(f"[{command}] {e.code}: {e.message}")
        raise
    except Exception:
        db.rollback()
        logger.error(f"[{command}] failed, transaction rolled back", exc_info=True)
        raise


def _at(clock: FacilityClock, value: Optional[datetime]) -> datetime:
    return clock.normalize(value) if value is not None else clock.now()


# ── Occupancy ─────────────────────────────────────────────────────────────────

async def request_occupy(db: Session, facility_id: int, spot_number: Optional[int],
                         vehicle_plate: str, entry_time: datetime = None,
                         tariff_ref: str = None, operator_id: str = None,
                         close_no_show: bool = False,
                         clock: FacilityClock = facility_clock) -> Occupancy:
    """
    Check a vehicle in. With a spot, the spot must be Free, or Reserved for
    this very vehicle (the reservation is converted), or Reserved by a no-show
    an operator explicitly closes. Without a spot, no spot is touched.
    """
    at = _at(clock, entry_time)
    with unit_of_work(db, "OCCUPY"):
        if spot_number is None:
            return occupancy_ledger.checkin(db, facility_id, None, vehicle_plate, at,
                                            tariff_ref=tariff_ref)

        spot = spot_state.lock_spot(db, facility_id, spot_number)
        if spot.status == SpotStatus.RESERVED:
            return _occupy_reserved(db, spot, vehicle_plate, at, tariff_ref, operator_id, close_no_show)
        if spot.status != SpotStatus.FREE:
            raise SpotUnavailable(
                f"Spot {facility_id}/{spot_number} is {spot.status.value}",
                facility_id=facility_id, spot_number=spot_number, current=spot.status.value,
            )

        spot_state.transition(db, spot, SpotEvent.OCCUPY, at, reason="Vehicle entry",
                              actor_id=operator_id)
        return occupancy_ledger.checkin(db, facility_id, spot_number, vehicle_plate, at,
                                        tariff_ref=tariff_ref)


def _occupy_reserved(db, spot, vehicle_plate, at, tariff_ref, operator_id, close_no_show):
    holder = reservation_manager.lookup_active(db, spot.facility_id, spot.spot_number)
    plate = occupancy_ledger.normalize_plate(vehicle_plate)

    if holder is not None and holder.status == ReservationStatus.CONFIRMED and holder.vehicle_plate == plate:
        return reservation_manager.convert_to_occupancy(
            db, holder.code, plate, at, operator_id=operator_id, tariff_ref=tariff_ref,
        )

    if close_no_show and holder is not None and holder.status != ReservationStatus.ACTIVE:
        if holder.status == ReservationStatus.CONFIRMED and at < reservation_manager.no_show_after(holder):
            raise SpotUnavailable(
                f"Reservation {holder.code} is still within its arrival grace period",
                facility_id=spot.facility_id, spot_number=spot.spot_number,
                reservation_code=holder.code,
                grace_until=reservation_manager.no_show_after(holder).isoformat(),
            )
        reservation_manager.mark_no_show(db, holder, at, actor_id=operator_id)
        spot_state.transition(db, spot, SpotEvent.OCCUPY, at,
                              reason=f"Walk-in {plate}; reservation {holder.code} no-show converted",
                              actor_id=operator_id)
        return occupancy_ledger.checkin(db, spot.facility_id, spot.spot_number, plate, at,
                                        tariff_ref=tariff_ref)

    raise SpotUnavailable(
        f"Spot {spot.facility_id}/{spot.spot_number} is Reserved",
        facility_id=spot.facility_id, spot_number=spot.spot_number,
        current=spot.status.value, reservation_code=holder.code if holder else None,
    )


async def request_release(db: Session, occupancy_id: int, exit_time: datetime = None,
                          operator_id: str = None,
                          clock: FacilityClock = facility_clock) -> Occupancy:
    """
    Check a vehicle out. The spot goes back to Free, or to Reserved when a
    Confirmed/Active reservation is already waiting for it.
    """
    at = _at(clock, exit_time)
    with unit_of_work(db, "RELEASE"):
        occupancy = occupancy_ledger.get_occupancy(db, occupancy_id, for_update=True)
        occupancy_ledger.checkout(db, occupancy, at)
        reservation_manager.close_for_occupancy(db, occupancy, at)

        if occupancy.spot_number is not None:
            spot = spot_state.lock_spot(db, occupancy.facility_id, occupancy.spot_number)
            waiting = reservation_manager.lookup_committed(db, occupancy.facility_id,
                                                           occupancy.spot_number)
            if waiting is not None:
                spot_state.transition(db, spot, SpotEvent.RELEASE_TO_RESERVATION, at,
                                      reason=f"Vehicle exit; reservation {waiting.code} waiting",
                                      actor_id=operator_id)
            else:
                spot_state.transition(db, spot, SpotEvent.RELEASE, at, reason="Vehicle exit",
                                      actor_id=operator_id)
        return occupancy


async def relocate(db: Session, occupancy_id: int, new_spot_number: int, operator_id: str = None,
                   reason: str = None, at: datetime = None,
                   clock: FacilityClock = facility_clock):
    """
    Move a parked vehicle to another Free spot. Returns (occupancy, movement).
    An Active reservation behind the stay moves with it, so the old spot is
    left with nothing holding it.
    """
    moved_at = _at(clock, at)
    with unit_of_work(db, "RELOCATE"):
        occupancy, movement = occupancy_ledger.relocate(db, occupancy_id, new_spot_number,
                                                        operator_id, reason, moved_at)
        reservation_manager.follow_relocation(db, occupancy, moved_at)
        return occupancy, movement


# ── Reservations ──────────────────────────────────────────────────────────────

async def request_reserve(db: Session, facility_id: int, spot_number: int, vehicle_plate: str,
                          driver_id: str, hold_start: datetime, hold_end: datetime, amount,
                          grace_period_minutes: int = None,
                          clock: FacilityClock = facility_clock) -> Reservation:
    now = clock.now()
    with unit_of_work(db, "RESERVE"):
        return reservation_manager.book(
            db, facility_id, spot_number, vehicle_plate, driver_id,
            clock.normalize(hold_start), clock.normalize(hold_end), amount, now,
            grace_period_minutes=grace_period_minutes,
        )


async def confirm_reservation(db: Session, code: str, payment_ref: str = None,
                              clock: FacilityClock = facility_clock) -> bool:
    """Payment confirmed. Returns False on an idempotent replay."""
    with unit_of_work(db, "CONFIRM"):
        return reservation_manager.confirm(db, code, clock.now(), payment_ref=payment_ref)


async def await_operator_confirmation(db: Session, code: str,
                                      clock: FacilityClock = facility_clock) -> bool:
    with unit_of_work(db, "AWAIT_OPERATOR"):
        return reservation_manager.mark_pending_operator(db, code, clock.now())


async def cancel_reservation(db: Session, code: str, reason: str, actor_id: str = None,
                             clock: FacilityClock = facility_clock) -> Reservation:
    with unit_of_work(db, "CANCEL"):
        return reservation_manager.cancel(db, code, reason, clock.now(), actor_id=actor_id)


async def convert_to_occupancy(db: Session, code: str, vehicle_plate: str,
                               entry_time: datetime = None, operator_override: bool = False,
                               operator_id: str = None,
                               clock: FacilityClock = facility_clock) -> Occupancy:
    at = _at(clock, entry_time)
    with unit_of_work(db, "CONVERT"):
        return reservation_manager.convert_to_occupancy(
            db, code, vehicle_plate, at, operator_override=operator_override,
            operator_id=operator_id,
        )


async def expire_due_reservations(db: Session, now: datetime = None,
                                  clock: FacilityClock = facility_clock) -> int:
    """Expire Confirmed holds past hold_end. Safe to run repeatedly and concurrently."""
    at = _at(clock, now)
    with unit_of_work(db, "EXPIRY"):
        count = reservation_manager.expire_due(db, at)
    if count:
        logger.info(f"[EXPIRY] {count} reservation(s) expired at {at:%Y-%m-%d %H:%M:%S}")
    return count


# ── Maintenance ───────────────────────────────────────────────────────────────

async def set_maintenance(db: Session, facility_id: int, spot_number: int, enabled: bool,
                          reason: str = None, actor_id: str = None,
                          clock: FacilityClock = facility_clock) -> SpotStatus:
    at = clock.now()
    with unit_of_work(db, "MAINTENANCE"):
        spot = spot_state.lock_spot(db, facility_id, spot_number)
        if not enabled:
            return spot_state.transition(db, spot, SpotEvent.UNBLOCK, at,
                                         reason=reason or "Maintenance finished", actor_id=actor_id)

        occupancy = occupancy_ledger.active_for_spot(db, facility_id, spot_number)
        if occupancy is not None:
            raise SpotOccupied(
                f"Spot {facility_id}/{spot_number} has a parked vehicle",
                facility_id=facility_id, spot_number=spot_number,
                occupancy_id=occupancy.id, vehicle_plate=occupancy.vehicle_plate,
            )
        reservation = reservation_manager.lookup_committed(db, facility_id, spot_number)
        if reservation is not None:
            raise SpotHasActiveReservation(
                f"Spot {facility_id}/{spot_number} is held by reservation {reservation.code}",
                facility_id=facility_id, spot_number=spot_number,
                reservation_code=reservation.code, reservation_status=reservation.status.value,
            )
        return spot_state.transition(db, spot, SpotEvent.BLOCK, at,
                                     reason=reason or "Maintenance", actor_id=actor_id)
