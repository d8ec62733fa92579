# plaza_engine/services/reservation_manager.py
"""
Reservation Manager — holds on a spot before the vehicle arrives.

Lifecycle:
  PendingPayment ─┬─> PendingOperatorConfirmation ─> Confirmed ─> Active ─> Completed
                  └──────────────────────────────────> Confirmed
  PendingPayment / PendingOperatorConfirmation / Confirmed ─> Cancelled
  Confirmed ─> Expired (sweep)          Holding ─> NoShow (walk-in takes the spot)

Spot locking goes through spot_state; nothing here commits.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from plaza_engine.config import settings
from plaza_engine.errors import (
    AlreadyClosed, InvalidTransition, NotFound, OverlappingReservation,
    SpotUnavailable, ValidationFailed, VehicleMismatch,
)
from plaza_engine.models.occupancy import Occupancy
from plaza_engine.models.reservation import (
    Reservation, ReservationStatus, HOLDING_STATUSES, COMMITTED_STATUSES, TERMINAL_STATUSES,
)
from plaza_engine.models.spot import Spot, SpotStatus
from plaza_engine.services import occupancy_ledger, spot_state
from plaza_engine.services.spot_state import SpotEvent
from plaza_engine.utils.codes import new_reservation_code
from plaza_engine.utils.logger import get_logger

logger = get_logger(__name__)

_CODE_ATTEMPTS = 5
_CANCELLABLE = (
    ReservationStatus.PENDING_PAYMENT,
    ReservationStatus.PENDING_OPERATOR_CONFIRMATION,
    ReservationStatus.CONFIRMED,
)


# ── Lookups ───────────────────────────────────────────────────────────────────

def get_by_code(db: Session, code: str, for_update: bool = False) -> Reservation:
    q = db.query(Reservation).filter(Reservation.code == code)
    if for_update:
        q = q.with_for_update()
    reservation = q.first()
    if reservation is None:
        raise NotFound(f"Reservation {code} not found", reservation_code=code)
    return reservation


def lookup_active(db: Session, facility_id: int, spot_number: int) -> Optional[Reservation]:
    """The single non-terminal reservation holding this spot, if any."""
    return db.query(Reservation).filter(
        Reservation.facility_id == facility_id,
        Reservation.spot_number == spot_number,
        Reservation.status.in_(HOLDING_STATUSES),
    ).first()


def lookup_committed(db: Session, facility_id: int, spot_number: int,
                     exclude_code: str = None) -> Optional[Reservation]:
    """A Confirmed or Active reservation on the spot (the ones a release must respect)."""
    q = db.query(Reservation).filter(
        Reservation.facility_id == facility_id,
        Reservation.spot_number == spot_number,
        Reservation.status.in_(COMMITTED_STATUSES),
    )
    if exclude_code:
        q = q.filter(Reservation.code != exclude_code)
    return q.first()


def for_driver(db: Session, driver_id: str, include_closed: bool = False) -> list[Reservation]:
    q = db.query(Reservation).filter(Reservation.driver_id == driver_id)
    if not include_closed:
        q = q.filter(Reservation.status.in_(HOLDING_STATUSES))
    return q.order_by(Reservation.hold_start.desc()).all()


# ── Booking ───────────────────────────────────────────────────────────────────

def _validate_window(hold_start: datetime, hold_end: datetime, now: datetime):
    if hold_end <= hold_start:
        raise ValidationFailed("Hold end must be after hold start",
                               hold_start=hold_start.isoformat(), hold_end=hold_end.isoformat())
    earliest = now - timedelta(minutes=settings.BOOKING_PAST_TOLERANCE_MINUTES)
    if hold_start < earliest:
        raise ValidationFailed("Cannot reserve in the past",
                               hold_start=hold_start.isoformat(), now=now.isoformat())
    if hold_end - hold_start > timedelta(hours=settings.MAX_HOLD_HOURS):
        raise ValidationFailed(f"Holds are limited to {settings.MAX_HOLD_HOURS} hours",
                               hold_start=hold_start.isoformat(), hold_end=hold_end.isoformat())


def _check_driver_overlap(db: Session, driver_id: str, hold_start: datetime, hold_end: datetime):
    clash = db.query(Reservation).filter(
        Reservation.driver_id == driver_id,
        Reservation.status.in_(HOLDING_STATUSES),
        Reservation.hold_start < hold_end,
        Reservation.hold_end > hold_start,
    ).first()
    if clash is not None:
        raise OverlappingReservation(
            f"Driver {driver_id} already holds {clash.code} in that window",
            driver_id=driver_id, reservation_code=clash.code,
        )


def _unused_code(db: Session, now: datetime) -> str:
    for _ in range(_CODE_ATTEMPTS):
        code = new_reservation_code(now)
        if db.query(Reservation.id).filter(Reservation.code == code).first() is None:
            return code
    raise RuntimeError("Could not generate an unused reservation code")


def book(db: Session, facility_id: int, spot_number: int, vehicle_plate: str, driver_id: str,
         hold_start: datetime, hold_end: datetime, amount, now: datetime,
         grace_period_minutes: int = None) -> Reservation:
    """Hold a Free spot: spot -> Reserved, reservation created in PendingPayment."""
    plate = occupancy_ledger.normalize_plate(vehicle_plate)
    if not driver_id:
        raise ValidationFailed("Driver id is required")
    _validate_window(hold_start, hold_end, now)
    _check_driver_overlap(db, driver_id, hold_start, hold_end)

    spot = spot_state.lock_spot(db, facility_id, spot_number)
    if spot.status != SpotStatus.FREE:
        raise SpotUnavailable(
            f"Spot {facility_id}/{spot_number} is {spot.status.value}",
            facility_id=facility_id, spot_number=spot_number, current=spot.status.value,
        )

    code = _unused_code(db, now)
    spot_state.transition(db, spot, SpotEvent.RESERVE, now,
                          reason=f"Reservation {code}", actor_id=driver_id)

    reservation = Reservation(
        code=code,
        facility_id=facility_id,
        spot_number=spot_number,
        vehicle_plate=plate,
        driver_id=driver_id,
        hold_start=hold_start,
        hold_end=hold_end,
        amount=Decimal(str(amount or 0)),
        status=ReservationStatus.PENDING_PAYMENT,
        grace_period_minutes=(settings.RESERVATION_GRACE_MINUTES
                              if grace_period_minutes is None else grace_period_minutes),
        created_at=now,
        updated_at=now,
    )
    db.add(reservation)
    try:
        db.flush()
    except IntegrityError:
        raise SpotUnavailable(
            f"Spot {facility_id}/{spot_number} already has a pending reservation",
            facility_id=facility_id, spot_number=spot_number,
        )

    logger.info(f"[RESERVE] {code}: {plate} holds {facility_id}/{spot_number} "
                f"{hold_start:%Y-%m-%d %H:%M} -> {hold_end:%H:%M} (amount={reservation.amount})")
    return reservation


# ── Payment / confirmation ────────────────────────────────────────────────────

def confirm(db: Session, code: str, at: datetime, payment_ref: str = None) -> bool:
    """Move to Confirmed. Returns False when it already was (idempotent replay)."""
    reservation = get_by_code(db, code, for_update=True)
    if reservation.status == ReservationStatus.CONFIRMED:
        return False
    if reservation.status not in (ReservationStatus.PENDING_PAYMENT,
                                  ReservationStatus.PENDING_OPERATOR_CONFIRMATION):
        raise InvalidTransition("reservation", code, "confirm", reservation.status.value)

    reservation.status = ReservationStatus.CONFIRMED
    if payment_ref:
        reservation.payment_ref = payment_ref
    reservation.updated_at = at
    db.flush()
    logger.info(f"[RESERVE] {code} confirmed (payment={reservation.payment_ref})")
    return True


def mark_pending_operator(db: Session, code: str, at: datetime) -> bool:
    """Cash / transfer payments wait for an operator before confirmation."""
    reservation = get_by_code(db, code, for_update=True)
    if reservation.status == ReservationStatus.PENDING_OPERATOR_CONFIRMATION:
        return False
    if reservation.status != ReservationStatus.PENDING_PAYMENT:
        raise InvalidTransition("reservation", code, "await_operator", reservation.status.value)
    reservation.status = ReservationStatus.PENDING_OPERATOR_CONFIRMATION
    reservation.updated_at = at
    db.flush()
    logger.info(f"[RESERVE] {code} waiting for operator confirmation")
    return True


# ── Cancellation / no-show ────────────────────────────────────────────────────

def cancel(db: Session, code: str, reason: str, at: datetime, actor_id: str = None) -> Reservation:
    reservation = get_by_code(db, code, for_update=True)
    if reservation.status in TERMINAL_STATUSES:
        raise AlreadyClosed(f"Reservation {code} is already {reservation.status.value}",
                            reservation_code=code, status=reservation.status.value)
    if reservation.status not in _CANCELLABLE:
        raise InvalidTransition("reservation", code, "cancel", reservation.status.value)

    reservation.status = ReservationStatus.CANCELLED
    reservation.cancel_reason = reason
    reservation.updated_at = at
    db.flush()

    spot = db.query(Spot).filter(
        Spot.facility_id == reservation.facility_id,
        Spot.spot_number == reservation.spot_number,
    ).with_for_update().first()
    if spot is not None:
        # Spot may have been taken by other means since; then only the reservation changes
        spot_state.try_transition(db, spot, SpotEvent.UNRESERVE, at,
                                  reason=f"Reservation {code} cancelled: {reason}",
                                  actor_id=actor_id)
    logger.info(f"[RESERVE] {code} cancelled ({reason})")
    return reservation


def mark_no_show(db: Session, reservation: Reservation, at: datetime, actor_id: str = None):
    """A walk-in takes the reserved spot; the hold is closed as NoShow."""
    if reservation.status not in HOLDING_STATUSES or reservation.status == ReservationStatus.ACTIVE:
        raise InvalidTransition("reservation", reservation.code, "no_show", reservation.status.value)
    reservation.status = ReservationStatus.NO_SHOW
    reservation.updated_at = at
    db.flush()
    logger.warning(f"[RESERVE] {reservation.code} closed as no-show by {actor_id or 'system'}")


def no_show_after(reservation: Reservation) -> datetime:
    """Instant after which an unclaimed confirmed hold may be handed to a walk-in."""
    return reservation.hold_start + timedelta(minutes=reservation.grace_period_minutes or 0)


# ── Arrival ───────────────────────────────────────────────────────────────────

def convert_to_occupancy(db: Session, code: str, vehicle_plate: str, entry_time: datetime,
                         operator_override: bool = False, operator_id: str = None,
                         tariff_ref: str = None) -> Occupancy:
    """Vehicle arrived: Confirmed -> Active, spot Reserved -> Occupied, occupancy created."""
    reservation = get_by_code(db, code, for_update=True)
    if reservation.status != ReservationStatus.CONFIRMED:
        raise InvalidTransition("reservation", code, "convert", reservation.status.value)
    if entry_time > reservation.hold_end:
        raise InvalidTransition("reservation", code, "convert", reservation.status.value,
                                reason=f"hold ended at {reservation.hold_end:%Y-%m-%d %H:%M}")

    plate = occupancy_ledger.normalize_plate(vehicle_plate)
    reason = f"Reservation {code} arrival"
    if plate != reservation.vehicle_plate:
        if not operator_override:
            raise VehicleMismatch(
                f"Reservation {code} is for {reservation.vehicle_plate}, not {plate}",
                reservation_code=code, reserved_plate=reservation.vehicle_plate, arriving_plate=plate,
            )
        reason = f"{reason}; operator override: {plate} instead of {reservation.vehicle_plate}"
        logger.warning(f"[RESERVE] Override on {code} by {operator_id or 'unknown operator'}: "
                       f"{plate} checked in instead of {reservation.vehicle_plate}")

    spot = spot_state.lock_spot(db, reservation.facility_id, reservation.spot_number)
    if spot.status != SpotStatus.RESERVED:
        raise SpotUnavailable(
            f"Spot {spot.facility_id}/{spot.spot_number} is {spot.status.value}",
            facility_id=spot.facility_id, spot_number=spot.spot_number,
            current=spot.status.value, reservation_code=code,
        )

    spot_state.transition(db, spot, SpotEvent.OCCUPY, entry_time, reason=reason, actor_id=operator_id)
    occupancy = occupancy_ledger.checkin(
        db, reservation.facility_id, reservation.spot_number, plate, entry_time,
        tariff_ref=tariff_ref, payment_ref=reservation.payment_ref, reservation_code=code,
    )
    reservation.status = ReservationStatus.ACTIVE
    reservation.occupancy_id = occupancy.id
    reservation.updated_at = entry_time
    db.flush()
    logger.info(f"[RESERVE] {code} converted to occupancy {occupancy.id}")
    return occupancy


def close_for_occupancy(db: Session, occupancy: Occupancy, at: datetime) -> Optional[Reservation]:
    """On exit, the Active reservation behind the stay becomes Completed."""
    if not occupancy.reservation_code:
        return None
    reservation = db.query(Reservation).filter(
        Reservation.code == occupancy.reservation_code,
        Reservation.status == ReservationStatus.ACTIVE,
    ).with_for_update().first()
    if reservation is None:
        return None
    reservation.status = ReservationStatus.COMPLETED
    reservation.updated_at = at
    db.flush()
    logger.info(f"[RESERVE] {reservation.code} completed with occupancy {occupancy.id}")
    return reservation


def follow_relocation(db: Session, occupancy: Occupancy, at: datetime) -> Optional[Reservation]:
    """Keep the Active reservation behind a stay on the stay's current spot."""
    if not occupancy.reservation_code:
        return None
    reservation = db.query(Reservation).filter(
        Reservation.code == occupancy.reservation_code,
        Reservation.status == ReservationStatus.ACTIVE,
    ).with_for_update().first()
    if reservation is None or reservation.spot_number == occupancy.spot_number:
        return reservation

    previous = reservation.spot_number
    reservation.spot_number = occupancy.spot_number
    reservation.updated_at = at
    try:
        db.flush()
    except IntegrityError:
        raise SpotUnavailable(
            f"Spot {occupancy.facility_id}/{occupancy.spot_number} is held by another reservation",
            facility_id=occupancy.facility_id, spot_number=occupancy.spot_number,
            reservation_code=reservation.code,
        )
    logger.info(f"[RESERVE] {reservation.code} follows occupancy {occupancy.id}: "
                f"spot {previous} -> {occupancy.spot_number}")
    return reservation


# ── Expiry ────────────────────────────────────────────────────────────────────

def expire_due(db: Session, now: datetime) -> int:
    """
    Expire Confirmed holds whose hold_end is past and relax their spot to Free
    while it is still Reserved. Each row is claimed with a compare-and-set, so a
    concurrent sweep (or a manual action) that got there first is skipped.
    """
    due = (
        db.query(Reservation.id, Reservation.code, Reservation.facility_id, Reservation.spot_number)
        .filter(Reservation.status == ReservationStatus.CONFIRMED, Reservation.hold_end < now)
        .order_by(Reservation.hold_end)
        .all()
    )

    expired = 0
    for reservation_id, code, facility_id, spot_number in due:
        claimed = (
            db.query(Reservation)
            .filter(Reservation.id == reservation_id,
                    Reservation.status == ReservationStatus.CONFIRMED)
            .update({Reservation.status: ReservationStatus.EXPIRED, Reservation.updated_at: now},
                    synchronize_session="fetch")
        )
        if not claimed:
            logger.debug(f"[EXPIRY] {code} already handled elsewhere")
            continue
        expired += 1

        spot = db.query(Spot).filter(
            Spot.facility_id == facility_id, Spot.spot_number == spot_number,
        ).with_for_update().first()
        if spot is not None:
            spot_state.try_transition(db, spot, SpotEvent.UNRESERVE, now,
                                      reason=f"Reservation {code} expired", actor_id="expiry-sweep")
        logger.info(f"[EXPIRY] {code} expired (spot {facility_id}/{spot_number})")

    return expired
