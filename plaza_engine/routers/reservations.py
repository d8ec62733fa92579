# plaza_engine/routers/reservations.py
"""Reservation endpoints: booking, payment confirmation, cancel, arrival, expiry."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from plaza_engine.clock import facility_clock
from plaza_engine.database import get_db
from plaza_engine.errors import AlreadyClosed
from plaza_engine.schemas.occupancy import OccupancyOut
from plaza_engine.schemas.reservation import (
    ExpiryResult, ReservationArrival, ReservationCancel, ReservationConfirm,
    ReservationCreate, ReservationOut,
)
from plaza_engine.services import reservation_manager
from plaza_engine.services import spot_status_coordinator as coordinator

router = APIRouter()


@router.post("/reservations", response_model=ReservationOut, status_code=201,
             summary="Book a spot (starts in PendingPayment)")
async def create_reservation(body: ReservationCreate, db: Session = Depends(get_db)):
    return await coordinator.request_reserve(
        db, body.facility_id, body.spot_number, body.vehicle_plate, body.driver_id,
        body.hold_start, body.hold_end, body.amount,
        grace_period_minutes=body.grace_period_minutes,
    )


@router.get("/reservations/{code}", response_model=ReservationOut)
def get_reservation(code: str, db: Session = Depends(get_db)):
    return reservation_manager.get_by_code(db, code)


@router.get("/facilities/{facility_id}/spots/{spot_number}/reservation", response_model=ReservationOut,
            summary="Pending / confirmed / active reservation holding a spot")
def get_spot_reservation(facility_id: int, spot_number: int, db: Session = Depends(get_db)):
    reservation = reservation_manager.lookup_active(db, facility_id, spot_number)
    if not reservation:
        raise HTTPException(status_code=404, detail="No reservation holds this spot")
    return reservation


@router.post("/reservations/{code}/confirm", summary="Payment confirmed (webhook or operator)")
async def confirm_reservation(code: str, body: ReservationConfirm, db: Session = Depends(get_db)):
    changed = await coordinator.confirm_reservation(db, code, payment_ref=body.payment_ref)
    return {"code": code, "status": "confirmed" if changed else "already_confirmed"}


@router.post("/reservations/{code}/await-operator",
             summary="Cash / transfer payment waiting for an operator")
async def await_operator(code: str, db: Session = Depends(get_db)):
    changed = await coordinator.await_operator_confirmation(db, code)
    return {"code": code, "status": "pending_operator" if changed else "already_pending_operator"}


@router.post("/reservations/{code}/cancel")
async def cancel_reservation(code: str, body: ReservationCancel, db: Session = Depends(get_db)):
    try:
        await coordinator.cancel_reservation(db, code, body.reason, actor_id=body.actor_id)
    except AlreadyClosed as e:
        return {"code": code, "status": "already_closed", "detail": e.detail}
    return {"code": code, "status": "cancelled"}


@router.post("/reservations/{code}/arrival", response_model=OccupancyOut, status_code=201,
             summary="Vehicle arrived for its reservation")
async def reservation_arrival(code: str, body: ReservationArrival, db: Session = Depends(get_db)):
    return await coordinator.convert_to_occupancy(
        db, code, body.vehicle_plate, entry_time=body.entry_time,
        operator_override=body.operator_override, operator_id=body.operator_id,
    )


@router.post("/reservations/expire", response_model=ExpiryResult,
             summary="Expire overdue confirmed reservations (cron entry point)")
async def expire_reservations(db: Session = Depends(get_db)):
    now = facility_clock.now()
    expired = await coordinator.expire_due_reservations(db, now=now)
    return {"expired": expired, "ran_at": now}


@router.get("/drivers/{driver_id}/reservations", response_model=list[ReservationOut],
            summary="A driver's reservations, latest hold first")
def list_driver_reservations(driver_id: str, include_closed: bool = False, db: Session = Depends(get_db)):
    return reservation_manager.for_driver(db, driver_id, include_closed=include_closed)
