# plaza_engine/schemas/reservation.py
from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from plaza_engine.models.reservation import ReservationStatus


class ReservationCreate(BaseModel):
    facility_id: int
    spot_number: int
    vehicle_plate: str
    driver_id: str
    hold_start: datetime
    hold_end: datetime
    amount: Decimal = Field(default=Decimal("0"), ge=0)   # priced by the tariff service upstream
    grace_period_minutes: Optional[int] = Field(default=None, ge=0)


class ReservationConfirm(BaseModel):
    payment_ref: Optional[str] = None


class ReservationCancel(BaseModel):
    reason: str = "Cancelled by user"
    actor_id: Optional[str] = None


class ReservationArrival(BaseModel):
    vehicle_plate: str
    entry_time: Optional[datetime] = None
    operator_override: bool = False
    operator_id: Optional[str] = None


class ReservationOut(BaseModel):
    code: str
    facility_id: int
    spot_number: int
    vehicle_plate: str
    driver_id: str
    hold_start: datetime
    hold_end: datetime
    amount: Decimal
    status: ReservationStatus
    grace_period_minutes: int
    payment_ref: Optional[str]
    occupancy_id: Optional[int]
    cancel_reason: Optional[str]
    created_at: datetime

    class Config:
        from_attributes = True


class ExpiryResult(BaseModel):
    expired: int
    ran_at: datetime
