# plaza_engine/schemas/occupancy.py
from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class OccupancyCreate(BaseModel):
    facility_id: int
    vehicle_plate: str
    spot_number: Optional[int] = None      # omitted = check in without a spot
    entry_time: Optional[datetime] = None  # defaults to facility clock
    tariff_ref: Optional[str] = None
    operator_id: Optional[str] = None
    close_no_show: bool = False            # operator hands a no-show's reserved spot to a walk-in


class OccupancyExit(BaseModel):
    exit_time: Optional[datetime] = None
    operator_id: Optional[str] = None


class OccupancyRelocate(BaseModel):
    to_spot: int
    operator_id: Optional[str] = None
    reason: Optional[str] = None
    move_time: Optional[datetime] = None


class OccupancyOut(BaseModel):
    id: int
    facility_id: int
    spot_number: Optional[int]
    vehicle_plate: str
    entry_time: datetime
    exit_time: Optional[datetime]
    tariff_ref: Optional[str]
    payment_ref: Optional[str]
    reservation_code: Optional[str]

    class Config:
        from_attributes = True
