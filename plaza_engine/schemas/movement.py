# plaza_engine/schemas/movement.py
from pydantic import BaseModel
from datetime import datetime
from typing import Optional


class MovementOut(BaseModel):
    id: int
    facility_id: int
    vehicle_plate: str
    origin_spot: Optional[int]
    destination_spot: int
    origin_zone: Optional[str] = None
    destination_zone: Optional[str] = None
    moved_at: datetime
    operator_id: Optional[str]
    reason: Optional[str]

    class Config:
        from_attributes = True
