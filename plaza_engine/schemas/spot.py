# plaza_engine/schemas/spot.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional

from plaza_engine.models.spot import SpotStatus, VehicleCategory


class SpotOut(BaseModel):
    facility_id: int
    spot_number: int
    vehicle_category: VehicleCategory
    zone: Optional[str]
    status: SpotStatus
    updated_at: Optional[datetime]

    class Config:
        from_attributes = True


class FacilitySpotsOut(BaseModel):
    facility_id: int
    summary: dict[str, int]
    spots: list[SpotOut]


class ZoneProvision(BaseModel):
    zone: str
    count: int = Field(gt=0, le=1000)
    vehicle_category: VehicleCategory = VehicleCategory.CAR


class CapacityReset(BaseModel):
    cars: int = Field(default=0, ge=0)
    motorcycles: int = Field(default=0, ge=0)
    vans: int = Field(default=0, ge=0)

    def as_capacity(self) -> dict:
        return {
            VehicleCategory.CAR: self.cars,
            VehicleCategory.MOTORCYCLE: self.motorcycles,
            VehicleCategory.VAN: self.vans,
        }


class MaintenanceUpdate(BaseModel):
    enabled: bool
    reason: Optional[str] = None
    actor_id: Optional[str] = None


class SpotStatusChangeOut(BaseModel):
    id: int
    facility_id: int
    spot_number: int
    previous_status: SpotStatus
    new_status: SpotStatus
    event: str
    reason: Optional[str]
    actor_id: Optional[str]
    changed_at: datetime

    class Config:
        from_attributes = True
