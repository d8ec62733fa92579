# plaza_engine/routers/spots.py
"""Spot registry endpoints: facility view, zone provisioning, maintenance, status log."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional
from plaza_engine.database import get_db
from plaza_engine.models.spot import SpotStatus
from plaza_engine.schemas.spot import (
    CapacityReset, FacilitySpotsOut, MaintenanceUpdate, SpotOut, SpotStatusChangeOut, ZoneProvision,
)
from plaza_engine.services import spot_registry
from plaza_engine.services.spot_status_coordinator import set_maintenance

router = APIRouter()


@router.get("/facilities/{facility_id}/spots", response_model=FacilitySpotsOut,
            summary="All spots of a facility with a status summary")
def get_facility_spots(facility_id: int, zone: Optional[str] = None,
                       status: Optional[SpotStatus] = None, db: Session = Depends(get_db)):
    return {
        "facility_id": facility_id,
        "summary": spot_registry.status_summary(db, facility_id),
        "spots": spot_registry.list_spots(db, facility_id, zone=zone, status=status),
    }


@router.get("/facilities/{facility_id}/spots/{spot_number}", response_model=SpotOut)
def get_spot(facility_id: int, spot_number: int, db: Session = Depends(get_db)):
    return spot_registry.get_spot(db, facility_id, spot_number)


@router.post("/facilities/{facility_id}/zones", response_model=list[SpotOut],
             summary="Provision a zone with N new spots")
async def provision_zone(facility_id: int, body: ZoneProvision, db: Session = Depends(get_db)):
    return await spot_registry.provision_zone(db, facility_id, body.zone, body.count,
                                              body.vehicle_category)


@router.post("/facilities/{facility_id}/capacity/reset", response_model=list[SpotOut],
             summary="Drop and recreate every spot of the facility")
async def reset_capacity(facility_id: int, body: CapacityReset, db: Session = Depends(get_db)):
    """Refused while vehicles are parked or reservations are pending."""
    return await spot_registry.reset_capacity(db, facility_id, body.as_capacity())


@router.put("/facilities/{facility_id}/spots/{spot_number}/maintenance",
            summary="Block or unblock a spot for maintenance")
async def update_maintenance(facility_id: int, spot_number: int, body: MaintenanceUpdate,
                             db: Session = Depends(get_db)):
    status = await set_maintenance(db, facility_id, spot_number, body.enabled,
                                   reason=body.reason, actor_id=body.actor_id)
    return {"facility_id": facility_id, "spot_number": spot_number, "status": status.value}


@router.get("/facilities/{facility_id}/status-changes", response_model=list[SpotStatusChangeOut],
            summary="Spot status audit feed")
def get_status_changes(facility_id: int, spot_number: Optional[int] = None, limit: int = 50,
                       db: Session = Depends(get_db)):
    return spot_registry.status_changes(db, facility_id, spot_number=spot_number, limit=limit)
