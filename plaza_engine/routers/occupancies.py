# plaza_engine/routers/occupancies.py
"""Vehicle entry / exit / relocation endpoints and active-stay lookups."""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import Optional
from plaza_engine.database import get_db
from plaza_engine.errors import AlreadyClosed
from plaza_engine.schemas.occupancy import OccupancyCreate, OccupancyExit, OccupancyOut, OccupancyRelocate
from plaza_engine.schemas.movement import MovementOut
from plaza_engine.services import movement_recorder, occupancy_ledger
from plaza_engine.services import spot_status_coordinator as coordinator

router = APIRouter()


def movement_rows(db: Session, facility_id: int, movements) -> list[dict]:
    """Movements with origin/destination zone labels attached."""
    zones = movement_recorder.zones_for(
        db, facility_id, [n for m in movements for n in (m.origin_spot, m.destination_spot)]
    )
    rows = []
    for m in movements:
        row = MovementOut.model_validate(m).model_dump()
        row["origin_zone"] = zones.get(m.origin_spot, "N/A")
        row["destination_zone"] = zones.get(m.destination_spot, "N/A")
        rows.append(row)
    return rows


@router.post("/occupancies", response_model=OccupancyOut, status_code=201,
             summary="Vehicle entry (with or without a spot)")
async def vehicle_entry(body: OccupancyCreate, db: Session = Depends(get_db)):
    return await coordinator.request_occupy(
        db, body.facility_id, body.spot_number, body.vehicle_plate,
        entry_time=body.entry_time, tariff_ref=body.tariff_ref,
        operator_id=body.operator_id, close_no_show=body.close_no_show,
    )


@router.post("/occupancies/{occupancy_id}/exit", summary="Vehicle exit")
async def vehicle_exit(occupancy_id: int, body: OccupancyExit, db: Session = Depends(get_db)):
    """Idempotent: a replayed exit answers 200 with status=already_closed."""
    try:
        occupancy = await coordinator.request_release(db, occupancy_id, exit_time=body.exit_time,
                                                      operator_id=body.operator_id)
    except AlreadyClosed as e:
        return {"status": "already_closed", "occupancy_id": occupancy_id, "detail": e.detail}
    return {"status": "closed", "occupancy": OccupancyOut.model_validate(occupancy)}


@router.post("/occupancies/{occupancy_id}/relocate", summary="Move a parked vehicle to another spot")
async def relocate_vehicle(occupancy_id: int, body: OccupancyRelocate, db: Session = Depends(get_db)):
    occupancy, movement = await coordinator.relocate(
        db, occupancy_id, body.to_spot, operator_id=body.operator_id,
        reason=body.reason, at=body.move_time,
    )
    return {
        "status": "moved",
        "occupancy": OccupancyOut.model_validate(occupancy),
        "movement": movement_rows(db, occupancy.facility_id, [movement])[0],
    }


@router.get("/occupancies/{occupancy_id}", response_model=OccupancyOut)
def get_occupancy(occupancy_id: int, db: Session = Depends(get_db)):
    return occupancy_ledger.get_occupancy(db, occupancy_id)


@router.get("/facilities/{facility_id}/occupancies/active", response_model=OccupancyOut,
            summary="Active stay by plate or by spot")
def get_active_occupancy(facility_id: int, plate: Optional[str] = None,
                         spot_number: Optional[int] = None, db: Session = Depends(get_db)):
    if plate:
        occupancy = occupancy_ledger.active_for_plate(db, facility_id, plate)
    elif spot_number is not None:
        occupancy = occupancy_ledger.active_for_spot(db, facility_id, spot_number)
    else:
        raise HTTPException(status_code=400, detail="Pass plate or spot_number")
    if not occupancy:
        raise HTTPException(status_code=404, detail="No active occupancy")
    return occupancy


@router.get("/occupancies/{occupancy_id}/movements", response_model=list[MovementOut],
            summary="Movements during one stay")
def get_stay_movements(occupancy_id: int, oldest_first: bool = False, db: Session = Depends(get_db)):
    occupancy = occupancy_ledger.get_occupancy(db, occupancy_id)
    movements = movement_recorder.history_for_stay(db, occupancy_id, newest_first=not oldest_first)
    return movement_rows(db, occupancy.facility_id, movements)
