# plaza_engine/routers/movements.py
"""Vehicle movement feed for reporting / ticketing consumers."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional
from plaza_engine.database import get_db
from plaza_engine.routers.occupancies import movement_rows
from plaza_engine.schemas.movement import MovementOut
from plaza_engine.services import movement_recorder

router = APIRouter()


@router.get("/facilities/{facility_id}/movements", response_model=list[MovementOut],
            summary="Latest vehicle movements in a facility")
def list_movements(facility_id: int, plate: Optional[str] = None, limit: int = 50,
                   db: Session = Depends(get_db)):
    movements = movement_recorder.recent(db, facility_id, plate=plate, limit=limit)
    return movement_rows(db, facility_id, movements)
