# plaza_engine/routers/health.py
"""
System health check endpoint.
Returns status of backend + DB + facility clock.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from sqlalchemy import text
from plaza_engine.clock import facility_clock
from plaza_engine.config import settings
from plaza_engine.database import get_db
from datetime import datetime

router = APIRouter()


@router.get("/health", summary="System health check")
def health_check(db: Session = Depends(get_db)):
    """
    Returns:
    - Backend status
    - Database connectivity
    - Facility-local time the engine is using
    """
    result = {
        "status": "ok",
        "timestamp": datetime.utcnow().isoformat(),
        "facility_time": facility_clock.now().isoformat(),
        "facility_timezone": settings.FACILITY_TIMEZONE,
        "backend": "ok",
        "database": "unknown",
        "expiry_sweep": "enabled" if settings.EXPIRY_SWEEP_ENABLED else "disabled",
    }

    try:
        db.execute(text("SELECT 1"))
        result["database"] = "ok"
    except Exception as e:
        result["database"] = f"error: {str(e)}"
        result["status"] = "degraded"

    return result
