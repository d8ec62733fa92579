# plaza_engine/services/expiry_sweeper.py
"""
Reservation expiry sweeper — periodically expires Confirmed holds whose
hold_end has passed and hands their spots back.

Runs as an asyncio task inside the API process (started from main.py) but is
safe next to any number of other sweepers or an external cron hitting
POST /reservations/expire: every pass re-validates each row before touching it.
"""

import asyncio

from plaza_engine.config import settings
from plaza_engine.database import SessionLocal
from plaza_engine.services.spot_status_coordinator import expire_due_reservations
from plaza_engine.utils.logger import get_logger

logger = get_logger(__name__)

# Back-off after a failed pass (doubles on each failure, capped)
_MIN_BACKOFF = 5
_MAX_BACKOFF = 300


async def run_expiry_sweep(session_factory=SessionLocal) -> int:
    """One pass with a fresh session. Returns how many reservations expired."""
    db = session_factory()
    try:
        return await expire_due_reservations(db)
    finally:
        db.close()


async def start_expiry_sweeper(interval_seconds: int = None, session_factory=SessionLocal):
    """Loop forever: sweep, sleep. Called once at backend startup."""
    interval = interval_seconds or settings.EXPIRY_SWEEP_INTERVAL_SECONDS
    logger.info(f"⏲  Reservation expiry sweep every {interval}s")
    backoff = _MIN_BACKOFF

    while True:
        try:
            expired = await run_expiry_sweep(session_factory)
            if expired:
                logger.info(f"[EXPIRY] Sweep released {expired} reservation(s)")
            backoff = _MIN_BACKOFF
            await asyncio.sleep(interval)
        except asyncio.CancelledError:
            logger.info("⏲  Expiry sweeper stopped")
            raise
        except Exception as e:
            logger.error(f"[EXPIRY] Sweep failed: {e}. Retry in {backoff}s", exc_info=True)
            await asyncio.sleep(backoff)
            backoff = min(backoff * 2, _MAX_BACKOFF)
