# plaza_engine/clock.py
"""
Facility-local clock.
The engine compares timestamps as naive local datetimes of a single facility
time zone. Anything timezone-aware coming from outside is normalized here once,
so no service does offset arithmetic of its own.
"""

from datetime import datetime
from typing import Optional
from zoneinfo import ZoneInfo

from plaza_engine.config import settings


class FacilityClock:
    def __init__(self, tz_name: str):
        self.tz = ZoneInfo(tz_name)

    def now(self) -> datetime:
        """Current facility-local time, naive."""
        return datetime.now(self.tz).replace(tzinfo=None)

    def normalize(self, value: Optional[datetime]) -> Optional[datetime]:
        """Aware → naive facility-local. Naive values are taken as already local."""
        if value is None or value.tzinfo is None:
            return value
        return value.astimezone(self.tz).replace(tzinfo=None)


class FixedClock(FacilityClock):
    """Clock pinned to a given instant. Used by scripts and tests."""

    def __init__(self, at: datetime, tz_name: str = None):
        super().__init__(tz_name or settings.FACILITY_TIMEZONE)
        self.at = self.normalize(at)

    def now(self) -> datetime:
        return self.at


facility_clock = FacilityClock(settings.FACILITY_TIMEZONE)
