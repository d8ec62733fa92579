# plaza_engine/models/spot_status_change.py
"""
Spot status audit log. One row per applied transition: prior/new status,
triggering event, reason and actor. Append-only.
"""

from sqlalchemy import Column, Integer, String, DateTime, Text
from plaza_engine.database import Base
from plaza_engine.models.spot import SpotStatus, enum_column


class SpotStatusChange(Base):
    __tablename__ = "spot_status_changes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    facility_id = Column(Integer, nullable=False, index=True)
    spot_number = Column(Integer, nullable=False, index=True)
    previous_status = enum_column(SpotStatus, nullable=False)
    new_status = enum_column(SpotStatus, nullable=False)
    event = Column(String(40), nullable=False)
    reason = Column(Text)
    actor_id = Column(String(100))
    changed_at = Column(DateTime, nullable=False, index=True)

    def __repr__(self):
        return (f"<SpotStatusChange {self.facility_id}/{self.spot_number} "
                f"{self.previous_status}->{self.new_status}>")
