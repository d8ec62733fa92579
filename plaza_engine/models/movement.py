# plaza_engine/models/movement.py
"""
Vehicle movement audit table — one row per spot-to-spot relocation of a
parked vehicle. Append-only: nothing updates or deletes these rows.
origin_spot is NULL when a spotless stay is given its first spot.
"""

from sqlalchemy import Column, Integer, String, DateTime, Text
from plaza_engine.database import Base


class Movement(Base):
    __tablename__ = "vehicle_movements"

    id = Column(Integer, primary_key=True, autoincrement=True)
    facility_id = Column(Integer, nullable=False, index=True)
    vehicle_plate = Column(String(20), nullable=False, index=True)
    origin_spot = Column(Integer)
    destination_spot = Column(Integer, nullable=False)
    moved_at = Column(DateTime, nullable=False, index=True)
    operator_id = Column(String(100))
    reason = Column(Text)

    def __repr__(self):
        return f"<Movement {self.id} plate={self.vehicle_plate} {self.origin_spot}->{self.destination_spot}>"
