# plaza_engine/models/occupancy.py
"""
Occupancy table — one physical stay of a vehicle, check-in to check-out.
exit_time NULL = still parked. spot_number NULL = checked in without a spot.

The two partial unique indexes are the real guard against double check-in:
one active row per plate and one active row per (non-null) spot per facility.
"""

from sqlalchemy import Column, Integer, String, DateTime, Index, text
from plaza_engine.database import Base

ACTIVE_PLATE_INDEX = "uq_occupancies_active_plate"
ACTIVE_SPOT_INDEX = "uq_occupancies_active_spot"

_ACTIVE = "exit_time IS NULL"
_ACTIVE_WITH_SPOT = "exit_time IS NULL AND spot_number IS NOT NULL"


class Occupancy(Base):
    __tablename__ = "occupancies"

    id = Column(Integer, primary_key=True, autoincrement=True)
    facility_id = Column(Integer, nullable=False, index=True)
    spot_number = Column(Integer)
    vehicle_plate = Column(String(20), nullable=False, index=True)
    entry_time = Column(DateTime, nullable=False)
    exit_time = Column(DateTime)
    tariff_ref = Column(String(100))
    payment_ref = Column(String(100))
    reservation_code = Column(String(40))      # set when the stay came from a reservation

    __table_args__ = (
        Index(ACTIVE_PLATE_INDEX, "facility_id", "vehicle_plate", unique=True,
              postgresql_where=text(_ACTIVE), sqlite_where=text(_ACTIVE)),
        Index(ACTIVE_SPOT_INDEX, "facility_id", "spot_number", unique=True,
              postgresql_where=text(_ACTIVE_WITH_SPOT), sqlite_where=text(_ACTIVE_WITH_SPOT)),
    )

    @property
    def is_active(self) -> bool:
        return self.exit_time is None

    def __repr__(self):
        return f"<Occupancy {self.id} plate={self.vehicle_plate} spot={self.spot_number} active={self.is_active}>"
