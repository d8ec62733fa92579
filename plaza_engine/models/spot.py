# plaza_engine/models/spot.py
"""
Spots table — one row per physical parking space ("plaza").
Key is (facility_id, spot_number). `status` is a cached view of the active
occupancy / reservation for the spot and is written only by services.spot_state.
`version` backs optimistic concurrency: every status write is a compare-and-set.
"""

import enum
from sqlalchemy import Column, Integer, String, DateTime, Enum
from plaza_engine.database import Base


class VehicleCategory(str, enum.Enum):
    CAR = "Car"
    MOTORCYCLE = "Motorcycle"
    VAN = "Van"


class SpotStatus(str, enum.Enum):
    FREE = "Free"
    OCCUPIED = "Occupied"
    RESERVED = "Reserved"
    MAINTENANCE = "Maintenance"


def enum_column(enum_cls, **kwargs):
    """String-backed enum column that stores member values, not names."""
    return Column(
        Enum(enum_cls, native_enum=False, length=40,
             values_callable=lambda members: [m.value for m in members]),
        **kwargs,
    )


class Spot(Base):
    __tablename__ = "spots"

    facility_id = Column(Integer, primary_key=True)
    spot_number = Column(Integer, primary_key=True)
    vehicle_category = enum_column(VehicleCategory, nullable=False, default=VehicleCategory.CAR)
    zone = Column(String(100), index=True)
    status = enum_column(SpotStatus, nullable=False, default=SpotStatus.FREE, index=True)
    version = Column(Integer, nullable=False)
    updated_at = Column(DateTime)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self):
        return f"<Spot {self.facility_id}/{self.spot_number} {self.status} zone={self.zone}>"
