# plaza_engine/models/reservation.py
"""
Reservations table — a time-bounded hold on a spot before the vehicle arrives.

Holding statuses (PendingPayment, PendingOperatorConfirmation, Confirmed, Active)
are mutually exclusive per spot; the partial unique index enforces it in storage.
Converted reservations stay Active while the vehicle is parked and become
Completed when that occupancy exits.
"""

import enum
from sqlalchemy import Column, Integer, String, DateTime, Numeric, Text, Index, text
from plaza_engine.database import Base
from plaza_engine.models.spot import enum_column


class ReservationStatus(str, enum.Enum):
    PENDING_PAYMENT = "PendingPayment"
    PENDING_OPERATOR_CONFIRMATION = "PendingOperatorConfirmation"
    CONFIRMED = "Confirmed"
    ACTIVE = "Active"
    COMPLETED = "Completed"
    EXPIRED = "Expired"
    CANCELLED = "Cancelled"
    NO_SHOW = "NoShow"


HOLDING_STATUSES = (
    ReservationStatus.PENDING_PAYMENT,
    ReservationStatus.PENDING_OPERATOR_CONFIRMATION,
    ReservationStatus.CONFIRMED,
    ReservationStatus.ACTIVE,
)
# Statuses that block maintenance and turn a released spot back into Reserved
COMMITTED_STATUSES = (ReservationStatus.CONFIRMED, ReservationStatus.ACTIVE)
TERMINAL_STATUSES = (
    ReservationStatus.COMPLETED,
    ReservationStatus.EXPIRED,
    ReservationStatus.CANCELLED,
    ReservationStatus.NO_SHOW,
)

HOLDING_SPOT_INDEX = "uq_reservations_holding_spot"
_HOLDING = "status IN ({})".format(", ".join(f"'{s.value}'" for s in HOLDING_STATUSES))


class Reservation(Base):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(40), unique=True, nullable=False, index=True)
    facility_id = Column(Integer, nullable=False, index=True)
    spot_number = Column(Integer, nullable=False)
    vehicle_plate = Column(String(20), nullable=False)
    driver_id = Column(String(100), nullable=False, index=True)
    hold_start = Column(DateTime, nullable=False)
    hold_end = Column(DateTime, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    status = enum_column(ReservationStatus, nullable=False,
                         default=ReservationStatus.PENDING_PAYMENT, index=True)
    grace_period_minutes = Column(Integer, nullable=False, default=0)
    payment_ref = Column(String(100))
    occupancy_id = Column(Integer)             # occupancies.id once converted
    cancel_reason = Column(Text)
    created_at = Column(DateTime, nullable=False)
    updated_at = Column(DateTime)

    __table_args__ = (
        Index(HOLDING_SPOT_INDEX, "facility_id", "spot_number", unique=True,
              postgresql_where=text(_HOLDING), sqlite_where=text(_HOLDING)),
    )

    def __repr__(self):
        return f"<Reservation {self.code} spot={self.facility_id}/{self.spot_number} status={self.status}>"
