"""Reservation model definitions."""

import enum
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, Enum, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import validates

from backend.booking.slots import normalize_label
from backend.database import Base


class ReservationStatus(str, enum.Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    NO_SHOW = "NO_SHOW"


# Statuses that occupy a slot.
ACTIVE_STATUSES = frozenset({
    ReservationStatus.PENDING,
    ReservationStatus.CONFIRMED,
    ReservationStatus.IN_PROGRESS,
})

_ACTIVE_STATUS_CLAUSE = text("status IN ('PENDING', 'CONFIRMED', 'IN_PROGRESS')")


class Reservation(Base):
    """A customer's reservation of one slot at one resource."""
    __tablename__ = "reservations"
    __table_args__ = (
        Index(
            "uq_reservations_active_slot",
            "resource_id",
            "date",
            "time_slot",
            unique=True,
            sqlite_where=_ACTIVE_STATUS_CLAUSE,
            postgresql_where=_ACTIVE_STATUS_CLAUSE,
        ),
        Index("idx_reservations_resource_status", "resource_id", "status"),
    )

    id = Column(Integer, primary_key=True)
    reference = Column(String(16), nullable=False, unique=True, index=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False)
    requester_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    subject_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False)
    date = Column(Date, nullable=False)
    time_slot = Column(String(5), nullable=False)
    status = Column(
        Enum(ReservationStatus, native_enum=False, length=20, validate_strings=True),
        nullable=False,
        default=ReservationStatus.PENDING,
    )
    notes = Column(String)
    cancellation_reason = Column(String)
    created_at = Column(DateTime, nullable=False, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    @validates("time_slot")
    def validate_time_slot(self, _key, value):
        return normalize_label(value)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
