"""Time slot block model definitions."""

from sqlalchemy import Column, Date, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import validates

from backend.booking.slots import normalize_label
from backend.database import Base

DEFAULT_BLOCK_REASON = "Blocked by admin"


class TimeSlotBlock(Base):
    """An administrator exclusion of one slot on one date."""
    __tablename__ = "time_slot_blocks"
    __table_args__ = (
        UniqueConstraint("resource_id", "date", "time_slot", name="uq_time_slot_blocks_slot"),
    )

    id = Column(Integer, primary_key=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False)
    date = Column(Date, nullable=False)
    time_slot = Column(String(5), nullable=False)
    reason = Column(String, nullable=False, default=DEFAULT_BLOCK_REASON)

    @validates("time_slot")
    def validate_time_slot(self, _key, value):
        return normalize_label(value)
