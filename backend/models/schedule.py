"""Weekly schedule and schedule exception model definitions."""

from sqlalchemy import Boolean, CheckConstraint, Column, Date, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import validates

from backend.booking.errors import InvalidSlotError
from backend.booking.slots import label_to_minutes, normalize_label
from backend.core import config
from backend.database import Base

DEFAULT_OPEN_TIME = "09:00"
DEFAULT_CLOSE_TIME = "17:00"


class WeeklyScheduleEntry(Base):
    """Opening hours and slot granularity of a resource for one weekday.

    ``day_of_week`` follows ``date.weekday()``: Monday is 0, Sunday is 6.
    When ``is_open`` is false the hours are kept but ignored.
    """
    __tablename__ = "weekly_schedule_entries"
    __table_args__ = (
        UniqueConstraint("resource_id", "day_of_week", name="uq_weekly_schedule_day"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_weekly_schedule_weekday"),
        CheckConstraint("slot_duration_minutes > 0", name="ck_weekly_schedule_duration"),
    )

    id = Column(Integer, primary_key=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    is_open = Column(Boolean, nullable=False, default=True)
    open_time = Column(String(5), nullable=False, default=DEFAULT_OPEN_TIME)
    close_time = Column(String(5), nullable=False, default=DEFAULT_CLOSE_TIME)
    slot_duration_minutes = Column(Integer, nullable=False, default=config.DEFAULT_SLOT_DURATION_MINUTES)

    def __init__(self, **kwargs):
        kwargs.setdefault("is_open", True)
        kwargs.setdefault("open_time", DEFAULT_OPEN_TIME)
        kwargs.setdefault("close_time", DEFAULT_CLOSE_TIME)
        kwargs.setdefault("slot_duration_minutes", config.DEFAULT_SLOT_DURATION_MINUTES)
        super().__init__(**kwargs)
        self.check_hours()

    @validates("day_of_week")
    def validate_day_of_week(self, _key, value):
        if value is None or not 0 <= int(value) <= 6:
            raise InvalidSlotError("Weekday must be between 0 (Monday) and 6 (Sunday).")
        return int(value)

    @validates("open_time", "close_time")
    def validate_time(self, _key, value):
        return normalize_label(value)

    @validates("slot_duration_minutes")
    def validate_slot_duration(self, _key, value):
        if value is None or int(value) <= 0:
            raise InvalidSlotError("Slot duration must be a positive number of minutes.")
        return int(value)

    def check_hours(self) -> None:
        if self.is_open and label_to_minutes(self.open_time) >= label_to_minutes(self.close_time):
            raise InvalidSlotError("Opening time must be before closing time.")


class ScheduleException(Base):
    """A date-specific override of the weekly schedule.

    A closed exception removes the whole day. An open exception with both
    override times replaces the weekly hours for that date and keeps the
    weekly slot duration; an open exception without override times leaves the
    weekly hours in place.
    """
    __tablename__ = "schedule_exceptions"
    __table_args__ = (
        UniqueConstraint("resource_id", "date", name="uq_schedule_exceptions_date"),
    )

    id = Column(Integer, primary_key=True)
    resource_id = Column(Integer, ForeignKey("resources.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    is_closed = Column(Boolean, nullable=False, default=False)
    open_time = Column(String(5))
    close_time = Column(String(5))
    reason = Column(String)

    def __init__(self, **kwargs):
        kwargs.setdefault("is_closed", False)
        super().__init__(**kwargs)
        self.check_hours()

    @validates("open_time", "close_time")
    def validate_time(self, _key, value):
        if value is None:
            return None
        return normalize_label(value)

    @property
    def overrides_hours(self) -> bool:
        return not self.is_closed and self.open_time is not None and self.close_time is not None

    def check_hours(self) -> None:
        if self.is_closed:
            return
        if (self.open_time is None) != (self.close_time is None):
            raise InvalidSlotError("Override hours need both an opening and a closing time.")
        if self.overrides_hours and label_to_minutes(self.open_time) >= label_to_minutes(self.close_time):
            raise InvalidSlotError("Opening time must be before closing time.")
