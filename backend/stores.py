"""Database access for schedules, blocks, reservations and resources.

Stores only read and stage changes; committing is left to the caller so that
the reservation service can group several writes into one unit of work.
"""

from datetime import date

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from backend.booking.slots import normalize_label
from backend.models.block import DEFAULT_BLOCK_REASON, TimeSlotBlock
from backend.models.reservation import ACTIVE_STATUSES, Reservation, ReservationStatus
from backend.models.resource import Resource
from backend.models.schedule import ScheduleException, WeeklyScheduleEntry
from backend.models.user import User
from backend.models.vehicle import Vehicle


class ResourceStore:
    """Resources and the people and vehicles around a reservation."""

    @staticmethod
    def get(db: Session, resource_id: int) -> Resource | None:
        return db.get(Resource, resource_id)

    @staticmethod
    def list_accepting(db: Session) -> list[Resource]:
        return (
            db.query(Resource)
            .filter(Resource.accepts_bookings.is_(True))
            .order_by(Resource.name.asc(), Resource.id.asc())
            .all()
        )

    @staticmethod
    def lock_for_booking(db: Session, resource_id: int) -> None:
        """Serialize quota checks for one resource until the transaction ends.

        PostgreSQL takes a row lock. SQLite has no row locks, so a no-op write
        takes the database write lock instead.
        """
        if db.get_bind().dialect.name == "sqlite":
            db.execute(
                update(Resource)
                .where(Resource.id == resource_id)
                .values(quota_allotted=Resource.quota_allotted)
                .execution_options(synchronize_session=False)
            )
        else:
            db.query(Resource.id).filter(Resource.id == resource_id).with_for_update().one()

    @staticmethod
    def get_user(db: Session, user_id: int) -> User | None:
        return db.get(User, user_id)

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> User | None:
        return db.query(User).filter(User.email == email).first()

    @staticmethod
    def get_owned_vehicle(db: Session, vehicle_id: int, owner_id: int) -> Vehicle | None:
        return (
            db.query(Vehicle)
            .filter(Vehicle.id == vehicle_id, Vehicle.owner_id == owner_id)
            .first()
        )


class ScheduleStore:
    """Weekly templates and date exceptions."""

    @staticmethod
    def get_weekly_entry(db: Session, resource_id: int, day_of_week: int) -> WeeklyScheduleEntry | None:
        return (
            db.query(WeeklyScheduleEntry)
            .filter(
                WeeklyScheduleEntry.resource_id == resource_id,
                WeeklyScheduleEntry.day_of_week == day_of_week,
            )
            .first()
        )

    @staticmethod
    def list_week(db: Session, resource_id: int) -> list[WeeklyScheduleEntry]:
        return (
            db.query(WeeklyScheduleEntry)
            .filter(WeeklyScheduleEntry.resource_id == resource_id)
            .order_by(WeeklyScheduleEntry.day_of_week.asc())
            .all()
        )

    @staticmethod
    def upsert_weekly_entry(
        db: Session,
        resource_id: int,
        day_of_week: int,
        *,
        is_open: bool,
        open_time: str,
        close_time: str,
        slot_duration_minutes: int,
    ) -> WeeklyScheduleEntry:
        entry = ScheduleStore.get_weekly_entry(db, resource_id, day_of_week)
        if entry is None:
            entry = WeeklyScheduleEntry(
                resource_id=resource_id,
                day_of_week=day_of_week,
                is_open=is_open,
                open_time=open_time,
                close_time=close_time,
                slot_duration_minutes=slot_duration_minutes,
            )
            db.add(entry)
        else:
            entry.is_open = is_open
            entry.open_time = open_time
            entry.close_time = close_time
            entry.slot_duration_minutes = slot_duration_minutes
            entry.check_hours()
        db.flush()
        return entry

    @staticmethod
    def get_exception(db: Session, resource_id: int, exception_date: date) -> ScheduleException | None:
        return (
            db.query(ScheduleException)
            .filter(
                ScheduleException.resource_id == resource_id,
                ScheduleException.date == exception_date,
            )
            .first()
        )

    @staticmethod
    def upsert_exception(
        db: Session,
        resource_id: int,
        exception_date: date,
        *,
        is_closed: bool,
        open_time: str | None = None,
        close_time: str | None = None,
        reason: str | None = None,
    ) -> ScheduleException:
        exception = ScheduleStore.get_exception(db, resource_id, exception_date)
        if exception is None:
            exception = ScheduleException(
                resource_id=resource_id,
                date=exception_date,
                is_closed=is_closed,
                open_time=open_time,
                close_time=close_time,
                reason=reason,
            )
            db.add(exception)
        else:
            exception.is_closed = is_closed
            exception.open_time = open_time
            exception.close_time = close_time
            exception.reason = reason
            exception.check_hours()
        db.flush()
        return exception

    @staticmethod
    def delete_exception(db: Session, resource_id: int, exception_date: date) -> bool:
        exception = ScheduleStore.get_exception(db, resource_id, exception_date)
        if exception is None:
            return False
        db.delete(exception)
        db.flush()
        return True


class BlockStore:
    """Administrator exclusions of single slots."""

    @staticmethod
    def labels_for_day(db: Session, resource_id: int, block_date: date) -> set[str]:
        rows = (
            db.query(TimeSlotBlock.time_slot)
            .filter(TimeSlotBlock.resource_id == resource_id, TimeSlotBlock.date == block_date)
            .all()
        )
        return {time_slot for (time_slot,) in rows}

    @staticmethod
    def list_for_day(db: Session, resource_id: int, block_date: date) -> list[TimeSlotBlock]:
        return (
            db.query(TimeSlotBlock)
            .filter(TimeSlotBlock.resource_id == resource_id, TimeSlotBlock.date == block_date)
            .order_by(TimeSlotBlock.time_slot.asc())
            .all()
        )

    @staticmethod
    def get(db: Session, resource_id: int, block_date: date, time_slot: str) -> TimeSlotBlock | None:
        return (
            db.query(TimeSlotBlock)
            .filter(
                TimeSlotBlock.resource_id == resource_id,
                TimeSlotBlock.date == block_date,
                TimeSlotBlock.time_slot == normalize_label(time_slot),
            )
            .first()
        )

    @staticmethod
    def block(
        db: Session,
        resource_id: int,
        block_date: date,
        time_slot: str,
        reason: str | None = None,
    ) -> tuple[TimeSlotBlock, bool]:
        """Block a slot. Returns the block and whether it was newly created."""
        existing = BlockStore.get(db, resource_id, block_date, time_slot)
        if existing is not None:
            return existing, False

        block = TimeSlotBlock(
            resource_id=resource_id,
            date=block_date,
            time_slot=time_slot,
            reason=reason or DEFAULT_BLOCK_REASON,
        )
        db.add(block)
        db.flush()
        return block, True

    @staticmethod
    def unblock(db: Session, resource_id: int, block_date: date, time_slot: str) -> bool:
        block = BlockStore.get(db, resource_id, block_date, time_slot)
        if block is None:
            return False
        db.delete(block)
        db.flush()
        return True


class ReservationStore:
    """Committed reservations."""

    @staticmethod
    def get(db: Session, reservation_id: int) -> Reservation | None:
        return db.get(Reservation, reservation_id)

    @staticmethod
    def get_by_reference(db: Session, reference: str) -> Reservation | None:
        return db.query(Reservation).filter(Reservation.reference == reference).first()

    @staticmethod
    def reference_exists(db: Session, reference: str) -> bool:
        return db.query(Reservation.id).filter(Reservation.reference == reference).first() is not None

    @staticmethod
    def active_labels_for_day(
        db: Session,
        resource_id: int,
        reservation_date: date,
        exclude_reservation_id: int | None = None,
    ) -> set[str]:
        query = db.query(Reservation.time_slot).filter(
            Reservation.resource_id == resource_id,
            Reservation.date == reservation_date,
            Reservation.status.in_(tuple(ACTIVE_STATUSES)),
        )
        if exclude_reservation_id is not None:
            query = query.filter(Reservation.id != exclude_reservation_id)
        return {time_slot for (time_slot,) in query.all()}

    @staticmethod
    def find_active(db: Session, resource_id: int, reservation_date: date, time_slot: str) -> Reservation | None:
        return (
            db.query(Reservation)
            .filter(
                Reservation.resource_id == resource_id,
                Reservation.date == reservation_date,
                Reservation.time_slot == time_slot,
                Reservation.status.in_(tuple(ACTIVE_STATUSES)),
            )
            .first()
        )

    @staticmethod
    def count_consuming(db: Session, resource_id: int) -> int:
        """Reservations that use up quota: every one that was not cancelled."""
        return (
            db.query(func.count(Reservation.id))
            .filter(
                Reservation.resource_id == resource_id,
                Reservation.status != ReservationStatus.CANCELLED,
            )
            .scalar()
        ) or 0

    @staticmethod
    def count_consuming_by_resource(db: Session, resource_ids: list[int]) -> dict[int, int]:
        if not resource_ids:
            return {}
        rows = (
            db.query(Reservation.resource_id, func.count(Reservation.id))
            .filter(
                Reservation.resource_id.in_(resource_ids),
                Reservation.status != ReservationStatus.CANCELLED,
            )
            .group_by(Reservation.resource_id)
            .all()
        )
        return {resource_id: count for resource_id, count in rows}

    @staticmethod
    def add(db: Session, reservation: Reservation) -> Reservation:
        db.add(reservation)
        db.flush()
        return reservation
