"""Reservation commit service.

``reserve`` is the only writer of new reservations. Everything shown to a
customer before submission is advisory; the checks here run again against the
database at commit time, and the partial unique index on active
(resource, date, time slot) rows settles races between concurrent commits.
"""

import logging
import time
from collections.abc import Callable
from datetime import date, datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.booking.availability import compute_available_slots
from backend.booking.errors import BookingError, ConflictError, InternalError, InvalidSlotError, NotFoundError
from backend.booking.events import (
    EventPublisher,
    ReservationCreated,
    ReservationEvent,
    ReservationStatusChanged,
    RequesterSummary,
    ResourceSummary,
    SubjectSummary,
)
from backend.booking.quota import is_bookable
from backend.booking.references import ReferenceGenerator, generate_reference
from backend.booking.slots import normalize_label, parse_slot_date, slot_start
from backend.core import config
from backend.models.reservation import Reservation, ReservationStatus
from backend.models.resource import Resource
from backend.models.user import User
from backend.models.vehicle import Vehicle
from backend.stores import ReservationStore, ResourceStore

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[ReservationStatus, frozenset[ReservationStatus]] = {
    ReservationStatus.PENDING: frozenset({ReservationStatus.CONFIRMED, ReservationStatus.CANCELLED}),
    ReservationStatus.CONFIRMED: frozenset({
        ReservationStatus.IN_PROGRESS,
        ReservationStatus.CANCELLED,
        ReservationStatus.NO_SHOW,
    }),
    ReservationStatus.IN_PROGRESS: frozenset({ReservationStatus.COMPLETED}),
    ReservationStatus.COMPLETED: frozenset(),
    ReservationStatus.CANCELLED: frozenset(),
    ReservationStatus.NO_SHOW: frozenset(),
}


class ReservationService:
    def __init__(
        self,
        db: Session,
        events: EventPublisher | None = None,
        *,
        reference_generator: ReferenceGenerator = generate_reference,
        clock: Callable[[], datetime] = datetime.now,
        monotonic: Callable[[], float] = time.monotonic,
        max_reference_attempts: int = config.RESERVATION_REFERENCE_MAX_ATTEMPTS,
        commit_timeout_seconds: float = config.RESERVATION_COMMIT_TIMEOUT_SECONDS,
    ):
        self.db = db
        self.events = events
        self.reference_generator = reference_generator
        self.clock = clock
        self.monotonic = monotonic
        self.max_reference_attempts = max_reference_attempts
        self.commit_timeout_seconds = commit_timeout_seconds

    def reserve(
        self,
        resource_id: int,
        requester_id: int,
        subject_id: int,
        slot_date: date | str,
        time_slot: str,
        notes: str | None = None,
    ) -> Reservation:
        slot_date = parse_slot_date(slot_date)
        time_slot = normalize_label(time_slot)
        started = self.monotonic()
        now = self.clock()

        try:
            resource = ResourceStore.get(self.db, resource_id)
            if resource is None:
                raise NotFoundError('Resource not found.')
            if not is_bookable(self.db, resource):
                raise InvalidSlotError('Resource is not bookable.')

            requester = ResourceStore.get_user(self.db, requester_id)
            if requester is None:
                raise NotFoundError('Requester not found.')

            subject = ResourceStore.get_owned_vehicle(self.db, subject_id, requester_id)
            if subject is None:
                raise NotFoundError('Vehicle not found or does not belong to requester.')

            if slot_start(slot_date, time_slot) < now:
                raise InvalidSlotError('Requested slot is in the past.')

            if not compute_available_slots(self.db, resource_id, slot_date, now, requested_slot=time_slot):
                raise self._conflict(resource_id, slot_date, now)

            reservation = self._insert(resource, requester_id, subject_id, slot_date, time_slot, notes, now, started)
        except BookingError:
            self.db.rollback()
            raise
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Reservation commit failed for resource %s on %s %s', resource_id, slot_date, time_slot)
            raise InternalError('Reservation could not be stored.') from exc

        logger.info(
            'Reservation %s committed for resource %s on %s %s',
            reservation.reference,
            resource_id,
            slot_date.isoformat(),
            time_slot,
        )
        self._publish(lambda: self._created_event(reservation, resource, requester, subject))
        return reservation

    def _insert(
        self,
        resource: Resource,
        requester_id: int,
        subject_id: int,
        slot_date: date,
        time_slot: str,
        notes: str | None,
        now: datetime,
        started: float,
    ) -> Reservation:
        resource_id = resource.id
        for attempt in range(1, self.max_reference_attempts + 1):
            # Held until commit or rollback, so the quota count below stays true.
            ResourceStore.lock_for_booking(self.db, resource_id)
            if not is_bookable(self.db, resource):
                raise InvalidSlotError('Resource is not bookable.')

            reference = self.reference_generator()
            if ReservationStore.reference_exists(self.db, reference):
                logger.warning('Reservation reference collision on attempt %s', attempt)
                continue

            if ReservationStore.find_active(self.db, resource_id, slot_date, time_slot) is not None:
                raise self._conflict(resource_id, slot_date, now)

            reservation = Reservation(
                reference=reference,
                resource_id=resource_id,
                requester_id=requester_id,
                subject_id=subject_id,
                date=slot_date,
                time_slot=time_slot,
                status=ReservationStatus.PENDING,
                notes=notes,
                created_at=now,
                updated_at=now,
            )
            try:
                ReservationStore.add(self.db, reservation)
                self._check_deadline(started)
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                if ReservationStore.reference_exists(self.db, reference) and (
                    ReservationStore.find_active(self.db, resource_id, slot_date, time_slot) is None
                ):
                    logger.warning('Reservation reference %s was taken concurrently', reference)
                    continue
                raise self._conflict(resource_id, slot_date, now) from exc

            self.db.refresh(reservation)
            return reservation

        logger.error('Gave up allocating a reservation reference after %s attempts', self.max_reference_attempts)
        raise InternalError('Could not allocate reference.')

    def _check_deadline(self, started: float) -> None:
        if self.monotonic() - started > self.commit_timeout_seconds:
            self.db.rollback()
            raise InternalError('Reservation commit timed out.')

    def _conflict(self, resource_id: int, slot_date: date, now: datetime) -> ConflictError:
        try:
            available = compute_available_slots(self.db, resource_id, slot_date, now)
        except SQLAlchemyError:
            logger.exception('Could not refresh availability for resource %s on %s', resource_id, slot_date)
            available = []
        return ConflictError('Slot unavailable.', available_slots=available)

    def cancel(
        self,
        reservation_id: int,
        reason: str | None = None,
        requester_id: int | None = None,
    ) -> Reservation:
        """Cancel a reservation and free its slot.

        With ``requester_id`` only the customer who made the reservation may
        cancel it; anyone else is told it does not exist.
        """
        reservation = ReservationStore.get(self.db, reservation_id)
        if reservation is None or (requester_id is not None and reservation.requester_id != requester_id):
            raise NotFoundError('Reservation not found.')
        return self._apply(reservation, ReservationStatus.CANCELLED, reason)

    def transition(
        self,
        reservation_id: int,
        new_status: ReservationStatus | str,
        reason: str | None = None,
    ) -> Reservation:
        try:
            new_status = ReservationStatus(new_status)
        except ValueError as exc:
            raise InvalidSlotError(f'Unknown reservation status "{new_status}".') from exc

        reservation = ReservationStore.get(self.db, reservation_id)
        if reservation is None:
            raise NotFoundError('Reservation not found.')
        return self._apply(reservation, new_status, reason)

    def _apply(self, reservation: Reservation, new_status: ReservationStatus, reason: str | None) -> Reservation:
        previous_status = ReservationStatus(reservation.status)
        now = self.clock()

        if new_status not in ALLOWED_TRANSITIONS[previous_status]:
            raise InvalidSlotError(
                f'Cannot change a {previous_status.value.lower()} reservation to {new_status.value.lower()}.'
            )
        if new_status == ReservationStatus.NO_SHOW and slot_start(reservation.date, reservation.time_slot) > now:
            raise InvalidSlotError('A reservation can only be marked as a no-show after its start time.')

        reservation.status = new_status
        reservation.updated_at = now
        if new_status == ReservationStatus.CANCELLED:
            reservation.cancellation_reason = reason

        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Could not move reservation %s to %s', reservation.id, new_status.value)
            raise InternalError('Reservation could not be updated.') from exc

        self.db.refresh(reservation)
        logger.info('Reservation %s moved from %s to %s', reservation.reference, previous_status.value, new_status.value)
        self._publish(
            lambda: ReservationStatusChanged(
                reservation_id=reservation.id,
                reference=reservation.reference,
                resource_id=reservation.resource_id,
                requester_id=reservation.requester_id,
                date=reservation.date,
                time_slot=reservation.time_slot,
                previous_status=previous_status.value,
                status=new_status.value,
                reason=reason,
            )
        )
        return reservation

    def reschedule(self, reservation_id: int, slot_date: date | str, time_slot: str, requester_id: int | None = None) -> Reservation:
        """Move an active reservation to another slot at the same resource."""
        slot_date = parse_slot_date(slot_date)
        time_slot = normalize_label(time_slot)
        now = self.clock()

        reservation = ReservationStore.get(self.db, reservation_id)
        if reservation is None or (requester_id is not None and reservation.requester_id != requester_id):
            raise NotFoundError('Reservation not found.')
        if not reservation.is_active or reservation.status == ReservationStatus.IN_PROGRESS:
            raise InvalidSlotError('Only pending or confirmed reservations can be rescheduled.')
        if slot_start(slot_date, time_slot) < now:
            raise InvalidSlotError('Requested slot is in the past.')

        available = compute_available_slots(
            self.db,
            reservation.resource_id,
            slot_date,
            now,
            requested_slot=time_slot,
            exclude_reservation_id=reservation.id,
        )
        if not available:
            raise self._conflict(reservation.resource_id, slot_date, now)

        reservation.date = slot_date
        reservation.time_slot = time_slot
        reservation.updated_at = now
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise self._conflict(reservation.resource_id, slot_date, now) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Could not reschedule reservation %s', reservation_id)
            raise InternalError('Reservation could not be updated.') from exc

        self.db.refresh(reservation)
        logger.info('Reservation %s moved to %s %s', reservation.reference, slot_date.isoformat(), time_slot)
        return reservation

    def get_by_reference(self, reference: str) -> Reservation:
        reservation = ReservationStore.get_by_reference(self.db, reference.strip().upper())
        if reservation is None:
            raise NotFoundError('Reservation not found.')
        return reservation

    def _publish(self, build_event: Callable[[], ReservationEvent]) -> None:
        if self.events is None:
            return
        try:
            self.events.publish(build_event())
        except Exception:
            logger.exception('Failed to publish reservation event')

    @staticmethod
    def _created_event(reservation: Reservation, resource: Resource, requester: User, subject: Vehicle) -> ReservationCreated:
        return ReservationCreated(
            reservation_id=reservation.id,
            reference=reservation.reference,
            resource_id=reservation.resource_id,
            requester_id=reservation.requester_id,
            subject_id=reservation.subject_id,
            date=reservation.date,
            time_slot=reservation.time_slot,
            status=ReservationStatus(reservation.status).value,
            notes=reservation.notes,
            created_at=reservation.created_at,
            resource=ResourceSummary(id=resource.id, name=resource.name),
            requester=RequesterSummary(id=requester.id, email=requester.email, name=requester.name),
            subject=SubjectSummary(
                id=subject.id,
                registration=subject.registration,
                make=subject.make,
                model=subject.model,
            ),
        )
