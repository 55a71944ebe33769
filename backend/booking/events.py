"""Reservation events handed to the notification collaborator.

Events are built after the reservation is committed. The HTTP layer defers
delivery to a background task; a failing handler is logged and never reaches
the caller that published the event.
"""

import logging
from collections.abc import Callable
from datetime import date, datetime
from typing import Literal, Protocol

from pydantic import BaseModel

logger = logging.getLogger(__name__)


class ResourceSummary(BaseModel):
    id: int
    name: str


class RequesterSummary(BaseModel):
    id: int
    email: str | None = None
    name: str | None = None


class SubjectSummary(BaseModel):
    id: int
    registration: str
    make: str | None = None
    model: str | None = None


class ReservationCreated(BaseModel):
    event_type: Literal['reservation.created'] = 'reservation.created'
    reservation_id: int
    reference: str
    resource_id: int
    requester_id: int
    subject_id: int
    date: date
    time_slot: str
    status: str
    notes: str | None = None
    created_at: datetime
    resource: ResourceSummary
    requester: RequesterSummary
    subject: SubjectSummary


class ReservationStatusChanged(BaseModel):
    event_type: Literal['reservation.status_changed'] = 'reservation.status_changed'
    reservation_id: int
    reference: str
    resource_id: int
    requester_id: int
    date: date
    time_slot: str
    previous_status: str
    status: str
    reason: str | None = None


ReservationEvent = ReservationCreated | ReservationStatusChanged
EventHandler = Callable[[ReservationEvent], None]


class EventPublisher(Protocol):
    def publish(self, event: ReservationEvent) -> None: ...


class EventBus:
    """Fan-out of reservation events to subscribed handlers."""

    def __init__(self):
        self._handlers: list[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def publish(self, event: ReservationEvent) -> None:
        for handler in list(self._handlers):
            self._deliver(handler, event)

    @staticmethod
    def _deliver(handler: EventHandler, event: ReservationEvent) -> None:
        try:
            handler(event)
        except Exception:
            logger.exception(
                'Event handler %s failed for %s on reservation %s',
                getattr(handler, '__name__', repr(handler)),
                event.event_type,
                event.reservation_id,
            )


def log_notification(event: ReservationEvent) -> None:
    """Stand-in notification hook: records what would be sent."""
    if isinstance(event, ReservationCreated):
        logger.info(
            'Reservation %s created for %s at %s on %s %s',
            event.reference,
            event.subject.registration,
            event.resource.name,
            event.date.isoformat(),
            event.time_slot,
        )
    else:
        logger.info(
            'Reservation %s moved from %s to %s',
            event.reference,
            event.previous_status,
            event.status,
        )


_default_bus = EventBus()
_default_bus.subscribe(log_notification)


def get_event_bus() -> EventBus:
    return _default_bus
