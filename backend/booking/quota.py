"""Quota and visibility gate.

A resource takes new reservations only while it accepts bookings and has
quota left. Every reservation that was not cancelled uses one unit of the
allotted quota; the allotment itself is only raised by the purchasing
workflow and is never written here.
"""

from dataclasses import dataclass

from sqlalchemy.orm import Session

from backend.core import config
from backend.models.resource import Resource
from backend.stores import ReservationStore, ResourceStore


@dataclass(frozen=True)
class QuotaSummary:
    resource_id: int
    quota_allotted: int
    consumed: int
    remaining: int
    is_near_limit: bool
    is_exhausted: bool


def _is_bookable(resource: Resource, consumed: int) -> bool:
    return bool(resource.accepts_bookings) and consumed < (resource.quota_allotted or 0)


def is_bookable(db: Session, resource: Resource) -> bool:
    if not resource.accepts_bookings:
        return False
    return _is_bookable(resource, ReservationStore.count_consuming(db, resource.id))


def bookable_resources(db: Session) -> list[Resource]:
    """Resources to show in search results, with exhausted ones left out."""
    candidates = ResourceStore.list_accepting(db)
    consumed = ReservationStore.count_consuming_by_resource(db, [resource.id for resource in candidates])
    return [resource for resource in candidates if _is_bookable(resource, consumed.get(resource.id, 0))]


def quota_summary(db: Session, resource: Resource) -> QuotaSummary:
    allotted = resource.quota_allotted or 0
    consumed = ReservationStore.count_consuming(db, resource.id)
    is_exhausted = allotted > 0 and consumed >= allotted
    return QuotaSummary(
        resource_id=resource.id,
        quota_allotted=allotted,
        consumed=consumed,
        remaining=max(allotted - consumed, 0),
        is_near_limit=allotted > 0 and not is_exhausted and consumed / allotted >= config.QUOTA_NEAR_LIMIT_RATIO,
        is_exhausted=is_exhausted,
    )
