from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.booking.quota import bookable_resources, quota_summary
from backend.database import get_db
from backend.routes.availability_routes import ensure_database_ready, require_resource
from backend.routes.errors import database_unavailable

router = APIRouter(tags=['resources'])


class ResourceResponse(BaseModel):
    id: int
    name: str

    class Config:
        from_attributes = True


class QuotaResponse(BaseModel):
    resource_id: int
    quota_allotted: int
    consumed: int
    remaining: int
    is_near_limit: bool
    is_exhausted: bool


@router.get('/resources', response_model=list[ResourceResponse])
def list_bookable_resources(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return bookable_resources(db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/resources/{resource_id}/quota', response_model=QuotaResponse)
def get_resource_quota(resource_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        summary = quota_summary(db, require_resource(db, resource_id))
        return QuotaResponse(**summary.__dict__)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
