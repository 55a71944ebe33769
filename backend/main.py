import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from backend.core import config
from backend.database import Base, engine, ensure_reservation_schema, ensure_schedule_schema
from backend.models import block, reservation, resource, schedule, user, vehicle  # noqa: F401
from backend.routes import availability_routes, reservation_routes, resource_routes

app = FastAPI(title='Garage Booking API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_schedule_schema()
        ensure_reservation_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Booking API Running'}


app.include_router(resource_routes.router)
app.include_router(availability_routes.router)
app.include_router(reservation_routes.router)
