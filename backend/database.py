from threading import Lock

from sqlalchemy import create_engine, event, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


def build_engine(database_url: str, **kwargs) -> Engine:
    """Create an engine whose lock waits end within the reservation commit deadline."""
    lock_timeout = config.RESERVATION_COMMIT_TIMEOUT_SECONDS
    connect_args = kwargs.pop("connect_args", {})

    if database_url.startswith("sqlite"):
        connect_args.setdefault("check_same_thread", False)
        connect_args.setdefault("timeout", lock_timeout)
        built = create_engine(database_url, connect_args=connect_args, **kwargs)
        event.listen(built, "connect", _enable_sqlite_foreign_keys)
        return built

    if database_url.startswith("postgresql"):
        connect_args.setdefault("options", f"-c lock_timeout={int(lock_timeout * 1000)}")
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True, **kwargs)


def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


engine = build_engine(config.DATABASE_URL, echo=config.DATABASE_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_reservation_schema_checked = False
_schedule_schema_checked = False


def ensure_reservation_schema(bind: Engine | None = None) -> None:
    """Create the partial unique index on reservation tables that lack it.

    The index is what makes double booking impossible, so it is checked even
    when the table was created outside `create_all`.
    """
    global _reservation_schema_checked

    if _reservation_schema_checked and bind is None:
        return

    target = bind or engine

    with _schema_lock:
        if _reservation_schema_checked and bind is None:
            return

        inspector = inspect(target)

        if 'reservations' not in inspector.get_table_names():
            _reservation_schema_checked = True
            return

        with target.begin() as connection:
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_reservations_active_slot '
                    'ON reservations(resource_id, date, time_slot) '
                    "WHERE status IN ('PENDING', 'CONFIRMED', 'IN_PROGRESS')"
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_reservations_resource_status ON reservations(resource_id, status)')
            )

        _reservation_schema_checked = True


def ensure_schedule_schema(bind: Engine | None = None) -> None:
    global _schedule_schema_checked

    if _schedule_schema_checked and bind is None:
        return

    target = bind or engine

    with _schema_lock:
        if _schedule_schema_checked and bind is None:
            return

        inspector = inspect(target)
        table_names = set(inspector.get_table_names())

        with target.begin() as connection:
            if 'time_slot_blocks' in table_names:
                connection.execute(
                    text('CREATE INDEX IF NOT EXISTS idx_time_slot_blocks_day ON time_slot_blocks(resource_id, date)')
                )

        _schedule_schema_checked = True


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
