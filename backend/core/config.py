import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _get_float(value: str | None, default: float) -> float:
    if value is None or not value.strip():
        return default
    return float(value)


APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./booking.db")
DATABASE_ECHO = _get_bool(os.getenv("DATABASE_ECHO"), default=False)

# Slot granularity used whenever a weekly schedule entry is created without one.
DEFAULT_SLOT_DURATION_MINUTES = _get_int(os.getenv("DEFAULT_SLOT_DURATION_MINUTES"), 30)

RESERVATION_REFERENCE_PREFIX = os.getenv("RESERVATION_REFERENCE_PREFIX", "MOT")
RESERVATION_REFERENCE_LENGTH = _get_int(os.getenv("RESERVATION_REFERENCE_LENGTH"), 8)
RESERVATION_REFERENCE_MAX_ATTEMPTS = _get_int(os.getenv("RESERVATION_REFERENCE_MAX_ATTEMPTS"), 10)
RESERVATION_COMMIT_TIMEOUT_SECONDS = _get_float(os.getenv("RESERVATION_COMMIT_TIMEOUT_SECONDS"), 5.0)
MAX_RESERVATION_NOTES_LENGTH = _get_int(os.getenv("MAX_RESERVATION_NOTES_LENGTH"), 600)

QUOTA_NEAR_LIMIT_RATIO = _get_float(os.getenv("QUOTA_NEAR_LIMIT_RATIO"), 0.8)

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

ADMIN_EMAIL_DOMAIN = os.getenv("ADMIN_EMAIL_DOMAIN", "@admin.example.com")

CORS_ALLOW_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:3000").split(",")
    if origin.strip()
]


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if DEFAULT_SLOT_DURATION_MINUTES <= 0:
        raise RuntimeError("DEFAULT_SLOT_DURATION_MINUTES must be a positive number of minutes.")
    if RESERVATION_REFERENCE_MAX_ATTEMPTS <= 0:
        raise RuntimeError("RESERVATION_REFERENCE_MAX_ATTEMPTS must be at least 1.")
