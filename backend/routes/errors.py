from fastapi import HTTPException, status

from backend.booking.errors import BookingError, ConflictError, InternalError, InvalidSlotError, NotFoundError


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail='Database unavailable. Verify DATABASE_URL and database credentials.',
    )


def to_http_exception(exc: BookingError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message)

    if isinstance(exc, InvalidSlotError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)

    if isinstance(exc, ConflictError):
        # Re-offer what is still free instead of a bare failure.
        return HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={'message': exc.message, 'available_slots': exc.available_slots},
        )

    if isinstance(exc, InternalError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=exc.message,
            headers={'Retry-After': '1'},
        )

    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message)
