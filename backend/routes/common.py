from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core import config
from backend.database import SessionLocal, ensure_appointment_schema, ensure_schedule_schema
from backend.scheduling.booking import BookingEngine
from backend.scheduling.errors import (
    AppointmentNotFoundError,
    BookingValidationError,
    CapacityExceededError,
    InvalidStatusTransitionError,
    NotAppointmentOwnerError,
    SchedulingError,
    StoreError,
)
from backend.scheduling.stores import AppointmentStore, ScheduleStore

_ERROR_STATUS_CODES = (
    (BookingValidationError, status.HTTP_400_BAD_REQUEST),
    (NotAppointmentOwnerError, status.HTTP_403_FORBIDDEN),
    (AppointmentNotFoundError, status.HTTP_404_NOT_FOUND),
    (CapacityExceededError, status.HTTP_409_CONFLICT),
    (InvalidStatusTransitionError, status.HTTP_409_CONFLICT),
)


def ensure_database_ready() -> None:
    try:
        ensure_schedule_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail='Database unavailable. Verify DATABASE_URL and Postgres credentials.',
        ) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def build_booking_engine(db: Session) -> BookingEngine:
    return BookingEngine(
        ScheduleStore(db),
        AppointmentStore(db),
        capacity_statuses=config.CAPACITY_STATUSES,
        max_recurring=config.MAX_RECURRING_APPOINTMENTS,
        capacity_guard=config.BOOKING_CAPACITY_GUARD,
        slot_minutes=config.SLOT_LENGTH_MINUTES,
    )


def to_http_exception(exc: SchedulingError) -> HTTPException:
    if isinstance(exc, StoreError):
        # A store error with a constraint code is a rejected write, not an outage.
        status_code = status.HTTP_409_CONFLICT if exc.code else status.HTTP_503_SERVICE_UNAVAILABLE
        return HTTPException(status_code=status_code, detail=exc.message)

    for error_type, status_code in _ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.message)

    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message)
