from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from backend.auth.dependencies import get_current_user, require_customer, require_manager
from backend.core import config
from backend.models.user import User
from backend.routes.common import build_booking_engine, ensure_database_ready, get_db, to_http_exception
from backend.scheduling.availability import build_month_index
from backend.scheduling.booking import RecurringOptions, SlotSelection
from backend.scheduling.errors import SchedulingError
from backend.scheduling.recurrence import expand_series, series_statuses
from backend.scheduling.slots import generate_slots
from backend.scheduling.stores import AppointmentStore, ScheduleStore

router = APIRouter(tags=['appointments'])


class TimeSlotResponse(BaseModel):
    schedule_id: int | None = None
    start_time: time
    end_time: time
    available: bool
    remaining: int


class CalendarDayResponse(BaseModel):
    date: date
    is_current_month: bool
    has_slots: bool


class MonthAvailabilityResponse(BaseModel):
    year: int
    month: int
    days: list[CalendarDayResponse]


class RecurringPreviewResponse(BaseModel):
    dates: list[date]
    statuses: list[str]


class RecurringRequest(BaseModel):
    frequency: str = 'weekly'
    count: int = 1

    @field_validator('frequency')
    @classmethod
    def normalize_frequency(cls, value: str) -> str:
        return value.strip().lower()


class CreateAppointmentRequest(BaseModel):
    scheduled_date: date | None = None
    start_time: time | None = None
    end_time: time | None = None
    schedule_id: int | None = None
    notes: str | None = None
    recurring: RecurringRequest | None = None


class BookingResponse(BaseModel):
    appointment_ids: list[int]
    message: str


class AppointmentResponse(BaseModel):
    id: int
    customer_id: int
    schedule_id: int | None = None
    scheduled_date: date
    start_time: time
    end_time: time
    status: str
    notes: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


@router.get('/slots', response_model=list[TimeSlotResponse])
def list_available_slots(
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_database_ready()

    try:
        slots = generate_slots(
            slot_date,
            ScheduleStore(db),
            AppointmentStore(db),
            capacity_statuses=config.CAPACITY_STATUSES,
            slot_minutes=config.SLOT_LENGTH_MINUTES,
            merge_overlapping=config.MERGE_OVERLAPPING_SLOTS,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return [
        TimeSlotResponse(
            schedule_id=slot.schedule_id,
            start_time=slot.start_time,
            end_time=slot.end_time,
            available=slot.available,
            remaining=slot.remaining,
        )
        for slot in slots
    ]


@router.get('/month', response_model=MonthAvailabilityResponse)
def get_month_availability(
    year: int = Query(..., ge=1, le=9999),
    month: int = Query(..., ge=1, le=12),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_database_ready()

    try:
        grid, dates_with_slots = build_month_index(year, month, ScheduleStore(db))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return MonthAvailabilityResponse(
        year=year,
        month=month,
        days=[
            CalendarDayResponse(
                date=grid_date,
                is_current_month=grid_date.month == month,
                has_slots=grid_date in dates_with_slots,
            )
            for grid_date in grid
        ],
    )


@router.get('/recurring-preview', response_model=RecurringPreviewResponse)
def preview_recurring_dates(
    anchor_date: date = Query(..., alias='date'),
    frequency: str = Query(default='weekly'),
    count: int = Query(default=1),
    current_user: User = Depends(get_current_user),
):
    try:
        dates = expand_series(anchor_date, frequency, count, config.MAX_RECURRING_APPOINTMENTS)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    return RecurringPreviewResponse(dates=dates, statuses=series_statuses(len(dates)))


@router.post('', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    if data.scheduled_date is not None and data.scheduled_date < date.today():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Appointments must be scheduled in the future.',
        )

    ensure_database_ready()

    slot = None
    if data.start_time is not None and data.end_time is not None:
        slot = SlotSelection(start_time=data.start_time, end_time=data.end_time, schedule_id=data.schedule_id)

    recurring = None
    if data.recurring is not None:
        recurring = RecurringOptions(frequency=data.recurring.frequency, count=data.recurring.count)

    try:
        appointment_ids = build_booking_engine(db).book(
            current_user.id,
            data.scheduled_date,
            slot,
            notes=data.notes,
            recurring=recurring,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    if len(appointment_ids) > 1:
        message = f'{len(appointment_ids)} recurring appointments requested successfully'
    else:
        message = 'Appointment request submitted successfully'

    return BookingResponse(appointment_ids=appointment_ids, message=message)


@router.get('/mine', response_model=list[AppointmentResponse])
def list_my_appointments(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    ensure_database_ready()

    try:
        return AppointmentStore(db).list_for_customer(current_user.id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_my_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_customer),
):
    ensure_database_ready()

    try:
        return build_booking_engine(db).cancel(appointment_id, current_user.id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.get('', response_model=list[AppointmentResponse])
def list_appointments(
    status_filter: str | None = Query(default=None, alias='status'),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    statuses = None
    if status_filter is not None:
        normalized = status_filter.strip().lower()
        if normalized not in config.APPOINTMENT_STATUSES:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Invalid appointment status.',
            )
        statuses = [normalized]

    ensure_database_ready()

    try:
        return AppointmentStore(db).list_upcoming(date.today(), statuses)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    ensure_database_ready()

    try:
        return build_booking_engine(db).confirm(appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/{appointment_id}/reject', response_model=AppointmentResponse)
def reject_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    ensure_database_ready()

    try:
        return build_booking_engine(db).reject(appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
