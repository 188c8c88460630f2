from datetime import time

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, field_validator, model_validator
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_manager
from backend.models.user import User
from backend.routes.common import ensure_database_ready, get_db, to_http_exception
from backend.scheduling.errors import SchedulingError
from backend.scheduling.stores import ScheduleStore

router = APIRouter(tags=['schedules'])


class CreateScheduleRequest(BaseModel):
    day_of_week: int
    start_time: time
    end_time: time
    max_appointments: int = 1
    is_active: bool = True

    @field_validator('day_of_week')
    @classmethod
    def validate_day_of_week(cls, value: int) -> int:
        if value < 0 or value > 6:
            raise ValueError('Day of week must be between 0 (Sunday) and 6 (Saturday).')
        return value

    @field_validator('max_appointments')
    @classmethod
    def validate_max_appointments(cls, value: int) -> int:
        if value < 1:
            raise ValueError('Each schedule must allow at least one appointment.')
        return value

    @model_validator(mode='after')
    def validate_time_range(self) -> 'CreateScheduleRequest':
        if self.end_time <= self.start_time:
            raise ValueError('End time must be after start time.')
        return self


class UpdateScheduleRequest(BaseModel):
    is_active: bool


class ScheduleResponse(BaseModel):
    id: int
    day_of_week: int
    start_time: time
    end_time: time
    max_appointments: int
    is_active: bool

    class Config:
        from_attributes = True


@router.get('', response_model=list[ScheduleResponse])
def list_schedules(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    ensure_database_ready()

    try:
        return ScheduleStore(db).list_all()
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('', response_model=ScheduleResponse, status_code=status.HTTP_201_CREATED)
def create_schedule(
    data: CreateScheduleRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    ensure_database_ready()

    try:
        return ScheduleStore(db).create(
            day_of_week=data.day_of_week,
            start_time=data.start_time,
            end_time=data.end_time,
            max_appointments=data.max_appointments,
            is_active=data.is_active,
            manager_id=current_user.id,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.post('/default-week', response_model=list[ScheduleResponse], status_code=status.HTTP_201_CREATED)
def create_default_week(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    ensure_database_ready()

    try:
        return ScheduleStore(db).create_default_week(manager_id=current_user.id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc


@router.patch('/{schedule_id}', response_model=ScheduleResponse)
def update_schedule(
    schedule_id: int,
    data: UpdateScheduleRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_manager),
):
    ensure_database_ready()

    try:
        schedule = ScheduleStore(db).set_active(schedule_id, data.is_active)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc

    if schedule is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Schedule not found.',
        )

    return schedule
