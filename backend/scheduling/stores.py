"""SQLAlchemy-backed schedule and appointment stores.

Both stores share the request's ``Session`` so that a window lock taken by
``ScheduleStore.lock_window`` is held until ``AppointmentStore.insert_batch``
commits (or until ``rollback``).
"""

import logging
from datetime import date, time
from typing import Iterable, Sequence

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.models.appointment import Appointment
from backend.models.schedule import ServiceSchedule
from backend.scheduling.errors import AppointmentNotFoundError, StoreError

logger = logging.getLogger(__name__)

DEFAULT_WEEK_DAYS = (1, 2, 3, 4, 5)
DEFAULT_WEEK_START = time(9, 0)
DEFAULT_WEEK_END = time(17, 0)
DEFAULT_WEEK_CAPACITY = 3

# Postgres SQLSTATE codes and the SQLite message fragments that correspond to them.
_INTEGRITY_MESSAGES = (
    ('23505', 'UNIQUE constraint failed', 'This appointment has already been requested.'),
    ('23503', 'FOREIGN KEY constraint failed', 'The selected customer or schedule no longer exists.'),
    ('23502', 'NOT NULL constraint failed', 'The appointment is missing required details.'),
    ('23514', 'CHECK constraint failed', 'The appointment details were rejected.'),
)


def describe_integrity_error(exc: IntegrityError) -> tuple[str, str]:
    original = exc.orig
    pgcode = getattr(original, 'pgcode', None)
    raw_message = str(original)

    for code, sqlite_fragment, message in _INTEGRITY_MESSAGES:
        if pgcode == code or sqlite_fragment in raw_message:
            return code, message

    return pgcode or 'integrity_error', 'Failed to book appointment.'


class _SessionStore:
    def __init__(self, db: Session):
        self.db = db

    def rollback(self) -> None:
        self.db.rollback()


class ScheduleStore(_SessionStore):
    def list_active(self, day_of_week: int | None = None) -> list[ServiceSchedule]:
        try:
            query = self.db.query(ServiceSchedule).filter(ServiceSchedule.is_active.is_(True))
            if day_of_week is not None:
                query = query.filter(ServiceSchedule.day_of_week == day_of_week)
            return query.order_by(ServiceSchedule.day_of_week.asc(), ServiceSchedule.start_time.asc()).all()
        except SQLAlchemyError as exc:
            logger.exception('Failed to read active schedules (day_of_week=%s)', day_of_week)
            raise StoreError('Failed to load schedules.', retryable=True) from exc

    def list_all(self) -> list[ServiceSchedule]:
        try:
            return self.db.query(ServiceSchedule).order_by(
                ServiceSchedule.day_of_week.asc(),
                ServiceSchedule.start_time.asc(),
            ).all()
        except SQLAlchemyError as exc:
            logger.exception('Failed to read schedules')
            raise StoreError('Failed to load schedules.', retryable=True) from exc

    def get(self, schedule_id: int) -> ServiceSchedule | None:
        try:
            return self.db.query(ServiceSchedule).filter(ServiceSchedule.id == schedule_id).first()
        except SQLAlchemyError as exc:
            logger.exception('Failed to read schedule %s', schedule_id)
            raise StoreError('Failed to load schedules.', retryable=True) from exc

    def lock_window(self, schedule_id: int) -> ServiceSchedule | None:
        try:
            return (
                self.db.query(ServiceSchedule)
                .filter(ServiceSchedule.id == schedule_id)
                .with_for_update()
                .first()
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Failed to lock schedule %s', schedule_id)
            raise StoreError('Failed to book appointment.', retryable=True) from exc

    def create(
        self,
        *,
        day_of_week: int,
        start_time: time,
        end_time: time,
        max_appointments: int,
        is_active: bool = True,
        manager_id: int | None = None,
    ) -> ServiceSchedule:
        schedule = ServiceSchedule(
            manager_id=manager_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            max_appointments=max_appointments,
            is_active=is_active,
        )
        return self._save([schedule])[0]

    def create_default_week(self, manager_id: int | None = None) -> list[ServiceSchedule]:
        schedules = [
            ServiceSchedule(
                manager_id=manager_id,
                day_of_week=day_of_week,
                start_time=DEFAULT_WEEK_START,
                end_time=DEFAULT_WEEK_END,
                max_appointments=DEFAULT_WEEK_CAPACITY,
                is_active=True,
            )
            for day_of_week in DEFAULT_WEEK_DAYS
        ]
        return self._save(schedules)

    def set_active(self, schedule_id: int, is_active: bool) -> ServiceSchedule | None:
        schedule = self.get(schedule_id)
        if schedule is None:
            return None

        schedule.is_active = is_active
        return self._save([schedule])[0]

    def _save(self, schedules: list[ServiceSchedule]) -> list[ServiceSchedule]:
        try:
            self.db.add_all(schedules)
            self.db.commit()
            for schedule in schedules:
                self.db.refresh(schedule)
            return schedules
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Failed to save %d schedule(s)', len(schedules))
            raise StoreError('Failed to save schedule.') from exc


class AppointmentStore(_SessionStore):
    def get(self, appointment_id: int) -> Appointment | None:
        try:
            return self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
        except SQLAlchemyError as exc:
            logger.exception('Failed to read appointment %s', appointment_id)
            raise StoreError('Failed to load appointments.', retryable=True) from exc

    def list_by_date_and_status(self, scheduled_date: date, statuses: Iterable[str]) -> list[Appointment]:
        try:
            return self.db.query(Appointment).filter(
                Appointment.scheduled_date == scheduled_date,
                Appointment.status.in_(list(statuses)),
            ).order_by(Appointment.start_time.asc()).all()
        except SQLAlchemyError as exc:
            logger.exception('Failed to read appointments for %s', scheduled_date)
            raise StoreError('Failed to load appointments.', retryable=True) from exc

    def list_for_customer(self, customer_id: int) -> list[Appointment]:
        try:
            return self.db.query(Appointment).filter(
                Appointment.customer_id == customer_id,
            ).order_by(Appointment.scheduled_date.asc(), Appointment.start_time.asc()).all()
        except SQLAlchemyError as exc:
            logger.exception('Failed to read appointments for customer %s', customer_id)
            raise StoreError('Failed to load appointments.', retryable=True) from exc

    def list_upcoming(self, from_date: date, statuses: Iterable[str] | None = None) -> list[Appointment]:
        try:
            query = self.db.query(Appointment).filter(Appointment.scheduled_date >= from_date)
            if statuses is not None:
                query = query.filter(Appointment.status.in_(list(statuses)))
            return query.order_by(Appointment.scheduled_date.asc(), Appointment.start_time.asc()).all()
        except SQLAlchemyError as exc:
            logger.exception('Failed to read upcoming appointments from %s', from_date)
            raise StoreError('Failed to load appointments.', retryable=True) from exc

    def count_for_slot(
        self,
        scheduled_date: date,
        start_time: time,
        statuses: Iterable[str],
        schedule_id: int | None = None,
    ) -> int:
        try:
            query = self.db.query(Appointment).filter(
                Appointment.scheduled_date == scheduled_date,
                Appointment.start_time == start_time,
                Appointment.status.in_(list(statuses)),
            )
            if schedule_id is not None:
                query = query.filter(
                    or_(Appointment.schedule_id == schedule_id, Appointment.schedule_id.is_(None))
                )
            return query.count()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Failed to count appointments for %s %s', scheduled_date, start_time)
            raise StoreError('Failed to book appointment.', retryable=True) from exc

    def insert_batch(self, appointments: Sequence[Appointment]) -> list[Appointment]:
        """Insert all appointments in one transaction; nothing is kept if any row fails."""
        try:
            self.db.add_all(appointments)
            self.db.commit()
            for appointment in appointments:
                self.db.refresh(appointment)
            return list(appointments)
        except IntegrityError as exc:
            self.db.rollback()
            code, message = describe_integrity_error(exc)
            logger.warning('Appointment insert rejected (code=%s, rows=%d)', code, len(appointments))
            raise StoreError(message, code=code) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Appointment insert failed (rows=%d)', len(appointments))
            raise StoreError('Failed to book appointment.', retryable=True) from exc

    def update_status(self, appointment_id: int, status: str) -> Appointment:
        appointment = self.get(appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError('Appointment not found.')

        try:
            appointment.status = status
            self.db.commit()
            self.db.refresh(appointment)
            return appointment
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Failed to update appointment %s to %s', appointment_id, status)
            raise StoreError('Failed to update appointment.') from exc
