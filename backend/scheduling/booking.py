"""Booking engine: validates a slot selection and writes the appointment rows.

Capacity race handling: when ``capacity_guard`` is on, the anchor slot's
schedule window row is locked (``SELECT ... FOR UPDATE``) and capacity is
re-counted inside the same transaction as the insert, so two concurrent
bookings for the last seat serialize on the window lock. With the guard off
the engine trusts the caller's last slot read, as the original client did.
"""

import logging
from dataclasses import dataclass
from datetime import date, time
from typing import Iterable

from backend.models.appointment import Appointment
from backend.models.schedule import ServiceSchedule
from backend.scheduling.errors import (
    AppointmentNotFoundError,
    BookingValidationError,
    CapacityExceededError,
    InvalidStatusTransitionError,
    NotAppointmentOwnerError,
)
from backend.scheduling.recurrence import expand_series, series_statuses
from backend.scheduling.slots import day_of_week_index, partition_window
from backend.scheduling.stores import AppointmentStore, ScheduleStore

logger = logging.getLogger(__name__)

MAX_APPOINTMENT_NOTES_LENGTH = 600

CONFIRMABLE_STATUSES = frozenset({'scheduled', 'pending'})
CANCELLED_STATUS = 'cancelled'
CONFIRMED_STATUS = 'confirmed'


@dataclass
class SlotSelection:
    start_time: time
    end_time: time
    schedule_id: int | None = None


@dataclass
class RecurringOptions:
    frequency: str = 'weekly'
    count: int = 1


def normalize_notes(notes: str | None) -> str | None:
    if notes is None:
        return None

    normalized = notes.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
        raise BookingValidationError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


def window_offers(window: ServiceSchedule, scheduled_date: date, slot: SlotSelection, slot_minutes: int) -> bool:
    """True when ``slot`` is one of the increments ``generate_slots`` lists for this window."""
    return (
        bool(window.is_active)
        and window.day_of_week == day_of_week_index(scheduled_date)
        and (slot.start_time, slot.end_time) in partition_window(window.start_time, window.end_time, slot_minutes)
    )


class BookingEngine:
    def __init__(
        self,
        schedule_store: ScheduleStore,
        appointment_store: AppointmentStore,
        *,
        capacity_statuses: Iterable[str],
        max_recurring: int,
        capacity_guard: bool = True,
        slot_minutes: int = 60,
    ):
        self.schedules = schedule_store
        self.appointments = appointment_store
        self.capacity_statuses = tuple(capacity_statuses)
        self.max_recurring = max_recurring
        self.capacity_guard = capacity_guard
        self.slot_minutes = slot_minutes

    def book(
        self,
        customer_id: int | None,
        scheduled_date: date | None,
        slot: SlotSelection | None,
        notes: str | None = None,
        recurring: RecurringOptions | None = None,
    ) -> list[int]:
        if not customer_id:
            raise BookingValidationError('You must be logged in to book appointments.')

        if scheduled_date is None or slot is None:
            raise BookingValidationError('Please select a date and time slot.')

        if slot.end_time <= slot.start_time:
            raise BookingValidationError('The selected time slot is invalid.')

        normalized_notes = normalize_notes(notes)

        if recurring is not None:
            dates = expand_series(scheduled_date, recurring.frequency, recurring.count, self.max_recurring)
        else:
            dates = [scheduled_date]
        statuses = series_statuses(len(dates))

        schedule_id = slot.schedule_id
        if self.capacity_guard:
            schedule_id = self._reserve_anchor_capacity(scheduled_date, slot)

        # Follow-ups can land on another weekday; untagged rows count against whichever window covers them.
        appointments = [
            Appointment(
                customer_id=customer_id,
                schedule_id=schedule_id if index == 0 else None,
                scheduled_date=appointment_date,
                start_time=slot.start_time,
                end_time=slot.end_time,
                status=status,
                notes=normalized_notes,
            )
            for index, (appointment_date, status) in enumerate(zip(dates, statuses))
        ]

        created = self.appointments.insert_batch(appointments)
        logger.info(
            'Booked %d appointment(s) for customer %s starting %s %s',
            len(created),
            customer_id,
            scheduled_date.isoformat(),
            slot.start_time.strftime('%H:%M'),
        )
        return [appointment.id for appointment in created]

    def _reserve_anchor_capacity(self, scheduled_date: date, slot: SlotSelection) -> int:
        if slot.schedule_id is not None:
            candidate_ids = [slot.schedule_id]
        else:
            candidate_ids = [
                window.id
                for window in self.schedules.list_active(day_of_week_index(scheduled_date))
                if window_offers(window, scheduled_date, slot, self.slot_minutes)
            ]

        found_window = False
        for schedule_id in candidate_ids:
            window = self.schedules.lock_window(schedule_id)
            if window is None or not window_offers(window, scheduled_date, slot, self.slot_minutes):
                continue

            found_window = True
            booked = self.appointments.count_for_slot(
                scheduled_date,
                slot.start_time,
                self.capacity_statuses,
                schedule_id=window.id,
            )
            if booked < window.max_appointments:
                return window.id

        self.schedules.rollback()
        if not found_window:
            raise BookingValidationError('The selected time is not offered on this date.')

        logger.info('Rejected booking for full slot %s %s', scheduled_date.isoformat(), slot.start_time)
        raise CapacityExceededError('This time slot is fully booked. Please choose another time.')

    def cancel(self, appointment_id: int, customer_id: int) -> Appointment:
        appointment = self._get(appointment_id)

        if appointment.customer_id != customer_id:
            raise NotAppointmentOwnerError('Only the customer who booked this appointment can cancel it.')

        if appointment.status == CANCELLED_STATUS:
            raise InvalidStatusTransitionError('Appointment is already cancelled.')

        updated = self.appointments.update_status(appointment_id, CANCELLED_STATUS)
        logger.info('Customer %s cancelled appointment %s', customer_id, appointment_id)
        return updated

    def confirm(self, appointment_id: int) -> Appointment:
        return self._manager_transition(appointment_id, CONFIRMED_STATUS)

    def reject(self, appointment_id: int) -> Appointment:
        return self._manager_transition(appointment_id, CANCELLED_STATUS)

    def _manager_transition(self, appointment_id: int, target_status: str) -> Appointment:
        appointment = self._get(appointment_id)
        previous_status = appointment.status

        if previous_status not in CONFIRMABLE_STATUSES:
            raise InvalidStatusTransitionError(
                f'Only scheduled or pending appointments can be moved to {target_status}.'
            )

        updated = self.appointments.update_status(appointment_id, target_status)
        logger.info('Appointment %s moved from %s to %s', appointment_id, previous_status, target_status)
        return updated

    def _get(self, appointment_id: int) -> Appointment:
        appointment = self.appointments.get(appointment_id)
        if appointment is None:
            raise AppointmentNotFoundError('Appointment not found.')
        return appointment
