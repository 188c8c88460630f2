"""Bookable time slot generation for a single calendar date."""

from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterable

from backend.scheduling.errors import StoreError
from backend.scheduling.stores import AppointmentStore, ScheduleStore

_ANCHOR_DAY = date(2000, 1, 1)


@dataclass
class TimeSlot:
    schedule_id: int | None
    start_time: time
    end_time: time
    available: bool
    remaining: int


def day_of_week_index(target_date: date) -> int:
    """Weekday with Sunday as 0, matching ``ServiceSchedule.day_of_week``."""
    return (target_date.weekday() + 1) % 7


def partition_window(start_time: time, end_time: time, slot_minutes: int) -> list[tuple[time, time]]:
    increment = timedelta(minutes=slot_minutes)
    current = datetime.combine(_ANCHOR_DAY, start_time)
    window_end = datetime.combine(_ANCHOR_DAY, end_time)
    increments: list[tuple[time, time]] = []

    while current + increment <= window_end:
        increments.append((current.time(), (current + increment).time()))
        current += increment

    return increments


def merge_overlapping_slots(slots: Iterable[TimeSlot]) -> list[TimeSlot]:
    merged: dict[tuple[time, time], TimeSlot] = {}
    for slot in slots:
        key = (slot.start_time, slot.end_time)
        existing = merged.get(key)
        if existing is None:
            merged[key] = TimeSlot(slot.schedule_id, slot.start_time, slot.end_time, slot.available, slot.remaining)
            continue

        if slot.available and not existing.available:
            existing.schedule_id = slot.schedule_id
        existing.available = existing.available or slot.available
        existing.remaining += slot.remaining

    return list(merged.values())


def generate_slots(
    target_date: date,
    schedule_store: ScheduleStore,
    appointment_store: AppointmentStore,
    *,
    capacity_statuses: Iterable[str],
    slot_minutes: int = 60,
    merge_overlapping: bool = False,
) -> list[TimeSlot]:
    try:
        windows = schedule_store.list_active(day_of_week_index(target_date))
        if not windows:
            return []
        appointments = appointment_store.list_by_date_and_status(target_date, capacity_statuses)
    except StoreError as exc:
        raise StoreError('Failed to load available time slots.', retryable=True) from exc

    # Untagged appointments predate window tagging and count against every window.
    booked_per_window = Counter(
        (appointment.schedule_id, appointment.start_time)
        for appointment in appointments
        if appointment.schedule_id is not None
    )
    booked_untagged = Counter(
        appointment.start_time for appointment in appointments if appointment.schedule_id is None
    )

    slots: list[TimeSlot] = []
    for window in windows:
        for slot_start, slot_end in partition_window(window.start_time, window.end_time, slot_minutes):
            booked = booked_per_window[(window.id, slot_start)] + booked_untagged[slot_start]
            slots.append(
                TimeSlot(
                    schedule_id=window.id,
                    start_time=slot_start,
                    end_time=slot_end,
                    available=booked < window.max_appointments,
                    remaining=max(0, window.max_appointments - booked),
                )
            )

    slots.sort(key=lambda slot: (slot.start_time, slot.schedule_id or 0))

    if merge_overlapping:
        return merge_overlapping_slots(slots)
    return slots
