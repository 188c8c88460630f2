"""Month view hints: which dates have any active schedule window.

Capacity is deliberately ignored here; a fully booked date still shows as
having slots. ``generate_slots`` is the authority for booking.
"""

from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable

from backend.models.schedule import ServiceSchedule
from backend.scheduling.errors import StoreError
from backend.scheduling.slots import day_of_week_index
from backend.scheduling.stores import ScheduleStore

CALENDAR_GRID_DAYS = 42


def calendar_grid(year: int, month: int) -> list[date]:
    first_day = date(year, month, 1)
    grid_start = first_day - timedelta(days=day_of_week_index(first_day))
    return [grid_start + timedelta(days=offset) for offset in range(CALENDAR_GRID_DAYS)]


def dates_with_schedules(windows: Iterable[ServiceSchedule], dates: Iterable[date]) -> set[date]:
    windows_by_day: dict[int, list[ServiceSchedule]] = defaultdict(list)
    for window in windows:
        windows_by_day[window.day_of_week].append(window)

    return {current for current in dates if windows_by_day.get(day_of_week_index(current))}


def build_month_index(year: int, month: int, schedule_store: ScheduleStore) -> tuple[list[date], set[date]]:
    grid = calendar_grid(year, month)
    try:
        windows = schedule_store.list_active()
    except StoreError as exc:
        raise StoreError('Failed to load schedule availability.', retryable=True) from exc

    return grid, dates_with_schedules(windows, grid)
