from datetime import date, timedelta

from dateutil.relativedelta import relativedelta

from backend.scheduling.errors import BookingValidationError

FREQUENCY_STEPS = {
    'weekly': timedelta(days=7),
    'biweekly': timedelta(days=14),
    'monthly': None,
}

ANCHOR_STATUS = 'scheduled'
FOLLOW_UP_STATUS = 'pending'


def expand_series(anchor: date, frequency: str, count: int, max_count: int) -> list[date]:
    """Return ``count`` dates starting at ``anchor``.

    Monthly dates are offset from the anchor itself, so an anchor on the 31st
    lands on the last day of shorter months and returns to the 31st afterwards.
    """
    normalized = (frequency or '').strip().lower()
    if normalized not in FREQUENCY_STEPS:
        raise BookingValidationError('Frequency must be weekly, biweekly, or monthly.')

    if count < 1 or count > max_count:
        raise BookingValidationError(f'Number of appointments must be between 1 and {max_count}.')

    step = FREQUENCY_STEPS[normalized]
    if step is None:
        return [anchor + relativedelta(months=index) for index in range(count)]
    return [anchor + step * index for index in range(count)]


def series_statuses(count: int) -> list[str]:
    return [ANCHOR_STATUS if index == 0 else FOLLOW_UP_STATUS for index in range(count)]
