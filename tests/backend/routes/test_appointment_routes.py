from datetime import date, time, timedelta

import pytest
from fastapi import HTTPException

from backend.models.appointment import Appointment
from backend.routes.appointment_routes import (
    CreateAppointmentRequest,
    RecurringRequest,
    cancel_my_appointment,
    confirm_appointment,
    create_appointment,
    get_month_availability,
    list_appointments,
    list_available_slots,
    list_my_appointments,
    preview_recurring_dates,
    reject_appointment,
)


def _next_monday() -> date:
    today = date.today()
    return today + timedelta(days=(7 - today.weekday()) or 7)


@pytest.fixture(autouse=True)
def skip_schema_bootstrap(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('backend.routes.appointment_routes.ensure_database_ready', lambda: None)


def test_list_available_slots_returns_hourly_slots(scheduling_db, make_user, make_window) -> None:
    make_window(day_of_week=1, start_time=time(9, 0), end_time=time(12, 0), max_appointments=2)
    customer = make_user()

    slots = list_available_slots(slot_date=_next_monday(), db=scheduling_db, current_user=customer)

    assert [slot.start_time for slot in slots] == [time(9, 0), time(10, 0), time(11, 0)]
    assert all(slot.available and slot.remaining == 2 for slot in slots)


def test_get_month_availability_flags_scheduled_weekdays(scheduling_db, make_user, make_window) -> None:
    make_window(day_of_week=1)
    customer = make_user()

    response = get_month_availability(year=2024, month=1, db=scheduling_db, current_user=customer)

    assert len(response.days) == 42
    assert response.days[0].date == date(2023, 12, 31)
    assert response.days[0].is_current_month is False
    assert {day.date for day in response.days if day.has_slots} == {
        day.date for day in response.days if day.date.weekday() == 0
    }


def test_preview_recurring_dates_returns_statuses(make_user) -> None:
    customer = make_user()

    response = preview_recurring_dates(
        anchor_date=date(2024, 1, 31),
        frequency='monthly',
        count=2,
        current_user=customer,
    )

    assert response.dates == [date(2024, 1, 31), date(2024, 2, 29)]
    assert response.statuses == ['scheduled', 'pending']


def test_preview_recurring_dates_rejects_unknown_frequency(make_user) -> None:
    customer = make_user()

    with pytest.raises(HTTPException) as exception_info:
        preview_recurring_dates(anchor_date=date(2024, 1, 5), frequency='daily', count=2, current_user=customer)

    assert exception_info.value.status_code == 400


def test_create_appointment_requires_slot_selection(scheduling_db, make_user) -> None:
    customer = make_user()

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(
            data=CreateAppointmentRequest(scheduled_date=_next_monday()),
            db=scheduling_db,
            current_user=customer,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Please select a date and time slot.'


def test_create_appointment_rejects_past_dates(scheduling_db, make_user) -> None:
    customer = make_user()

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(
            data=CreateAppointmentRequest(
                scheduled_date=date.today() - timedelta(days=1),
                start_time=time(9, 0),
                end_time=time(10, 0),
            ),
            db=scheduling_db,
            current_user=customer,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Appointments must be scheduled in the future.'


def test_create_appointment_books_recurring_series(scheduling_db, make_user, make_window) -> None:
    make_window(day_of_week=1)
    customer = make_user()

    response = create_appointment(
        data=CreateAppointmentRequest(
            scheduled_date=_next_monday(),
            start_time=time(9, 0),
            end_time=time(10, 0),
            notes='Please ring the bell',
            recurring=RecurringRequest(frequency='Biweekly', count=3),
        ),
        db=scheduling_db,
        current_user=customer,
    )

    assert len(response.appointment_ids) == 3
    assert response.message == '3 recurring appointments requested successfully'


def test_create_appointment_single_booking_message(scheduling_db, make_user, make_window) -> None:
    make_window(day_of_week=1)
    customer = make_user()

    response = create_appointment(
        data=CreateAppointmentRequest(scheduled_date=_next_monday(), start_time=time(9, 0), end_time=time(10, 0)),
        db=scheduling_db,
        current_user=customer,
    )

    assert len(response.appointment_ids) == 1
    assert response.message == 'Appointment request submitted successfully'


def test_create_appointment_returns_conflict_for_full_slot(
    scheduling_db,
    make_user,
    make_window,
    make_appointment,
) -> None:
    window = make_window(day_of_week=1, max_appointments=1)
    first_customer = make_user('first@example.com')
    monday = _next_monday()
    make_appointment(first_customer.id, monday, schedule_id=window.id)
    customer = make_user()

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(
            data=CreateAppointmentRequest(scheduled_date=monday, start_time=time(9, 0), end_time=time(10, 0)),
            db=scheduling_db,
            current_user=customer,
        )

    assert exception_info.value.status_code == 409
    assert scheduling_db.query(Appointment).count() == 1


def test_list_my_appointments_returns_only_own_records(scheduling_db, make_user, make_appointment) -> None:
    customer = make_user()
    other = make_user('other@example.com')
    make_appointment(customer.id, date(2024, 1, 15))
    make_appointment(customer.id, date(2024, 1, 8))
    make_appointment(other.id, date(2024, 1, 8))

    appointments = list_my_appointments(db=scheduling_db, current_user=customer)

    assert [appointment.scheduled_date for appointment in appointments] == [date(2024, 1, 8), date(2024, 1, 15)]


def test_cancel_my_appointment_rejects_non_owner(scheduling_db, make_user, make_appointment) -> None:
    owner = make_user('owner@example.com')
    other = make_user('other@example.com')
    appointment = make_appointment(owner.id, _next_monday())

    with pytest.raises(HTTPException) as exception_info:
        cancel_my_appointment(appointment_id=appointment.id, db=scheduling_db, current_user=other)

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Only the customer who booked this appointment can cancel it.'


def test_cancel_my_appointment_returns_not_found_when_missing(scheduling_db, make_user) -> None:
    customer = make_user()

    with pytest.raises(HTTPException) as exception_info:
        cancel_my_appointment(appointment_id=999, db=scheduling_db, current_user=customer)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Appointment not found.'


def test_cancel_my_appointment_keeps_record(scheduling_db, make_user, make_appointment) -> None:
    customer = make_user()
    appointment = make_appointment(customer.id, _next_monday())

    cancelled = cancel_my_appointment(appointment_id=appointment.id, db=scheduling_db, current_user=customer)

    assert cancelled.status == 'cancelled'
    assert scheduling_db.query(Appointment).filter(Appointment.id == appointment.id).one().status == 'cancelled'


def test_list_appointments_filters_by_status(scheduling_db, make_user, make_appointment) -> None:
    manager = make_user('manager@example.com', role='manager')
    customer = make_user()
    monday = _next_monday()
    pending = make_appointment(customer.id, monday, status='pending')
    make_appointment(customer.id, monday, start_time=time(10, 0), end_time=time(11, 0))
    make_appointment(customer.id, date(2000, 1, 3), status='pending')

    appointments = list_appointments(status_filter='Pending', db=scheduling_db, current_user=manager)

    assert [appointment.id for appointment in appointments] == [pending.id]


def test_list_appointments_rejects_unknown_status(scheduling_db, make_user) -> None:
    manager = make_user('manager@example.com', role='manager')

    with pytest.raises(HTTPException) as exception_info:
        list_appointments(status_filter='archived', db=scheduling_db, current_user=manager)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'Invalid appointment status.'


def test_confirm_and_reject_appointments(scheduling_db, make_user, make_appointment) -> None:
    manager = make_user('manager@example.com', role='manager')
    customer = make_user()
    monday = _next_monday()
    first = make_appointment(customer.id, monday, status='pending')
    second = make_appointment(customer.id, monday + timedelta(days=7), status='pending')

    assert confirm_appointment(appointment_id=first.id, db=scheduling_db, current_user=manager).status == 'confirmed'
    assert reject_appointment(appointment_id=second.id, db=scheduling_db, current_user=manager).status == 'cancelled'


def test_confirm_cancelled_appointment_is_conflict(scheduling_db, make_user, make_appointment) -> None:
    manager = make_user('manager@example.com', role='manager')
    customer = make_user()
    appointment = make_appointment(customer.id, _next_monday(), status='cancelled')

    with pytest.raises(HTTPException) as exception_info:
        confirm_appointment(appointment_id=appointment.id, db=scheduling_db, current_user=manager)

    assert exception_info.value.status_code == 409
