import os
from datetime import date, time

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from backend.database import Base  # noqa: E402
from backend.models.appointment import Appointment  # noqa: E402
from backend.models.schedule import ServiceSchedule  # noqa: E402
from backend.models.user import User  # noqa: E402

TABLES = [User.__table__, ServiceSchedule.__table__, Appointment.__table__]


@pytest.fixture
def session_factory():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine, tables=TABLES)
    try:
        yield testing_session_local
    finally:
        Base.metadata.drop_all(bind=engine, tables=list(reversed(TABLES)))
        engine.dispose()


@pytest.fixture
def scheduling_db(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_user(scheduling_db):
    def _make_user(email: str = 'customer@example.com', role: str = 'customer') -> User:
        user = User(email=email, role=role)
        scheduling_db.add(user)
        scheduling_db.commit()
        scheduling_db.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_window(scheduling_db):
    def _make_window(
        day_of_week: int = 1,
        start_time: time = time(9, 0),
        end_time: time = time(17, 0),
        max_appointments: int = 3,
        is_active: bool = True,
    ) -> ServiceSchedule:
        window = ServiceSchedule(
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            max_appointments=max_appointments,
            is_active=is_active,
        )
        scheduling_db.add(window)
        scheduling_db.commit()
        scheduling_db.refresh(window)
        return window

    return _make_window


@pytest.fixture
def make_appointment(scheduling_db):
    def _make_appointment(
        customer_id: int,
        scheduled_date: date,
        start_time: time = time(9, 0),
        end_time: time = time(10, 0),
        status: str = 'scheduled',
        schedule_id: int | None = None,
    ) -> Appointment:
        appointment = Appointment(
            customer_id=customer_id,
            schedule_id=schedule_id,
            scheduled_date=scheduled_date,
            start_time=start_time,
            end_time=end_time,
            status=status,
        )
        scheduling_db.add(appointment)
        scheduling_db.commit()
        scheduling_db.refresh(appointment)
        return appointment

    return _make_appointment
