# tests/conftest.py

from datetime import date

import pytest

import db
from models import AttendanceRecord, Person, Session, Space, VacationPeriod

# 2024-07-01 is a Monday
MONDAY = date(2024, 7, 1)


@pytest.fixture()
def temp_db(tmp_path, monkeypatch):
    """Fresh SQLite file per test."""
    monkeypatch.setattr(db, "DB_FILE", tmp_path / "studio.db")
    db.init_db()
    yield db.DB_FILE


def make_person(pid, name=None, vacations=()):
    return Person(
        id=pid,
        name=name or f"Person {pid}",
        phone=f"0100000000{pid}",
        vacation_periods=tuple(
            VacationPeriod(id=i, start_date=start, end_date=end)
            for i, (start, end) in enumerate(vacations, start=1)
        ),
    )


def make_session(sid=1, person_ids=(), day="Monday", space_id=1, waitlist=()):
    return Session(
        id=sid,
        activity_id=1,
        instructor_id=1,
        space_id=space_id,
        day_of_week=day,
        time="18:00",
        person_ids=tuple(person_ids),
        waitlist=tuple(waitlist),
    )


def make_record(
    session_id=1, d=MONDAY, justified=(), one_time=(), absent=(), present=(),
    cancelled=False, credited=(),
):
    return AttendanceRecord(
        id=None,
        session_id=session_id,
        date=d.isoformat(),
        present_ids=tuple(present),
        absent_ids=tuple(absent),
        justified_absence_ids=tuple(justified),
        one_time_attendees=tuple(one_time),
        cancellation_credit_ids=tuple(credited),
        cancelled=cancelled,
    )


def make_space(capacity, sid=1):
    return Space(id=sid, name="Room", capacity=capacity)
