"""
occupancy.py
Daily occupancy and recovery-credit rules for a recurring session.

Everything here is a pure function over snapshots of people, sessions,
attendance records and spaces. Nothing is read from or written to the DB,
so the dashboard and the store can both call these on whatever they loaded.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Iterable

from models import (
    DAYS_OF_WEEK,
    STATUS_CANCELLED,
    STATUS_FIXED_ABSENT,
    STATUS_FIXED_JUSTIFIED,
    STATUS_FIXED_PRESENT,
    STATUS_ONE_TIME,
    STATUS_ON_VACATION,
    AttendanceRecord,
    AvailableSlots,
    OccupancySnapshot,
    Person,
    Session,
    Space,
    Tariff,
)


def date_key(d: date | datetime | str) -> str:
    """Attendance bucket key: local calendar date as YYYY-MM-DD."""
    if isinstance(d, str):
        return date.fromisoformat(d).isoformat()
    if isinstance(d, datetime):
        d = d.date()
    return d.isoformat()


def _as_date(d: date | datetime | str) -> date:
    return date.fromisoformat(date_key(d))


def space_capacity(space: Space | None) -> int:
    # Missing space or non-positive capacity means nobody fits.
    if space is None:
        return 0
    return max(0, int(space.capacity or 0))


def is_on_vacation(person: Person, d: date | datetime | str) -> bool:
    day = _as_date(d)
    for period in person.vacation_periods:
        if period.start_date is None or period.end_date is None:
            continue
        if period.start_date <= day <= period.end_date:
            return True
    return False


def runs_on(session: Session, d: date | datetime | str) -> bool:
    return DAYS_OF_WEEK[_as_date(d).weekday()] == session.day_of_week


def find_attendance(
    records: Iterable[AttendanceRecord], session_id, d: date | datetime | str
) -> AttendanceRecord | None:
    key = date_key(d)
    for record in records:
        if record.session_id == session_id and record.date == key:
            return record
    return None


def _index_people(people: Iterable[Person]) -> dict:
    return {p.id: p for p in people}


def compute_daily_occupancy(
    session: Session,
    d: date | datetime | str,
    people: Iterable[Person],
    attendance: Iterable[AttendanceRecord],
    space: Space | None,
) -> OccupancySnapshot:
    """
    Roster and slot availability of `session` on date `d`.

    Fixed enrollees on vacation keep their structural slot but are left out
    of the day's headcount. One-time attendees only count for that date.
    Ids that no longer resolve to a person are dropped.
    """
    key = date_key(d)
    by_id = _index_people(people)
    capacity = space_capacity(space)

    active: list[Person] = []
    vacationing: list[Person] = []
    for pid in session.person_ids:
        person = by_id.get(pid)
        if person is None:
            continue
        if is_on_vacation(person, key):
            vacationing.append(person)
        else:
            active.append(person)

    record = find_attendance(attendance, session.id, key)
    fixed_active_ids = {p.id for p in active}
    one_time: list[Person] = []
    seen = set()
    for pid in (record.one_time_attendees if record else ()):
        person = by_id.get(pid)
        # A person can hold only one slot type per session and date.
        if person is None or pid in fixed_active_ids or pid in seen:
            continue
        seen.add(pid)
        one_time.append(person)

    structural = len(session.person_ids)
    daily = len(active) + len(one_time)
    total = max(0, capacity - daily)
    slots = AvailableSlots(
        fixed=max(0, capacity - structural),
        # one-time attendees fill structural openings before vacation ones
        temporary=min(len(vacationing), total),
        total=total,
    )
    return OccupancySnapshot(
        session_id=session.id,
        date=key,
        capacity=capacity,
        active_fixed_people=tuple(active),
        vacationing_people=tuple(vacationing),
        one_time_attendees=tuple(one_time),
        daily_occupancy=daily,
        available_slots=slots,
        is_structurally_full=structural >= capacity,
        is_full_today=daily >= capacity,
        structural_count=structural,
        is_cancelled=bool(record and record.cancelled),
    )


# ---------- Recovery credits ----------

def recovery_balances(
    people: Iterable[Person], attendance: Iterable[AttendanceRecord]
) -> dict:
    """
    Credits earned (justified absences, cancelled classes) minus one-time
    bookings, per person, across every session.
    """
    balances = {p.id: 0 for p in people}
    for record in attendance:
        for pid in record.justified_absence_ids + record.cancellation_credit_ids:
            if pid in balances:
                balances[pid] += 1
        for pid in record.one_time_attendees:
            if pid in balances:
                balances[pid] -= 1
    return balances


def recovery_balance(person_id, attendance: Iterable[AttendanceRecord]) -> int:
    earned = used = 0
    for record in attendance:
        earned += sum(
            1 for pid in record.justified_absence_ids + record.cancellation_credit_ids if pid == person_id
        )
        used += sum(1 for pid in record.one_time_attendees if pid == person_id)
    return earned - used


def eligible_for_recovery(
    people: Iterable[Person], attendance: Iterable[AttendanceRecord]
) -> list[Person]:
    people = list(people)
    balances = recovery_balances(people, attendance)
    return sorted(
        (p for p in people if balances.get(p.id, 0) > 0),
        key=lambda p: p.name.lower(),
    )


def check_one_time_booking(
    session: Session,
    d: date | datetime | str,
    person_id,
    people: Iterable[Person],
    attendance: Iterable[AttendanceRecord],
    space: Space | None,
    today: date | None = None,
) -> list[str]:
    """Reasons a one-time (recovery) booking is not allowed. Empty means eligible."""
    errors: list[str] = []
    people = list(people)
    attendance = list(attendance)
    day = _as_date(d)
    today = today or date.today()

    person = next((p for p in people if p.id == person_id), None)
    if person is None:
        return ["Person not found."]

    if not runs_on(session, day):
        errors.append(f"{day.isoformat()} is not a {session.day_of_week}.")
    if day < today:
        errors.append("Cannot book a recovery class in the past.")
    if recovery_balance(person_id, attendance) <= 0:
        errors.append(f"{person.name} has no recovery credits left.")

    snapshot = compute_daily_occupancy(session, day, people, attendance, space)
    if any(p.id == person_id for p in snapshot.active_fixed_people):
        errors.append(f"{person.name} already attends this session on {snapshot.date}.")
    elif any(p.id == person_id for p in snapshot.one_time_attendees):
        errors.append(f"{person.name} is already booked for {snapshot.date}.")
    elif snapshot.is_cancelled:
        errors.append(f"The class is cancelled on {snapshot.date}.")
    elif snapshot.is_full_today:
        errors.append("No slots available for this date.")
    return errors


# ---------- Per-person status ----------

def attendance_status(
    session: Session,
    d: date | datetime | str,
    person_id,
    people: Iterable[Person],
    attendance: Iterable[AttendanceRecord],
) -> str | None:
    """
    Status of a person in a session on a date. Fixed enrollees are present
    until marked otherwise. Returns None if the person has no slot that day.
    """
    key = date_key(d)
    record = find_attendance(attendance, session.id, key)
    if person_id in session.person_ids:
        if record is not None and record.cancelled:
            return STATUS_CANCELLED
        person = next((p for p in people if p.id == person_id), None)
        if person is not None and is_on_vacation(person, key):
            return STATUS_ON_VACATION
        if record is not None:
            if person_id in record.justified_absence_ids:
                return STATUS_FIXED_JUSTIFIED
            if person_id in record.absent_ids:
                return STATUS_FIXED_ABSENT
        return STATUS_FIXED_PRESENT
    if record is not None and person_id in record.one_time_attendees:
        return STATUS_ONE_TIME
    return None


# ---------- Enrollment limits ----------

def weekly_class_count(person_id, sessions: Iterable[Session]) -> int:
    return sum(1 for s in sessions if person_id in s.person_ids)


def exceeds_tariff_frequency(tariff: Tariff | None, session_count: int) -> bool:
    if tariff is None or not tariff.frequency:
        return False
    return session_count > tariff.frequency


# ---------- Waitlist ----------

def waitlist_opportunities(
    sessions: Iterable[Session],
    people: Iterable[Person],
    spaces: Iterable[Space],
) -> list[dict]:
    """
    Sessions that have a free fixed slot and someone waiting for it.
    Each item: {"session", "free_slots", "entries": [(entry, person-or-None)]}.
    Entries keep insertion order; waitlisted person ids that no longer exist
    are skipped.
    """
    by_id = _index_people(people)
    spaces_by_id = {s.id: s for s in spaces}
    result = []
    for session in sessions:
        if not session.waitlist:
            continue
        free = max(0, space_capacity(spaces_by_id.get(session.space_id)) - len(session.person_ids))
        if free <= 0:
            continue
        entries = []
        for entry in session.waitlist:
            if entry.is_prospect:
                entries.append((entry, None))
            elif entry.person_id in by_id:
                entries.append((entry, by_id[entry.person_id]))
        if entries:
            result.append({"session": session, "free_slots": free, "entries": entries})
    return result
