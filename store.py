"""
store.py
Repository layer: loads entity snapshots and applies every change that
touches rosters, waitlists, attendance, vacations and payments.

Capacity-affecting changes run inside db.transaction() and re-read the
current state before writing. Rule violations raise ValidationError.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import date, datetime, timedelta

import db
import occupancy
import utils
from models import (
    DAYS_OF_WEEK,
    PERSON_STATUSES,
    AttendanceRecord,
    Activity,
    Instructor,
    Level,
    Payment,
    Person,
    Session,
    Space,
    Tariff,
    VacationPeriod,
    ValidationError,
    WaitlistEntry,
    WaitlistProspect,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _reject(messages) -> None:
    err = ValidationError(messages)
    logger.warning("Rejected: %s", "; ".join(err.messages))
    raise err


@contextmanager
def _reading(conn=None):
    if conn is not None:
        yield conn
    else:
        with db.get_conn() as c:
            yield c


# ---------- Row mapping ----------

def _person_from_row(row, vacations) -> Person:
    return Person(
        id=row["id"],
        name=row["name"],
        phone=row["phone"],
        tariff_id=row["tariff_id"],
        level_id=row["level_id"],
        join_date=utils.parse_iso(row["join_date"]),
        last_payment_date=utils.parse_iso(row["last_payment_date"]),
        outstanding_payments=row["outstanding_payments"],
        vacation_periods=tuple(vacations),
        status=row["status"],
        notes=row["notes"],
    )


def _waitlist_entry_from_row(row) -> WaitlistEntry:
    prospect = None
    if row["person_id"] is None:
        prospect = WaitlistProspect(name=row["prospect_name"], phone=row["prospect_phone"] or "")
    return WaitlistEntry(id=row["id"], person_id=row["person_id"], prospect=prospect)


# ---------- Loading ----------

def load_people(conn=None) -> list[Person]:
    with _reading(conn) as c:
        rows = c.execute("SELECT * FROM people ORDER BY name COLLATE NOCASE, id").fetchall()
        vac_rows = c.execute(
            "SELECT * FROM vacation_periods ORDER BY start_date, id"
        ).fetchall()
    vacations: dict[int, list[VacationPeriod]] = {}
    for v in vac_rows:
        vacations.setdefault(v["person_id"], []).append(
            VacationPeriod(
                id=v["id"],
                start_date=utils.parse_iso(v["start_date"]),
                end_date=utils.parse_iso(v["end_date"]),
            )
        )
    return [_person_from_row(r, vacations.get(r["id"], [])) for r in rows]


def load_person(person_id: int, conn=None) -> Person | None:
    return next((p for p in load_people(conn) if p.id == person_id), None)


def load_sessions(conn=None) -> list[Session]:
    with _reading(conn) as c:
        rows = c.execute("SELECT * FROM sessions ORDER BY id").fetchall()
        roster_rows = c.execute(
            "SELECT session_id, person_id FROM session_people ORDER BY enrolled_at, rowid"
        ).fetchall()
        wait_rows = c.execute(
            "SELECT * FROM waitlist_entries ORDER BY position, id"
        ).fetchall()
    rosters: dict[int, list[int]] = {}
    for r in roster_rows:
        rosters.setdefault(r["session_id"], []).append(r["person_id"])
    waitlists: dict[int, list[WaitlistEntry]] = {}
    for w in wait_rows:
        waitlists.setdefault(w["session_id"], []).append(_waitlist_entry_from_row(w))
    return [
        Session(
            id=r["id"],
            activity_id=r["activity_id"],
            instructor_id=r["instructor_id"],
            space_id=r["space_id"],
            day_of_week=r["day_of_week"],
            time=r["time"],
            person_ids=tuple(rosters.get(r["id"], [])),
            waitlist=tuple(waitlists.get(r["id"], [])),
            level_id=r["level_id"],
        )
        for r in rows
    ]


def load_session(session_id: int, conn=None) -> Session | None:
    return next((s for s in load_sessions(conn) if s.id == session_id), None)


def load_spaces(conn=None) -> list[Space]:
    with _reading(conn) as c:
        rows = c.execute("SELECT * FROM spaces ORDER BY name COLLATE NOCASE").fetchall()
    return [Space(id=r["id"], name=r["name"], capacity=r["capacity"]) for r in rows]


def load_space(space_id: int | None, conn=None) -> Space | None:
    if space_id is None:
        return None
    return next((s for s in load_spaces(conn) if s.id == space_id), None)


def load_attendance(conn=None, session_id: int | None = None) -> list[AttendanceRecord]:
    sql = "SELECT * FROM attendance"
    params: tuple = ()
    if session_id is not None:
        sql += " WHERE session_id = ?"
        params = (session_id,)
    with _reading(conn) as c:
        rows = c.execute(sql + " ORDER BY date, id", params).fetchall()
        mark_rows = c.execute(
            "SELECT attendance_id, person_id, kind FROM attendance_marks ORDER BY rowid"
        ).fetchall()
    marks: dict[int, dict[str, list[int]]] = {}
    for m in mark_rows:
        marks.setdefault(m["attendance_id"], {}).setdefault(m["kind"], []).append(m["person_id"])
    records = []
    for r in rows:
        by_kind = marks.get(r["id"], {})
        records.append(
            AttendanceRecord(
                id=r["id"],
                session_id=r["session_id"],
                date=r["date"],
                present_ids=tuple(by_kind.get("present", [])),
                absent_ids=tuple(by_kind.get("absent", [])),
                justified_absence_ids=tuple(by_kind.get("justified", [])),
                one_time_attendees=tuple(by_kind.get("one_time", [])),
                cancellation_credit_ids=tuple(by_kind.get("cancel_credit", [])),
                cancelled=r["status"] == "cancelled",
            )
        )
    return records


def load_tariffs(conn=None) -> list[Tariff]:
    with _reading(conn) as c:
        rows = c.execute("SELECT * FROM tariffs ORDER BY name COLLATE NOCASE").fetchall()
    return [Tariff(id=r["id"], name=r["name"], price=r["price"], frequency=r["frequency"]) for r in rows]


def load_tariff(tariff_id: int | None, conn=None) -> Tariff | None:
    if tariff_id is None:
        return None
    return next((t for t in load_tariffs(conn) if t.id == tariff_id), None)


def load_levels() -> list[Level]:
    rows = db.fetch_all("SELECT * FROM levels ORDER BY name COLLATE NOCASE")
    return [Level(id=r["id"], name=r["name"]) for r in rows]


def load_activities() -> list[Activity]:
    rows = db.fetch_all("SELECT * FROM activities ORDER BY name COLLATE NOCASE")
    return [Activity(id=r["id"], name=r["name"]) for r in rows]


def load_instructors() -> list[Instructor]:
    rows = db.fetch_all("SELECT * FROM instructors ORDER BY name COLLATE NOCASE")
    links = db.fetch_all("SELECT instructor_id, activity_id FROM instructor_activities")
    by_instructor: dict[int, list[int]] = {}
    for link in links:
        by_instructor.setdefault(link["instructor_id"], []).append(link["activity_id"])
    return [
        Instructor(id=r["id"], name=r["name"], phone=r["phone"],
                   activity_ids=tuple(by_instructor.get(r["id"], [])))
        for r in rows
    ]


def load_payments(person_id: int | None = None) -> list[Payment]:
    sql = "SELECT * FROM payments"
    params: tuple = ()
    if person_id is not None:
        sql += " WHERE person_id = ?"
        params = (person_id,)
    rows = db.fetch_all(sql + " ORDER BY date DESC, id DESC", params)
    return [
        Payment(id=r["id"], person_id=r["person_id"], date=r["date"], amount=r["amount"],
                tariff_id=r["tariff_id"], months=r["months"])
        for r in rows
    ]


# ---------- Catalog CRUD ----------

def add_tariff(name: str, price: float, frequency: int | None = None) -> int:
    errors = utils.validate_tariff_inputs(name, price, frequency)
    if errors:
        _reject(errors)
    tariff_id = db.execute(
        "INSERT INTO tariffs(name, price, frequency) VALUES(?,?,?)",
        (name.strip(), float(price), int(frequency) if frequency else None),
    )
    logger.info("Added tariff %s (%s)", tariff_id, name)
    return tariff_id


def update_tariff(tariff_id: int, name: str, price: float, frequency: int | None = None) -> None:
    errors = utils.validate_tariff_inputs(name, price, frequency)
    if errors:
        _reject(errors)
    db.execute(
        "UPDATE tariffs SET name=?, price=?, frequency=? WHERE id=?",
        (name.strip(), float(price), int(frequency) if frequency else None, tariff_id),
    )


def add_level(name: str) -> int:
    if not name.strip():
        _reject("Name is required.")
    return db.execute("INSERT INTO levels(name) VALUES(?)", (name.strip(),))


def add_activity(name: str) -> int:
    if not name.strip():
        _reject("Name is required.")
    return db.execute("INSERT INTO activities(name) VALUES(?)", (name.strip(),))


def add_instructor(name: str, phone: str, activity_ids: list[int] | None = None) -> int:
    errors = utils.validate_person_inputs(name, phone)
    if errors:
        _reject(errors)
    with db.transaction() as conn:
        instructor_id = conn.execute(
            "INSERT INTO instructors(name, phone) VALUES(?,?)", (name.strip(), phone.strip())
        ).lastrowid
        conn.executemany(
            "INSERT INTO instructor_activities(instructor_id, activity_id) VALUES(?,?)",
            [(instructor_id, a) for a in (activity_ids or [])],
        )
    return instructor_id


def add_space(name: str, capacity: int) -> int:
    errors = utils.validate_space_inputs(name, capacity)
    if errors:
        _reject(errors)
    space_id = db.execute("INSERT INTO spaces(name, capacity) VALUES(?,?)", (name.strip(), int(capacity)))
    logger.info("Added space %s (%s, capacity %s)", space_id, name, capacity)
    return space_id


def update_space(space_id: int, name: str, capacity: int) -> None:
    errors = utils.validate_space_inputs(name, capacity)
    if errors:
        _reject(errors)
    with db.transaction() as conn:
        crowded = conn.execute(
            """
            SELECT s.day_of_week, s.time, COUNT(sp.person_id) AS enrolled
            FROM sessions s JOIN session_people sp ON sp.session_id = s.id
            WHERE s.space_id = ?
            GROUP BY s.id
            HAVING COUNT(sp.person_id) > ?
            """,
            (space_id, int(capacity)),
        ).fetchall()
        if crowded:
            _reject(
                [f"Capacity {int(capacity)} is below the roster of these sessions:"]
                + [f"- {r['day_of_week']} {r['time']} ({r['enrolled']} enrolled)" for r in crowded]
            )
        conn.execute("UPDATE spaces SET name=?, capacity=? WHERE id=?", (name.strip(), int(capacity), space_id))


# Entity kind -> (table, [(table using it, column, label)])
USAGE_CHECKS = {
    "tariff": ("tariffs", [("people", "tariff_id", "person")]),
    "level": ("levels", [("people", "level_id", "person"), ("sessions", "level_id", "session")]),
    "activity": ("activities", [("sessions", "activity_id", "session")]),
    "instructor": ("instructors", [("sessions", "instructor_id", "session")]),
    "space": ("spaces", [("sessions", "space_id", "session")]),
}


def _describe_usage(conn, table: str, column: str, label: str, entity_id: int) -> str | None:
    if table == "people":
        rows = conn.execute(f"SELECT name FROM people WHERE {column} = ?", (entity_id,)).fetchall()
        details = [f"- {r['name']}" for r in rows]
    else:
        rows = conn.execute(
            f"""
            SELECT s.day_of_week, s.time, a.name AS activity
            FROM sessions s LEFT JOIN activities a ON a.id = s.activity_id
            WHERE s.{column} = ?
            """,
            (entity_id,),
        ).fetchall()
        details = [f"- {r['activity'] or 'Class'} ({r['day_of_week']} {r['time']})" for r in rows]
    if not rows:
        return None
    return f"Used by {len(rows)} {label}(s):\n" + "\n".join(details)


def delete_with_usage_check(kind: str, entity_id: int) -> None:
    """Delete a catalog entity (tariff, level, activity, instructor, space) nobody uses."""
    table, checks = USAGE_CHECKS[kind]
    with db.transaction() as conn:
        usages = [
            msg for msg in (_describe_usage(conn, t, col, label, entity_id) for t, col, label in checks)
            if msg
        ]
        if usages:
            _reject([f"Cannot delete this {kind}."] + usages)
        conn.execute(f"DELETE FROM {table} WHERE id = ?", (entity_id,))
    logger.info("Deleted %s %s", kind, entity_id)


# ---------- People ----------

def add_person(
    name: str,
    phone: str,
    tariff_id: int | None = None,
    level_id: int | None = None,
    notes: str | None = None,
    join_date: date | None = None,
    conn=None,
) -> int:
    errors = utils.validate_person_inputs(name, phone)
    if errors:
        _reject(errors)
    params = (
        name.strip(), phone.strip(), tariff_id, level_id,
        (join_date or date.today()).isoformat(), (notes or "").strip() or None,
    )
    sql = """
        INSERT INTO people(name, phone, tariff_id, level_id, join_date, notes)
        VALUES(?,?,?,?,?,?)
    """
    if conn is not None:
        person_id = conn.execute(sql, params).lastrowid
    else:
        person_id = db.execute(sql, params)
    logger.info("Added person %s (%s)", person_id, name)
    return person_id


def update_person(
    person_id: int,
    name: str,
    phone: str,
    tariff_id: int | None = None,
    level_id: int | None = None,
    notes: str | None = None,
    status: str = "active",
) -> None:
    errors = utils.validate_person_inputs(name, phone)
    if status not in PERSON_STATUSES:
        errors.append("Status must be active or inactive.")
    if errors:
        _reject(errors)
    db.execute(
        """
        UPDATE people SET name=?, phone=?, tariff_id=?, level_id=?, notes=?, status=?
        WHERE id=?
        """,
        (name.strip(), phone.strip(), tariff_id, level_id, (notes or "").strip() or None, status, person_id),
    )


def delete_person(person_id: int) -> None:
    """Delete a person and every roster, waitlist and attendance reference to them."""
    with db.transaction() as conn:
        conn.execute("DELETE FROM session_people WHERE person_id = ?", (person_id,))
        conn.execute("DELETE FROM waitlist_entries WHERE person_id = ?", (person_id,))
        conn.execute("DELETE FROM attendance_marks WHERE person_id = ?", (person_id,))
        conn.execute("DELETE FROM vacation_periods WHERE person_id = ?", (person_id,))
        conn.execute("DELETE FROM payments WHERE person_id = ?", (person_id,))
        conn.execute("DELETE FROM people WHERE id = ?", (person_id,))
    logger.info("Deleted person %s", person_id)


# ---------- Sessions ----------

def add_session(
    activity_id: int | None,
    instructor_id: int | None,
    space_id: int | None,
    day_of_week: str,
    time: str,
    level_id: int | None = None,
) -> int:
    errors = utils.validate_session_inputs(day_of_week, time)
    if errors:
        _reject(errors)
    session_id = db.execute(
        """
        INSERT INTO sessions(activity_id, instructor_id, space_id, level_id, day_of_week, time)
        VALUES(?,?,?,?,?,?)
        """,
        (activity_id, instructor_id, space_id, level_id, day_of_week, time),
    )
    logger.info("Added session %s (%s %s)", session_id, day_of_week, time)
    return session_id


def update_session(
    session_id: int,
    activity_id: int | None,
    instructor_id: int | None,
    space_id: int | None,
    day_of_week: str,
    time: str,
    level_id: int | None = None,
) -> None:
    errors = utils.validate_session_inputs(day_of_week, time)
    if errors:
        _reject(errors)
    with db.transaction() as conn:
        session = load_session(session_id, conn)
        if session is None:
            _reject("Session not found.")
        capacity = occupancy.space_capacity(load_space(space_id, conn))
        if len(session.person_ids) > capacity:
            _reject(f"The new space only fits {capacity} and {len(session.person_ids)} people are enrolled.")
        conn.execute(
            """
            UPDATE sessions SET activity_id=?, instructor_id=?, space_id=?, level_id=?,
                day_of_week=?, time=?
            WHERE id=?
            """,
            (activity_id, instructor_id, space_id, level_id, day_of_week, time, session_id),
        )


def delete_session(session_id: int) -> None:
    with db.transaction() as conn:
        row = conn.execute(
            "SELECT COUNT(*) AS c FROM session_people WHERE session_id = ?", (session_id,)
        ).fetchone()
        if row["c"] > 0:
            _reject(f"Cannot delete a session with {row['c']} enrolled people. Unenroll them first.")
        conn.execute("DELETE FROM sessions WHERE id = ?", (session_id,))
    logger.info("Deleted session %s", session_id)


# ---------- Enrollment ----------

def _check_frequency(conn, person: Person, session_count: int) -> str | None:
    tariff = load_tariff(person.tariff_id, conn)
    if occupancy.exceeds_tariff_frequency(tariff, session_count):
        return f"{person.name} is limited to {tariff.frequency} class(es) per week by tariff {tariff.name}."
    return None


def enroll_people(session_id: int, person_ids: list[int]) -> list[int]:
    """
    Replace the fixed roster of a session. Returns the ids that were removed.
    Newly enrolled people leave the session's waitlist.
    """
    wanted = list(dict.fromkeys(person_ids))
    with db.transaction() as conn:
        sessions = load_sessions(conn)
        session = next((s for s in sessions if s.id == session_id), None)
        if session is None:
            _reject("Session not found.")
        capacity = occupancy.space_capacity(load_space(session.space_id, conn))
        people = {p.id: p for p in load_people(conn)}

        errors = []
        missing = [pid for pid in wanted if pid not in people]
        if missing:
            errors.append(f"Unknown people: {', '.join(map(str, missing))}.")
        if len(wanted) > capacity:
            errors.append(f"Capacity is {capacity}; cannot enroll {len(wanted)} people.")
        added = [pid for pid in wanted if pid not in session.person_ids and pid in people]
        for pid in added:
            count = occupancy.weekly_class_count(pid, sessions) + 1
            msg = _check_frequency(conn, people[pid], count)
            if msg:
                errors.append(msg)
        if errors:
            _reject(errors)

        removed = [pid for pid in session.person_ids if pid not in wanted]
        conn.executemany(
            "DELETE FROM session_people WHERE session_id = ? AND person_id = ?",
            [(session_id, pid) for pid in removed],
        )
        now = _now()
        conn.executemany(
            "INSERT INTO session_people(session_id, person_id, enrolled_at) VALUES(?,?,?)",
            [(session_id, pid, now) for pid in added],
        )
        conn.executemany(
            "DELETE FROM waitlist_entries WHERE session_id = ? AND person_id = ?",
            [(session_id, pid) for pid in added],
        )
    logger.info("Session %s roster: +%s -%s", session_id, added, removed)
    return removed


def set_person_sessions(person_id: int, session_ids: list[int]) -> list[int]:
    """
    Replace the sessions a person is enrolled in. Returns the session ids the
    person was removed from (those may now have a waitlist opportunity).
    """
    wanted = list(dict.fromkeys(session_ids))
    with db.transaction() as conn:
        person = load_person(person_id, conn)
        if person is None:
            _reject("Person not found.")
        sessions = {s.id: s for s in load_sessions(conn)}
        spaces = {s.id: s for s in load_spaces(conn)}

        errors = []
        msg = _check_frequency(conn, person, len(wanted))
        if msg:
            errors.append(msg)
        added = []
        for sid in wanted:
            session = sessions.get(sid)
            if session is None:
                errors.append(f"Unknown session {sid}.")
                continue
            if person_id in session.person_ids:
                continue
            added.append(sid)
            capacity = occupancy.space_capacity(spaces.get(session.space_id))
            if len(session.person_ids) + 1 > capacity:
                errors.append(f"Session {session.day_of_week} {session.time} is full.")
        if errors:
            _reject(errors)

        removed = [s.id for s in sessions.values() if person_id in s.person_ids and s.id not in wanted]
        conn.executemany(
            "DELETE FROM session_people WHERE session_id = ? AND person_id = ?",
            [(sid, person_id) for sid in removed],
        )
        now = _now()
        conn.executemany(
            "INSERT INTO session_people(session_id, person_id, enrolled_at) VALUES(?,?,?)",
            [(sid, person_id, now) for sid in added],
        )
        conn.executemany(
            "DELETE FROM waitlist_entries WHERE session_id = ? AND person_id = ?",
            [(sid, person_id) for sid in added],
        )
    logger.info("Person %s sessions: +%s -%s", person_id, added, removed)
    return removed


# ---------- Waitlist ----------

def add_to_waitlist(
    session_id: int,
    person_id: int | None = None,
    prospect: WaitlistProspect | None = None,
) -> int:
    """Queue an existing person or an unregistered prospect. Returns the entry id."""
    if (person_id is None) == (prospect is None):
        _reject("Give either a person or a prospect.")
    if prospect is not None:
        errors = utils.validate_person_inputs(prospect.name, prospect.phone)
        if errors:
            _reject(errors)
    with db.transaction() as conn:
        session = load_session(session_id, conn)
        if session is None:
            _reject("Session not found.")
        if person_id is not None:
            if load_person(person_id, conn) is None:
                _reject("Person not found.")
            if person_id in session.person_ids:
                _reject("This person is already enrolled in the session.")
            existing = next((e for e in session.waitlist if e.person_id == person_id), None)
            if existing is not None:
                return existing.id
        row = conn.execute(
            "SELECT COALESCE(MAX(position), 0) AS p FROM waitlist_entries WHERE session_id = ?",
            (session_id,),
        ).fetchone()
        entry_id = conn.execute(
            """
            INSERT INTO waitlist_entries(session_id, person_id, prospect_name, prospect_phone, position, created_at)
            VALUES(?,?,?,?,?,?)
            """,
            (
                session_id,
                person_id,
                prospect.name.strip() if prospect else None,
                prospect.phone.strip() if prospect else None,
                row["p"] + 1,
                _now(),
            ),
        ).lastrowid
    logger.info("Waitlist entry %s added to session %s", entry_id, session_id)
    return entry_id


def remove_from_waitlist(session_id: int, entry_id: int) -> None:
    db.execute(
        "DELETE FROM waitlist_entries WHERE id = ? AND session_id = ?", (entry_id, session_id)
    )


def enroll_from_waitlist(session_id: int, entry_id: int, tariff_id: int | None = None) -> int:
    """
    Move a waitlist entry into the fixed roster. Prospects become people first.
    Any entry can be promoted, not only the first one. Returns the person id.
    """
    with db.transaction() as conn:
        session = load_session(session_id, conn)
        if session is None:
            _reject("Session not found.")
        entry = next((e for e in session.waitlist if e.id == entry_id), None)
        if entry is None:
            _reject("Waitlist entry not found.")
        capacity = occupancy.space_capacity(load_space(session.space_id, conn))
        if capacity - len(session.person_ids) <= 0:
            _reject("There is no free fixed slot in this session.")

        if entry.is_prospect:
            person_id = add_person(
                entry.prospect.name, entry.prospect.phone or "", tariff_id=tariff_id, conn=conn
            )
        else:
            person_id = entry.person_id
            person = load_person(person_id, conn)
            count = occupancy.weekly_class_count(person_id, load_sessions(conn)) + 1
            msg = _check_frequency(conn, person, count)
            if msg:
                _reject(msg)

        conn.execute(
            "INSERT INTO session_people(session_id, person_id, enrolled_at) VALUES(?,?,?)",
            (session_id, person_id, _now()),
        )
        conn.execute("DELETE FROM waitlist_entries WHERE id = ?", (entry_id,))
    logger.info("Promoted waitlist entry %s into session %s as person %s", entry_id, session_id, person_id)
    return person_id


# ---------- Attendance ----------

def _attendance_id(conn, session_id: int, key: str) -> int:
    conn.execute(
        "INSERT OR IGNORE INTO attendance(session_id, date) VALUES(?,?)", (session_id, key)
    )
    row = conn.execute(
        "SELECT id FROM attendance WHERE session_id = ? AND date = ?", (session_id, key)
    ).fetchone()
    return row["id"]


def _open_record(conn, session: Session, key: str) -> int:
    """Attendance row id for a date the class actually meets; rejects cancelled dates."""
    if not occupancy.runs_on(session, key):
        _reject(f"{key} is not a {session.day_of_week}.")
    attendance_id = _attendance_id(conn, session.id, key)
    row = conn.execute("SELECT status FROM attendance WHERE id = ?", (attendance_id,)).fetchone()
    if row["status"] == "cancelled":
        _reject(f"The class is cancelled on {key}.")
    return attendance_id


def save_attendance(
    session_id: int,
    d: date,
    present_ids: list[int],
    absent_ids: list[int],
    justified_ids: list[int] | None = None,
) -> None:
    """
    Record statuses for the fixed enrollees listed. Marks of people not listed
    (for example those on vacation) and one-time attendees are kept.
    """
    justified_ids = justified_ids or []
    key = occupancy.date_key(d)
    with db.transaction() as conn:
        session = load_session(session_id, conn)
        if session is None:
            _reject("Session not found.")
        errors = []
        marked = list(present_ids) + list(absent_ids) + list(justified_ids)
        if len(marked) != len(set(marked)):
            errors.append("A person can only have one status per class.")
        strangers = [pid for pid in marked if pid not in session.person_ids]
        if strangers:
            errors.append(f"Not enrolled in this session: {', '.join(map(str, strangers))}.")
        if errors:
            _reject(errors)

        attendance_id = _open_record(conn, session, key)
        attendance = load_attendance(conn)
        record = occupancy.find_attendance(attendance, session_id, key)
        losing = [
            pid for pid in marked
            if pid in record.justified_absence_ids and pid not in justified_ids
        ]
        people = {p.id: p for p in load_people(conn)}
        for pid in losing:
            # the credit from this absence may already be spent on a recovery class
            if occupancy.recovery_balance(pid, attendance) < 1:
                name = people[pid].name if pid in people else str(pid)
                errors.append(
                    f"{name}'s justified absence on {key} was already used for a recovery class."
                )
        if errors:
            _reject(errors)

        conn.executemany(
            """
            DELETE FROM attendance_marks
            WHERE attendance_id = ? AND person_id = ? AND kind IN ('present','absent','justified')
            """,
            [(attendance_id, pid) for pid in marked],
        )
        for kind, ids in (("present", present_ids), ("absent", absent_ids), ("justified", justified_ids)):
            conn.executemany(
                "INSERT INTO attendance_marks(attendance_id, person_id, kind) VALUES(?,?,?)",
                [(attendance_id, pid, kind) for pid in ids],
            )
    logger.info("Saved attendance for session %s on %s", session_id, key)


def add_justified_absence(person_id: int, session_id: int, d: date) -> None:
    key = occupancy.date_key(d)
    with db.transaction() as conn:
        session = load_session(session_id, conn)
        if session is None:
            _reject("Session not found.")
        if person_id not in session.person_ids:
            _reject("Only people enrolled in the session can justify an absence.")
        attendance_id = _open_record(conn, session, key)
        conn.execute(
            "DELETE FROM attendance_marks WHERE attendance_id = ? AND person_id = ? AND kind IN ('present','absent')",
            (attendance_id, person_id),
        )
        conn.execute(
            "INSERT OR IGNORE INTO attendance_marks(attendance_id, person_id, kind) VALUES(?,?,'justified')",
            (attendance_id, person_id),
        )
    logger.info("Justified absence for person %s in session %s on %s", person_id, session_id, key)


def cancel_session_for_day(session_id: int, d: date, grant_credits: bool = True) -> list[int]:
    """
    Cancel one date of a recurring session. No attendance is taken for it.
    One-time bookings on that date are dropped, which returns their credit.
    With grant_credits, every fixed enrollee expected that day who has not
    already justified the absence earns one recovery credit.
    Returns the ids of the people credited.
    """
    key = occupancy.date_key(d)
    with db.transaction() as conn:
        session = load_session(session_id, conn)
        if session is None:
            _reject("Session not found.")
        attendance_id = _open_record(conn, session, key)
        attendance = load_attendance(conn)
        record = occupancy.find_attendance(attendance, session_id, key)
        snapshot = occupancy.compute_daily_occupancy(
            session, key, load_people(conn), attendance, load_space(session.space_id, conn)
        )
        credited = []
        if grant_credits:
            credited = [
                p.id for p in snapshot.active_fixed_people
                if p.id not in record.justified_absence_ids
            ]

        conn.execute("UPDATE attendance SET status = 'cancelled' WHERE id = ?", (attendance_id,))
        conn.execute(
            "DELETE FROM attendance_marks WHERE attendance_id = ? AND kind IN ('present','absent','one_time')",
            (attendance_id,),
        )
        conn.executemany(
            "INSERT INTO attendance_marks(attendance_id, person_id, kind) VALUES(?,?,'cancel_credit')",
            [(attendance_id, pid) for pid in credited],
        )
    logger.info(
        "Cancelled session %s on %s (%d credit(s) granted)", session_id, key, len(credited)
    )
    return credited


def add_one_time_attendee(
    session_id: int, person_id: int, d: date, today: date | None = None
) -> None:
    """Book a recovery class, spending one credit earned by a justified absence."""
    key = occupancy.date_key(d)
    with db.transaction() as conn:
        session = load_session(session_id, conn)
        if session is None:
            _reject("Session not found.")
        errors = occupancy.check_one_time_booking(
            session,
            key,
            person_id,
            load_people(conn),
            load_attendance(conn),
            load_space(session.space_id, conn),
            today=today,
        )
        if errors:
            _reject(errors)
        attendance_id = _attendance_id(conn, session_id, key)
        conn.execute(
            "INSERT INTO attendance_marks(attendance_id, person_id, kind) VALUES(?,?,'one_time')",
            (attendance_id, person_id),
        )
    logger.info("One-time attendee %s booked in session %s on %s", person_id, session_id, key)


# ---------- Vacations ----------

def add_vacation_period(person_id: int, start: date, end: date) -> int:
    errors = utils.validate_vacation_inputs(start, end)
    if errors:
        _reject(errors)
    with db.transaction() as conn:
        if load_person(person_id, conn) is None:
            _reject("Person not found.")
        vacation_id = conn.execute(
            "INSERT INTO vacation_periods(person_id, start_date, end_date) VALUES(?,?,?)",
            (person_id, start.isoformat(), end.isoformat()),
        ).lastrowid
    logger.info("Vacation %s for person %s: %s..%s", vacation_id, person_id, start, end)
    return vacation_id


def remove_vacation_period(person_id: int, vacation_id: int) -> None:
    db.execute(
        "DELETE FROM vacation_periods WHERE id = ? AND person_id = ?", (vacation_id, person_id)
    )


# ---------- Payments ----------

def record_payment(person_id: int, tariff_id: int | None = None, when: date | None = None) -> int:
    """
    Record one month paid at the tariff's price and push the next due date.
    The first payment starts the cycle on `when`.
    """
    when = when or date.today()
    with db.transaction() as conn:
        person = load_person(person_id, conn)
        if person is None:
            _reject("Person not found.")
        tariff = load_tariff(tariff_id or person.tariff_id, conn)
        if tariff is None:
            _reject(f"{person.name} has no tariff to charge.")
        base = person.last_payment_date or when
        next_due = utils.calculate_next_payment_date(base, person.join_date)
        payment_id = conn.execute(
            "INSERT INTO payments(person_id, amount, date, tariff_id, months) VALUES(?,?,?,?,1)",
            (person_id, tariff.price, when.isoformat(), tariff.id),
        ).lastrowid
        conn.execute(
            "UPDATE people SET last_payment_date = ? WHERE id = ?",
            (next_due.isoformat(), person_id),
        )
    logger.info("Payment %s for person %s, next due %s", payment_id, person_id, next_due)
    return payment_id


def revert_last_payment(person_id: int) -> None:
    with db.transaction() as conn:
        person = load_person(person_id, conn)
        if person is None:
            _reject("Person not found.")
        rows = conn.execute(
            "SELECT id FROM payments WHERE person_id = ? ORDER BY date DESC, id DESC", (person_id,)
        ).fetchall()
        if not rows:
            _reject("There are no payments to revert for this person.")
        if len(rows) == 1 or person.last_payment_date is None:
            previous_due = None
        else:
            previous_due = utils.add_months(person.last_payment_date, -1).isoformat()
        conn.execute("DELETE FROM payments WHERE id = ?", (rows[0]["id"],))
        conn.execute(
            "UPDATE people SET last_payment_date = ? WHERE id = ?",
            (previous_due, person_id),
        )
    logger.info("Reverted payment %s for person %s", rows[0]["id"], person_id)


def set_outstanding_payments(person_id: int, count: int) -> None:
    """Staff override for the number of unpaid months a person owes."""
    if count < 0:
        _reject("Outstanding payments cannot be negative.")
    db.execute("UPDATE people SET outstanding_payments = ? WHERE id = ?", (int(count), person_id))


# ---------- Sample data ----------

def insert_sample_data() -> None:
    """
    Insert a small studio: two tariffs, one space, two sessions and four people
    (adds new rows each time it runs).
    """
    today = date.today()

    monthly = add_tariff("2x week", 300.0, frequency=2)
    unlimited = add_tariff("Free pass", 500.0)
    level = add_level("Beginner")
    yoga = add_activity("Yoga")
    pilates = add_activity("Pilates")
    instructor = add_instructor("Laura Gomez", "01100000000", [yoga, pilates])
    room = add_space("Main room", 4)

    weekday = DAYS_OF_WEEK[today.weekday()]
    next_day = DAYS_OF_WEEK[(today.weekday() + 1) % 7]
    s1 = add_session(yoga, instructor, room, weekday, "18:00", level_id=level)
    s2 = add_session(pilates, instructor, room, next_day, "09:30")

    people = [
        add_person("Ana Ruiz", "01000000001", tariff_id=monthly, level_id=level),
        add_person("Bruno Diaz", "01000000002", tariff_id=monthly),
        add_person("Carla Sosa", "01000000003", tariff_id=unlimited),
        add_person("Diego Paz", "01000000004", tariff_id=unlimited),
    ]

    enroll_people(s1, people[:3])
    enroll_people(s2, people[1:])
    add_vacation_period(people[1], today, today + timedelta(days=7))
    add_justified_absence(people[3], s2, today - timedelta(days=6))
    record_payment(people[0])
