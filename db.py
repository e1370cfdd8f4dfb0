"""
db.py
SQLite helpers + initialization (creates DB/tables, default settings).
"""

from __future__ import annotations

import logging
import os
import sqlite3
from contextlib import contextmanager
from pathlib import Path

logger = logging.getLogger(__name__)

DB_FILE = Path(os.getenv("STUDIO_DB_FILE") or Path(__file__).with_name("studio.db"))
# Seconds a writer waits for another writer to release the database lock
BUSY_TIMEOUT = float(os.getenv("STUDIO_DB_TIMEOUT", "5"))


def _connect() -> sqlite3.Connection:
    conn = sqlite3.connect(DB_FILE, timeout=BUSY_TIMEOUT, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


@contextmanager
def get_conn():
    conn = _connect()
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


@contextmanager
def transaction():
    """
    Write transaction that takes the DB write lock up front (BEGIN IMMEDIATE),
    so checks made inside it still hold when it commits.
    """
    conn = _connect()
    conn.isolation_level = None
    try:
        conn.execute("BEGIN IMMEDIATE")
    except Exception:
        conn.close()
        raise
    try:
        yield conn
        conn.execute("COMMIT")
    except Exception:
        conn.execute("ROLLBACK")
        raise
    finally:
        conn.close()


def execute(sql: str, params: tuple = ()) -> int:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.lastrowid


def executemany(sql: str, seq_of_params: list[tuple]) -> None:
    with get_conn() as conn:
        conn.executemany(sql, seq_of_params)


def fetch_one(sql: str, params: tuple = ()):
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchone()


def fetch_all(sql: str, params: tuple = ()) -> list[sqlite3.Row]:
    with get_conn() as conn:
        cur = conn.execute(sql, params)
        return cur.fetchall()


SCHEMA = [
    """
    CREATE TABLE IF NOT EXISTS tariffs (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        price REAL NOT NULL,
        frequency INTEGER
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS levels (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS activities (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS instructors (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        phone TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS instructor_activities (
        instructor_id INTEGER NOT NULL,
        activity_id INTEGER NOT NULL,
        PRIMARY KEY(instructor_id, activity_id),
        FOREIGN KEY(instructor_id) REFERENCES instructors(id) ON DELETE CASCADE,
        FOREIGN KEY(activity_id) REFERENCES activities(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS spaces (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        capacity INTEGER NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS people (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        phone TEXT NOT NULL,
        tariff_id INTEGER,
        level_id INTEGER,
        join_date TEXT NOT NULL,
        last_payment_date TEXT,
        outstanding_payments INTEGER NOT NULL DEFAULT 0,
        status TEXT NOT NULL DEFAULT 'active' CHECK(status IN ('active','inactive')),
        notes TEXT,
        FOREIGN KEY(tariff_id) REFERENCES tariffs(id),
        FOREIGN KEY(level_id) REFERENCES levels(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vacation_periods (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        person_id INTEGER NOT NULL,
        start_date TEXT NOT NULL,
        end_date TEXT NOT NULL,
        FOREIGN KEY(person_id) REFERENCES people(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS sessions (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        activity_id INTEGER,
        instructor_id INTEGER,
        space_id INTEGER,
        level_id INTEGER,
        day_of_week TEXT NOT NULL,
        time TEXT NOT NULL,
        FOREIGN KEY(activity_id) REFERENCES activities(id),
        FOREIGN KEY(instructor_id) REFERENCES instructors(id),
        FOREIGN KEY(space_id) REFERENCES spaces(id),
        FOREIGN KEY(level_id) REFERENCES levels(id)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS session_people (
        session_id INTEGER NOT NULL,
        person_id INTEGER NOT NULL,
        enrolled_at TEXT NOT NULL,
        PRIMARY KEY(session_id, person_id),
        FOREIGN KEY(session_id) REFERENCES sessions(id) ON DELETE CASCADE,
        FOREIGN KEY(person_id) REFERENCES people(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS waitlist_entries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id INTEGER NOT NULL,
        person_id INTEGER,
        prospect_name TEXT,
        prospect_phone TEXT,
        position INTEGER NOT NULL,
        created_at TEXT NOT NULL,
        CHECK(person_id IS NOT NULL OR prospect_name IS NOT NULL),
        FOREIGN KEY(session_id) REFERENCES sessions(id) ON DELETE CASCADE,
        FOREIGN KEY(person_id) REFERENCES people(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS attendance (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        session_id INTEGER NOT NULL,
        date TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'open' CHECK(status IN ('open','cancelled')),
        UNIQUE(session_id, date),
        FOREIGN KEY(session_id) REFERENCES sessions(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS attendance_marks (
        attendance_id INTEGER NOT NULL,
        person_id INTEGER NOT NULL,
        kind TEXT NOT NULL CHECK(kind IN ('present','absent','justified','one_time','cancel_credit')),
        PRIMARY KEY(attendance_id, person_id, kind),
        FOREIGN KEY(attendance_id) REFERENCES attendance(id) ON DELETE CASCADE,
        FOREIGN KEY(person_id) REFERENCES people(id) ON DELETE CASCADE
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS payments (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        person_id INTEGER NOT NULL,
        amount REAL NOT NULL,
        date TEXT NOT NULL,
        tariff_id INTEGER,
        months INTEGER NOT NULL DEFAULT 1,
        FOREIGN KEY(person_id) REFERENCES people(id) ON DELETE CASCADE
    )
    """,
    # Small settings table (studio name, onboarding flags)
    """
    CREATE TABLE IF NOT EXISTS app_settings (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    )
    """,
]


def _create_tables() -> None:
    with get_conn() as conn:
        for sql in SCHEMA:
            conn.execute(sql)


def get_setting(key: str, default: str | None = None) -> str | None:
    row = fetch_one("SELECT value FROM app_settings WHERE key = ?", (key,))
    if row:
        return str(row["value"])
    return default


def set_setting(key: str, value: str) -> None:
    execute(
        """
        INSERT INTO app_settings(key, value) VALUES(?, ?)
        ON CONFLICT(key) DO UPDATE SET value=excluded.value
        """,
        (key, value),
    )


def init_db() -> None:
    """
    Initialize the database.
    - Create tables
    - Seed the studio name setting on first run
    """
    _create_tables()
    if get_setting("studio_name") is None:
        set_setting("studio_name", "My Studio")
        logger.info("Initialized new studio database at %s", DB_FILE)
