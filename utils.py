"""
utils.py
Validation, dates, payment status, report frames.
"""

from __future__ import annotations

import re
from datetime import date, timedelta
import pandas as pd

import db
from models import DAYS_OF_WEEK, Person

TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


def parse_iso(d: str | None) -> date | None:
    if not d:
        return None
    return date.fromisoformat(d)


def add_months(start: date, months: int) -> date:
    """
    Add (or subtract) months while keeping day in valid range (e.g., Jan 31 + 1 month => Feb 28/29).
    """
    y = start.year + (start.month - 1 + months) // 12
    m = (start.month - 1 + months) % 12 + 1
    # last day of target month
    if m == 12:
        next_month = date(y + 1, 1, 1)
    else:
        next_month = date(y, m + 1, 1)
    last_day = next_month - timedelta(days=1)
    day = min(start.day, last_day.day)
    return date(y, m, day)


def calculate_next_payment_date(from_date: date, join_date: date | None = None) -> date:
    """
    Next due date one month after `from_date`, keeping the day of month the
    person joined on (clamped to the end of shorter months).
    """
    anchor = join_date or from_date
    target = add_months(from_date, 1)
    next_month = add_months(target.replace(day=1), 1)
    last_day = (next_month - timedelta(days=1)).day
    return target.replace(day=min(anchor.day, last_day))


def payment_status(person: Person, reference: date | None = None) -> tuple[str, int | None]:
    """
    ("pending", None) when nothing was ever paid, ("overdue", days) from the
    due date on, ("up_to_date", None) otherwise.
    """
    reference = reference or date.today()
    due = person.last_payment_date
    if due is None:
        return "pending", None
    if reference >= due:
        return "overdue", (reference - due).days
    return "up_to_date", None


def debt_amount(person: Person, price: float) -> float:
    return float(price) * max(0, person.outstanding_payments)


def validate_person_inputs(name: str, phone: str) -> list[str]:
    errors: list[str] = []
    if not (name or "").strip():
        errors.append("Name is required.")
    if not (phone or "").strip():
        errors.append("Phone is required.")
    elif not re.fullmatch(r"[\d\s+()-]{6,}", phone.strip()):
        errors.append("Phone must contain at least 6 digits.")
    return errors


def validate_session_inputs(day_of_week: str, time: str) -> list[str]:
    errors: list[str] = []
    if day_of_week not in DAYS_OF_WEEK:
        errors.append(f"Day must be one of: {', '.join(DAYS_OF_WEEK)}.")
    if not TIME_RE.match(time or ""):
        errors.append("Time must be HH:MM (24h).")
    return errors


def validate_space_inputs(name: str, capacity) -> list[str]:
    errors: list[str] = []
    if not (name or "").strip():
        errors.append("Name is required.")
    try:
        if int(capacity) < 1:
            errors.append("Capacity must be at least 1.")
    except (TypeError, ValueError):
        errors.append("Capacity must be a whole number.")
    return errors


def validate_tariff_inputs(name: str, price, frequency) -> list[str]:
    errors: list[str] = []
    if not (name or "").strip():
        errors.append("Name is required.")
    try:
        if float(price) < 0:
            errors.append("Price cannot be negative.")
    except (TypeError, ValueError):
        errors.append("Price must be numeric.")
    if frequency not in (None, ""):
        try:
            if int(frequency) < 1:
                errors.append("Weekly frequency must be at least 1.")
        except (TypeError, ValueError):
            errors.append("Weekly frequency must be a whole number.")
    return errors


def validate_vacation_inputs(start: date | None, end: date | None) -> list[str]:
    if start is None or end is None:
        return ["Start and end dates are required."]
    if end < start:
        return ["End date must be on or after start date."]
    return []


def revenue_summary_by_month() -> pd.DataFrame:
    rows = db.fetch_all(
        """
        SELECT strftime('%Y-%m', date) AS month, SUM(amount) AS revenue
        FROM payments
        GROUP BY strftime('%Y-%m', date)
        ORDER BY month DESC
        """
    )
    df = pd.DataFrame([dict(r) for r in rows])
    if df.empty:
        return pd.DataFrame(columns=["month", "revenue"])
    return df


def occupancy_frame(snapshots, labels: dict) -> pd.DataFrame:
    """One row per session snapshot, for the dashboard tables."""
    rows = []
    for snap in snapshots:
        rows.append({
            "session": labels.get(snap.session_id, snap.session_id),
            "occupancy": f"{snap.daily_occupancy}/{snap.capacity}",
            "on vacation": len(snap.vacationing_people),
            "one-time": len(snap.one_time_attendees),
            "free fixed": snap.available_slots.fixed,
            "free temporary": snap.available_slots.temporary,
            "free today": snap.available_slots.total,
            "full today": snap.is_full_today,
            "cancelled": snap.is_cancelled,
        })
    return pd.DataFrame(rows, columns=[
        "session", "occupancy", "on vacation", "one-time",
        "free fixed", "free temporary", "free today", "full today", "cancelled",
    ])
