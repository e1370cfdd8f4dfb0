"""
models.py
Lightweight domain types (people, sessions, attendance, occupancy snapshot).
"""

from __future__ import annotations
from dataclasses import dataclass
from datetime import date

# Index matches date.weekday(): Monday == 0
DAYS_OF_WEEK = (
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
    "Sunday",
)

PERSON_STATUSES = ("active", "inactive")

# Per person, per session, per date
STATUS_FIXED_PRESENT = "fixed-present"
STATUS_FIXED_ABSENT = "fixed-absent"
STATUS_FIXED_JUSTIFIED = "fixed-justified-absent"
STATUS_ONE_TIME = "one-time-present"
STATUS_ON_VACATION = "on-vacation"
STATUS_CANCELLED = "cancelled"


class ValidationError(Exception):
    """A business rule rejected the requested change. The message is shown to staff."""

    def __init__(self, messages):
        if isinstance(messages, str):
            messages = [messages]
        self.messages = list(messages)
        super().__init__("\n".join(self.messages))


@dataclass(frozen=True)
class VacationPeriod:
    id: int | None
    start_date: date
    end_date: date


@dataclass(frozen=True)
class Person:
    id: int | None
    name: str
    phone: str
    tariff_id: int | None = None
    level_id: int | None = None
    join_date: date | None = None
    last_payment_date: date | None = None  # next due date
    outstanding_payments: int = 0
    vacation_periods: tuple[VacationPeriod, ...] = ()
    status: str = "active"
    notes: str | None = None


@dataclass(frozen=True)
class WaitlistProspect:
    """Someone waiting for a slot who is not registered yet."""
    name: str
    phone: str


@dataclass(frozen=True)
class WaitlistEntry:
    id: int | None
    person_id: int | None = None
    prospect: WaitlistProspect | None = None

    @property
    def is_prospect(self) -> bool:
        return self.person_id is None


@dataclass(frozen=True)
class Session:
    id: int | None
    activity_id: int | None
    instructor_id: int | None
    space_id: int | None
    day_of_week: str  # one of DAYS_OF_WEEK
    time: str  # HH:MM
    person_ids: tuple[int, ...] = ()
    waitlist: tuple[WaitlistEntry, ...] = ()
    level_id: int | None = None


@dataclass(frozen=True)
class Space:
    id: int | None
    name: str
    capacity: int


@dataclass(frozen=True)
class AttendanceRecord:
    id: int | None
    session_id: int
    date: str  # YYYY-MM-DD
    present_ids: tuple[int, ...] = ()
    absent_ids: tuple[int, ...] = ()
    justified_absence_ids: tuple[int, ...] = ()
    one_time_attendees: tuple[int, ...] = ()
    # fixed enrollees credited when the class was cancelled for this date
    cancellation_credit_ids: tuple[int, ...] = ()
    cancelled: bool = False


@dataclass(frozen=True)
class Tariff:
    id: int | None
    name: str
    price: float
    frequency: int | None = None  # weekly class limit


@dataclass(frozen=True)
class Level:
    id: int | None
    name: str


@dataclass(frozen=True)
class Activity:
    id: int | None
    name: str


@dataclass(frozen=True)
class Instructor:
    id: int | None
    name: str
    phone: str
    activity_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class Payment:
    id: int | None
    person_id: int
    date: str
    amount: float
    tariff_id: int | None
    months: int = 1


@dataclass(frozen=True)
class AvailableSlots:
    fixed: int
    temporary: int
    total: int


@dataclass(frozen=True)
class OccupancySnapshot:
    session_id: int | None
    date: str
    capacity: int
    active_fixed_people: tuple[Person, ...]
    vacationing_people: tuple[Person, ...]
    one_time_attendees: tuple[Person, ...]
    daily_occupancy: int
    available_slots: AvailableSlots
    is_structurally_full: bool
    is_full_today: bool
    structural_count: int = 0
    is_cancelled: bool = False
