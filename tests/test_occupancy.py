"""
Tests for the daily occupancy resolver and recovery-credit rules.

These run on plain dataclasses, no database involved.
"""

from datetime import date, timedelta

import pytest

import occupancy
from models import (
    STATUS_CANCELLED,
    STATUS_FIXED_ABSENT,
    STATUS_FIXED_JUSTIFIED,
    STATUS_FIXED_PRESENT,
    STATUS_ON_VACATION,
    STATUS_ONE_TIME,
    WaitlistEntry,
    WaitlistProspect,
)
from conftest import MONDAY, make_person, make_record, make_session, make_space


class TestComputeDailyOccupancy:

    def test_vacation_frees_a_temporary_slot(self):
        """capacity=2, A and B fixed, B on vacation: one in the room, one temporary slot."""
        a = make_person(1, "A")
        b = make_person(2, "B", vacations=[(MONDAY, MONDAY)])
        session = make_session(person_ids=[1, 2])

        snap = occupancy.compute_daily_occupancy(session, MONDAY, [a, b], [], make_space(2))

        assert snap.daily_occupancy == 1
        assert snap.available_slots.temporary == 1
        assert snap.available_slots.fixed == 0
        assert snap.available_slots.total == 1
        assert snap.is_structurally_full is True
        assert snap.is_full_today is False
        assert [p.id for p in snap.active_fixed_people] == [1]
        assert [p.id for p in snap.vacationing_people] == [2]

    def test_vacation_bounds_are_inclusive(self):
        start, end = MONDAY - timedelta(days=3), MONDAY
        p = make_person(1, vacations=[(start, end)])
        session = make_session(person_ids=[1])

        on_end = occupancy.compute_daily_occupancy(session, end, [p], [], make_space(5))
        after = occupancy.compute_daily_occupancy(session, end + timedelta(days=7), [p], [], make_space(5))

        assert on_end.daily_occupancy == 0
        assert after.daily_occupancy == 1

    def test_any_of_several_vacations_excludes(self):
        p = make_person(1, vacations=[
            (date(2024, 1, 1), date(2024, 1, 10)),
            (date(2024, 6, 28), date(2024, 7, 5)),
        ])
        assert occupancy.is_on_vacation(p, MONDAY)
        assert not occupancy.is_on_vacation(p, date(2024, 3, 1))

    def test_one_time_attendees_add_only_for_their_date(self):
        people = [make_person(1), make_person(2), make_person(3)]
        session = make_session(person_ids=[1])
        records = [make_record(d=MONDAY, one_time=[2, 3])]

        today = occupancy.compute_daily_occupancy(session, MONDAY, people, records, make_space(3))
        next_week = occupancy.compute_daily_occupancy(
            session, MONDAY + timedelta(days=7), people, records, make_space(3)
        )

        assert today.daily_occupancy == 3
        assert today.is_full_today is True
        assert today.available_slots.total == 0
        assert next_week.daily_occupancy == 1
        assert session.person_ids == (1,)

    def test_one_time_attendees_use_structural_slots_before_vacation_ones(self):
        people = [make_person(1), make_person(2, vacations=[(MONDAY, MONDAY)]), make_person(3)]
        session = make_session(person_ids=[1, 2])
        records = [make_record(one_time=[3])]

        snap = occupancy.compute_daily_occupancy(session, MONDAY, people, records, make_space(3))

        assert snap.daily_occupancy == 2
        assert snap.available_slots.fixed == 1
        assert snap.available_slots.temporary == 1
        assert snap.available_slots.total == 1

    def test_one_time_duplicate_of_fixed_person_is_not_counted_twice(self):
        people = [make_person(1), make_person(2)]
        session = make_session(person_ids=[1])
        records = [make_record(one_time=[1, 2, 2])]

        snap = occupancy.compute_daily_occupancy(session, MONDAY, people, records, make_space(5))

        assert [p.id for p in snap.one_time_attendees] == [2]
        assert snap.daily_occupancy == 2

    def test_ghost_ids_are_dropped(self):
        people = [make_person(1)]
        session = make_session(person_ids=[1, 99])
        records = [make_record(one_time=[42])]

        snap = occupancy.compute_daily_occupancy(session, MONDAY, people, records, make_space(5))

        assert [p.id for p in snap.active_fixed_people] == [1]
        assert snap.one_time_attendees == ()
        assert snap.daily_occupancy == 1
        # structural count still reflects the stored roster
        assert snap.structural_count == 2

    def test_missing_attendance_record_means_nobody_marked(self):
        session = make_session(person_ids=[1])
        snap = occupancy.compute_daily_occupancy(session, MONDAY, [make_person(1)], [], make_space(1))
        assert snap.daily_occupancy == 1
        assert snap.is_full_today is True

    @pytest.mark.parametrize("capacity", [0, -3])
    def test_non_positive_capacity_is_always_full(self, capacity):
        session = make_session(person_ids=[])
        snap = occupancy.compute_daily_occupancy(session, MONDAY, [], [], make_space(capacity))

        assert snap.capacity == 0
        assert snap.is_full_today is True
        assert snap.is_structurally_full is True
        assert snap.available_slots.total == 0
        assert snap.available_slots.fixed == 0

    def test_missing_space_counts_as_zero_capacity(self):
        snap = occupancy.compute_daily_occupancy(make_session(person_ids=[1]), MONDAY, [make_person(1)], [], None)
        assert snap.capacity == 0
        assert snap.is_full_today is True

    def test_same_inputs_same_output(self):
        people = [make_person(1), make_person(2, vacations=[(MONDAY, MONDAY)])]
        session = make_session(person_ids=[1, 2])
        records = [make_record(one_time=[1])]

        first = occupancy.compute_daily_occupancy(session, MONDAY, people, records, make_space(4))
        second = occupancy.compute_daily_occupancy(session, MONDAY, people, records, make_space(4))

        assert first == second

    def test_accepts_iso_string_dates(self):
        session = make_session(person_ids=[1])
        records = [make_record(one_time=[2])]
        people = [make_person(1), make_person(2)]
        from_str = occupancy.compute_daily_occupancy(session, "2024-07-01", people, records, make_space(4))
        assert from_str.date == "2024-07-01"
        assert from_str.daily_occupancy == 2


class TestRecoveryCredits:

    def test_balance_is_global_across_sessions(self):
        records = [
            make_record(session_id=1, justified=[7]),
            make_record(session_id=2, d=MONDAY + timedelta(days=1), justified=[7]),
            make_record(session_id=3, d=MONDAY + timedelta(days=2), one_time=[7]),
        ]
        assert occupancy.recovery_balance(7, records) == 1
        assert occupancy.recovery_balances([make_person(7)], records) == {7: 1}

    def test_eligible_people_sorted_by_name(self):
        people = [make_person(1, "zoe"), make_person(2, "Ana"), make_person(3, "Luis")]
        records = [make_record(justified=[1, 2]), make_record(session_id=2, justified=[3], one_time=[3])]

        eligible = occupancy.eligible_for_recovery(people, records)

        assert [p.name for p in eligible] == ["Ana", "zoe"]

    def test_one_credit_allows_exactly_one_booking(self):
        people = [make_person(1), make_person(5)]
        session = make_session(sid=2, person_ids=[1])
        earned = [make_record(session_id=9, d=MONDAY - timedelta(days=7), justified=[5])]

        assert occupancy.check_one_time_booking(
            session, MONDAY, 5, people, earned, make_space(3), today=MONDAY
        ) == []

        booked = earned + [make_record(session_id=2, d=MONDAY, one_time=[5])]
        errors = occupancy.check_one_time_booking(
            session, MONDAY + timedelta(days=7), 5, people, booked, make_space(3), today=MONDAY
        )
        assert occupancy.recovery_balance(5, booked) == 0
        assert any("no recovery credits" in e for e in errors)

    def test_booking_rejects_wrong_weekday_and_past_dates(self):
        people = [make_person(5)]
        records = [make_record(session_id=9, justified=[5])]
        session = make_session(sid=2, day="Monday")

        wrong_day = occupancy.check_one_time_booking(
            session, MONDAY + timedelta(days=1), 5, people, records, make_space(3), today=MONDAY
        )
        past = occupancy.check_one_time_booking(
            session, MONDAY - timedelta(days=7), 5, people, records, make_space(3), today=MONDAY
        )

        assert any("not a Monday" in e for e in wrong_day)
        assert any("past" in e for e in past)

    def test_booking_rejected_when_full_or_already_fixed(self):
        people = [make_person(1), make_person(5)]
        records = [make_record(session_id=9, d=MONDAY - timedelta(days=7), justified=[1, 5])]
        session = make_session(sid=2, person_ids=[1])

        full = occupancy.check_one_time_booking(session, MONDAY, 5, people, records, make_space(1), today=MONDAY)
        fixed = occupancy.check_one_time_booking(session, MONDAY, 1, people, records, make_space(5), today=MONDAY)

        assert full == ["No slots available for this date."]
        assert any("already attends" in e for e in fixed)

    def test_booking_into_a_vacation_slot(self):
        people = [make_person(1, vacations=[(MONDAY, MONDAY)]), make_person(5)]
        records = [make_record(session_id=9, d=MONDAY - timedelta(days=7), justified=[5])]
        session = make_session(sid=2, person_ids=[1])

        assert occupancy.check_one_time_booking(
            session, MONDAY, 5, people, records, make_space(1), today=MONDAY
        ) == []

    def test_unknown_person(self):
        errors = occupancy.check_one_time_booking(
            make_session(), MONDAY, 404, [], [], make_space(3), today=MONDAY
        )
        assert errors == ["Person not found."]


class TestAttendanceStatus:

    def setup_method(self):
        self.people = [make_person(1), make_person(2), make_person(3), make_person(4, vacations=[(MONDAY, MONDAY)])]
        self.session = make_session(person_ids=[1, 2, 3, 4])
        self.records = [make_record(absent=[2], justified=[3], one_time=[9])]

    def test_fixed_people_are_present_by_default(self):
        assert occupancy.attendance_status(self.session, MONDAY, 1, self.people, []) == STATUS_FIXED_PRESENT
        assert occupancy.attendance_status(self.session, MONDAY, 1, self.people, self.records) == STATUS_FIXED_PRESENT

    def test_recorded_statuses(self):
        status = lambda pid: occupancy.attendance_status(self.session, MONDAY, pid, self.people, self.records)
        assert status(2) == STATUS_FIXED_ABSENT
        assert status(3) == STATUS_FIXED_JUSTIFIED
        assert status(4) == STATUS_ON_VACATION
        assert status(9) == STATUS_ONE_TIME
        assert status(10) is None


class TestWaitlistOpportunities:

    def test_only_sessions_with_free_fixed_slots_and_waiters(self):
        people = [make_person(1), make_person(2)]
        waitlist = (
            WaitlistEntry(id=1, person_id=2),
            WaitlistEntry(id=2, person_id=77),
            WaitlistEntry(id=3, prospect=WaitlistProspect("New One", "0123456789")),
        )
        open_session = make_session(sid=1, person_ids=[1], waitlist=waitlist)
        full_session = make_session(sid=2, person_ids=[1, 2], space_id=2, waitlist=waitlist)
        nobody_waiting = make_session(sid=3, person_ids=[])

        result = occupancy.waitlist_opportunities(
            [open_session, full_session, nobody_waiting],
            people,
            [make_space(2, sid=1), make_space(2, sid=2)],
        )

        assert len(result) == 1
        assert result[0]["session"].id == 1
        assert result[0]["free_slots"] == 1
        assert [e.id for e, _ in result[0]["entries"]] == [1, 3]
        assert result[0]["entries"][0][1].id == 2
        assert result[0]["entries"][1][1] is None


class TestCancelledDates:

    def test_snapshot_flags_only_the_cancelled_date(self):
        session = make_session(person_ids=[1])
        records = [make_record(cancelled=True, credited=[1])]
        people = [make_person(1)]

        cancelled = occupancy.compute_daily_occupancy(session, MONDAY, people, records, make_space(3))
        next_week = occupancy.compute_daily_occupancy(
            session, MONDAY + timedelta(days=7), people, records, make_space(3)
        )

        assert cancelled.is_cancelled is True
        assert next_week.is_cancelled is False

    def test_cancellation_credits_count_towards_the_balance(self):
        records = [
            make_record(cancelled=True, credited=[1, 2]),
            make_record(session_id=2, d=MONDAY + timedelta(days=1), one_time=[2]),
        ]
        assert occupancy.recovery_balances([make_person(1), make_person(2)], records) == {1: 1, 2: 0}
        assert occupancy.recovery_balance(1, records) == 1

    def test_no_booking_and_cancelled_status_on_a_cancelled_date(self):
        people = [make_person(1), make_person(5)]
        session = make_session(sid=2, person_ids=[1])
        records = [
            make_record(session_id=9, d=MONDAY - timedelta(days=7), justified=[5]),
            make_record(session_id=2, d=MONDAY, cancelled=True, credited=[1]),
        ]

        errors = occupancy.check_one_time_booking(
            session, MONDAY, 5, people, records, make_space(5), today=MONDAY
        )

        assert errors == ["The class is cancelled on 2024-07-01."]
        assert occupancy.attendance_status(session, MONDAY, 1, people, records) == STATUS_CANCELLED


def test_tariff_frequency_limit():
    from models import Tariff

    assert not occupancy.exceeds_tariff_frequency(None, 10)
    assert not occupancy.exceeds_tariff_frequency(Tariff(1, "Free", 100.0), 10)
    assert not occupancy.exceeds_tariff_frequency(Tariff(1, "2x", 100.0, frequency=2), 2)
    assert occupancy.exceeds_tariff_frequency(Tariff(1, "2x", 100.0, frequency=2), 3)
