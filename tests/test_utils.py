from datetime import date

import pytest

import utils
from models import Person


@pytest.mark.parametrize(
    "start, months, expected",
    [
        (date(2024, 1, 31), 1, date(2024, 2, 29)),
        (date(2023, 1, 31), 1, date(2023, 2, 28)),
        (date(2024, 12, 15), 1, date(2025, 1, 15)),
        (date(2024, 3, 31), -1, date(2024, 2, 29)),
        (date(2024, 1, 10), -1, date(2023, 12, 10)),
    ],
)
def test_add_months(start, months, expected):
    assert utils.add_months(start, months) == expected


def test_next_payment_keeps_join_day():
    join = date(2024, 1, 31)
    feb = utils.calculate_next_payment_date(join, join)
    mar = utils.calculate_next_payment_date(feb, join)
    apr = utils.calculate_next_payment_date(mar, join)
    assert (feb, mar, apr) == (date(2024, 2, 29), date(2024, 3, 31), date(2024, 4, 30))


def test_payment_status():
    pending = Person(id=1, name="A", phone="0100000001")
    due = Person(id=2, name="B", phone="0100000002", last_payment_date=date(2024, 7, 1))

    assert utils.payment_status(pending, date(2024, 7, 1)) == ("pending", None)
    assert utils.payment_status(due, date(2024, 6, 30)) == ("up_to_date", None)
    assert utils.payment_status(due, date(2024, 7, 1)) == ("overdue", 0)
    assert utils.payment_status(due, date(2024, 7, 11)) == ("overdue", 10)


def test_debt_amount():
    p = Person(id=1, name="A", phone="0100000001", outstanding_payments=3)
    assert utils.debt_amount(p, 250) == 750.0


def test_validators():
    assert utils.validate_person_inputs("Ana", "011 4444-5555") == []
    assert utils.validate_person_inputs(" ", "") == ["Name is required.", "Phone is required."]
    assert utils.validate_session_inputs("Monday", "18:30") == []
    assert len(utils.validate_session_inputs("Funday", "25:00")) == 2
    assert utils.validate_space_inputs("Room", 0) == ["Capacity must be at least 1."]
    assert utils.validate_tariff_inputs("Plan", "abc", "x") == [
        "Price must be numeric.",
        "Weekly frequency must be a whole number.",
    ]
    assert utils.validate_vacation_inputs(date(2024, 7, 2), date(2024, 7, 1))


def test_revenue_summary_by_month(temp_db):
    import db

    assert list(utils.revenue_summary_by_month().columns) == ["month", "revenue"]
    pid = db.execute(
        "INSERT INTO people(name, phone, join_date) VALUES(?,?,?)", ("A", "0100000001", "2024-01-01")
    )
    db.executemany(
        "INSERT INTO payments(person_id, amount, date) VALUES(?,?,?)",
        [(pid, 100.0, "2024-06-05"), (pid, 50.0, "2024-06-20"), (pid, 80.0, "2024-07-01")],
    )
    df = utils.revenue_summary_by_month()
    assert df.to_dict("records") == [
        {"month": "2024-07", "revenue": 80.0},
        {"month": "2024-06", "revenue": 150.0},
    ]
