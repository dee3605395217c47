from datetime import date, datetime

import pytest

from hearth.db.models import RecurrenceFrequency
from hearth.services.recurrence_service import add_months, next_due_date


@pytest.mark.parametrize(
    "current, frequency, expected",
    [
        (date(2024, 1, 31), RecurrenceFrequency.MONTHLY, date(2024, 2, 29)),
        (date(2023, 1, 31), RecurrenceFrequency.MONTHLY, date(2023, 2, 28)),
        (date(2024, 2, 29), RecurrenceFrequency.YEARLY, date(2025, 2, 28)),
        (date(2024, 2, 29), RecurrenceFrequency.MONTHLY, date(2024, 3, 29)),
        (date(2024, 7, 15), RecurrenceFrequency.MONTHLY, date(2024, 8, 15)),
        (date(2024, 11, 30), RecurrenceFrequency.QUARTERLY, date(2025, 2, 28)),
        (date(2024, 12, 31), RecurrenceFrequency.MONTHLY, date(2025, 1, 31)),
        (date(2023, 5, 31), RecurrenceFrequency.QUARTERLY, date(2023, 8, 31)),
    ],
)
def test_next_due_date(current, frequency, expected):
    assert next_due_date(current, frequency) == expected


def test_keeps_time_of_day():
    assert next_due_date(datetime(2024, 1, 31, 9, 15), RecurrenceFrequency.MONTHLY) == datetime(2024, 2, 29, 9, 15)


def test_accepts_string_frequency():
    assert next_due_date(date(2024, 3, 31), "quarterly") == date(2024, 6, 30)


def test_add_months_backwards():
    assert add_months(date(2024, 3, 31), -1) == date(2024, 2, 29)
    assert add_months(date(2024, 2, 1), -6) == date(2023, 8, 1)
