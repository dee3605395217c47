import calendar
from datetime import date
from typing import TypeVar

from hearth.db.models import RecurrenceFrequency

D = TypeVar("D", bound=date)

MONTHS_BY_FREQUENCY: dict[RecurrenceFrequency, int] = {
    RecurrenceFrequency.MONTHLY: 1,
    RecurrenceFrequency.QUARTERLY: 3,
    RecurrenceFrequency.YEARLY: 12,
}


def add_months(current: D, months: int) -> D:
    """Shift ``current`` by whole calendar months, clamping to the target month's last day."""
    index = current.month - 1 + months
    year = current.year + index // 12
    month = index % 12 + 1
    day = min(current.day, calendar.monthrange(year, month)[1])
    return current.replace(year=year, month=month, day=day)


def next_due_date(current: D, frequency: RecurrenceFrequency) -> D:
    return add_months(current, MONTHS_BY_FREQUENCY[RecurrenceFrequency(frequency)])
