import calendar
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import StrEnum

from hearth.db.models import Expense, ExpenseStatus, Note


class ViewMode(StrEnum):
    CARD = "card"
    LIST = "list"


PAGE_SIZES: dict[ViewMode, int] = {ViewMode.CARD: 9, ViewMode.LIST: 10}


@dataclass(frozen=True, slots=True)
class ExpenseFilter:
    status: ExpenseStatus | None = None
    category: str | None = None
    date_from: date | None = None
    date_to: date | None = None


@dataclass(frozen=True, slots=True)
class DisplayExpense:
    expense: Expense
    display_amount: float
    display_currency: str


@dataclass(frozen=True, slots=True)
class Page:
    items: tuple
    page: int
    page_size: int
    total: int
    total_pages: int

    @property
    def summary(self) -> str:
        if self.total == 0:
            return "Showing 0 of 0"
        start = (self.page - 1) * self.page_size + 1
        end = min(self.page * self.page_size, self.total)
        return f"Showing {start} - {end} of {self.total}"


def start_of_day(d: date) -> datetime:
    return datetime.combine(d, time.min)


def end_of_day(d: date) -> datetime:
    return datetime.combine(d, time.max)


def month_range(year: int, month: int) -> tuple[date, date]:
    """First and last calendar day of a month, for the month filter shortcut."""
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def month_options(today: date, count: int = 12) -> list[str]:
    """``YYYY-MM`` keys for the current month and the ``count - 1`` before it."""
    options = []
    year, month = today.year, today.month
    for _ in range(count):
        options.append(f"{year:04d}-{month:02d}")
        month -= 1
        if month == 0:
            month = 12
            year -= 1
    return options


def pending_sorted(expenses: Iterable[Expense]) -> tuple[Expense, ...]:
    pending = [e for e in expenses if e.status == ExpenseStatus.PENDING]
    pending.sort(key=lambda e: (e.due_date is None, e.due_date or datetime.min))
    return tuple(pending)


def completed_sorted(expenses: Iterable[Expense]) -> tuple[Expense, ...]:
    completed = [e for e in expenses if e.status == ExpenseStatus.COMPLETED]
    completed.sort(key=lambda e: e.paid_date or datetime.min, reverse=True)
    return tuple(completed)


def filter_expenses(expenses: Iterable[Expense], flt: ExpenseFilter) -> tuple[Expense, ...]:
    """Apply status, category and inclusive date-range filters, newest first.

    The date compared is the paid date for completed expenses and the due date
    otherwise; items without that date drop out once a range is set.
    """
    result = list(expenses)
    if flt.status is not None:
        result = [e for e in result if e.status == flt.status]
    if flt.category is not None:
        result = [e for e in result if e.category == flt.category]

    lower = start_of_day(flt.date_from) if flt.date_from else None
    upper = end_of_day(flt.date_to) if flt.date_to else None
    if lower or upper:
        kept = []
        for e in result:
            when = e.relevant_date
            if when is None:
                continue
            if lower and when < lower:
                continue
            if upper and when > upper:
                continue
            kept.append(e)
        result = kept

    result.sort(key=lambda e: e.relevant_date or datetime.min, reverse=True)
    return tuple(result)


def to_display(
    expenses: Iterable[Expense],
    display_currency: str,
    convert: Callable[[float, str, str], float],
) -> tuple[DisplayExpense, ...]:
    return tuple(
        DisplayExpense(
            expense=e,
            display_amount=convert(e.amount, e.currency, display_currency),
            display_currency=display_currency,
        )
        for e in expenses
    )


def total_pages(total: int, page_size: int) -> int:
    if total == 0:
        return 1
    return math.ceil(total / page_size)


def paginate(items: tuple, page: int, page_size: int) -> Page:
    pages = total_pages(len(items), page_size)
    page = max(1, min(page, pages))
    start = (page - 1) * page_size
    return Page(
        items=items[start : start + page_size],
        page=page,
        page_size=page_size,
        total=len(items),
        total_pages=pages,
    )


def notes_for_house(notes: Iterable[Note], house_id: str) -> tuple[Note, ...]:
    """Pinned notes first, then newest first."""
    selected = [n for n in notes if n.house_id == house_id]
    selected.sort(key=lambda n: n.created_at, reverse=True)
    selected.sort(key=lambda n: not n.is_pinned)
    return tuple(selected)
