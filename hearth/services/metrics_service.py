from collections import Counter
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import StrEnum

from hearth.db.models import Expense, ExpenseStatus, House
from hearth.services.expense_list_service import pending_sorted
from hearth.services.recurrence_service import add_months

Converter = Callable[[float, str, str], float]

UNKNOWN_HOUSE = "Unknown"
DUE_SOON_DAYS = 7


class MetricsWindow(StrEnum):
    SIX_MONTHS = "6m"
    ONE_YEAR = "1y"
    ALL = "all"


WINDOW_MONTHS: dict[MetricsWindow, int] = {
    MetricsWindow.SIX_MONTHS: 6,
    MetricsWindow.ONE_YEAR: 12,
}


@dataclass(frozen=True, slots=True)
class Total:
    key: str
    total: float


@dataclass(frozen=True, slots=True)
class MonthTotal:
    month: date
    total: float


@dataclass(frozen=True, slots=True)
class MonthlyBreakdownRow:
    month: date
    total: float
    count: int
    top_category: str

    @property
    def label(self) -> str:
        return self.month.strftime("%B %Y")


@dataclass(frozen=True, slots=True)
class HouseStats:
    house: House
    pending_count: int
    pending_amount: float


@dataclass(frozen=True, slots=True)
class DashboardStats:
    total_pending: float = 0.0
    pending_count: int = 0
    paid_this_month: float = 0.0
    total_this_month: float = 0.0
    next_due_date: datetime | None = None
    due_this_week: int = 0


def month_start(d: date) -> date:
    return date(d.year, d.month, 1)


def window_start(now: datetime, window: MetricsWindow) -> datetime | None:
    """First day of the month ``N`` months before ``now``'s month; None for ALL."""
    months = WINDOW_MONTHS.get(MetricsWindow(window))
    if months is None:
        return None
    return datetime.combine(add_months(month_start(now), -months), time.min)


def paid_expenses(expenses: Iterable[Expense]) -> list[Expense]:
    return [e for e in expenses if e.status == ExpenseStatus.COMPLETED and e.paid_date is not None]


def paid_in_window(expenses: Iterable[Expense], window: MetricsWindow, now: datetime) -> list[Expense]:
    paid = paid_expenses(expenses)
    start = window_start(now, window)
    if start is None:
        return paid
    return [e for e in paid if e.paid_date >= start]


def _sum(expenses: Iterable[Expense], display: str, convert: Converter) -> float:
    return sum((convert(e.amount, e.currency, display) for e in expenses), 0.0)


def totals_by(
    expenses: Iterable[Expense],
    key: Callable[[Expense], str],
    display: str,
    convert: Converter,
) -> tuple[Total, ...]:
    """Sum converted amounts per key, largest first; equal totals keep first-seen order."""
    sums: dict[str, float] = {}
    for e in expenses:
        k = key(e)
        sums[k] = sums.get(k, 0.0) + convert(e.amount, e.currency, display)
    ranked = sorted(sums.items(), key=lambda kv: kv[1], reverse=True)
    return tuple(Total(key=k, total=v) for k, v in ranked)


def category_totals(expenses: Iterable[Expense], display: str, convert: Converter) -> tuple[Total, ...]:
    return totals_by(expenses, lambda e: e.category, display, convert)


def house_totals(
    expenses: Iterable[Expense],
    houses: Iterable[House],
    display: str,
    convert: Converter,
) -> tuple[Total, ...]:
    names = {h.id: h.name for h in houses}
    return totals_by(expenses, lambda e: names.get(e.house_id, UNKNOWN_HOUSE), display, convert)


def _group_by_month(expenses: Iterable[Expense]) -> dict[date, list[Expense]]:
    groups: dict[date, list[Expense]] = {}
    for e in paid_expenses(expenses):
        groups.setdefault(month_start(e.paid_date), []).append(e)
    return groups


def monthly_trend(
    expenses: Iterable[Expense],
    display: str,
    convert: Converter,
    recurring_only: bool = False,
) -> tuple[MonthTotal, ...]:
    if recurring_only:
        expenses = [e for e in expenses if e.is_recurring]
    groups = _group_by_month(expenses)
    return tuple(MonthTotal(month=m, total=_sum(groups[m], display, convert)) for m in sorted(groups))


def subscription_trend(
    expenses: Iterable[Expense],
    now: datetime,
    display: str,
    convert: Converter,
) -> tuple[MonthTotal, ...]:
    this_year = [e for e in paid_expenses(expenses) if e.is_recurring and e.paid_date.year == now.year]
    return monthly_trend(this_year, display, convert)


def top_category(expenses: Iterable[Expense]) -> str:
    """Category with the most items; ties go to the alphabetically first name."""
    counts = Counter(e.category for e in expenses)
    if not counts:
        return "N/A"
    return min(counts.items(), key=lambda kv: (-kv[1], kv[0]))[0]


def monthly_breakdown(
    expenses: Iterable[Expense],
    display: str,
    convert: Converter,
) -> tuple[MonthlyBreakdownRow, ...]:
    groups = _group_by_month(expenses)
    return tuple(
        MonthlyBreakdownRow(
            month=m,
            total=_sum(groups[m], display, convert),
            count=len(groups[m]),
            top_category=top_category(groups[m]),
        )
        for m in sorted(groups, reverse=True)
    )


def _in_month(when: datetime | None, now: datetime) -> bool:
    return when is not None and when.year == now.year and when.month == now.month


def dashboard_stats(
    house_expenses: Iterable[Expense],
    display: str | None,
    convert: Converter,
    now: datetime,
) -> DashboardStats:
    house_expenses = list(house_expenses)
    pending = pending_sorted(house_expenses)
    today = datetime.combine(now.date(), time.min)
    week_end = now + timedelta(days=DUE_SOON_DAYS)
    due_this_week = sum(1 for e in pending if e.due_date is not None and today <= e.due_date <= week_end)
    next_due = pending[0].due_date if pending else None

    if display is None:
        return DashboardStats(pending_count=len(pending), next_due_date=next_due, due_this_week=due_this_week)

    paid_this_month = [e for e in paid_expenses(house_expenses) if _in_month(e.paid_date, now)]
    in_month = [e for e in house_expenses if _in_month(e.relevant_date, now)]
    return DashboardStats(
        total_pending=_sum(pending, display, convert),
        pending_count=len(pending),
        paid_this_month=_sum(paid_this_month, display, convert),
        total_this_month=_sum(in_month, display, convert),
        next_due_date=next_due,
        due_this_week=due_this_week,
    )


def houses_with_stats(
    houses: Iterable[House],
    expenses: Iterable[Expense],
    display: str | None,
    convert: Converter,
) -> tuple[HouseStats, ...]:
    pending_by_house: dict[str, list[Expense]] = {}
    for e in expenses:
        if e.status == ExpenseStatus.PENDING:
            pending_by_house.setdefault(e.house_id, []).append(e)
    stats = []
    for h in houses:
        pending = pending_by_house.get(h.id, [])
        if display is None:
            stats.append(HouseStats(house=h, pending_count=0, pending_amount=0.0))
        else:
            stats.append(HouseStats(house=h, pending_count=len(pending), pending_amount=_sum(pending, display, convert)))
    return tuple(stats)


def active_subscriptions(expenses: Iterable[Expense]) -> tuple[Expense, ...]:
    return pending_sorted(e for e in expenses if e.is_recurring)
