import asyncio
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from hearth.config import settings
from hearth.db.models import Currency, Expense, ExpenseData, ExpenseStatus, House, Note, User
from hearth.repository import NotFoundError, Repository
from hearth.services import metrics_service
from hearth.services.auth_service import decode_session, encode_session, find_user, login
from hearth.services.currency_service import convert, format_amount, rate_table
from hearth.services.expense_list_service import (
    PAGE_SIZES,
    ExpenseFilter,
    Page,
    ViewMode,
    completed_sorted,
    filter_expenses,
    month_options,
    month_range,
    notes_for_house,
    paginate,
    pending_sorted,
    to_display,
)
from hearth.services.metrics_service import Converter, MetricsWindow
from hearth.services.notification_service import (
    SNOOZE_DELAY,
    Command,
    NotificationCenter,
    Pay,
    Severity,
    Snooze,
    TimerRegistry,
    check_notification_days,
    due_soon_alert,
    due_soon_expenses,
)
from hearth.services.visibility_service import visible_expenses, visible_houses, visible_notes

logger = logging.getLogger(__name__)


class HouseholdSession:
    """Selections, derived views and actions for one signed-in user.

    Everything the dashboard, expense list and metrics screens read is a
    derivation on the repository's graph, so it is recomputed only when one of
    its inputs changes.
    """

    def __init__(
        self,
        repo: Repository,
        clock: Callable[[], datetime] = datetime.now,
        timers: TimerRegistry | None = None,
    ) -> None:
        self.repo = repo
        self.graph = g = repo.graph
        self._clock = clock
        self._tick_task: asyncio.Task | None = None

        self.current_user_id = g.source("current_user_id", None)
        self.selected_house_id = g.source("selected_house_id", None)
        self.display_currency_code = g.source("display_currency_code", None)
        self.expense_filter = g.source("expense_filter", ExpenseFilter())
        self.view_mode = g.source("view_mode", ViewMode.CARD)
        self.current_page = g.source("current_page", 1)
        self.metrics_window = g.source("metrics_window", MetricsWindow.SIX_MONTHS)
        self.now = g.source("now", clock())
        self.snoozes = g.source("snoozes", {})
        self.notifications_enabled = g.source("notifications_enabled", settings.notifications_enabled)
        self.notification_days = g.source("notification_days", settings.notification_days)
        self.is_initialized = g.source("is_initialized", False)
        self.center = NotificationCenter(g, timers)
        self.current_date_display = self._format_date(self.now.peek())

        self._build_derivations()
        self._init_effect = g.effect("initialize_selection", self._initialize_selection)
        self._due_effect = g.effect("due_soon_alerts", self.reconcile_due_alerts)

    # --- Derivations ---

    def _build_derivations(self) -> None:
        g = self.graph
        repo = self.repo

        self.current_user = g.derived(
            "current_user", lambda: find_user(repo.users.get(), self.current_user_id.get())
        )
        self.rates = g.derived("rates", lambda: rate_table(repo.currencies.get()))
        self.visible_houses = g.derived(
            "visible_houses", lambda: visible_houses(repo.houses.get(), self.current_user.get())
        )
        self.visible_expenses = g.derived(
            "visible_expenses", lambda: visible_expenses(repo.expenses.get(), self.current_user.get())
        )
        self.visible_notes = g.derived(
            "visible_notes", lambda: visible_notes(repo.notes.get(), self.current_user.get())
        )
        self.selected_house = g.derived("selected_house", self._selected_house)
        self.display_currency = g.derived("display_currency", self._display_currency)

        self.house_expenses = g.derived("house_expenses", self._house_expenses)
        self.pending_expenses = g.derived("pending_expenses", lambda: pending_sorted(self.house_expenses.get()))
        self.completed_expenses = g.derived(
            "completed_expenses", lambda: completed_sorted(self.house_expenses.get())
        )
        self.notes_for_selected_house = g.derived("notes_for_selected_house", self._house_notes)
        self.pinned_notes = g.derived(
            "pinned_notes", lambda: tuple(n for n in self.notes_for_selected_house.get() if n.is_pinned)
        )

        self.page_size = g.derived("page_size", lambda: PAGE_SIZES[self.view_mode.get()])
        self.filtered_expenses = g.derived("filtered_expenses", self._filtered_expenses)
        self.expense_page = g.derived(
            "expense_page",
            lambda: paginate(self.filtered_expenses.get(), self.current_page.get(), self.page_size.get()),
        )
        self.total_pages = g.derived("total_pages", lambda: self.expense_page.get().total_pages)
        self.month_options = g.derived("month_options", lambda: tuple(month_options(self.now.get().date())))

        self.dashboard = g.derived("dashboard", self._dashboard)
        self.expenses_by_category = g.derived("expenses_by_category", self._expenses_by_category)
        self.houses_with_stats = g.derived("houses_with_stats", self._houses_with_stats)
        self.active_subscriptions = g.derived("active_subscriptions", self._active_subscriptions)

        self.metrics_expenses = g.derived(
            "metrics_expenses",
            lambda: tuple(
                metrics_service.paid_in_window(
                    self.visible_expenses.get(), self.metrics_window.get(), self.now.get()
                )
            ),
        )
        self.spending_trend = g.derived(
            "spending_trend", lambda: self._with_display(metrics_service.monthly_trend, self.metrics_expenses)
        )
        self.category_breakdown = g.derived(
            "category_breakdown", lambda: self._with_display(metrics_service.category_totals, self.metrics_expenses)
        )
        self.monthly_breakdown = g.derived(
            "monthly_breakdown", lambda: self._with_display(metrics_service.monthly_breakdown, self.metrics_expenses)
        )
        self.spending_by_house = g.derived("spending_by_house", self._spending_by_house)
        self.subscription_trend = g.derived("subscription_trend", self._subscription_trend)
        self.has_subscription_data = g.derived(
            "has_subscription_data", lambda: len(self.subscription_trend.get()) > 0
        )

    def _converter(self) -> Converter:
        rates = self.rates.get()
        return lambda amount, from_code, to_code: convert(amount, from_code, to_code, rates)

    def _display_code(self) -> str | None:
        currency = self.display_currency.get()
        return currency.code if currency is not None else None

    def _with_display(self, fn, source) -> tuple:
        display = self._display_code()
        if display is None:
            return ()
        return fn(source.get(), display, self._converter())

    def _selected_house(self) -> House | None:
        house_id = self.selected_house_id.get()
        if house_id is None:
            return None
        for h in self.visible_houses.get():
            if h.id == house_id:
                return h
        return None

    def _display_currency(self) -> Currency | None:
        code = self.display_currency_code.get()
        if code is None:
            return None
        for c in self.repo.currencies.get():
            if c.code == code:
                return c
        return None

    def _house_expenses(self) -> tuple[Expense, ...]:
        house = self.selected_house.get()
        if house is None:
            return ()
        return tuple(e for e in self.visible_expenses.get() if e.house_id == house.id)

    def _house_notes(self) -> tuple[Note, ...]:
        house = self.selected_house.get()
        if house is None:
            return ()
        return notes_for_house(self.visible_notes.get(), house.id)

    def _filtered_expenses(self) -> tuple:
        display = self._display_code()
        if display is None:
            return ()
        filtered = filter_expenses(self.house_expenses.get(), self.expense_filter.get())
        return to_display(filtered, display, self._converter())

    def _dashboard(self) -> metrics_service.DashboardStats:
        display = self._display_code()
        convert_fn = self._converter() if display is not None else None
        return metrics_service.dashboard_stats(self.house_expenses.get(), display, convert_fn, self.now.get())

    def _expenses_by_category(self) -> tuple:
        display = self._display_code()
        if display is None:
            return ()
        return metrics_service.category_totals(self.house_expenses.get(), display, self._converter())

    def _houses_with_stats(self) -> tuple:
        display = self._display_code()
        convert_fn = self._converter() if display is not None else None
        return metrics_service.houses_with_stats(
            self.visible_houses.get(), self.visible_expenses.get(), display, convert_fn
        )

    def _active_subscriptions(self) -> tuple:
        display = self._display_code()
        if display is None:
            return ()
        subs = metrics_service.active_subscriptions(self.visible_expenses.get())
        return to_display(subs, display, self._converter())

    def _spending_by_house(self) -> tuple:
        display = self._display_code()
        if display is None:
            return ()
        return metrics_service.house_totals(
            self.metrics_expenses.get(), self.repo.houses.get(), display, self._converter()
        )

    def _subscription_trend(self) -> tuple:
        display = self._display_code()
        if display is None:
            return ()
        return metrics_service.subscription_trend(
            self.visible_expenses.get(), self.now.get(), display, self._converter()
        )

    # --- Effects ---

    def _initialize_selection(self) -> None:
        if not self.repo.is_loaded.get() or self.current_user.get() is None:
            return
        if self.is_initialized.peek():
            return
        houses = self.visible_houses.get()
        currencies = self.repo.currencies.get()
        codes = [c.code for c in currencies]
        with self.graph.batch():
            if houses:
                first = houses[0]
                self.selected_house_id.set(first.id)
                if first.currency in codes:
                    self.display_currency_code.set(first.currency)
                elif codes:
                    self.display_currency_code.set(codes[0])
            elif codes:
                self.display_currency_code.set(settings.base_currency if settings.base_currency in codes else codes[0])
            self.is_initialized.set(True)
        logger.info(
            "Session initialized",
            extra={"user_id": self.current_user.peek().id, "house_id": self.selected_house_id.peek()},
        )

    def reconcile_due_alerts(self) -> None:
        """Bring the due-soon alerts in line with the visible pending expenses."""
        if not self.notifications_enabled.get():
            self.center.replace_due_alerts(())
            return
        due = due_soon_expenses(
            self.visible_expenses.get(),
            self.now.get(),
            self.notification_days.get(),
            self.snoozes.get(),
        )
        self.center.replace_due_alerts(due_soon_alert(e) for e in due)

    # --- Authentication ---

    def login(self, username: str, password: str) -> bool:
        user = login(self.repo.list_users(), username, password)
        if user is None:
            self.logout()
            return False
        self.current_user_id.set(user.id)
        return True

    def logout(self) -> None:
        with self.graph.batch():
            self.current_user_id.set(None)
            self.is_initialized.set(False)
            self.selected_house_id.set(None)
            self.display_currency_code.set(None)

    def session_token(self) -> str | None:
        user = self.current_user.peek()
        return encode_session(user) if user is not None else None

    def restore_session(self, raw: str | None) -> bool:
        user = find_user(self.repo.list_users(), decode_session(raw))
        if user is None:
            self.logout()
            return False
        self.current_user_id.set(user.id)
        return True

    @property
    def user(self) -> User | None:
        return self.current_user.peek()

    # --- Selections ---

    def select_house(self, house_id: str) -> House:
        for h in self.visible_houses.peek():
            if h.id == house_id:
                self.selected_house_id.set(house_id)
                return h
        raise NotFoundError("house", house_id)

    def set_display_currency(self, code: str) -> Currency:
        currency = self.repo.get_currency(code)
        self.display_currency_code.set(currency.code)
        return currency

    def update_filter(self, **changes) -> ExpenseFilter:
        flt = replace(self.expense_filter.peek(), **changes)
        with self.graph.batch():
            self.expense_filter.set(flt)
            self.current_page.set(1)
        return flt

    def filter_by_month(self, month: str | None) -> ExpenseFilter:
        """Restrict the list to a ``YYYY-MM`` month, or clear the range with None."""
        if month is None:
            return self.update_filter(date_from=None, date_to=None)
        if month not in self.month_options.peek():
            raise ValueError(f"Month {month!r} is not one of the last twelve months")
        year, mon = (int(part) for part in month.split("-"))
        first, last = month_range(year, mon)
        return self.update_filter(date_from=first, date_to=last)

    def reset_filters(self) -> None:
        with self.graph.batch():
            self.expense_filter.set(ExpenseFilter())
            self.current_page.set(1)

    def set_view_mode(self, mode: ViewMode) -> None:
        with self.graph.batch():
            self.view_mode.set(ViewMode(mode))
            self.current_page.set(1)

    def go_to_page(self, page: int) -> Page:
        pages = self.total_pages.peek()
        self.current_page.set(max(1, min(page, pages)))
        return self.expense_page.peek()

    def next_page(self) -> Page:
        return self.go_to_page(self.current_page.peek() + 1)

    def previous_page(self) -> Page:
        return self.go_to_page(self.current_page.peek() - 1)

    def set_metrics_window(self, window: MetricsWindow) -> None:
        self.metrics_window.set(MetricsWindow(window))

    def set_notifications_enabled(self, enabled: bool) -> None:
        self.notifications_enabled.set(enabled)

    def toggle_notifications(self) -> bool:
        enabled = not self.notifications_enabled.peek()
        self.notifications_enabled.set(enabled)
        return enabled

    def set_notification_days(self, days: int) -> None:
        self.notification_days.set(check_notification_days(days))

    # --- Clock ---

    @staticmethod
    def _format_date(now: datetime) -> str:
        return now.strftime("%A, %d %B %Y")

    def refresh_clock(self) -> datetime:
        now = self._clock()
        self.now.set(now)
        self.current_date_display = self._format_date(now)
        return now

    # --- Actions ---

    def add_expense(self, data: ExpenseData) -> Expense:
        house = self.selected_house.peek()
        if house is None:
            raise ValueError("Select a house before adding expenses")
        expense = self.repo.add_expense(data, house.id)
        self.center.add("Expense added.", Severity.SUCCESS)
        return expense

    def add_note(self, title: str, content: str, is_pinned: bool = False) -> Note:
        house = self.selected_house.peek()
        if house is None:
            raise ValueError("Select a house before adding notes")
        author = self.user.username if self.user is not None else "unknown"
        note = self.repo.add_note(house.id, title, content, author, is_pinned)
        self.center.add("Note added.", Severity.SUCCESS)
        return note

    def pay(self, expense_id: str) -> Expense | None:
        expense = self.repo.get_expense(expense_id)
        successor = self.repo.update_expense_status(expense_id, ExpenseStatus.COMPLETED)
        currency = next((c for c in self.repo.list_currencies() if c.code == expense.currency), expense.currency)
        self.center.add(f"Paid {format_amount(expense.amount, currency)}.", Severity.SUCCESS)
        return successor

    def snooze(self, expense_id: str) -> datetime:
        until = self.now.peek() + SNOOZE_DELAY
        self.snoozes.update(lambda current: {**current, expense_id: until})
        self.center.add("Reminder snoozed for one day.", Severity.INFO)
        logger.info("Snoozed until %s", until.isoformat(), extra={"expense_id": expense_id})
        return until

    def handle_action(self, notification_id: str, command: Command) -> None:
        with self.graph.batch():
            self.center.dismiss(notification_id)
            if isinstance(command, Snooze):
                self.snooze(command.expense_id)
            elif isinstance(command, Pay):
                self.pay(command.expense_id)
            else:
                raise TypeError(f"Unknown notification command: {command!r}")

    def delete_house(self, house_id: str) -> bool:
        was_selected = self.selected_house_id.peek() == house_id
        with self.graph.batch():
            deleted = self.repo.delete_house(house_id)
            if deleted and was_selected:
                remaining = self.visible_houses.peek()
                self.selected_house_id.set(remaining[0].id if remaining else None)
        if deleted:
            self.center.add("House deleted.", Severity.SUCCESS)
        return deleted

    def request_delete_category(self, name: str) -> bool:
        if self.repo.is_category_in_use(name):
            self.center.add(f'Category "{name}" is in use and cannot be deleted.', Severity.ERROR)
            return False
        deleted = self.repo.delete_category(name)
        if deleted:
            self.center.add("Category deleted.", Severity.SUCCESS)
        return deleted

    def request_delete_currency(self, code: str) -> bool:
        if self.repo.is_currency_in_use(code):
            self.center.add(f'Currency "{code}" is in use and cannot be deleted.', Severity.ERROR)
            return False
        deleted = self.repo.delete_currency(code)
        if deleted:
            self.center.add("Currency deleted.", Severity.SUCCESS)
        return deleted

    # --- Background activity ---

    async def start(self) -> None:
        if self.center.timers is None:
            self.center.timers = TimerRegistry()
        if self._tick_task is None:
            self._tick_task = asyncio.create_task(self._tick_loop())

    async def stop(self) -> None:
        if self._tick_task is not None:
            self._tick_task.cancel()
            try:
                await self._tick_task
            except asyncio.CancelledError:
                pass
            self._tick_task = None
        if self.center.timers is not None:
            self.center.timers.cancel_all()

    async def _tick_loop(self) -> None:
        while True:
            await asyncio.sleep(settings.refresh_interval_seconds)
            self.refresh_clock()
