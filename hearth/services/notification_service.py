import asyncio
import logging
import uuid
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import StrEnum

from hearth.config import settings
from hearth.db.models import Expense, ExpenseStatus
from hearth.graph import Graph

logger = logging.getLogger(__name__)

DUE_PREFIX = "due-"
SNOOZE_DELAY = timedelta(days=1)
MIN_NOTIFICATION_DAYS = 1
MAX_NOTIFICATION_DAYS = 30


class Severity(StrEnum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"
    WARNING = "warning"


@dataclass(frozen=True, slots=True)
class Snooze:
    expense_id: str


@dataclass(frozen=True, slots=True)
class Pay:
    expense_id: str


Command = Snooze | Pay


@dataclass(frozen=True, slots=True)
class Action:
    label: str
    command: Command


@dataclass(frozen=True, slots=True)
class Notification:
    id: str
    message: str
    severity: Severity
    persistent: bool = False
    duration: float | None = None
    actions: tuple[Action, ...] = ()


def due_alert_id(expense_id: str) -> str:
    return f"{DUE_PREFIX}{expense_id}"


def check_notification_days(days: int) -> int:
    if not MIN_NOTIFICATION_DAYS <= days <= MAX_NOTIFICATION_DAYS:
        raise ValueError(
            f"Notification window must be between {MIN_NOTIFICATION_DAYS} and {MAX_NOTIFICATION_DAYS} days"
        )
    return days


def is_snoozed(expense_id: str, snoozes: Mapping[str, datetime], now: datetime) -> bool:
    until = snoozes.get(expense_id)
    return until is not None and now <= until


def due_soon_expenses(
    expenses: Iterable[Expense],
    now: datetime,
    days: int,
    snoozes: Mapping[str, datetime],
) -> tuple[Expense, ...]:
    limit = now + timedelta(days=days)
    return tuple(
        e
        for e in expenses
        if e.status == ExpenseStatus.PENDING
        and e.due_date is not None
        and now <= e.due_date <= limit
        and not is_snoozed(e.id, snoozes, now)
    )


def due_soon_alert(expense: Expense) -> Notification:
    return Notification(
        id=due_alert_id(expense.id),
        message=f'Expense "{expense.description}" is due soon.',
        severity=Severity.WARNING,
        persistent=True,
        actions=(
            Action(label="Snooze", command=Snooze(expense.id)),
            Action(label="Pay", command=Pay(expense.id)),
        ),
    )


def reconcile_due_alerts(
    current: tuple[Notification, ...],
    alerts: Iterable[Notification],
) -> tuple[Notification, ...]:
    """Swap the due-soon alerts in ``current`` for ``alerts``, leaving other notifications alone.

    Alerts already on screen keep their position but take the fresh content;
    new ones are appended.
    """
    wanted = {a.id: a for a in alerts}
    kept = tuple(
        wanted.get(n.id, n) for n in current if not n.id.startswith(DUE_PREFIX) or n.id in wanted
    )
    present = {n.id for n in kept}
    return kept + tuple(a for a in wanted.values() if a.id not in present)


class TimerRegistry:
    """Owns cancellable delayed callbacks, one per key."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._handles: dict[str, asyncio.TimerHandle] = {}

    def __len__(self) -> int:
        return len(self._handles)

    def __contains__(self, key: str) -> bool:
        return key in self._handles

    def schedule(self, key: str, delay: float, callback: Callable[[], None]) -> None:
        self.cancel(key)
        loop = self._loop or asyncio.get_running_loop()
        self._handles[key] = loop.call_later(delay, self._fire, key, callback)

    def cancel(self, key: str) -> bool:
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def _fire(self, key: str, callback: Callable[[], None]) -> None:
        self._handles.pop(key, None)
        callback()


class NotificationCenter:
    def __init__(self, graph: Graph, timers: TimerRegistry | None = None) -> None:
        self.notifications = graph.source("notifications", ())
        self.timers = timers

    def get(self, notification_id: str) -> Notification | None:
        for n in self.notifications.peek():
            if n.id == notification_id:
                return n
        return None

    def add(
        self,
        message: str,
        severity: Severity = Severity.INFO,
        *,
        id: str | None = None,
        persistent: bool = False,
        duration: float | None = None,
        actions: tuple[Action, ...] = (),
    ) -> Notification | None:
        """Show a notification. Returns None when one with the same id is already shown."""
        notification_id = id or str(uuid.uuid4())
        if self.get(notification_id) is not None:
            return None
        notification = Notification(
            id=notification_id,
            message=message,
            severity=Severity(severity),
            persistent=persistent,
            duration=duration,
            actions=actions,
        )
        self.notifications.update(lambda current: (*current, notification))
        if not persistent:
            self._schedule_dismiss(notification)
        return notification

    def dismiss(self, notification_id: str) -> bool:
        if self.timers is not None:
            self.timers.cancel(notification_id)
        before = self.notifications.peek()
        return self.notifications.set(tuple(n for n in before if n.id != notification_id))

    def replace_due_alerts(self, alerts: Iterable[Notification]) -> bool:
        return self.notifications.update(lambda current: reconcile_due_alerts(current, alerts))

    def _schedule_dismiss(self, notification: Notification) -> None:
        if self.timers is None:
            return
        delay = notification.duration or settings.notification_duration_seconds
        self.timers.schedule(notification.id, delay, lambda: self.dismiss(notification.id))
