import asyncio
from dataclasses import replace
from datetime import datetime, timedelta

import pytest

from hearth.db.models import Expense, ExpenseStatus, Priority
from hearth.graph import Graph
from hearth.services.notification_service import (
    Notification,
    NotificationCenter,
    Pay,
    Severity,
    Snooze,
    TimerRegistry,
    check_notification_days,
    due_alert_id,
    due_soon_alert,
    due_soon_expenses,
    is_snoozed,
    reconcile_due_alerts,
)

NOW = datetime(2024, 7, 13, 10, 30)


def _expense(eid, due, status=ExpenseStatus.PENDING):
    return Expense(
        id=eid,
        house_id="h1",
        description=f"Bill {eid}",
        amount=10.0,
        currency="CUP",
        category="Utilities",
        status=status,
        priority=Priority.HIGH,
        created_at=NOW,
        due_date=due,
        paid_date=NOW if status == ExpenseStatus.COMPLETED else None,
    )


@pytest.mark.parametrize("days", [1, 3, 30])
def test_notification_days_accepted(days):
    assert check_notification_days(days) == days


@pytest.mark.parametrize("days", [0, 31, -2])
def test_notification_days_rejected(days):
    with pytest.raises(ValueError):
        check_notification_days(days)


def test_is_snoozed_until_inclusive():
    until = NOW + timedelta(days=1)
    assert is_snoozed("e1", {"e1": until}, NOW)
    assert is_snoozed("e1", {"e1": until}, until)
    assert not is_snoozed("e1", {"e1": until}, until + timedelta(seconds=1))
    assert not is_snoozed("e2", {"e1": until}, NOW)


def test_due_soon_window():
    expenses = [
        _expense("in", NOW + timedelta(days=2)),
        _expense("edge", NOW + timedelta(days=3)),
        _expense("far", NOW + timedelta(days=3, seconds=1)),
        _expense("overdue", NOW - timedelta(hours=1)),
        _expense("paid", NOW + timedelta(days=1), status=ExpenseStatus.COMPLETED),
        _expense("undated", None),
        _expense("snoozed", NOW + timedelta(days=1)),
    ]
    snoozes = {"snoozed": NOW + timedelta(days=1)}
    assert [e.id for e in due_soon_expenses(expenses, NOW, 3, snoozes)] == ["in", "edge"]


def test_due_soon_alert_actions():
    alert = due_soon_alert(_expense("e5", NOW))
    assert alert.id == due_alert_id("e5") == "due-e5"
    assert alert.persistent
    assert alert.severity == Severity.WARNING
    assert [a.command for a in alert.actions] == [Snooze("e5"), Pay("e5")]


def test_reconcile_is_idempotent():
    other = Notification(id="x", message="Saved", severity=Severity.SUCCESS)
    stale = due_soon_alert(_expense("old", NOW))
    alerts = [due_soon_alert(_expense("a", NOW)), due_soon_alert(_expense("b", NOW))]

    once = reconcile_due_alerts((other, stale), alerts)
    assert [n.id for n in once] == ["x", "due-a", "due-b"]
    assert reconcile_due_alerts(once, alerts) == once


def test_reconcile_keeps_existing_positions():
    alerts = [due_soon_alert(_expense("a", NOW))]
    current = (alerts[0], Notification(id="x", message="Saved", severity=Severity.SUCCESS))
    assert reconcile_due_alerts(current, alerts) == current


def test_reconcile_refreshes_alert_content():
    other = Notification(id="x", message="Saved", severity=Severity.SUCCESS)
    old = due_soon_alert(_expense("a", NOW))
    renamed = due_soon_alert(replace(_expense("a", NOW), description="Water bill"))
    result = reconcile_due_alerts((old, other), [renamed])
    assert result == (renamed, other)
    assert "Water bill" in result[0].message


def test_center_ignores_duplicate_ids():
    center = NotificationCenter(Graph())
    assert center.add("hello", id="same", persistent=True) is not None
    assert center.add("again", id="same", persistent=True) is None
    assert len(center.notifications.peek()) == 1


def test_center_dismiss():
    center = NotificationCenter(Graph())
    n = center.add("hello", persistent=True)
    assert center.dismiss(n.id) is True
    assert center.dismiss(n.id) is False


async def test_transient_notification_auto_dismisses():
    center = NotificationCenter(Graph(), TimerRegistry())
    n = center.add("Saved", Severity.SUCCESS, duration=0.01)
    assert n.id in center.timers
    await asyncio.sleep(0.05)
    assert center.notifications.peek() == ()
    assert len(center.timers) == 0


async def test_persistent_notification_has_no_timer():
    center = NotificationCenter(Graph(), TimerRegistry())
    center.add("Due", id="due-e1", persistent=True)
    assert len(center.timers) == 0


async def test_manual_dismiss_cancels_timer():
    fired = []
    timers = TimerRegistry()
    timers.schedule("k", 0.01, lambda: fired.append("k"))
    assert timers.cancel("k") is True
    await asyncio.sleep(0.03)
    assert fired == []
    assert timers.cancel("k") is False


async def test_reschedule_replaces_timer():
    fired = []
    timers = TimerRegistry()
    timers.schedule("k", 0.01, lambda: fired.append("first"))
    timers.schedule("k", 0.01, lambda: fired.append("second"))
    await asyncio.sleep(0.03)
    assert fired == ["second"]


async def test_cancel_all():
    fired = []
    timers = TimerRegistry()
    timers.schedule("a", 0.01, lambda: fired.append("a"))
    timers.schedule("b", 0.01, lambda: fired.append("b"))
    timers.cancel_all()
    await asyncio.sleep(0.03)
    assert fired == []
    assert len(timers) == 0
