from dataclasses import replace
from datetime import datetime

import pytest

from hearth.db.models import (
    Currency,
    ExpenseData,
    ExpenseStatus,
    Recurrence,
    RecurrenceFrequency,
    UserRole,
)
from hearth.repository import DuplicateError, NotFoundError, Repository


def _data(**kw) -> ExpenseData:
    defaults = {"description": "Water", "amount": 250.0, "category": "Utilities"}
    defaults.update(kw)
    return ExpenseData(**defaults)


# --- Expenses ---


def test_add_expense_inherits_house_currency(repo, clock):
    expense = repo.add_expense(_data(), "h2")
    assert expense.currency == "EUR"
    assert expense.created_at == clock.now
    assert expense.status == ExpenseStatus.PENDING
    assert expense.paid_date is None
    assert repo.list_expenses()[-1] == expense


def test_add_completed_expense_stamps_paid_date(repo, clock):
    expense = repo.add_expense(_data(status=ExpenseStatus.COMPLETED), "h1")
    assert expense.paid_date == clock.now


def test_add_pending_expense_drops_paid_date(repo):
    expense = repo.add_expense(_data(paid_date=datetime(2024, 7, 1)), "h1")
    assert expense.paid_date is None


def test_add_expense_unknown_house(repo):
    with pytest.raises(NotFoundError) as exc:
        repo.add_expense(_data(), "nope")
    assert exc.value.kind == "house"


def test_add_expense_unknown_category(repo):
    before = repo.list_expenses()
    with pytest.raises(NotFoundError):
        repo.add_expense(_data(category="Yachts"), "h1")
    assert repo.list_expenses() is before


def test_add_expense_rejects_non_positive_amount(repo):
    with pytest.raises(ValueError):
        repo.add_expense(_data(amount=0), "h1")


def test_complete_recurring_spawns_successor(repo, clock):
    successor = repo.update_expense_status("e2", ExpenseStatus.COMPLETED)

    original = repo.get_expense("e2")
    assert original.status == ExpenseStatus.COMPLETED
    assert original.paid_date == clock()

    assert successor is not None
    assert successor.id != "e2"
    assert successor.status == ExpenseStatus.PENDING
    assert successor.due_date == datetime(2024, 8, 15)
    assert successor.paid_date is None
    assert successor.recurrence == original.recurrence
    assert successor.amount == original.amount
    assert successor.category == original.category
    assert sum(1 for e in repo.list_expenses() if e.description == "Internet subscription") == 2


def test_completing_twice_spawns_once(repo):
    repo.update_expense_status("e2", ExpenseStatus.COMPLETED)
    count = len(repo.list_expenses())
    assert repo.update_expense_status("e2", ExpenseStatus.COMPLETED) is None
    assert len(repo.list_expenses()) == count


def test_no_successor_past_end_date(repo):
    e2 = repo.get_expense("e2")
    repo.update_expense(
        replace(e2, recurrence=Recurrence(RecurrenceFrequency.MONTHLY, end_date=datetime(2024, 8, 1)))
    )
    count = len(repo.list_expenses())
    assert repo.update_expense_status("e2", ExpenseStatus.COMPLETED) is None
    assert len(repo.list_expenses()) == count


def test_successor_on_end_date_is_allowed(repo):
    e2 = repo.get_expense("e2")
    repo.update_expense(
        replace(e2, recurrence=Recurrence(RecurrenceFrequency.MONTHLY, end_date=datetime(2024, 8, 15)))
    )
    assert repo.update_expense_status("e2", ExpenseStatus.COMPLETED) is not None


def test_non_recurring_completion_has_no_successor(repo):
    assert repo.update_expense_status("e3", ExpenseStatus.COMPLETED) is None


def test_reopen_clears_paid_date(repo):
    repo.update_expense_status("e1", ExpenseStatus.PENDING)
    assert repo.get_expense("e1").paid_date is None


def test_update_expense_unknown(repo):
    e1 = repo.get_expense("e1")
    with pytest.raises(NotFoundError):
        repo.update_expense(replace(e1, id="missing"))


def test_delete_expense(repo):
    assert repo.delete_expense("e1") is True
    assert repo.delete_expense("e1") is False
    with pytest.raises(NotFoundError):
        repo.get_expense("e1")


# --- Notes ---


def test_note_lifecycle(repo, clock):
    note = repo.add_note("h2", "Keys", "Under the mat", "admin")
    assert note.created_at == clock.now
    assert not note.is_pinned
    assert repo.toggle_pin_note(note.id).is_pinned
    assert repo.delete_note(note.id)
    with pytest.raises(NotFoundError):
        repo.toggle_pin_note(note.id)


# --- Houses ---


def test_add_house_defaults_image(repo):
    house = repo.add_house("Flat", "1 High St", "USD")
    assert house.id in house.image_url


def test_add_house_unknown_currency(repo):
    with pytest.raises(NotFoundError):
        repo.add_house("Flat", "1 High St", "GBP")


def test_delete_house_cascades(repo):
    seen = []
    repo.graph.effect("watch", lambda: seen.append(len(repo.expenses.get())))
    seen.clear()

    assert repo.delete_house("h1") is True
    assert [h.id for h in repo.list_houses()] == ["h2"]
    assert all(e.house_id == "h2" for e in repo.list_expenses())
    assert all(n.house_id == "h2" for n in repo.list_notes())
    assert repo.get_user("u2").assigned_house_ids == ()
    # One flush for the whole cascade.
    assert seen == [1]


def test_delete_missing_house(repo):
    assert repo.delete_house("nope") is False


# --- Users ---


def test_add_user_duplicate_username(repo):
    with pytest.raises(DuplicateError):
        repo.add_user("ADMIN", "x")


def test_add_user_unknown_house(repo):
    with pytest.raises(NotFoundError):
        repo.add_user("guest", "pw", assigned_house_ids=["h9"])


def test_update_user_keeps_password(repo):
    u2 = repo.get_user("u2")
    updated = repo.update_user(replace(u2, role=UserRole.ADMIN, password=None))
    assert updated.password == "user123"
    assert updated.is_admin


def test_delete_user(repo):
    assert repo.delete_user("u2")
    with pytest.raises(NotFoundError):
        repo.get_user("u2")


# --- Categories ---


def test_add_category_keeps_sorted(repo):
    assert repo.add_category("Garden") is True
    assert repo.add_category("Garden") is False
    cats = repo.list_categories()
    assert list(cats) == sorted(cats)
    with pytest.raises(ValueError):
        repo.add_category("   ")


def test_rename_category_propagates(repo):
    assert repo.update_category("Utilities", "Bills") is True
    assert "Utilities" not in repo.list_categories()
    assert repo.get_expense("e2").category == "Bills"
    assert repo.get_expense("e5").category == "Bills"


def test_rename_category_to_existing(repo):
    assert repo.update_category("Utilities", "Taxes") is False
    assert repo.get_expense("e2").category == "Utilities"


def test_category_in_use(repo):
    assert repo.is_category_in_use("Housing")
    assert not repo.is_category_in_use("Education")


# --- Currencies ---


def test_add_currency_normalizes_code(repo):
    added = repo.add_currency(Currency(code="gbp", name="Pound", symbol="£", rate_to_base=30.0))
    assert added.code == "GBP"
    assert [c.code for c in repo.list_currencies()] == ["CUP", "EUR", "GBP", "USD"]


def test_add_currency_duplicate(repo):
    with pytest.raises(DuplicateError):
        repo.add_currency(Currency(code="EUR", name="Euro", symbol="€", rate_to_base=20.0))


def test_second_base_currency_rejected(repo):
    with pytest.raises(ValueError):
        repo.add_currency(Currency(code="GBP", name="Pound", symbol="£", rate_to_base=1.0))


def test_base_rate_must_stay_one(repo):
    cup = repo.get_currency("CUP")
    with pytest.raises(ValueError):
        repo.update_currency("CUP", replace(cup, rate_to_base=2.0))


def test_update_currency_cannot_change_code(repo):
    eur = repo.get_currency("EUR")
    with pytest.raises(ValueError):
        repo.update_currency("EUR", replace(eur, code="EUX"))


def test_update_currency_rate(repo):
    eur = repo.get_currency("EUR")
    repo.update_currency("EUR", replace(eur, rate_to_base=26.5))
    assert repo.get_currency("EUR").rate_to_base == 26.5


def test_currency_in_use(repo):
    assert repo.is_currency_in_use("EUR")
    assert not repo.is_currency_in_use("USD")


def test_empty_repository_is_not_loaded():
    repo = Repository()
    assert repo.is_loaded.peek() is False
    assert repo.list_houses() == ()
