import logging
import uuid
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime

from hearth.config import settings
from hearth.db.models import (
    Currency,
    Expense,
    ExpenseData,
    ExpenseStatus,
    House,
    Note,
    User,
    UserRole,
)
from hearth.graph import Graph
from hearth.services.currency_service import find_base_currency, validate_currency
from hearth.services.recurrence_service import next_due_date

logger = logging.getLogger(__name__)


class NotFoundError(LookupError):
    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} '{key}' not found")


class DuplicateError(ValueError):
    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} '{key}' already exists")


def _new_id() -> str:
    return str(uuid.uuid4())


def _stamp_paid_date(expense: Expense, now: datetime) -> Expense:
    if expense.status == ExpenseStatus.COMPLETED:
        if expense.paid_date is None:
            return replace(expense, paid_date=now)
        return expense
    if expense.paid_date is not None:
        return replace(expense, paid_date=None)
    return expense


class Repository:
    """Canonical household collections.

    Each collection lives in a graph source as an immutable tuple, so every
    mutation swaps in a new snapshot that downstream derivations can see.
    """

    def __init__(
        self,
        graph: Graph | None = None,
        clock: Callable[[], datetime] = datetime.now,
        id_factory: Callable[[], str] = _new_id,
    ) -> None:
        self.graph = graph or Graph()
        self.clock = clock
        self._new_id = id_factory
        g = self.graph
        self.houses = g.source("houses", ())
        self.expenses = g.source("expenses", ())
        self.notes = g.source("notes", ())
        self.categories = g.source("categories", ())
        self.currencies = g.source("currencies", ())
        self.users = g.source("users", ())
        self.is_loaded = g.source("is_loaded", False)

    # --- Snapshots ---

    def list_houses(self) -> tuple[House, ...]:
        return self.houses.peek()

    def list_expenses(self) -> tuple[Expense, ...]:
        return self.expenses.peek()

    def list_notes(self) -> tuple[Note, ...]:
        return self.notes.peek()

    def list_categories(self) -> tuple[str, ...]:
        return self.categories.peek()

    def list_currencies(self) -> tuple[Currency, ...]:
        return self.currencies.peek()

    def list_users(self) -> tuple[User, ...]:
        return self.users.peek()

    def replace_all(
        self,
        *,
        houses: Iterable[House],
        expenses: Iterable[Expense],
        notes: Iterable[Note],
        categories: Iterable[str],
        currencies: Iterable[Currency],
        users: Iterable[User],
    ) -> None:
        with self.graph.batch():
            self.currencies.set(tuple(sorted(currencies, key=lambda c: c.code)))
            self.categories.set(tuple(sorted(set(categories))))
            self.houses.set(tuple(houses))
            self.expenses.set(tuple(expenses))
            self.notes.set(tuple(notes))
            self.users.set(tuple(users))
            self.is_loaded.set(True)
        logger.info(
            "Loaded %d houses, %d expenses, %d notes",
            len(self.list_houses()),
            len(self.list_expenses()),
            len(self.list_notes()),
        )

    # --- Lookups ---

    def get_house(self, house_id: str) -> House:
        for h in self.list_houses():
            if h.id == house_id:
                return h
        raise NotFoundError("house", house_id)

    def get_expense(self, expense_id: str) -> Expense:
        for e in self.list_expenses():
            if e.id == expense_id:
                return e
        raise NotFoundError("expense", expense_id)

    def get_currency(self, code: str) -> Currency:
        for c in self.list_currencies():
            if c.code == code:
                return c
        raise NotFoundError("currency", code)

    def get_user(self, user_id: str) -> User:
        for u in self.list_users():
            if u.id == user_id:
                return u
        raise NotFoundError("user", user_id)

    def _require_category(self, name: str) -> None:
        if name not in self.list_categories():
            raise NotFoundError("category", name)

    def _check_expense(self, expense: Expense) -> None:
        if expense.amount <= 0:
            raise ValueError(f"Expense amount must be positive, got {expense.amount}")
        self.get_house(expense.house_id)
        self.get_currency(expense.currency)
        self._require_category(expense.category)

    # --- Expenses ---

    def add_expense(self, data: ExpenseData, house_id: str) -> Expense:
        house = self.get_house(house_id)
        now = self.clock()
        expense = Expense(
            id=self._new_id(),
            house_id=house.id,
            description=data.description,
            amount=data.amount,
            currency=house.currency,
            category=data.category,
            status=data.status,
            priority=data.priority,
            created_at=now,
            due_date=data.due_date,
            paid_date=data.paid_date,
            recurrence=data.recurrence,
        )
        expense = _stamp_paid_date(expense, now)
        self._check_expense(expense)
        self.expenses.update(lambda exps: (*exps, expense))
        logger.info("Added expense", extra={"expense_id": expense.id, "house_id": house.id})
        return expense

    def update_expense(self, expense: Expense) -> Expense:
        self.get_expense(expense.id)
        expense = _stamp_paid_date(expense, self.clock())
        self._check_expense(expense)
        self.expenses.update(lambda exps: tuple(expense if e.id == expense.id else e for e in exps))
        return expense

    def update_expense_status(self, expense_id: str, status: ExpenseStatus) -> Expense | None:
        """Change an expense's status. Returns the spawned successor, if any.

        Moving a recurring expense into COMPLETED schedules exactly one pending
        successor on the next due date, unless that date is past the
        recurrence end date.
        """
        current = self.get_expense(expense_id)
        status = ExpenseStatus(status)
        now = self.clock()
        paid_date = now if status == ExpenseStatus.COMPLETED else None
        updated = replace(current, status=status, paid_date=paid_date)

        successor = None
        completing = status == ExpenseStatus.COMPLETED and current.status != ExpenseStatus.COMPLETED
        if completing and current.recurrence is not None and current.due_date is not None:
            next_due = next_due_date(current.due_date, current.recurrence.frequency)
            end = current.recurrence.end_date
            if end is None or next_due <= end:
                successor = replace(
                    updated,
                    id=self._new_id(),
                    status=ExpenseStatus.PENDING,
                    due_date=next_due,
                    paid_date=None,
                    created_at=now,
                )
            else:
                logger.info(
                    "Recurrence ended, no successor (next due %s > end %s)",
                    next_due,
                    end,
                    extra={"expense_id": expense_id},
                )

        def _apply(exps: tuple[Expense, ...]) -> tuple[Expense, ...]:
            result = tuple(updated if e.id == expense_id else e for e in exps)
            if successor is not None:
                result = (*result, successor)
            return result

        self.expenses.update(_apply)
        logger.info("Expense status -> %s", status, extra={"expense_id": expense_id})
        if successor is not None:
            logger.info(
                "Scheduled next occurrence on %s",
                successor.due_date,
                extra={"expense_id": successor.id, "house_id": successor.house_id},
            )
        return successor

    def delete_expense(self, expense_id: str) -> bool:
        before = self.list_expenses()
        return self.expenses.set(tuple(e for e in before if e.id != expense_id))

    # --- Notes ---

    def add_note(
        self,
        house_id: str,
        title: str,
        content: str,
        author: str,
        is_pinned: bool = False,
    ) -> Note:
        self.get_house(house_id)
        note = Note(
            id=self._new_id(),
            house_id=house_id,
            title=title,
            content=content,
            author=author,
            created_at=self.clock(),
            is_pinned=is_pinned,
        )
        self.notes.update(lambda notes: (*notes, note))
        return note

    def delete_note(self, note_id: str) -> bool:
        before = self.list_notes()
        return self.notes.set(tuple(n for n in before if n.id != note_id))

    def toggle_pin_note(self, note_id: str) -> Note:
        for n in self.list_notes():
            if n.id == note_id:
                toggled = replace(n, is_pinned=not n.is_pinned)
                break
        else:
            raise NotFoundError("note", note_id)
        self.notes.update(lambda notes: tuple(toggled if n.id == note_id else n for n in notes))
        return toggled

    # --- Houses ---

    def add_house(self, name: str, address: str, currency: str, image_url: str | None = None) -> House:
        self.get_currency(currency)
        house_id = self._new_id()
        house = House(
            id=house_id,
            name=name,
            address=address,
            currency=currency,
            image_url=image_url or settings.house_image_url.format(house_id=house_id),
        )
        self.houses.update(lambda houses: (*houses, house))
        logger.info("Added house %s", name, extra={"house_id": house_id})
        return house

    def update_house(self, house: House) -> House:
        self.get_house(house.id)
        self.get_currency(house.currency)
        self.houses.update(lambda houses: tuple(house if h.id == house.id else h for h in houses))
        return house

    def delete_house(self, house_id: str) -> bool:
        """Delete a house with its expenses and notes, and unassign it from every user."""
        if not any(h.id == house_id for h in self.list_houses()):
            return False
        with self.graph.batch():
            self.houses.update(lambda houses: tuple(h for h in houses if h.id != house_id))
            self.expenses.update(lambda exps: tuple(e for e in exps if e.house_id != house_id))
            self.notes.update(lambda notes: tuple(n for n in notes if n.house_id != house_id))
            self.users.update(
                lambda users: tuple(
                    replace(u, assigned_house_ids=tuple(h for h in u.assigned_house_ids if h != house_id))
                    for u in users
                )
            )
        logger.info("Deleted house", extra={"house_id": house_id})
        return True

    # --- Users ---

    def _check_user(self, user: User) -> None:
        for other in self.list_users():
            if other.id != user.id and other.username.lower() == user.username.lower():
                raise DuplicateError("user", user.username)
        for house_id in user.assigned_house_ids:
            self.get_house(house_id)

    def add_user(
        self,
        username: str,
        password: str,
        role: UserRole = UserRole.USER,
        assigned_house_ids: Iterable[str] = (),
    ) -> User:
        user = User(
            id=self._new_id(),
            username=username.strip(),
            role=UserRole(role),
            assigned_house_ids=tuple(assigned_house_ids),
            password=password,
        )
        self._check_user(user)
        self.users.update(lambda users: (*users, user))
        return user

    def update_user(self, user: User) -> User:
        """Replace a user record. A missing password keeps the stored one."""
        existing = self.get_user(user.id)
        if user.password is None:
            user = replace(user, password=existing.password)
        self._check_user(user)
        self.users.update(lambda users: tuple(user if u.id == user.id else u for u in users))
        return user

    def delete_user(self, user_id: str) -> bool:
        before = self.list_users()
        return self.users.set(tuple(u for u in before if u.id != user_id))

    # --- Categories ---

    def add_category(self, name: str) -> bool:
        """Add a category. Returns False if it already exists."""
        name = name.strip()
        if not name:
            raise ValueError("Category name must not be empty")
        if name in self.list_categories():
            return False
        self.categories.update(lambda cats: tuple(sorted((*cats, name))))
        return True

    def update_category(self, old_name: str, new_name: str) -> bool:
        """Rename a category everywhere. Returns False if ``new_name`` is taken."""
        self._require_category(old_name)
        new_name = new_name.strip()
        if not new_name:
            raise ValueError("Category name must not be empty")
        if new_name == old_name:
            return True
        if new_name in self.list_categories():
            return False
        with self.graph.batch():
            self.categories.update(
                lambda cats: tuple(sorted(new_name if c == old_name else c for c in cats))
            )
            self.expenses.update(
                lambda exps: tuple(replace(e, category=new_name) if e.category == old_name else e for e in exps)
            )
        return True

    def delete_category(self, name: str) -> bool:
        before = self.list_categories()
        return self.categories.set(tuple(c for c in before if c != name))

    def is_category_in_use(self, name: str) -> bool:
        return any(e.category == name for e in self.list_expenses())

    # --- Currencies ---

    def _check_rate(self, currency: Currency, previous: Currency | None) -> None:
        if currency.rate_to_base <= 0:
            raise ValueError(f"Exchange rate for {currency.code} must be positive")
        base = find_base_currency(self.list_currencies())
        if previous is not None and previous.rate_to_base == 1 and currency.rate_to_base != 1:
            raise ValueError(f"{currency.code} is the base currency; its rate must stay 1")
        if currency.rate_to_base == 1 and base is not None and base.code != currency.code:
            raise ValueError(f"{base.code} is already the base currency")

    def add_currency(self, currency: Currency) -> Currency:
        currency = replace(currency, code=validate_currency(currency.code))
        if any(c.code == currency.code for c in self.list_currencies()):
            raise DuplicateError("currency", currency.code)
        self._check_rate(currency, None)
        self.currencies.update(lambda curr: tuple(sorted((*curr, currency), key=lambda c: c.code)))
        return currency

    def update_currency(self, code: str, currency: Currency) -> Currency:
        previous = self.get_currency(code)
        if currency.code != code:
            raise ValueError(f"Currency code cannot change ({code} -> {currency.code})")
        self._check_rate(currency, previous)
        self.currencies.update(lambda curr: tuple(currency if c.code == code else c for c in curr))
        return currency

    def delete_currency(self, code: str) -> bool:
        before = self.list_currencies()
        return self.currencies.set(tuple(c for c in before if c.code != code))

    def is_currency_in_use(self, code: str) -> bool:
        return any(h.currency == code for h in self.list_houses())
