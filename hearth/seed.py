from datetime import datetime, timedelta

from hearth.db.models import (
    Currency,
    Expense,
    ExpenseStatus,
    House,
    Note,
    Priority,
    Recurrence,
    RecurrenceFrequency,
    User,
    UserRole,
)

DEFAULT_CATEGORIES: list[str] = [
    "Education",
    "Groceries",
    "Health",
    "Housing",
    "Leisure",
    "Subscriptions",
    "Taxes",
    "Transport",
    "Utilities",
]


def seed_data(now: datetime) -> dict:
    """Starter household used when the store is empty."""
    upcoming = now + timedelta(days=2)
    houses = [
        House(
            id="h1",
            name="Main Residence",
            address="123 Main Street, Havana",
            currency="CUP",
            image_url="https://picsum.photos/seed/h1/400/200",
        ),
        House(
            id="h2",
            name="Lake Cabin",
            address="456 Lake Road, Varadero",
            currency="EUR",
            image_url="https://picsum.photos/seed/h2/400/200",
        ),
    ]
    currencies = [
        Currency(code="CUP", name="Cuban Peso", symbol="$MN", rate_to_base=1.0),
        Currency(code="EUR", name="Euro", symbol="€", rate_to_base=25.92),
        Currency(code="USD", name="US Dollar", symbol="$", rate_to_base=24.0),
    ]
    expenses = [
        Expense(
            id="e1",
            house_id="h1",
            description="Monthly rent",
            amount=10000.0,
            currency="CUP",
            category="Housing",
            status=ExpenseStatus.COMPLETED,
            priority=Priority.HIGH,
            created_at=now,
            due_date=datetime(2024, 7, 1),
            paid_date=datetime(2024, 7, 1),
        ),
        Expense(
            id="e2",
            house_id="h1",
            description="Internet subscription",
            amount=1200.0,
            currency="CUP",
            category="Utilities",
            status=ExpenseStatus.PENDING,
            priority=Priority.MEDIUM,
            created_at=now,
            due_date=datetime(2024, 7, 15),
            recurrence=Recurrence(frequency=RecurrenceFrequency.MONTHLY),
        ),
        Expense(
            id="e3",
            house_id="h2",
            description="Property tax",
            amount=800.0,
            currency="EUR",
            category="Taxes",
            status=ExpenseStatus.PENDING,
            priority=Priority.HIGH,
            created_at=now,
            due_date=datetime(2024, 8, 1),
        ),
        Expense(
            id="e4",
            house_id="h1",
            description="Groceries",
            amount=3000.0,
            currency="CUP",
            category="Groceries",
            status=ExpenseStatus.COMPLETED,
            priority=Priority.LOW,
            created_at=now,
            paid_date=datetime(2024, 7, 5),
        ),
        Expense(
            id="e5",
            house_id="h1",
            description="Electricity bill",
            amount=1500.0,
            currency="CUP",
            category="Utilities",
            status=ExpenseStatus.PENDING,
            priority=Priority.HIGH,
            created_at=now,
            due_date=upcoming,
        ),
    ]
    notes = [
        Note(
            id="n1",
            house_id="h1",
            title="Plumber contact",
            content="Juan Perez - 555-1234. Fixed the sink on June 5th.",
            author="admin",
            created_at=now,
            is_pinned=True,
        ),
        Note(
            id="n2",
            house_id="h2",
            title="Winter checklist",
            content="- Drain pipes\n- Check insulation\n- Stock firewood",
            author="admin",
            created_at=now,
        ),
    ]
    users = [
        User(id="u1", username="admin", password="admin123", role=UserRole.ADMIN),
        User(id="u2", username="user", password="user123", role=UserRole.USER, assigned_house_ids=("h1",)),
    ]
    return {
        "houses": houses,
        "expenses": expenses,
        "notes": notes,
        "categories": DEFAULT_CATEGORIES,
        "currencies": currencies,
        "users": users,
    }
