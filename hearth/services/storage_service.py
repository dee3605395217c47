import asyncio
import logging
from datetime import datetime

from hearth.config import settings
from hearth.db.database import get_db
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
from hearth.repository import Repository
from hearth.seed import seed_data

logger = logging.getLogger(__name__)


def _ts(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _expense_row(e: Expense) -> tuple:
    return (
        e.id,
        e.house_id,
        e.description,
        e.amount,
        e.currency,
        e.category,
        str(e.status),
        str(e.priority),
        _ts(e.created_at),
        _ts(e.due_date),
        _ts(e.paid_date),
        str(e.recurrence.frequency) if e.recurrence else None,
        _ts(e.recurrence.end_date) if e.recurrence else None,
    )


def _expense_from_row(row) -> Expense:
    recurrence = None
    if row["recurrence_frequency"]:
        recurrence = Recurrence(
            frequency=RecurrenceFrequency(row["recurrence_frequency"]),
            end_date=_parse_ts(row["recurrence_end_date"]),
        )
    return Expense(
        id=row["id"],
        house_id=row["house_id"],
        description=row["description"],
        amount=row["amount"],
        currency=row["currency"],
        category=row["category"],
        status=ExpenseStatus(row["status"]),
        priority=Priority(row["priority"]),
        created_at=_parse_ts(row["created_at"]),
        due_date=_parse_ts(row["due_date"]),
        paid_date=_parse_ts(row["paid_date"]),
        recurrence=recurrence,
    )


async def save_snapshot(repo: Repository) -> None:
    """Overwrite the stored household with the repository's current collections."""
    db = await get_db()
    try:
        for table in ("user_houses", "users", "notes", "expenses", "houses", "categories", "currencies"):
            await db.execute(f"DELETE FROM {table}")
        await db.executemany(
            "INSERT INTO currencies (code, name, symbol, rate_to_base) VALUES (?, ?, ?, ?)",
            [(c.code, c.name, c.symbol, c.rate_to_base) for c in repo.list_currencies()],
        )
        await db.executemany(
            "INSERT INTO categories (name) VALUES (?)",
            [(name,) for name in repo.list_categories()],
        )
        await db.executemany(
            "INSERT INTO houses (id, name, address, currency, image_url) VALUES (?, ?, ?, ?, ?)",
            [(h.id, h.name, h.address, h.currency, h.image_url) for h in repo.list_houses()],
        )
        await db.executemany(
            """INSERT INTO expenses
            (id, house_id, description, amount, currency, category, status, priority,
             created_at, due_date, paid_date, recurrence_frequency, recurrence_end_date)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            [_expense_row(e) for e in repo.list_expenses()],
        )
        await db.executemany(
            "INSERT INTO notes (id, house_id, title, content, author, created_at, is_pinned) "
            "VALUES (?, ?, ?, ?, ?, ?, ?)",
            [(n.id, n.house_id, n.title, n.content, n.author, _ts(n.created_at), n.is_pinned) for n in repo.list_notes()],
        )
        users = repo.list_users()
        await db.executemany(
            "INSERT INTO users (id, username, password, role) VALUES (?, ?, ?, ?)",
            [(u.id, u.username, u.password, str(u.role)) for u in users],
        )
        await db.executemany(
            "INSERT INTO user_houses (user_id, house_id, position) VALUES (?, ?, ?)",
            [(u.id, house_id, i) for u in users for i, house_id in enumerate(u.assigned_house_ids)],
        )
        await db.commit()
    except Exception:
        await db.rollback()
        logger.error("Failed to save snapshot", exc_info=True)
        raise
    logger.info("Saved snapshot (%d expenses)", len(repo.list_expenses()))


async def load_snapshot(repo: Repository) -> bool:
    """Load the stored household into ``repo``. Returns False if the store is empty."""
    db = await get_db()
    cursor = await db.execute("SELECT * FROM currencies ORDER BY code")
    currency_rows = await cursor.fetchall()
    if not currency_rows:
        return False
    currencies = [
        Currency(code=r["code"], name=r["name"], symbol=r["symbol"], rate_to_base=r["rate_to_base"])
        for r in currency_rows
    ]

    cursor = await db.execute("SELECT name FROM categories ORDER BY name")
    categories = [r["name"] for r in await cursor.fetchall()]

    cursor = await db.execute("SELECT * FROM houses ORDER BY rowid")
    houses = [
        House(id=r["id"], name=r["name"], address=r["address"], currency=r["currency"], image_url=r["image_url"])
        for r in await cursor.fetchall()
    ]

    cursor = await db.execute("SELECT * FROM expenses ORDER BY rowid")
    expenses = [_expense_from_row(r) for r in await cursor.fetchall()]

    cursor = await db.execute("SELECT * FROM notes ORDER BY rowid")
    notes = [
        Note(
            id=r["id"],
            house_id=r["house_id"],
            title=r["title"],
            content=r["content"],
            author=r["author"],
            created_at=_parse_ts(r["created_at"]),
            is_pinned=bool(r["is_pinned"]),
        )
        for r in await cursor.fetchall()
    ]

    cursor = await db.execute("SELECT user_id, house_id FROM user_houses ORDER BY user_id, position")
    assignments: dict[str, list[str]] = {}
    for r in await cursor.fetchall():
        assignments.setdefault(r["user_id"], []).append(r["house_id"])

    cursor = await db.execute("SELECT * FROM users ORDER BY rowid")
    users = [
        User(
            id=r["id"],
            username=r["username"],
            password=r["password"],
            role=UserRole(r["role"]),
            assigned_house_ids=tuple(assignments.get(r["id"], [])),
        )
        for r in await cursor.fetchall()
    ]

    repo.replace_all(
        houses=houses,
        expenses=expenses,
        notes=notes,
        categories=categories,
        currencies=currencies,
        users=users,
    )
    return True


async def load_initial_data(repo: Repository, delay: float | None = None) -> bool:
    """Populate ``repo`` from the store, seeding it first when it is empty.

    Returns True when existing data was loaded, False when the seed was used.
    """
    await asyncio.sleep(settings.load_delay_seconds if delay is None else delay)
    if await load_snapshot(repo):
        return True
    logger.info("Store is empty, seeding starter household")
    repo.replace_all(**seed_data(repo.clock()))
    await save_snapshot(repo)
    return False
