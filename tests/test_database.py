import sqlite3

import aiosqlite
import pytest


async def _seed_reference_rows(db: aiosqlite.Connection) -> None:
    await db.execute("INSERT INTO currencies (code, name, symbol, rate_to_base) VALUES ('CUP', 'Peso', '$MN', 1)")
    await db.execute("INSERT INTO categories (name) VALUES ('Utilities')")
    await db.execute("INSERT INTO houses (id, name, address, currency) VALUES ('h1', 'Main', 'Street', 'CUP')")


async def test_schema_creates_tables(test_db: aiosqlite.Connection):
    cursor = await test_db.execute("SELECT name FROM sqlite_master WHERE type='table' ORDER BY name")
    tables = [row[0] for row in await cursor.fetchall()]
    for table in ("currencies", "houses", "categories", "expenses", "notes", "users", "user_houses", "exchange_rates"):
        assert table in tables


async def test_completed_expense_needs_paid_date(test_db: aiosqlite.Connection):
    await _seed_reference_rows(test_db)
    with pytest.raises(sqlite3.IntegrityError):
        await test_db.execute(
            "INSERT INTO expenses (id, house_id, description, amount, currency, category, status, priority, "
            "created_at) VALUES ('e1', 'h1', 'Water', 10, 'CUP', 'Utilities', 'completed', 'low', '2024-07-01')"
        )


async def test_expense_amount_positive(test_db: aiosqlite.Connection):
    await _seed_reference_rows(test_db)
    with pytest.raises(sqlite3.IntegrityError):
        await test_db.execute(
            "INSERT INTO expenses (id, house_id, description, amount, currency, category, status, priority, "
            "created_at) VALUES ('e1', 'h1', 'Water', -5, 'CUP', 'Utilities', 'pending', 'low', '2024-07-01')"
        )


async def test_recurrence_frequency_check(test_db: aiosqlite.Connection):
    await _seed_reference_rows(test_db)
    with pytest.raises(sqlite3.IntegrityError):
        await test_db.execute(
            "INSERT INTO expenses (id, house_id, description, amount, currency, category, status, priority, "
            "created_at, recurrence_frequency) "
            "VALUES ('e1', 'h1', 'Water', 5, 'CUP', 'Utilities', 'pending', 'low', '2024-07-01', 'biweekly')"
        )


async def test_expense_requires_known_house(test_db: aiosqlite.Connection):
    await _seed_reference_rows(test_db)
    with pytest.raises(sqlite3.IntegrityError):
        await test_db.execute(
            "INSERT INTO expenses (id, house_id, description, amount, currency, category, status, priority, "
            "created_at) VALUES ('e1', 'h9', 'Water', 5, 'CUP', 'Utilities', 'pending', 'low', '2024-07-01')"
        )


async def test_usernames_unique_ignoring_case(test_db: aiosqlite.Connection):
    await test_db.execute("INSERT INTO users (id, username, role) VALUES ('u1', 'admin', 'admin')")
    with pytest.raises(sqlite3.IntegrityError):
        await test_db.execute("INSERT INTO users (id, username, role) VALUES ('u2', 'ADMIN', 'user')")
