import aiosqlite

from hearth.config import settings

SCHEMA = """
CREATE TABLE IF NOT EXISTS currencies (
    code TEXT PRIMARY KEY CHECK(length(code) = 3),
    name TEXT NOT NULL,
    symbol TEXT NOT NULL,
    rate_to_base REAL NOT NULL CHECK(rate_to_base > 0)
);

CREATE TABLE IF NOT EXISTS houses (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    address TEXT NOT NULL,
    currency TEXT NOT NULL,
    image_url TEXT
);

CREATE TABLE IF NOT EXISTS categories (
    name TEXT PRIMARY KEY
);

CREATE TABLE IF NOT EXISTS expenses (
    id TEXT PRIMARY KEY,
    house_id TEXT NOT NULL REFERENCES houses(id) ON DELETE CASCADE,
    description TEXT NOT NULL,
    amount REAL NOT NULL CHECK(amount > 0),
    currency TEXT NOT NULL,
    category TEXT NOT NULL,
    status TEXT NOT NULL CHECK(status IN ('pending', 'completed', 'cancelled')),
    priority TEXT NOT NULL CHECK(priority IN ('low', 'medium', 'high')),
    created_at TIMESTAMP NOT NULL,
    due_date TIMESTAMP,
    paid_date TIMESTAMP,
    recurrence_frequency TEXT CHECK(
        recurrence_frequency IS NULL OR recurrence_frequency IN ('monthly', 'quarterly', 'yearly')
    ),
    recurrence_end_date TIMESTAMP,
    CHECK((status = 'completed') = (paid_date IS NOT NULL))
);

CREATE TABLE IF NOT EXISTS notes (
    id TEXT PRIMARY KEY,
    house_id TEXT NOT NULL REFERENCES houses(id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    author TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL,
    is_pinned BOOLEAN NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    username TEXT NOT NULL UNIQUE COLLATE NOCASE,
    password TEXT,
    role TEXT NOT NULL CHECK(role IN ('admin', 'user'))
);

CREATE TABLE IF NOT EXISTS user_houses (
    user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
    house_id TEXT NOT NULL REFERENCES houses(id) ON DELETE CASCADE,
    position INTEGER NOT NULL,
    PRIMARY KEY (user_id, house_id)
);

CREATE TABLE IF NOT EXISTS exchange_rates (
    currency TEXT PRIMARY KEY,
    rate_to_base REAL NOT NULL CHECK(rate_to_base > 0),
    fetched_at TIMESTAMP NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_expenses_house_status ON expenses(house_id, status);
CREATE INDEX IF NOT EXISTS idx_notes_house ON notes(house_id);
"""

_db: aiosqlite.Connection | None = None


async def get_db() -> aiosqlite.Connection:
    global _db
    if _db is None:
        _db = await aiosqlite.connect(settings.db_path)
        _db.row_factory = aiosqlite.Row
        await _db.execute("PRAGMA journal_mode=WAL")
        await _db.execute("PRAGMA foreign_keys=ON")
    return _db


async def close_db():
    global _db
    if _db is not None:
        await _db.close()
        _db = None


async def init_db():
    db = await get_db()
    await db.executescript(SCHEMA)
    await db.commit()
