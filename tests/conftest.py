import os

os.environ.setdefault("DB_PATH", ":memory:")

from datetime import datetime

import aiosqlite
import pytest

import hearth.db.database as db_mod
from hearth.repository import Repository
from hearth.seed import seed_data
from hearth.session import HouseholdSession

NOW = datetime(2024, 7, 13, 10, 30)


class FakeClock:
    def __init__(self, now: datetime = NOW) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture(autouse=True)
async def test_db(monkeypatch):
    conn = await aiosqlite.connect(":memory:")
    conn.row_factory = aiosqlite.Row
    await conn.execute("PRAGMA foreign_keys=ON")
    await conn.executescript(db_mod.SCHEMA)
    await conn.commit()

    async def _get_db():
        return conn

    monkeypatch.setattr(db_mod, "get_db", _get_db)
    monkeypatch.setattr(db_mod, "_db", conn)

    yield conn

    await conn.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repo(clock):
    r = Repository(clock=clock)
    r.replace_all(**seed_data(clock()))
    return r


@pytest.fixture
def session(repo, clock):
    return HouseholdSession(repo, clock=clock)
