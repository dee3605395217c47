import asyncio
import logging
from pathlib import Path

from hearth.config import settings
from hearth.db.database import close_db, init_db
from hearth.logging import setup_logging
from hearth.repository import Repository
from hearth.services.rates_service import refresh_rates
from hearth.services.storage_service import load_initial_data, save_snapshot
from hearth.session import HouseholdSession

setup_logging(level=logging.DEBUG if settings.debug else logging.INFO)
logger = logging.getLogger(__name__)


def _read_session(path: Path) -> str | None:
    if not path.exists():
        return None
    return path.read_text(encoding="utf-8")


def _write_session(path: Path, session: HouseholdSession) -> None:
    token = session.session_token()
    if token is None:
        path.unlink(missing_ok=True)
    else:
        path.write_text(token, encoding="utf-8")


async def main():
    await init_db()

    repo = Repository()
    await load_initial_data(repo)
    await refresh_rates(repo)

    session = HouseholdSession(repo)
    session_path = Path(settings.session_path)
    if session.restore_session(_read_session(session_path)):
        logger.info("Restored session", extra={"user_id": session.user.id})

    await session.start()
    logger.info("Starting Hearth")
    try:
        await asyncio.Event().wait()
    finally:
        logger.info("Shutting down gracefully...")
        await session.stop()
        _write_session(session_path, session)
        try:
            await save_snapshot(repo)
        finally:
            await close_db()
        logger.info("Shutdown complete")


def run() -> None:
    asyncio.run(main())
