import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import httpx

from hearth.config import settings
from hearth.db.database import get_db
from hearth.repository import Repository
from hearth.services.currency_service import find_base_currency

logger = logging.getLogger(__name__)


async def _get_cached_rates(allow_stale: bool = False) -> dict[str, float]:
    db = await get_db()
    cursor = await db.execute("SELECT currency, rate_to_base, fetched_at FROM exchange_rates")
    rows = await cursor.fetchall()
    now = datetime.now(timezone.utc)
    max_age = timedelta(hours=settings.exchange_rate_cache_hours)
    rates = {}
    for row in rows:
        fetched_at = datetime.fromisoformat(row["fetched_at"])
        age = now - fetched_at.replace(tzinfo=timezone.utc)
        if not allow_stale and age > max_age:
            logger.debug("Cache expired for %s (age=%s)", row["currency"], age)
            continue
        rates[row["currency"]] = row["rate_to_base"]
    return rates


async def _cache_rates(rates: dict[str, float]) -> None:
    db = await get_db()
    fetched_at = datetime.now(timezone.utc).isoformat()
    await db.executemany(
        "INSERT OR REPLACE INTO exchange_rates (currency, rate_to_base, fetched_at) VALUES (?, ?, ?)",
        [(code, rate, fetched_at) for code, rate in rates.items()],
    )
    await db.commit()
    logger.debug("Cached %d rates", len(rates))


async def _fetch_rates(base: str, client: httpx.AsyncClient) -> dict[str, float]:
    """Rates to ``base``: how many base units one unit of each currency is worth."""
    logger.info("Fetching live rates against %s", base)
    resp = await client.get(f"{settings.exchange_rate_url}/{base}")
    resp.raise_for_status()
    data = resp.json()
    quotes = data["rates"]
    return {code: 1 / float(quote) for code, quote in quotes.items() if float(quote) > 0}


async def refresh_rates(repo: Repository, client: httpx.AsyncClient | None = None) -> int:
    """Update non-base currency rates from the live feed. Returns how many changed."""
    base = find_base_currency(repo.list_currencies())
    if base is None:
        logger.warning("No base currency configured, skipping rate refresh")
        return 0

    rates = await _get_cached_rates()
    if not rates:
        try:
            if client is None:
                async with httpx.AsyncClient(timeout=10.0) as own_client:
                    rates = await _fetch_rates(base.code, own_client)
            else:
                rates = await _fetch_rates(base.code, client)
            await _cache_rates(rates)
        except (httpx.HTTPError, KeyError, ValueError):
            logger.warning("Rate feed unavailable, checking stale cache", exc_info=True)
            rates = await _get_cached_rates(allow_stale=True)
            if not rates:
                logger.error("No cached rates available, keeping current rates")
                return 0

    changed = 0
    with repo.graph.batch():
        for currency in repo.list_currencies():
            if currency.code == base.code or currency.code not in rates:
                continue
            rate = rates[currency.code]
            if rate == currency.rate_to_base:
                continue
            try:
                repo.update_currency(currency.code, replace(currency, rate_to_base=rate))
            except ValueError:
                logger.warning("Rejected rate %s for %s", rate, currency.code, exc_info=True)
                continue
            changed += 1
    logger.info("Refreshed %d exchange rates", changed)
    return changed
