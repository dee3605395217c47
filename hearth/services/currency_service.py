import logging
import re
from collections.abc import Iterable, Mapping

from hearth.db.models import Currency

logger = logging.getLogger(__name__)

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")

# Symbols that read naturally in front of the number.
_PREFIX_SYMBOLS = frozenset({"€", "$", "£", "¥", "₹", "₩", "₺", "₪", "₱", "₽"})


class InvalidCurrencyError(ValueError):
    def __init__(self, currency: str) -> None:
        self.currency = currency
        super().__init__(f"Invalid currency code '{currency}'. Expected three letters, e.g. EUR.")


class MissingRateError(LookupError):
    def __init__(self, from_code: str, to_code: str) -> None:
        self.from_code = from_code
        self.to_code = to_code
        super().__init__(f"Unable to find exchange rate for {from_code} or {to_code}")


def validate_currency(currency: str) -> str:
    code = currency.upper().strip()
    if not _CURRENCY_RE.match(code):
        raise InvalidCurrencyError(currency)
    return code


def rate_table(currencies: Iterable[Currency]) -> dict[str, float]:
    return {c.code: c.rate_to_base for c in currencies}


def find_base_currency(currencies: Iterable[Currency]) -> Currency | None:
    for c in currencies:
        if c.rate_to_base == 1:
            return c
    return None


def convert_strict(amount: float, from_code: str, to_code: str, rates: Mapping[str, float]) -> float:
    if from_code == to_code:
        return amount
    from_rate = rates.get(from_code)
    to_rate = rates.get(to_code)
    if from_rate is None or to_rate is None or to_rate == 0:
        raise MissingRateError(from_code, to_code)
    amount_in_base = amount * from_rate
    return amount_in_base / to_rate


def convert(amount: float, from_code: str, to_code: str, rates: Mapping[str, float]) -> float:
    """Convert through the base currency, keeping ``amount`` as-is when a rate is missing."""
    try:
        return convert_strict(amount, from_code, to_code, rates)
    except MissingRateError as exc:
        logger.warning("%s; using unconverted amount", exc)
        return amount


def format_amount(amount: float, currency: Currency | str) -> str:
    if isinstance(currency, Currency):
        sym = currency.symbol or currency.code
    else:
        sym = currency
    if sym in _PREFIX_SYMBOLS:
        return f"{sym}{amount:.2f}"
    return f"{amount:.2f} {sym}"
