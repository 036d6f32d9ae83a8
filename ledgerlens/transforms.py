import math
import re
from datetime import date, datetime
from typing import Any, Iterable, Mapping, Tuple

from ledgerlens.domain import EXCLUDED_CATEGORIES, INCOME_CATEGORY, Transaction
from ledgerlens.functional import Maybe, Nothing, Some
from ledgerlens.logging_setup import get_logger

logger = get_logger(__name__)

_NON_NUMERIC = re.compile(r"[^0-9.\-]")
# Longest leading float, the way a lenient number parser reads "12.5.1" or "7-3".
_FLOAT_PREFIX = re.compile(r"^-?(?:\d+\.?\d*|\.\d+)")
_DATE_FORMATS = ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%Y/%m/%d")


def parse_amount(raw: Any) -> float:
    """Read a bank amount, keeping only digits, '.' and '-'. Never raises."""
    if isinstance(raw, bool) or raw is None:
        return 0.0
    if isinstance(raw, (int, float)):
        value = float(raw)
        return value if math.isfinite(value) else 0.0

    cleaned = _NON_NUMERIC.sub("", str(raw))
    match = _FLOAT_PREFIX.match(cleaned)
    if not match:
        return 0.0
    return float(match.group(0))


def parse_date(raw: Any) -> Maybe[date]:
    if isinstance(raw, datetime):
        return Some(raw.date())
    if isinstance(raw, date):
        return Some(raw)
    if raw is None:
        return Nothing()

    text = str(raw).strip()
    if not text:
        return Nothing()
    # Drop a trailing time part: "2024-03-15T10:00:00" / "03/15/2024 10:00".
    head = text.split()[0].split("T", 1)[0]
    for fmt in _DATE_FORMATS:
        try:
            return Some(datetime.strptime(head, fmt).date())
        except ValueError:
            continue
    return Nothing()


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and math.isnan(value):
        return ""
    return str(value).strip()


def normalize_record(raw: Mapping[str, Any]) -> Transaction:
    raw_date = raw.get("Date")
    parsed = parse_date(raw_date)
    if parsed.is_none():
        logger.warning("Unparseable date %r; keeping record as undated", raw_date)

    raw_amount = raw.get("Amount")
    amount = parse_amount(raw_amount)
    if amount == 0.0 and _text(raw_amount) not in ("", "0"):
        logger.debug("Amount %r recovered as 0", raw_amount)

    category = _text(raw.get("Category")) or None
    description = _text(raw.get("Description")) or category or ""

    return Transaction(
        date=parsed.get_or_else(None),
        amount=amount,
        category=category,
        description=description,
    )


def normalize_records(records: Iterable[Mapping[str, Any]]) -> Tuple[Transaction, ...]:
    return tuple(map(normalize_record, records))


def dated_only(trans: Tuple[Transaction, ...]) -> Tuple[Transaction, ...]:
    return tuple(filter(lambda t: t.is_dated, trans))


def is_spend(t: Transaction) -> bool:
    return t.amount > 0 and t.category not in EXCLUDED_CATEGORIES


def spend_transactions(trans: Iterable[Transaction]) -> Tuple[Transaction, ...]:
    return tuple(filter(is_spend, trans))


def income_transactions(trans: Iterable[Transaction]) -> Tuple[Transaction, ...]:
    return tuple(filter(lambda t: t.category == INCOME_CATEGORY and t.amount > 0, trans))


def transaction_amounts(trans: Iterable[Transaction]) -> Tuple[float, ...]:
    return tuple(map(lambda t: t.amount, trans))
