from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, Optional, Tuple

from ledgerlens.domain import Transaction, WasteEntry, WasteReport
from ledgerlens.transforms import is_spend, spend_transactions

WASTE_CATEGORIES = (
    "Luxury Items", "Jewelry", "Vacation", "Pub", "Liquor Store", "Dining Out", "Entertainment",
)
# Order matters: the first keyword found names the reason.
WASTE_KEYWORDS = ("swiggy", "uber", "zomato", "bar", "delivery", "coffee", "cab")


@dataclass(frozen=True)
class WasteRules:
    categories: Tuple[str, ...] = WASTE_CATEGORIES
    keywords: Tuple[str, ...] = WASTE_KEYWORDS


DEFAULT_RULES = WasteRules()


def matched_keyword(description: str, keywords: Iterable[str]) -> Optional[str]:
    text = (description or "").lower()
    return next((k for k in keywords if k.lower() in text), None)


def waste_reason(t: Transaction, rules: WasteRules = DEFAULT_RULES) -> Optional[str]:
    """Reason label for a discretionary transaction, or None when it is not flagged."""
    if not t.category or not is_spend(t):
        return None
    if t.category in rules.categories:
        return t.category
    keyword = matched_keyword(t.description, rules.keywords)
    if keyword is None:
        return None
    return f"Keyword Match: {keyword[:1].upper()}{keyword[1:]}"


def classify_waste(trans: Tuple[Transaction, ...], rules: WasteRules = DEFAULT_RULES) -> WasteReport:
    by_reason: Dict[str, float] = defaultdict(float)
    for t in spend_transactions(trans):
        reason = waste_reason(t, rules)
        if reason is not None:
            by_reason[reason] += t.amount

    if not by_reason:
        return WasteReport()

    total = sum(by_reason.values())
    ordered = sorted(by_reason.items(), key=lambda item: item[1], reverse=True)
    return WasteReport(
        entries=tuple(
            WasteEntry(reason=reason, amount=amount, percentage=round(amount / total * 100, 1))
            for reason, amount in ordered
        ),
        total=total,
    )
