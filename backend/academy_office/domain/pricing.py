from collections.abc import Iterable, Mapping
from decimal import Decimal

import structlog

from academy_office.domain.money import to_minor

logger = structlog.get_logger(__name__)

NOT_APPLICABLE = "n/a"

# Spring 2026 tuition in cents, used when an academy has no persisted price.
ACADEMY_DEFAULT_PRICES: dict[str, int] = {
    "art": 10000,
    "english": 5000,
    "kids academy": 5000,
    "kids": 5000,
    "korean language": 5000,
    "piano": 10000,
    "pickleball": 5000,
    "soccer": 5000,
    "taekwondo": 10000,
    "korean cooking": 15000,
    "diy": 8000,
    "senior": 4000,
    "stretch and strengthen": 4000,
    "default": 5000,
}


def normalize_name(value: str | None) -> str:
    if not value:
        return ""
    return " ".join(value.split()).lower()


def is_billable_name(value: str | None) -> bool:
    normalized = normalize_name(value)
    return bool(normalized) and normalized != NOT_APPLICABLE


def _compact(value: str) -> str:
    return "".join(value.split())


def _match(table: Mapping[str, int], normalized: str) -> int | None:
    price = table.get(normalized)
    if price:
        return price
    compact = _compact(normalized)
    for key, candidate in table.items():
        if not key or key == "default" or not candidate:
            continue
        if key in normalized or normalized in key or _compact(key) == compact:
            return candidate
    return None


class PricingResolver:
    """Resolve tuition (in cents) for an academy name.

    Lookup order is exact normalized match, then substring containment in
    either direction or whitespace-insensitive equality, then the static
    default table. A zero price counts as unpriced. Unresolved names log a
    warning and resolve to zero.
    """

    def __init__(self, prices: Mapping[str, int], defaults: Mapping[str, int] | None = None) -> None:
        self.prices = {normalize_name(name): int(price) for name, price in prices.items() if normalize_name(name)}
        self.defaults = dict(ACADEMY_DEFAULT_PRICES if defaults is None else defaults)

    @classmethod
    def from_academies(cls, academies: Iterable) -> "PricingResolver":
        prices: dict[str, int] = {}
        for academy in academies:
            price = academy.price if academy.price is not None else Decimal("0.00")
            prices.setdefault(normalize_name(academy.name), to_minor(price))
        return cls(prices)

    def resolve_price(self, academy_name: str | None, level_name: str | None = None) -> int:
        if not is_billable_name(academy_name):
            return 0
        normalized = normalize_name(academy_name)
        price = _match(self.prices, normalized)
        if price is None:
            price = _match(self.defaults, normalized)
        if price is None:
            logger.warning("academy_price_unresolved", academy_name=academy_name, level_name=level_name)
            return 0
        return price
