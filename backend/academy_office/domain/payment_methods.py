from enum import Enum


class PaymentMethod(str, Enum):
    cash = "cash"
    zelle = "zelle"
    check = "check"
    card = "card"
    refund = "refund"
    discount = "discount"


# Methods an operator may pick when collecting money.
COLLECTION_METHODS = frozenset({PaymentMethod.cash, PaymentMethod.zelle, PaymentMethod.check, PaymentMethod.card})

_ALIASES = {"credit": PaymentMethod.card, "credit card": PaymentMethod.card, "transfer": PaymentMethod.zelle}


def parse_payment_method(raw: str | None) -> PaymentMethod | None:
    if raw is None:
        return None
    value = raw.strip().lower()
    if not value or value == "none":
        return None
    if value in _ALIASES:
        return _ALIASES[value]
    try:
        return PaymentMethod(value)
    except ValueError:
        return None
