from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from enum import Enum

from academy_office.application.errors import ValidationError
from academy_office.domain.money import to_minor


class DiscountKind(str, Enum):
    percentage = "percentage"
    fixed = "fixed"


@dataclass(frozen=True)
class DiscountCode:
    code: str
    name: str
    kind: DiscountKind
    value: Decimal
    description: str


DISCOUNT_CODES: dict[str, DiscountCode] = {
    "TEACHER100": DiscountCode(
        code="TEACHER100",
        name="Teacher Discount",
        kind=DiscountKind.percentage,
        value=Decimal("100"),
        description="100% discount for teachers",
    ),
    "SAVE50": DiscountCode(
        code="SAVE50",
        name="$50 Off",
        kind=DiscountKind.fixed,
        value=Decimal("50.00"),
        description="$50 discount",
    ),
    "SAVE10": DiscountCode(
        code="SAVE10",
        name="10% Off",
        kind=DiscountKind.percentage,
        value=Decimal("10"),
        description="10% discount",
    ),
}


def get_discount_by_code(code: str | None) -> DiscountCode | None:
    if not code:
        return None
    return DISCOUNT_CODES.get(code.strip().upper())


def compute_discount(subtotal: int, code: str) -> tuple[int, str]:
    """Return the discount in cents and its note for ``code`` applied to ``subtotal``."""
    discount = get_discount_by_code(code)
    if discount is None:
        raise ValidationError(f"Unknown discount code: {code}")
    if discount.kind == DiscountKind.percentage:
        amount = int((Decimal(subtotal) * discount.value / Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    else:
        amount = to_minor(discount.value)
    amount = max(0, min(amount, subtotal))
    return amount, f"{discount.code}: {discount.name}"
