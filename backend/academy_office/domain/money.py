import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from academy_office.application.errors import ValidationError

CENT = Decimal("0.01")
MINOR_PER_MAJOR = 100
_NON_NUMERIC = re.compile(r"[^0-9.\-]")


def to_major(minor: int) -> Decimal:
    """Convert an integral minor-unit amount (cents) to a decimal major-unit amount."""
    return (Decimal(int(minor)) / MINOR_PER_MAJOR).quantize(CENT, rounding=ROUND_HALF_UP)


def to_minor(major: Decimal | int | float | str | None) -> int:
    """Convert a major-unit amount to cents, rounding half-up.

    Strings may carry currency symbols or thousands separators (``"$1,250.50"``).
    ``None`` is treated as zero, matching how legacy documents omit empty amounts.
    """
    if major is None:
        return 0
    if isinstance(major, Decimal):
        value = major
    elif isinstance(major, float):
        value = Decimal(str(major))
    elif isinstance(major, int):
        value = Decimal(major)
    else:
        cleaned = _NON_NUMERIC.sub("", str(major))
        if cleaned in {"", "-", ".", "-."}:
            raise ValidationError(f"Invalid money amount: {major!r}")
        try:
            value = Decimal(cleaned)
        except InvalidOperation as exc:
            raise ValidationError(f"Invalid money amount: {major!r}") from exc
    if not value.is_finite():
        raise ValidationError(f"Invalid money amount: {major!r}")
    return int((value * MINOR_PER_MAJOR).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def legacy_minor(value: object) -> int:
    """Read a legacy document amount already stored in cents."""
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        raise ValidationError(f"Invalid legacy amount: {value!r}")
    if isinstance(value, int):
        return value
    try:
        return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    except InvalidOperation as exc:
        raise ValidationError(f"Invalid legacy amount: {value!r}") from exc


def format_usd(minor: int) -> str:
    major = to_major(minor)
    sign = "-" if major < 0 else ""
    return f"{sign}${abs(major):,.2f}"
