from collections.abc import Iterable
from dataclasses import dataclass
from enum import Enum

import structlog

from academy_office.domain.enrollment_selection import EnrollmentSelection
from academy_office.domain.invoice_status import is_settled
from academy_office.domain.pricing import PricingResolver, is_billable_name, normalize_name

logger = structlog.get_logger(__name__)

CoverageKey = tuple[str, str]


class LineType(str, Enum):
    tuition = "tuition"
    lunch_semester = "lunch_semester"
    lunch_single = "lunch_single"
    other = "other"


@dataclass(frozen=True)
class LineItem:
    description: str
    unit_price: int
    quantity: int = 1
    line_type: LineType = LineType.tuition
    academy_name: str | None = None
    level_name: str | None = None

    @property
    def amount(self) -> int:
        return self.unit_price * self.quantity


def coverage_key(academy_name: str | None, level_name: str | None) -> CoverageKey:
    return normalize_name(academy_name), normalize_name(level_name)


def covered_keys(invoices: Iterable) -> set[CoverageKey]:
    """Collect (academy, level) keys already billed on settled invoices.

    ``invoices`` are objects with ``status`` and ``items``; each item exposes
    ``academy_name`` and ``level_name``.
    """
    keys: set[CoverageKey] = set()
    for invoice in invoices:
        if not is_settled(invoice.status):
            continue
        for item in invoice.items:
            if not is_billable_name(item.academy_name):
                continue
            keys.add(coverage_key(item.academy_name, item.level_name))
    return keys


def describe(academy_name: str, level_name: str | None) -> str:
    return f"{academy_name} - {level_name}" if level_name else academy_name


def build_lines(
    enrollments: Iterable[EnrollmentSelection],
    already_covered_keys: set[CoverageKey],
    pricing: PricingResolver,
) -> list[LineItem]:
    lines: list[LineItem] = []
    billed: set[CoverageKey] = set()
    for enrollment in enrollments:
        if not is_billable_name(enrollment.academy_name):
            continue
        key = coverage_key(enrollment.academy_name, enrollment.level_name)
        if key in already_covered_keys or key in billed:
            continue
        price = pricing.resolve_price(enrollment.academy_name, enrollment.level_name)
        if price <= 0:
            logger.warning(
                "invoice_line_skipped_unpriced",
                academy_name=enrollment.academy_name,
                level_name=enrollment.level_name,
            )
            continue
        billed.add(key)
        lines.append(
            LineItem(
                description=describe(enrollment.academy_name, enrollment.level_name),
                unit_price=price,
                quantity=1,
                line_type=LineType.tuition,
                academy_name=enrollment.academy_name,
                level_name=enrollment.level_name,
            )
        )
    return lines


def lunch_lines(
    semester_selected: bool,
    single_qty: int,
    *,
    semester_price: int,
    single_price: int,
) -> list[LineItem]:
    lines: list[LineItem] = []
    if semester_selected:
        lines.append(
            LineItem(
                description="Lunch (semester)",
                unit_price=semester_price,
                quantity=1,
                line_type=LineType.lunch_semester,
            )
        )
    if single_qty > 0:
        lines.append(
            LineItem(
                description="Lunch (single)",
                unit_price=single_price,
                quantity=single_qty,
                line_type=LineType.lunch_single,
            )
        )
    return lines


def lines_total(lines: Iterable[LineItem]) -> int:
    return sum((line.amount for line in lines), 0)
