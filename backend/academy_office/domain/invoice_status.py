from enum import Enum


class InvoiceStatus(str, Enum):
    unpaid = "unpaid"
    partial = "partial"
    paid = "paid"
    exonerated = "exonerated"


SETTLED_STATUSES = frozenset({InvoiceStatus.paid, InvoiceStatus.exonerated})


def compute_balance(total: int, paid: int) -> int:
    return max(total - paid, 0)


def derive_status(total: int, paid: int, exonerated: bool = False) -> InvoiceStatus:
    """Derive invoice status from minor-unit total/paid and the exoneration flag.

    An exonerated invoice stays exonerated only while its total is zero; if new
    charges are added later it is billed like any other invoice.
    """
    if exonerated and total == 0:
        return InvoiceStatus.exonerated
    if compute_balance(total, paid) == 0:
        return InvoiceStatus.paid
    if paid > 0:
        return InvoiceStatus.partial
    return InvoiceStatus.unpaid


def is_settled(status: InvoiceStatus | str) -> bool:
    return InvoiceStatus(status) in SETTLED_STATUSES
