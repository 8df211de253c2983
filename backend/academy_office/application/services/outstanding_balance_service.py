from collections.abc import Iterable
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from academy_office.config import settings
from academy_office.domain.money import to_minor
from academy_office.infrastructure.cache.cache_service import delete_key, get_json, set_json
from academy_office.infrastructure.db.models import Invoice

InvoiceLike = TypeVar("InvoiceLike")


def outstanding_cache_key(*, semester_id: int) -> str:
    return f"outstanding_summary:{semester_id}"


def invalidate_outstanding_cache(*, semester_id: int) -> None:
    delete_key(outstanding_cache_key(semester_id=semester_id))


def latest_invoice_per_student(invoices: Iterable[InvoiceLike]) -> dict[int, InvoiceLike]:
    """Keep only the newest invoice per student (by ``created_at``, ties broken by ``id``)."""
    latest: dict[int, InvoiceLike] = {}
    for invoice in invoices:
        current = latest.get(invoice.student_id)
        if current is None or (invoice.created_at, invoice.id) > (current.created_at, current.id):
            latest[invoice.student_id] = invoice
    return latest


def get_outstanding_summary(db: Session, *, semester_id: int) -> dict[str, int]:
    cache_key = outstanding_cache_key(semester_id=semester_id)
    cached = get_json(cache_key)
    if cached is not None:
        return {key: int(value) for key, value in cached.items()}

    invoices = db.execute(select(Invoice).where(Invoice.semester_id == semester_id)).scalars().all()
    latest = latest_invoice_per_student(invoices).values()
    summary = {
        "semester_id": semester_id,
        "students_count": len(latest),
        "billed_total": sum((to_minor(invoice.total) for invoice in latest), 0),
        "collected_total": sum((to_minor(invoice.paid_amount) for invoice in latest), 0),
        "outstanding_total": sum((to_minor(invoice.balance) for invoice in latest), 0),
        "students_with_balance": sum(1 for invoice in latest if to_minor(invoice.balance) > 0),
    }
    set_json(cache_key, summary, settings.outstanding_cache_ttl_seconds)
    return summary
