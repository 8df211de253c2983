from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from academy_office.application.errors import NotFoundError
from academy_office.domain.invoice_lines import LineType
from academy_office.domain.invoice_status import InvoiceStatus, compute_balance, derive_status
from academy_office.domain.money import to_major, to_minor
from academy_office.infrastructure.db.models import Invoice, Student


@dataclass(frozen=True)
class InvoiceLineSnapshot:
    description: str
    academy_name: str | None
    level_name: str | None
    unit_price: int
    quantity: int
    amount: int
    line_type: LineType


@dataclass(frozen=True)
class InvoiceSnapshot:
    """Invoice state in cents, as exposed across the service boundary."""

    id: int
    student_id: int
    semester_id: int
    subtotal: int
    discount_amount: int
    discount_note: str | None
    total: int
    paid: int
    balance: int
    status: InvoiceStatus
    is_exonerated: bool
    lines: tuple[InvoiceLineSnapshot, ...]


def invoice_to_snapshot(invoice: Invoice) -> InvoiceSnapshot:
    return InvoiceSnapshot(
        id=invoice.id,
        student_id=invoice.student_id,
        semester_id=invoice.semester_id,
        subtotal=to_minor(invoice.subtotal),
        discount_amount=to_minor(invoice.discount_amount),
        discount_note=invoice.discount_note,
        total=to_minor(invoice.total),
        paid=to_minor(invoice.paid_amount),
        balance=to_minor(invoice.balance),
        status=InvoiceStatus(invoice.status),
        is_exonerated=invoice.is_exonerated,
        lines=tuple(
            InvoiceLineSnapshot(
                description=item.description,
                academy_name=item.academy_name,
                level_name=item.level_name,
                unit_price=to_minor(item.unit_price),
                quantity=item.quantity,
                amount=to_minor(item.amount),
                line_type=LineType(item.type),
            )
            for item in sorted(invoice.items, key=lambda current: current.id or 0)
        ),
    )


def set_invoice_amounts(invoice: Invoice, *, subtotal: int, discount: int, paid: int, exonerated: bool) -> None:
    """Write cents values onto the invoice and re-derive total, balance and status."""
    discount = max(0, min(discount, subtotal))
    total = max(subtotal - discount, 0)
    invoice.subtotal = to_major(subtotal)
    invoice.discount_amount = to_major(discount)
    invoice.total = to_major(total)
    invoice.paid_amount = to_major(paid)
    invoice.balance = to_major(compute_balance(total, paid))
    invoice.is_exonerated = exonerated
    invoice.status = derive_status(total, paid, exonerated)


def set_invoice_paid(invoice: Invoice, *, paid: int) -> None:
    total = to_minor(invoice.total)
    invoice.paid_amount = to_major(paid)
    invoice.balance = to_major(compute_balance(total, paid))
    invoice.status = derive_status(total, paid, invoice.is_exonerated)


def get_student(db: Session, *, student_id: int) -> Student:
    student = db.get(Student, student_id)
    if student is None:
        raise NotFoundError("Student not found")
    return student


def get_invoice(db: Session, *, invoice_id: int) -> Invoice:
    invoice = db.execute(
        select(Invoice)
        .where(Invoice.id == invoice_id)
        .options(selectinload(Invoice.student), selectinload(Invoice.items))
    ).scalar_one_or_none()
    if invoice is None:
        raise NotFoundError("Invoice not found")
    return invoice


def get_invoice_for_update(db: Session, *, invoice_id: int) -> Invoice:
    # FOR UPDATE is a no-op on SQLite and a row lock on PostgreSQL.
    invoice = db.execute(select(Invoice).where(Invoice.id == invoice_id).with_for_update()).scalar_one_or_none()
    if invoice is None:
        raise NotFoundError("Invoice not found")
    return invoice


def list_invoices_for_student(db: Session, *, student_id: int, semester_id: int | None = None) -> list[Invoice]:
    query = (
        select(Invoice)
        .where(Invoice.student_id == student_id)
        .options(selectinload(Invoice.items))
        .order_by(Invoice.created_at.desc(), Invoice.id.desc())
    )
    if semester_id is not None:
        query = query.where(Invoice.semester_id == semester_id)
    return list(db.execute(query).scalars().all())


def serialize_invoice_summary(invoice: Invoice) -> dict:
    return {
        "id": invoice.id,
        "legacy_id": invoice.legacy_id,
        "student_id": invoice.student_id,
        "semester_id": invoice.semester_id,
        "subtotal": invoice.subtotal,
        "discount_amount": invoice.discount_amount,
        "discount_note": invoice.discount_note,
        "total": invoice.total,
        "paid_amount": invoice.paid_amount,
        "balance": invoice.balance,
        "status": invoice.status,
        "is_exonerated": invoice.is_exonerated,
        "created_at": invoice.created_at,
        "updated_at": invoice.updated_at,
        "student": {
            "id": invoice.student.id,
            "first_name": invoice.student.first_name,
            "last_name": invoice.student.last_name,
        },
    }


def serialize_invoice_detail(invoice: Invoice) -> dict:
    payload = serialize_invoice_summary(invoice)
    payload["items"] = [
        {
            "id": item.id,
            "description": item.description,
            "academy_name": item.academy_name,
            "level_name": item.level_name,
            "unit_price": item.unit_price,
            "quantity": item.quantity,
            "amount": item.amount,
            "type": item.type,
        }
        for item in sorted(invoice.items, key=lambda current: current.id)
    ]
    return payload
