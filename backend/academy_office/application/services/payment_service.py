from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from academy_office.application.errors import (
    AmountExceedsBalanceError,
    ExceedsPaidError,
    ExceedsTotalDebtError,
    InvalidMethodError,
    NotFoundError,
    ValidationError,
)
from academy_office.application.services.invoice_service import get_invoice_for_update, get_student, set_invoice_paid
from academy_office.application.services.outstanding_balance_service import invalidate_outstanding_cache
from academy_office.domain.invoice_status import InvoiceStatus
from academy_office.domain.money import to_major, to_minor
from academy_office.domain.payment_allocation import allocate_proportionally
from academy_office.domain.payment_methods import COLLECTION_METHODS, PaymentMethod, parse_payment_method
from academy_office.infrastructure.db.models import Invoice, Payment
from academy_office.infrastructure.logging import get_logger
from academy_office.infrastructure.tasks.receipt_tasks import enqueue_payment_receipt

logger = get_logger(__name__)


@dataclass(frozen=True)
class PaymentSnapshot:
    id: int
    invoice_id: int | None
    student_id: int
    amount: int
    method: str
    notes: str | None
    transaction_date: datetime


def payment_to_snapshot(payment: Payment) -> PaymentSnapshot:
    return PaymentSnapshot(
        id=payment.id,
        invoice_id=payment.invoice_id,
        student_id=payment.student_id,
        amount=to_minor(payment.amount),
        method=payment.method,
        notes=payment.notes,
        transaction_date=payment.transaction_date,
    )


def serialize_payment_response(payment: Payment) -> dict:
    return {
        "id": payment.id,
        "legacy_id": payment.legacy_id,
        "student_id": payment.student_id,
        "invoice_id": payment.invoice_id,
        "amount": payment.amount,
        "method": payment.method,
        "notes": payment.notes,
        "transaction_date": payment.transaction_date,
        "created_at": payment.created_at,
        "updated_at": payment.updated_at,
        "student": {
            "id": payment.student.id,
            "first_name": payment.student.first_name,
            "last_name": payment.student.last_name,
        },
        "invoice": (
            {
                "id": payment.invoice.id,
                "status": payment.invoice.status,
                "balance": payment.invoice.balance,
            }
            if payment.invoice is not None
            else None
        ),
    }


def _require_positive(amount: int) -> None:
    if amount <= 0:
        raise ValidationError("Amount must be greater than zero")


def _require_collection_method(method: str | None) -> PaymentMethod:
    payment_method = parse_payment_method(method)
    if payment_method is None or payment_method not in COLLECTION_METHODS:
        raise InvalidMethodError(f"Invalid payment method: {method!r}")
    return payment_method


def _queue_receipts(invoice_ids: Iterable[int]) -> None:
    for invoice_id in invoice_ids:
        enqueue_payment_receipt(invoice_id=invoice_id)


def apply_payment(
    db: Session,
    *,
    invoice_id: int,
    amount: int,
    method: str | None,
    notes: str | None = None,
    transaction_date: datetime | None = None,
) -> Payment:
    logger.info("payment_application_started", invoice_id=invoice_id, amount=amount, method=method)
    _require_positive(amount)
    payment_method = _require_collection_method(method)
    invoice = get_invoice_for_update(db=db, invoice_id=invoice_id)
    balance = to_minor(invoice.balance)
    if amount > balance:
        logger.warning(
            "payment_application_rejected_exceeds_balance",
            invoice_id=invoice_id,
            amount=amount,
            balance=balance,
        )
        raise AmountExceedsBalanceError("Amount exceeds invoice balance")

    previous_status = invoice.status
    payment = Payment(
        student_id=invoice.student_id,
        invoice_id=invoice.id,
        amount=to_major(amount),
        method=payment_method.value,
        notes=notes,
        transaction_date=transaction_date or datetime.now(timezone.utc),
    )
    db.add(payment)
    set_invoice_paid(invoice, paid=to_minor(invoice.paid_amount) + amount)
    db.commit()
    invalidate_outstanding_cache(semester_id=invoice.semester_id)
    logger.info(
        "payment_applied",
        invoice_id=invoice.id,
        payment_id=payment.id,
        amount=amount,
        method=payment_method.value,
        status=invoice.status,
    )
    if invoice.status == InvoiceStatus.paid and previous_status != InvoiceStatus.paid:
        _queue_receipts([invoice.id])
    return payment


def apply_payment_to_open_invoices(
    db: Session,
    *,
    student_id: int,
    amount: int,
    method: str | None,
    semester_id: int | None = None,
    notes: str | None = None,
    transaction_date: datetime | None = None,
) -> list[Payment]:
    """Spread one payment over every open invoice of a student, oldest first.

    Each invoice receives a share proportional to its balance; the last one
    absorbs the rounding remainder. All payments commit together.
    """
    logger.info("payment_all_open_started", student_id=student_id, amount=amount, method=method)
    _require_positive(amount)
    payment_method = _require_collection_method(method)
    get_student(db=db, student_id=student_id)
    query = (
        select(Invoice)
        .where(Invoice.student_id == student_id, Invoice.balance > 0)
        .order_by(Invoice.created_at, Invoice.id)
        .with_for_update()
    )
    if semester_id is not None:
        query = query.where(Invoice.semester_id == semester_id)
    invoices = list(db.execute(query).scalars().all())
    balances = [to_minor(invoice.balance) for invoice in invoices]
    total_debt = sum(balances)
    if amount > total_debt:
        logger.warning(
            "payment_all_open_rejected_exceeds_debt",
            student_id=student_id,
            amount=amount,
            total_debt=total_debt,
        )
        raise ExceedsTotalDebtError("Amount exceeds the student's total outstanding debt")

    paid_at = transaction_date or datetime.now(timezone.utc)
    payments: list[Payment] = []
    newly_paid: list[int] = []
    for invoice, allocation in zip(invoices, allocate_proportionally(amount, balances)):
        if allocation <= 0:
            continue
        payment = Payment(
            student_id=student_id,
            invoice_id=invoice.id,
            amount=to_major(allocation),
            method=payment_method.value,
            notes=notes,
            transaction_date=paid_at,
        )
        db.add(payment)
        payments.append(payment)
        set_invoice_paid(invoice, paid=to_minor(invoice.paid_amount) + allocation)
        if invoice.status == InvoiceStatus.paid:
            newly_paid.append(invoice.id)
    db.commit()
    for semester in {invoice.semester_id for invoice in invoices}:
        invalidate_outstanding_cache(semester_id=semester)
    logger.info(
        "payment_all_open_applied",
        student_id=student_id,
        amount=amount,
        invoices_count=len(payments),
        payment_ids=[payment.id for payment in payments],
    )
    _queue_receipts(newly_paid)
    return payments


def refund_payment(
    db: Session,
    *,
    invoice_id: int,
    amount: int,
    notes: str | None = None,
    transaction_date: datetime | None = None,
) -> Payment:
    logger.info("payment_refund_started", invoice_id=invoice_id, amount=amount)
    _require_positive(amount)
    invoice = get_invoice_for_update(db=db, invoice_id=invoice_id)
    paid = to_minor(invoice.paid_amount)
    if amount > paid:
        logger.warning("payment_refund_rejected_exceeds_paid", invoice_id=invoice_id, amount=amount, paid=paid)
        raise ExceedsPaidError("Refund exceeds amount paid")
    refund = Payment(
        student_id=invoice.student_id,
        invoice_id=invoice.id,
        amount=to_major(-amount),
        method=PaymentMethod.refund.value,
        notes=notes,
        transaction_date=transaction_date or datetime.now(timezone.utc),
    )
    db.add(refund)
    set_invoice_paid(invoice, paid=paid - amount)
    db.commit()
    invalidate_outstanding_cache(semester_id=invoice.semester_id)
    logger.info(
        "payment_refunded",
        invoice_id=invoice.id,
        payment_id=refund.id,
        amount=amount,
        status=invoice.status,
    )
    return refund


def delete_payment(db: Session, *, payment_id: int) -> None:
    payment = db.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError("Payment not found")
    invoice_id = payment.invoice_id
    semester_id = None
    if invoice_id is not None:
        invoice = get_invoice_for_update(db=db, invoice_id=invoice_id)
        amount = to_minor(payment.amount)
        paid = max(0, to_minor(invoice.paid_amount) - amount)
        if amount < 0:
            paid = min(paid, to_minor(invoice.total))
        set_invoice_paid(invoice, paid=paid)
        semester_id = invoice.semester_id
    db.delete(payment)
    db.commit()
    if semester_id is not None:
        invalidate_outstanding_cache(semester_id=semester_id)
    logger.info("payment_deleted", payment_id=payment_id, invoice_id=invoice_id)


def list_payments_for_student(db: Session, *, student_id: int) -> list[Payment]:
    get_student(db=db, student_id=student_id)
    return list(
        db.execute(
            select(Payment)
            .where(Payment.student_id == student_id)
            .options(selectinload(Payment.student), selectinload(Payment.invoice))
            .order_by(Payment.transaction_date.desc(), Payment.id.desc())
        )
        .scalars()
        .all()
    )


def list_payments_for_invoice(db: Session, *, invoice_id: int) -> list[Payment]:
    return list(
        db.execute(
            select(Payment)
            .where(Payment.invoice_id == invoice_id)
            .options(selectinload(Payment.student), selectinload(Payment.invoice))
            .order_by(Payment.transaction_date, Payment.id)
        )
        .scalars()
        .all()
    )
