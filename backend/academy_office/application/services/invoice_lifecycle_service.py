from collections.abc import Sequence
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, selectinload

from academy_office.application.errors import DuplicateInvoiceError, HasPaymentsError, ValidationError
from academy_office.application.services.invoice_service import (
    get_invoice,
    get_invoice_for_update,
    get_student,
    list_invoices_for_student,
    set_invoice_amounts,
)
from academy_office.application.services.outstanding_balance_service import invalidate_outstanding_cache
from academy_office.application.services.pricing_service import load_pricing_resolver
from academy_office.domain.discount_codes import compute_discount
from academy_office.domain.enrollment_selection import EnrollmentSelection
from academy_office.domain.invoice_lines import LineItem, LineType, build_lines, covered_keys, lines_total
from academy_office.domain.invoice_status import is_settled
from academy_office.domain.money import to_major, to_minor
from academy_office.domain.payment_methods import PaymentMethod
from academy_office.domain.record_status import EnrollmentStatus
from academy_office.infrastructure.db.models import Enrollment, Invoice, InvoiceItem, Payment
from academy_office.infrastructure.logging import get_logger

logger = get_logger(__name__)


def _item_from_line(line: LineItem) -> InvoiceItem:
    return InvoiceItem(
        description=line.description,
        academy_name=line.academy_name,
        level_name=line.level_name,
        unit_price=to_major(line.unit_price),
        quantity=line.quantity,
        amount=to_major(line.amount),
        type=line.line_type,
    )


def _line_from_item(item: InvoiceItem) -> LineItem:
    return LineItem(
        description=item.description,
        unit_price=to_minor(item.unit_price),
        quantity=item.quantity,
        line_type=LineType(item.type),
        academy_name=item.academy_name,
        level_name=item.level_name,
    )


def _replace_items(invoice: Invoice, lines: Sequence[LineItem]) -> None:
    invoice.items.clear()
    for line in lines:
        invoice.items.append(_item_from_line(line))


def _is_fully_discounted(subtotal: int, discount: int) -> bool:
    return subtotal > 0 and discount >= subtotal


def _has_exoneration_audit(db: Session, *, invoice_id: int) -> bool:
    return (
        db.execute(
            select(Payment.id).where(
                Payment.invoice_id == invoice_id,
                Payment.method == PaymentMethod.discount.value,
                Payment.amount == Decimal("0.00"),
            )
        ).first()
        is not None
    )


def _add_exoneration_audit(db: Session, *, invoice: Invoice) -> None:
    if _has_exoneration_audit(db=db, invoice_id=invoice.id):
        return
    db.add(
        Payment(
            student_id=invoice.student_id,
            invoice_id=invoice.id,
            amount=Decimal("0.00"),
            method=PaymentMethod.discount.value,
            notes=f"Exonerated: {invoice.discount_note or 'full discount'}",
            transaction_date=datetime.now(timezone.utc),
        )
    )


def _target_invoice(invoices: Sequence[Invoice]) -> Invoice | None:
    # invoices are ordered newest first
    for invoice in invoices:
        if not is_settled(invoice.status):
            return invoice
    return invoices[0] if invoices else None


def create_invoice(
    db: Session,
    *,
    student_id: int,
    semester_id: int,
    lines: Sequence[LineItem],
    extras: Sequence[LineItem] = (),
    discount_amount: int = 0,
    discount_note: str | None = None,
    discount_code: str | None = None,
) -> Invoice:
    logger.info(
        "invoice_creation_started",
        student_id=student_id,
        semester_id=semester_id,
        lines_count=len(lines),
        extras_count=len(extras),
    )
    get_student(db=db, student_id=student_id)
    all_lines = [*lines, *extras]
    if not all_lines:
        raise ValidationError("Invoice must contain at least one line")
    if discount_amount < 0:
        raise ValidationError("Discount amount must not be negative")
    existing_id = db.execute(
        select(Invoice.id).where(Invoice.student_id == student_id, Invoice.semester_id == semester_id)
    ).scalar_one_or_none()
    if existing_id is not None:
        logger.warning(
            "invoice_creation_rejected_duplicate",
            student_id=student_id,
            semester_id=semester_id,
            existing_invoice_id=existing_id,
        )
        raise DuplicateInvoiceError("Student already has an invoice for this semester")

    subtotal = lines_total(all_lines)
    if discount_code:
        discount_amount, discount_note = compute_discount(subtotal, discount_code)
    discount = min(discount_amount, subtotal)
    exonerated = _is_fully_discounted(subtotal, discount)

    invoice = Invoice(student_id=student_id, semester_id=semester_id, discount_note=discount_note)
    _replace_items(invoice, all_lines)
    set_invoice_amounts(invoice, subtotal=subtotal, discount=discount, paid=0, exonerated=exonerated)
    db.add(invoice)
    db.flush()
    if exonerated:
        _add_exoneration_audit(db=db, invoice=invoice)
    db.commit()
    invalidate_outstanding_cache(semester_id=semester_id)
    logger.info(
        "invoice_created",
        invoice_id=invoice.id,
        student_id=student_id,
        semester_id=semester_id,
        subtotal=subtotal,
        discount_amount=discount,
        status=invoice.status,
    )
    return get_invoice(db=db, invoice_id=invoice.id)


def update_invoice(
    db: Session,
    *,
    lines: Sequence[LineItem],
    extras: Sequence[LineItem] | None = None,
    invoice_id: int | None = None,
    student_id: int | None = None,
    semester_id: int | None = None,
) -> Invoice:
    """Rebuild an invoice's lines without touching what has been paid.

    When no ``invoice_id`` is given the target is the newest unsettled invoice
    of the student for the semester, else the newest one; without any invoice
    a new one is created. Extras (lunch and other non-tuition lines) are kept
    as they are unless replacements are passed. A settled target keeps every
    existing line and only gains the new ones.
    """
    if invoice_id is None:
        if student_id is None or semester_id is None:
            raise ValidationError("Either invoice_id or student_id and semester_id are required")
        target = _target_invoice(list_invoices_for_student(db=db, student_id=student_id, semester_id=semester_id))
        if target is None:
            return create_invoice(
                db=db,
                student_id=student_id,
                semester_id=semester_id,
                lines=lines,
                extras=extras or (),
            )
        invoice_id = target.id

    invoice = get_invoice_for_update(db=db, invoice_id=invoice_id)
    existing = [_line_from_item(item) for item in invoice.items]
    if is_settled(invoice.status):
        present = {line.line_type for line in existing}
        new_lines = [*existing, *lines, *(extra for extra in extras or () if extra.line_type not in present)]
    else:
        kept_extras = (
            list(extras) if extras is not None else [line for line in existing if line.line_type != LineType.tuition]
        )
        new_lines = [*lines, *kept_extras]

    subtotal = lines_total(new_lines)
    discount = min(to_minor(invoice.discount_amount), subtotal)
    paid = to_minor(invoice.paid_amount)
    exonerated = invoice.is_exonerated or _is_fully_discounted(subtotal, discount)
    previous_status = invoice.status
    _replace_items(invoice, new_lines)
    set_invoice_amounts(invoice, subtotal=subtotal, discount=discount, paid=paid, exonerated=exonerated)
    db.commit()
    invalidate_outstanding_cache(semester_id=invoice.semester_id)
    logger.info(
        "invoice_updated",
        invoice_id=invoice.id,
        student_id=invoice.student_id,
        subtotal=subtotal,
        paid=paid,
        previous_status=previous_status,
        status=invoice.status,
    )
    return get_invoice(db=db, invoice_id=invoice.id)


def _enrollment_selections(db: Session, *, student_id: int, semester_id: int) -> list[EnrollmentSelection]:
    enrollments = (
        db.execute(
            select(Enrollment)
            .where(
                Enrollment.student_id == student_id,
                Enrollment.semester_id == semester_id,
                Enrollment.status == EnrollmentStatus.active,
            )
            .options(selectinload(Enrollment.academy), selectinload(Enrollment.level))
            .order_by(Enrollment.id)
        )
        .scalars()
        .all()
    )
    return [
        EnrollmentSelection(
            academy_name=enrollment.academy.name,
            level_name=enrollment.level.name if enrollment.level is not None else None,
        )
        for enrollment in enrollments
    ]


def sync_invoice_for_student(
    db: Session,
    *,
    student_id: int,
    semester_id: int,
    extras: Sequence[LineItem] | None = None,
    discount_code: str | None = None,
) -> Invoice | None:
    get_student(db=db, student_id=student_id)
    selections = _enrollment_selections(db=db, student_id=student_id, semester_id=semester_id)
    pricing = load_pricing_resolver(db=db, semester_id=semester_id)
    invoices = list_invoices_for_student(db=db, student_id=student_id, semester_id=semester_id)
    lines = build_lines(selections, covered_keys(invoices), pricing)
    target = _target_invoice(invoices)
    if target is None:
        if not lines and not extras:
            logger.info("invoice_sync_skipped_no_lines", student_id=student_id, semester_id=semester_id)
            return None
        return create_invoice(
            db=db,
            student_id=student_id,
            semester_id=semester_id,
            lines=lines,
            extras=extras or (),
            discount_code=discount_code,
        )
    if is_settled(target.status) and not lines and not extras:
        logger.info("invoice_sync_nothing_new", student_id=student_id, invoice_id=target.id)
        return target
    invoice = update_invoice(db=db, invoice_id=target.id, lines=lines, extras=extras)
    if discount_code:
        invoice = apply_discount_code(db=db, invoice_id=invoice.id, code=discount_code)
    return invoice


def apply_discount_code(db: Session, *, invoice_id: int, code: str) -> Invoice:
    invoice = get_invoice_for_update(db=db, invoice_id=invoice_id)
    subtotal = to_minor(invoice.subtotal)
    discount, note = compute_discount(subtotal, code)
    exonerated = _is_fully_discounted(subtotal, discount)
    invoice.discount_note = note
    set_invoice_amounts(
        invoice,
        subtotal=subtotal,
        discount=discount,
        paid=to_minor(invoice.paid_amount),
        exonerated=exonerated,
    )
    if exonerated:
        _add_exoneration_audit(db=db, invoice=invoice)
    db.commit()
    invalidate_outstanding_cache(semester_id=invoice.semester_id)
    logger.info(
        "invoice_discount_applied",
        invoice_id=invoice.id,
        code=code,
        discount_amount=discount,
        status=invoice.status,
    )
    return get_invoice(db=db, invoice_id=invoice.id)


def delete_invoice(db: Session, *, invoice_id: int) -> None:
    invoice = get_invoice_for_update(db=db, invoice_id=invoice_id)
    if to_minor(invoice.paid_amount) > 0:
        logger.warning("invoice_deletion_rejected_has_payments", invoice_id=invoice_id, paid=str(invoice.paid_amount))
        raise HasPaymentsError("Invoice has payments; reverse them before deleting")
    semester_id = invoice.semester_id
    db.execute(delete(Payment).where(Payment.invoice_id == invoice_id, Payment.amount == Decimal("0.00")))
    db.delete(invoice)
    db.commit()
    invalidate_outstanding_cache(semester_id=semester_id)
    logger.info("invoice_deleted", invoice_id=invoice_id, semester_id=semester_id)
