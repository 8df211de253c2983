from dataclasses import dataclass

from sqlalchemy.orm import Session

from academy_office.application.services.invoice_service import get_invoice
from academy_office.domain.money import format_usd, to_minor
from academy_office.infrastructure.db.models import Invoice, Student
from academy_office.infrastructure.email.smtp_client import send_email, smtp_is_configured
from academy_office.infrastructure.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ReceiptMessage:
    to_email: str | None
    subject: str
    body_text: str


def build_receipt(invoice: Invoice, student: Student) -> ReceiptMessage:
    lines = [
        f"Hello {student.first_name} {student.last_name},",
        "",
        f"We received full payment for invoice #{invoice.id}. Thank you!",
        "",
    ]
    for item in sorted(invoice.items, key=lambda current: current.id):
        quantity = f" x{item.quantity}" if item.quantity != 1 else ""
        lines.append(f"  {item.description}{quantity}: {format_usd(to_minor(item.amount))}")
    lines.append("")
    lines.append(f"Subtotal: {format_usd(to_minor(invoice.subtotal))}")
    if to_minor(invoice.discount_amount) > 0:
        note = f" ({invoice.discount_note})" if invoice.discount_note else ""
        lines.append(f"Discount{note}: -{format_usd(to_minor(invoice.discount_amount))}")
    lines.append(f"Total: {format_usd(to_minor(invoice.total))}")
    lines.append(f"Paid: {format_usd(to_minor(invoice.paid_amount))}")
    lines.append(f"Balance: {format_usd(to_minor(invoice.balance))}")
    return ReceiptMessage(
        to_email=student.email,
        subject=f"Payment receipt - Invoice #{invoice.id}",
        body_text="\n".join(lines),
    )


def send_payment_receipt(db: Session, *, invoice_id: int) -> bool:
    """Email the receipt for a fully paid invoice; returns whether a message was sent."""
    invoice = get_invoice(db=db, invoice_id=invoice_id)
    receipt = build_receipt(invoice, invoice.student)
    if not smtp_is_configured():
        logger.info("payment_receipt_skipped_smtp_not_configured", invoice_id=invoice_id)
        return False
    if not receipt.to_email:
        logger.info("payment_receipt_skipped_missing_email", invoice_id=invoice_id, student_id=invoice.student_id)
        return False
    send_email(to_email=receipt.to_email, subject=receipt.subject, body_text=receipt.body_text)
    logger.info("payment_receipt_sent", invoice_id=invoice_id, student_id=invoice.student_id)
    return True
