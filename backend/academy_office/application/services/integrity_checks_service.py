from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from academy_office.domain.invoice_status import InvoiceStatus, compute_balance, derive_status
from academy_office.domain.money import to_minor
from academy_office.infrastructure.db.models import Invoice, InvoiceItem, Payment


def _scoped(query, semester_id: int | None):
    if semester_id is None:
        return query
    return query.where(Invoice.semester_id == semester_id)


def _check_invoice_balance(db: Session, *, semester_id: int | None) -> list[dict]:
    rows = db.execute(
        _scoped(
            select(
                Invoice.id,
                Invoice.total,
                Invoice.paid_amount,
                Invoice.balance,
                Invoice.status,
                Invoice.is_exonerated,
            ),
            semester_id,
        ).order_by(Invoice.id)
    ).all()
    findings = []
    for row in rows:
        total = to_minor(row.total)
        paid = to_minor(row.paid_amount)
        expected_balance = compute_balance(total, paid)
        expected_status = derive_status(total, paid, row.is_exonerated)
        if to_minor(row.balance) == expected_balance and row.status == expected_status:
            continue
        findings.append(
            {
                "check_code": "invoice_balance_mismatch",
                "severity": "high",
                "entity_type": "invoice",
                "entity_id": row.id,
                "message": "Invoice balance or status does not match total and paid amount",
                "details_json": {
                    "total": str(row.total),
                    "paid_amount": str(row.paid_amount),
                    "balance": str(row.balance),
                    "expected_balance": expected_balance,
                    "status": InvoiceStatus(row.status).value,
                    "expected_status": expected_status.value,
                },
            }
        )
    return findings


def _check_paid_vs_payments(db: Session, *, semester_id: int | None) -> list[dict]:
    rows = db.execute(
        _scoped(
            select(
                Invoice.id.label("invoice_id"),
                Invoice.paid_amount.label("paid_amount"),
                func.coalesce(func.sum(Payment.amount), Decimal("0.00")).label("payments_total"),
            )
            .outerjoin(Payment, Payment.invoice_id == Invoice.id)
            .group_by(Invoice.id, Invoice.paid_amount),
            semester_id,
        ).order_by(Invoice.id)
    ).all()
    return [
        {
            "check_code": "invoice_paid_vs_payments_mismatch",
            "severity": "high",
            "entity_type": "invoice",
            "entity_id": row.invoice_id,
            "message": "Invoice paid amount does not match the sum of its payments",
            "details_json": {"paid_amount": str(row.paid_amount), "payments_total": str(row.payments_total)},
        }
        for row in rows
        if to_minor(row.paid_amount) != to_minor(row.payments_total)
    ]


def _check_total_vs_items(db: Session, *, semester_id: int | None) -> list[dict]:
    rows = db.execute(
        _scoped(
            select(
                Invoice.id.label("invoice_id"),
                Invoice.subtotal.label("subtotal"),
                Invoice.discount_amount.label("discount_amount"),
                Invoice.total.label("total"),
                func.coalesce(func.sum(InvoiceItem.amount), Decimal("0.00")).label("items_total"),
            )
            .outerjoin(InvoiceItem, InvoiceItem.invoice_id == Invoice.id)
            .group_by(Invoice.id, Invoice.subtotal, Invoice.discount_amount, Invoice.total),
            semester_id,
        ).order_by(Invoice.id)
    ).all()
    findings = []
    for row in rows:
        subtotal = to_minor(row.subtotal)
        expected_total = max(subtotal - to_minor(row.discount_amount), 0)
        if subtotal == to_minor(row.items_total) and to_minor(row.total) == expected_total:
            continue
        findings.append(
            {
                "check_code": "invoice_total_vs_items_mismatch",
                "severity": "medium",
                "entity_type": "invoice",
                "entity_id": row.invoice_id,
                "message": "Invoice subtotal or total does not match its items and discount",
                "details_json": {
                    "subtotal": str(row.subtotal),
                    "items_total": str(row.items_total),
                    "discount_amount": str(row.discount_amount),
                    "total": str(row.total),
                },
            }
        )
    return findings


def _check_duplicate_invoices(db: Session, *, semester_id: int | None) -> list[dict]:
    rows = db.execute(
        _scoped(
            select(
                Invoice.student_id,
                Invoice.semester_id,
                func.count(Invoice.id).label("invoices_count"),
            ).group_by(Invoice.student_id, Invoice.semester_id),
            semester_id,
        )
        .having(func.count(Invoice.id) > 1)
        .order_by(Invoice.student_id)
    ).all()
    return [
        {
            "check_code": "duplicate_invoice_per_student",
            "severity": "low",
            "entity_type": "student",
            "entity_id": row.student_id,
            "message": "Student has more than one invoice for the semester",
            "details_json": {"semester_id": row.semester_id, "invoices_count": row.invoices_count},
        }
        for row in rows
    ]


def run_all_integrity_checks(db: Session, *, semester_id: int | None = None) -> list[dict]:
    findings: list[dict] = []
    findings.extend(_check_invoice_balance(db=db, semester_id=semester_id))
    findings.extend(_check_paid_vs_payments(db=db, semester_id=semester_id))
    findings.extend(_check_total_vs_items(db=db, semester_id=semester_id))
    findings.extend(_check_duplicate_invoices(db=db, semester_id=semester_id))
    return findings


def summarize_findings(findings: list[dict]) -> dict:
    by_check: dict[str, int] = {}
    by_severity: dict[str, int] = {}
    for finding in findings:
        check_code = str(finding["check_code"])
        severity = str(finding["severity"])
        by_check[check_code] = by_check.get(check_code, 0) + 1
        by_severity[severity] = by_severity.get(severity, 0) + 1
    return {"findings_total": len(findings), "by_check": by_check, "by_severity": by_severity}
