from academy_office.application.services.integrity_checks_service import run_all_integrity_checks, summarize_findings
from academy_office.application.services.invoice_lifecycle_service import create_invoice
from academy_office.application.services.payment_service import apply_payment
from academy_office.domain.invoice_lines import LineItem
from academy_office.domain.invoice_status import InvoiceStatus
from tests.helpers.factories import create_invoice as factory_create_invoice
from tests.helpers.factories import create_payment, create_student


def test_consistent_invoices_produce_no_findings(db_session, semester):
    """
    Validate service-maintained invoices pass every check.

    1. Create an invoice through the lifecycle service and pay part of it.
    2. Run all integrity checks.
    3. Validate no findings are reported.
    """
    student = create_student(db_session, "Clean", "Books")
    invoice = create_invoice(
        db_session,
        student_id=student.id,
        semester_id=semester.id,
        lines=[LineItem(description="Art", unit_price=10000, academy_name="Art")],
    )
    apply_payment(db_session, invoice_id=invoice.id, amount=2500, method="cash")
    assert run_all_integrity_checks(db_session, semester_id=semester.id) == []


def test_inconsistent_invoices_are_reported(db_session, semester):
    """
    Validate each integrity check detects its mismatch.

    1. Seed an invoice whose balance and status disagree with total and paid.
    2. Seed an invoice whose paid amount has no matching payments and items do not add up.
    3. Seed a second invoice for the same student in the semester.
    4. Validate every check code is reported and summarized.
    """
    student = create_student(db_session, "Messy", "Books")
    factory_create_invoice(
        db_session,
        student_id=student.id,
        semester_id=semester.id,
        total="100.00",
        paid="0.00",
        balance="40.00",
        status=InvoiceStatus.partial,
        items=[("Art", "100.00", "Art")],
    )
    drifted = factory_create_invoice(
        db_session,
        student_id=student.id,
        semester_id=semester.id,
        total="50.00",
        paid="20.00",
        items=[("Soccer", "45.00", "Soccer")],
    )
    create_payment(db_session, student_id=student.id, invoice_id=drifted.id, amount="10.00")

    findings = run_all_integrity_checks(db_session, semester_id=semester.id)
    codes = sorted(finding["check_code"] for finding in findings)
    assert codes == [
        "duplicate_invoice_per_student",
        "invoice_balance_mismatch",
        "invoice_paid_vs_payments_mismatch",
        "invoice_total_vs_items_mismatch",
    ]
    summary = summarize_findings(findings)
    assert summary["findings_total"] == 4
    assert summary["by_severity"] == {"high": 2, "medium": 1, "low": 1}
