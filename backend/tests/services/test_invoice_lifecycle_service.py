import pytest

from academy_office.application.errors import DuplicateInvoiceError, HasPaymentsError, NotFoundError, ValidationError
from academy_office.application.services.invoice_lifecycle_service import (
    apply_discount_code,
    create_invoice,
    delete_invoice,
    sync_invoice_for_student,
    update_invoice,
)
from academy_office.application.services.invoice_service import get_invoice, invoice_to_snapshot
from academy_office.application.services.payment_service import apply_payment
from academy_office.domain.invoice_lines import LineItem, LineType
from academy_office.domain.invoice_status import InvoiceStatus
from academy_office.infrastructure.db.models import Invoice
from tests.helpers.factories import (
    create_enrollment,
    create_student,
    get_entity_by_id,
    list_invoices_for_student,
    list_payments_for_invoice,
)


def _tuition(academy: str, price: int) -> LineItem:
    return LineItem(description=academy, unit_price=price, academy_name=academy)


def _lunch(price: int = 4000) -> LineItem:
    return LineItem(description="Lunch (semester)", unit_price=price, line_type=LineType.lunch_semester)


def test_create_invoice_for_single_academy(db_session, semester):
    """
    Validate a fresh invoice for one $100.00 academy.

    1. Seed one student.
    2. Create an invoice with one Art tuition line.
    3. Validate subtotal, total and balance are 10000 cents.
    4. Validate nothing is paid and status is unpaid.
    """
    student = create_student(db_session, "Ana", "Art", "ana@example.com")
    invoice = create_invoice(db_session, student_id=student.id, semester_id=semester.id, lines=[_tuition("Art", 10000)])
    snapshot = invoice_to_snapshot(invoice)
    assert snapshot.subtotal == 10000
    assert snapshot.discount_amount == 0
    assert snapshot.total == 10000
    assert snapshot.paid == 0
    assert snapshot.balance == 10000
    assert snapshot.status == InvoiceStatus.unpaid
    assert [line.description for line in snapshot.lines] == ["Art"]


def test_create_invoice_with_percentage_discount_code(db_session, semester):
    """
    Validate a 10% code on a $100.00 subtotal.

    1. Seed one student.
    2. Create an invoice with SAVE10.
    3. Validate the discount is 1000 cents and the total 9000.
    4. Validate the discount note names the code.
    """
    student = create_student(db_session, "Dee", "Discount")
    invoice = create_invoice(
        db_session,
        student_id=student.id,
        semester_id=semester.id,
        lines=[_tuition("Art", 10000)],
        discount_code="save10",
    )
    snapshot = invoice_to_snapshot(invoice)
    assert snapshot.discount_amount == 1000
    assert snapshot.total == 9000
    assert snapshot.balance == 9000
    assert snapshot.discount_note == "SAVE10: 10% Off"


def test_create_invoice_full_discount_exonerates_with_audit_payment(db_session, semester):
    """
    Validate a full discount exonerates the invoice.

    1. Create an invoice with TEACHER100.
    2. Validate total is zero and status is exonerated.
    3. Validate one zero-amount discount payment is recorded as audit trail.
    """
    student = create_student(db_session, "Tea", "Cher")
    invoice = create_invoice(
        db_session,
        student_id=student.id,
        semester_id=semester.id,
        lines=[_tuition("Piano", 10000)],
        discount_code="TEACHER100",
    )
    assert invoice.status == InvoiceStatus.exonerated
    assert invoice.is_exonerated is True
    payments = list_payments_for_invoice(db_session, invoice_id=invoice.id)
    assert len(payments) == 1
    assert payments[0].method == "discount"
    assert payments[0].amount == 0


def test_create_invoice_rejects_duplicates_and_empty_lines(db_session, semester):
    """
    Validate invoice creation guards.

    1. Create an invoice without lines and validate ValidationError.
    2. Create an invoice with a negative discount and validate ValidationError.
    3. Create a second invoice for the same student and semester and validate DuplicateInvoiceError.
    4. Create an invoice for a missing student and validate NotFoundError.
    """
    student = create_student(db_session, "Dup", "Licate")
    with pytest.raises(ValidationError):
        create_invoice(db_session, student_id=student.id, semester_id=semester.id, lines=[])
    with pytest.raises(ValidationError):
        create_invoice(
            db_session,
            student_id=student.id,
            semester_id=semester.id,
            lines=[_tuition("Art", 10000)],
            discount_amount=-1,
        )
    create_invoice(db_session, student_id=student.id, semester_id=semester.id, lines=[_tuition("Art", 10000)])
    with pytest.raises(DuplicateInvoiceError):
        create_invoice(db_session, student_id=student.id, semester_id=semester.id, lines=[_tuition("Soccer", 5000)])
    with pytest.raises(NotFoundError):
        create_invoice(db_session, student_id=999, semester_id=semester.id, lines=[_tuition("Art", 10000)])


def test_update_unsettled_invoice_replaces_tuition_and_keeps_extras_and_paid(db_session, semester):
    """
    Validate updating an open invoice.

    1. Create an invoice with Art tuition and a semester lunch.
    2. Pay $20.00 on it.
    3. Update it with Piano tuition only.
    4. Validate Art is replaced, lunch is kept and the payment still counts.
    """
    student = create_student(db_session, "Up", "Date")
    invoice = create_invoice(
        db_session,
        student_id=student.id,
        semester_id=semester.id,
        lines=[_tuition("Art", 10000)],
        extras=[_lunch()],
    )
    apply_payment(db_session, invoice_id=invoice.id, amount=2000, method="cash")

    updated = update_invoice(db_session, student_id=student.id, semester_id=semester.id, lines=[_tuition("Piano", 12000)])
    snapshot = invoice_to_snapshot(updated)
    assert updated.id == invoice.id
    assert [line.description for line in snapshot.lines] == ["Piano", "Lunch (semester)"]
    assert snapshot.subtotal == 16000
    assert snapshot.paid == 2000
    assert snapshot.balance == 14000
    assert snapshot.status == InvoiceStatus.partial


def test_update_settled_invoice_appends_new_lines(db_session, semester):
    """
    Validate a paid invoice never loses the lines it was paid for.

    1. Create and fully pay an Art invoice.
    2. Update it with a new Soccer line and a lunch extra.
    3. Validate Art stays, Soccer and lunch are appended.
    4. Validate the invoice reopens as partial with the new balance.
    """
    student = create_student(db_session, "Set", "Tled")
    invoice = create_invoice(db_session, student_id=student.id, semester_id=semester.id, lines=[_tuition("Art", 10000)])
    apply_payment(db_session, invoice_id=invoice.id, amount=10000, method="zelle")

    updated = update_invoice(db_session, invoice_id=invoice.id, lines=[_tuition("Soccer", 5000)], extras=[_lunch()])
    snapshot = invoice_to_snapshot(updated)
    assert [line.description for line in snapshot.lines] == ["Art", "Soccer", "Lunch (semester)"]
    assert snapshot.total == 19000
    assert snapshot.paid == 10000
    assert snapshot.balance == 9000
    assert snapshot.status == InvoiceStatus.partial


def test_update_without_target_requires_student_and_semester(db_session):
    with pytest.raises(ValidationError):
        update_invoice(db_session, lines=[_tuition("Art", 10000)])


def test_sync_creates_invoice_from_enrollments(db_session, semester, catalog):
    """
    Validate sync builds the first invoice from active enrollments.

    1. Enroll a student in Art (Beginner) and Soccer.
    2. Sync the student invoice.
    3. Validate one invoice with two priced tuition lines.
    """
    student = create_student(db_session, "Sync", "One")
    beginner_id = catalog["art"].levels[0].id
    create_enrollment(
        db_session,
        student_id=student.id,
        academy_id=catalog["art"].id,
        semester_id=semester.id,
        level_id=beginner_id,
    )
    create_enrollment(db_session, student_id=student.id, academy_id=catalog["soccer"].id, semester_id=semester.id)

    invoice = sync_invoice_for_student(db_session, student_id=student.id, semester_id=semester.id)
    snapshot = invoice_to_snapshot(invoice)
    assert [(line.description, line.amount) for line in snapshot.lines] == [
        ("Art - Beginner", 10000),
        ("Soccer", 5000),
    ]
    assert snapshot.total == 15000


def test_sync_never_rebills_academies_on_settled_invoice(db_session, semester, catalog):
    """
    Validate coverage by settled invoices.

    1. Enroll in Art, sync and pay in full.
    2. Sync again without changes and validate the invoice is untouched.
    3. Enroll in Piano and sync again.
    4. Validate only Piano is added and Art is not billed twice.
    """
    student = create_student(db_session, "Cover", "Age")
    create_enrollment(db_session, student_id=student.id, academy_id=catalog["art"].id, semester_id=semester.id)
    invoice = sync_invoice_for_student(db_session, student_id=student.id, semester_id=semester.id)
    apply_payment(db_session, invoice_id=invoice.id, amount=10000, method="cash")

    unchanged = sync_invoice_for_student(db_session, student_id=student.id, semester_id=semester.id)
    assert unchanged.id == invoice.id
    assert unchanged.status == InvoiceStatus.paid

    create_enrollment(db_session, student_id=student.id, academy_id=catalog["piano"].id, semester_id=semester.id)
    updated = sync_invoice_for_student(db_session, student_id=student.id, semester_id=semester.id)
    snapshot = invoice_to_snapshot(updated)
    assert [line.description for line in snapshot.lines] == ["Art", "Piano"]
    assert snapshot.balance == 10000
    assert snapshot.status == InvoiceStatus.partial
    assert len(list_invoices_for_student(db_session, student_id=student.id)) == 1


def test_sync_without_enrollments_creates_nothing(db_session, semester):
    student = create_student(db_session, "No", "Classes")
    assert sync_invoice_for_student(db_session, student_id=student.id, semester_id=semester.id) is None
    assert list_invoices_for_student(db_session, student_id=student.id) == []


def test_apply_discount_code_recomputes_totals(db_session, semester):
    """
    Validate applying a code to an existing invoice.

    1. Create a $100.00 invoice and pay $20.00.
    2. Apply SAVE50.
    3. Validate discount, total, balance and partial status.
    4. Validate an unknown code raises ValidationError.
    """
    student = create_student(db_session, "Code", "Later")
    invoice = create_invoice(db_session, student_id=student.id, semester_id=semester.id, lines=[_tuition("Art", 10000)])
    apply_payment(db_session, invoice_id=invoice.id, amount=2000, method="card")

    discounted = invoice_to_snapshot(apply_discount_code(db_session, invoice_id=invoice.id, code="SAVE50"))
    assert discounted.discount_amount == 5000
    assert discounted.total == 5000
    assert discounted.balance == 3000
    assert discounted.status == InvoiceStatus.partial
    with pytest.raises(ValidationError):
        apply_discount_code(db_session, invoice_id=invoice.id, code="NOPE")


def test_delete_invoice_requires_no_payments(db_session, semester):
    """
    Validate invoice deletion rules.

    1. Create an invoice and pay part of it.
    2. Validate deletion raises HasPaymentsError.
    3. Create an exonerated invoice for another student and delete it.
    4. Validate the invoice and its zero-amount audit payment are gone.
    """
    payer = create_student(db_session, "Has", "Paid")
    paid_invoice = create_invoice(db_session, student_id=payer.id, semester_id=semester.id, lines=[_tuition("Art", 10000)])
    apply_payment(db_session, invoice_id=paid_invoice.id, amount=1000, method="cash")
    with pytest.raises(HasPaymentsError):
        delete_invoice(db_session, invoice_id=paid_invoice.id)

    exonerated_student = create_student(db_session, "Free", "Ride")
    exonerated = create_invoice(
        db_session,
        student_id=exonerated_student.id,
        semester_id=semester.id,
        lines=[_tuition("Art", 10000)],
        discount_code="TEACHER100",
    )
    exonerated_id = exonerated.id
    delete_invoice(db_session, invoice_id=exonerated_id)
    assert get_entity_by_id(db_session, Invoice, exonerated_id) is None
    assert list_payments_for_invoice(db_session, invoice_id=exonerated_id) == []
    with pytest.raises(NotFoundError):
        get_invoice(db_session, invoice_id=exonerated_id)
