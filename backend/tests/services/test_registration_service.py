from decimal import Decimal

import pytest

from academy_office.application.errors import HasEnrollmentsError, HasPaymentsError, NotFoundError, ValidationError
from academy_office.application.services.invoice_service import invoice_to_snapshot
from academy_office.application.services.payment_service import apply_payment
from academy_office.application.services.registration_service import (
    delete_student,
    find_student_by_email,
    register_student,
)
from academy_office.domain.invoice_lines import LineType
from academy_office.domain.invoice_status import InvoiceStatus
from academy_office.infrastructure.db.models import Invoice, Student
from academy_office.interfaces.api.v1.schemas.registration import PeriodSelectionPayload, RegistrationCreate
from tests.helpers.factories import (
    create_invoice,
    create_student,
    get_entity_by_id,
    list_enrollments_for_student,
    list_invoices_for_student,
    list_payments_for_invoice,
    list_students,
)


def _payload(**overrides) -> RegistrationCreate:
    values = {"first_name": "Mina", "last_name": "Cho", "email": "mina@example.com"}
    values.update(overrides)
    return RegistrationCreate(**values)


def test_register_student_creates_enrollments_and_invoice(db_session, semester, catalog):
    """
    Validate a two-period registration with lunch.

    1. Register with Art (Beginner) and the legacy Korean Conversation academy plus semester lunch.
    2. Validate the alias maps to Korean Language with the Conversation level.
    3. Validate two enrollments with their levels are stored.
    4. Validate the invoice bills both academies and the lunch.
    """
    result = register_student(
        db_session,
        semester_id=semester.id,
        payload=_payload(
            first_period=PeriodSelectionPayload(academy="Art", level="Beginner"),
            second_period=PeriodSelectionPayload(academy="Korean Conversation"),
            lunch_semester=True,
        ),
    )
    enrollments = list_enrollments_for_student(db_session, student_id=result.student.id)
    assert [enrollment.academy_id for enrollment in enrollments] == [catalog["art"].id, catalog["korean"].id]
    assert all(enrollment.level_id is not None for enrollment in enrollments)
    assert result.skipped_academies == []

    snapshot = invoice_to_snapshot(result.invoice)
    assert [(line.description, line.amount, line.line_type) for line in snapshot.lines] == [
        ("Art - Beginner", 10000, LineType.tuition),
        ("Korean Language - Conversation", 5000, LineType.tuition),
        ("Lunch (semester)", 4000, LineType.lunch_semester),
    ]
    assert snapshot.total == 19000
    assert snapshot.status == InvoiceStatus.unpaid


def test_register_student_skips_unknown_academies(db_session, semester, catalog):
    """
    Validate unknown academies are reported, not enrolled.

    1. Register with a list selection holding Soccer and an unknown academy.
    2. Validate only Soccer is enrolled.
    3. Validate the unknown academy is reported as skipped.
    """
    result = register_student(
        db_session,
        semester_id=semester.id,
        payload=_payload(
            selected_academies=[PeriodSelectionPayload(academy="Soccer"), PeriodSelectionPayload(academy="Chess")]
        ),
    )
    assert [enrollment.academy_id for enrollment in result.enrollments] == [catalog["soccer"].id]
    assert result.skipped_academies == ["Chess"]
    assert invoice_to_snapshot(result.invoice).total == 5000


def test_reregistration_matches_email_and_replaces_enrollments(db_session, semester, catalog):
    """
    Validate registering again with the same email.

    1. Register with Art and three single lunches.
    2. Register again with a differently-cased email and only Piano.
    3. Validate one student exists with only the Piano enrollment.
    4. Validate the same invoice now bills Piano and keeps the lunch extras.
    """
    first = register_student(
        db_session,
        semester_id=semester.id,
        payload=_payload(first_period=PeriodSelectionPayload(academy="Art"), lunch_single_count=3),
    )
    second = register_student(
        db_session,
        semester_id=semester.id,
        payload=_payload(
            email="MINA@example.com",
            phone="555-0100",
            first_period=PeriodSelectionPayload(academy="Piano"),
        ),
    )
    assert second.student.id == first.student.id
    assert len(list_students(db_session)) == 1
    assert second.student.phone == "555-0100"
    enrollments = list_enrollments_for_student(db_session, student_id=first.student.id)
    assert [enrollment.academy_id for enrollment in enrollments] == [catalog["piano"].id]

    assert second.invoice.id == first.invoice.id
    snapshot = invoice_to_snapshot(second.invoice)
    assert [line.description for line in snapshot.lines] == ["Piano", "Lunch (single)"]
    assert snapshot.total == 10000 + 3 * 400


def test_register_student_with_full_discount_code_is_exonerated(db_session, semester, catalog):
    result = register_student(
        db_session,
        semester_id=semester.id,
        payload=_payload(first_period=PeriodSelectionPayload(academy="Art"), discount_code="TEACHER100"),
    )
    assert result.invoice.status == InvoiceStatus.exonerated
    assert result.invoice.total == 0


def test_register_student_rejects_unknown_code_and_semester(db_session, semester, catalog):
    """
    Validate registration failures.

    1. Register with an unknown discount code and validate ValidationError.
    2. Register into a missing semester and validate NotFoundError.
    """
    with pytest.raises(ValidationError):
        register_student(
            db_session,
            semester_id=semester.id,
            payload=_payload(first_period=PeriodSelectionPayload(academy="Art"), discount_code="BOGUS"),
        )
    with pytest.raises(NotFoundError):
        register_student(db_session, semester_id=999, payload=_payload())


def test_find_student_by_email_prefers_oldest_match(db_session):
    oldest = create_student(db_session, "First", "Twin", "twin@example.com")
    create_student(db_session, "Second", "Twin", "TWIN@example.com")
    assert find_student_by_email(db_session, email=" Twin@Example.com ").id == oldest.id
    assert find_student_by_email(db_session, email="") is None


def test_delete_student_rejected_while_enrolled(db_session, semester, catalog):
    """
    Validate student deletion rules.

    1. Register a student into Soccer.
    2. Validate deletion raises HasEnrollmentsError.
    3. Delete a student without enrollments and validate it is gone.
    """
    result = register_student(
        db_session,
        semester_id=semester.id,
        payload=_payload(first_period=PeriodSelectionPayload(academy="Soccer")),
    )
    with pytest.raises(HasEnrollmentsError):
        delete_student(db_session, student_id=result.student.id)
    assert len(list_invoices_for_student(db_session, student_id=result.student.id)) == 1

    loner = create_student(db_session, "Lone", "Student")
    loner_id = loner.id
    delete_student(db_session, student_id=loner_id)
    assert get_entity_by_id(db_session, Student, loner_id) is None
    with pytest.raises(NotFoundError):
        delete_student(db_session, student_id=loner_id)


def test_delete_student_rejected_while_payments_exist(db_session, semester, catalog):
    """
    Validate a student with collected money cannot be deleted.

    1. Register into Soccer and pay the invoice in full.
    2. Register again with no academies so no enrollments remain.
    3. Validate deletion raises HasPaymentsError.
    4. Validate the paid invoice and its payment are still stored.
    """
    result = register_student(
        db_session,
        semester_id=semester.id,
        payload=_payload(first_period=PeriodSelectionPayload(academy="Soccer")),
    )
    apply_payment(db_session, invoice_id=result.invoice.id, amount=5000, method="cash")
    register_student(db_session, semester_id=semester.id, payload=_payload())
    assert list_enrollments_for_student(db_session, student_id=result.student.id) == []

    with pytest.raises(HasPaymentsError):
        delete_student(db_session, student_id=result.student.id)
    invoices = list_invoices_for_student(db_session, student_id=result.student.id)
    assert [invoice.status for invoice in invoices] == [InvoiceStatus.paid]
    assert [payment.amount for payment in list_payments_for_invoice(db_session, invoice_id=invoices[0].id)] == [
        Decimal("50.00")
    ]
    assert get_entity_by_id(db_session, Student, result.student.id) is not None


def test_delete_student_removes_unpaid_invoices(db_session, semester):
    """
    Validate deleting a student who owes but never paid.

    1. Seed a student with an unpaid invoice and no enrollments.
    2. Delete the student.
    3. Validate the student and the unpaid invoice are gone.
    """
    student = create_student(db_session, "Never", "Paid")
    invoice = create_invoice(
        db_session,
        student_id=student.id,
        semester_id=semester.id,
        total="50.00",
        items=[("Soccer", "50.00", "Soccer")],
    )
    student_id, invoice_id = student.id, invoice.id

    delete_student(db_session, student_id=student_id)
    assert get_entity_by_id(db_session, Student, student_id) is None
    assert get_entity_by_id(db_session, Invoice, invoice_id) is None
