from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from academy_office.application.errors import HasEnrollmentsError, HasPaymentsError
from academy_office.application.services.invoice_lifecycle_service import sync_invoice_for_student
from academy_office.application.services.invoice_service import get_student
from academy_office.application.services.outstanding_balance_service import invalidate_outstanding_cache
from academy_office.application.services.pricing_service import list_active_academies
from academy_office.application.services.semester_service import get_semester
from academy_office.config import settings
from academy_office.domain.enrollment_selection import normalize_enrollments
from academy_office.domain.invoice_lines import lunch_lines
from academy_office.domain.money import to_minor
from academy_office.domain.pricing import normalize_name
from academy_office.domain.record_status import EnrollmentStatus
from academy_office.infrastructure.db.models import Academy, Enrollment, Invoice, InvoiceItem, Level, Payment, Student
from academy_office.infrastructure.logging import get_logger
from academy_office.interfaces.api.v1.schemas.registration import RegistrationCreate

logger = get_logger(__name__)

_PROFILE_FIELDS = (
    "phone",
    "birth_date",
    "gender",
    "guardian_name",
    "guardian_phone",
    "t_shirt_size",
    "address",
)


@dataclass
class RegistrationResult:
    student: Student
    enrollments: list[Enrollment]
    skipped_academies: list[str] = field(default_factory=list)
    invoice: Invoice | None = None


def find_student_by_email(db: Session, *, email: str | None) -> Student | None:
    """Case-insensitive lookup; the oldest match wins when the email is shared."""
    if not email or not email.strip():
        return None
    return (
        db.execute(
            select(Student).where(func.lower(Student.email) == email.strip().lower()).order_by(Student.id).limit(1)
        )
        .scalars()
        .first()
    )


def _upsert_student(db: Session, *, payload: RegistrationCreate) -> Student:
    student = find_student_by_email(db=db, email=payload.email)
    if student is None:
        student = Student(
            first_name=payload.first_name.strip(),
            last_name=payload.last_name.strip(),
            email=payload.email.strip().lower() if payload.email else None,
        )
        db.add(student)
    else:
        logger.info("registration_matched_existing_student", student_id=student.id)
    for name in _PROFILE_FIELDS:
        value = getattr(payload, name)
        if value is not None:
            setattr(student, name, value)
    db.flush()
    return student


def _academy_lookup(db: Session, *, semester_id: int) -> dict[str, Academy]:
    return {academy.normalized_name: academy for academy in list_active_academies(db=db, semester_id=semester_id)}


def _find_level(academy: Academy, level_name: str | None) -> Level | None:
    wanted = normalize_name(level_name)
    if not wanted:
        return None
    for level in academy.levels:
        if level.normalized_name == wanted:
            return level
    return None


def register_student(db: Session, *, semester_id: int, payload: RegistrationCreate) -> RegistrationResult:
    logger.info("registration_started", semester_id=semester_id, email=payload.email)
    get_semester(db=db, semester_id=semester_id)
    student = _upsert_student(db=db, payload=payload)
    academies = _academy_lookup(db=db, semester_id=semester_id)

    db.execute(delete(Enrollment).where(Enrollment.student_id == student.id, Enrollment.semester_id == semester_id))
    enrollments: list[Enrollment] = []
    skipped: list[str] = []
    seen: set[tuple[int, int | None]] = set()
    for selection in normalize_enrollments(payload.to_selection(), apply_aliases=True):
        academy = academies.get(normalize_name(selection.academy_name))
        if academy is None:
            logger.warning(
                "registration_academy_unresolved",
                student_id=student.id,
                academy_name=selection.academy_name,
            )
            skipped.append(selection.academy_name)
            continue
        level = _find_level(academy, selection.level_name)
        key = (academy.id, level.id if level is not None else None)
        if key in seen:
            continue
        seen.add(key)
        enrollment = Enrollment(
            student_id=student.id,
            academy_id=academy.id,
            level_id=key[1],
            semester_id=semester_id,
            status=EnrollmentStatus.active,
        )
        db.add(enrollment)
        enrollments.append(enrollment)
    db.commit()

    extras = lunch_lines(
        payload.lunch_semester,
        payload.lunch_single_count,
        semester_price=to_minor(settings.lunch_semester_price),
        single_price=to_minor(settings.lunch_single_price),
    )
    invoice = sync_invoice_for_student(
        db=db,
        student_id=student.id,
        semester_id=semester_id,
        extras=extras or None,
        discount_code=payload.discount_code,
    )
    logger.info(
        "registration_completed",
        student_id=student.id,
        semester_id=semester_id,
        enrollments_count=len(enrollments),
        skipped_count=len(skipped),
        invoice_id=invoice.id if invoice is not None else None,
    )
    return RegistrationResult(student=student, enrollments=enrollments, skipped_academies=skipped, invoice=invoice)


def delete_student(db: Session, *, student_id: int) -> None:
    """Hard-delete a student with no enrollments and nothing collected.

    Unpaid invoices go with the student; paid invoices and payment rows are
    ledger entries and block the deletion until they are reversed.
    """
    student = get_student(db=db, student_id=student_id)
    remaining = db.execute(select(func.count(Enrollment.id)).where(Enrollment.student_id == student_id)).scalar_one()
    if remaining:
        logger.warning("student_deletion_rejected_has_enrollments", student_id=student_id, enrollments=remaining)
        raise HasEnrollmentsError("Student still has enrollments")
    paid_invoices = db.execute(
        select(func.count(Invoice.id)).where(Invoice.student_id == student_id, Invoice.paid_amount > 0)
    ).scalar_one()
    ledger_payments = db.execute(
        select(func.count(Payment.id)).where(Payment.student_id == student_id, Payment.amount != Decimal("0.00"))
    ).scalar_one()
    if paid_invoices or ledger_payments:
        logger.warning(
            "student_deletion_rejected_has_payments",
            student_id=student_id,
            paid_invoices=paid_invoices,
            payments=ledger_payments,
        )
        raise HasPaymentsError("Student has payments; reverse them before deleting")

    invoice_ids = list(db.execute(select(Invoice.id).where(Invoice.student_id == student_id)).scalars().all())
    semester_ids = set(
        db.execute(select(Invoice.semester_id).where(Invoice.student_id == student_id)).scalars().all()
    )
    db.execute(delete(Payment).where(Payment.student_id == student_id))
    if invoice_ids:
        db.execute(delete(InvoiceItem).where(InvoiceItem.invoice_id.in_(invoice_ids)))
        db.execute(delete(Invoice).where(Invoice.id.in_(invoice_ids)))
    db.expire(student, ["invoices", "payments"])
    db.delete(student)
    db.commit()
    for semester_id in semester_ids:
        invalidate_outstanding_cache(semester_id=semester_id)
    logger.info("student_deleted", student_id=student_id, invoices_removed=len(invoice_ids))
