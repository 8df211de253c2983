from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from academy_office.application.errors import (
    ConfigurationError,
    DuplicateError,
    TransientStorageError,
)
from academy_office.application.services.integrity_checks_service import run_all_integrity_checks, summarize_findings
from academy_office.application.services.invoice_service import set_invoice_amounts
from academy_office.application.services.semester_service import get_semester_by_name
from academy_office.domain.enrollment_selection import ACADEMY_ALIASES, normalize_enrollments, parse_selection
from academy_office.domain.invoice_lines import LineType, describe
from academy_office.domain.invoice_status import InvoiceStatus
from academy_office.domain.money import legacy_minor, to_major, to_minor
from academy_office.domain.pricing import is_billable_name, normalize_name
from academy_office.domain.record_status import AttendanceStatus, EnrollmentStatus, MigrationRunStatus
from academy_office.infrastructure.db.models import (
    Academy,
    AttendanceRecord,
    AttendanceSession,
    Enrollment,
    Invoice,
    InvoiceItem,
    Level,
    MigrationRun,
    Payment,
    ProgressReport,
    Semester,
    Student,
)
from academy_office.infrastructure.legacy.snapshot import (
    LegacyDocument,
    LegacySnapshot,
    parse_legacy_date,
    parse_legacy_datetime,
)
from academy_office.infrastructure.logging import bind_log_context, clear_log_context, get_logger

logger = get_logger(__name__)

CREATED = "created"
EXISTING = "existing"
SKIPPED = "skipped"
FAILED = "failed"
MERGED = "merged"

RecordHandler = Callable[[], str]


@dataclass
class MigrationTally:
    counts: dict[str, dict[str, int]] = field(default_factory=dict)

    def record(self, entity: str, outcome: str) -> None:
        entity_counts = self.counts.setdefault(entity, {CREATED: 0, EXISTING: 0, SKIPPED: 0, FAILED: 0})
        entity_counts[outcome] = entity_counts.get(outcome, 0) + 1

    def get(self, entity: str, outcome: str) -> int:
        return self.counts.get(entity, {}).get(outcome, 0)

    def as_dict(self) -> dict[str, dict[str, int]]:
        return {entity: dict(counts) for entity, counts in sorted(self.counts.items())}


@dataclass
class MigrationContext:
    """Name and legacy-id lookups built while a single run progresses."""

    semester_id: int
    academy_ids: dict[str, int] = field(default_factory=dict)
    level_ids: dict[tuple[int, str], int] = field(default_factory=dict)
    student_ids: dict[str, int] = field(default_factory=dict)
    invoice_ids: dict[str, int] = field(default_factory=dict)
    session_ids: dict[tuple[int, date, int | None], int] = field(default_factory=dict)


def _process_record(
    db: Session,
    tally: MigrationTally,
    *,
    entity: str,
    legacy_id: str,
    handler: RecordHandler,
) -> str:
    try:
        with db.begin_nested():
            outcome = handler()
    except OperationalError as exc:
        raise TransientStorageError(f"Storage unavailable while migrating {entity} {legacy_id}") from exc
    except Exception as exc:
        tally.record(entity, FAILED)
        logger.error(
            "migration_record_failed",
            entity=entity,
            legacy_id=legacy_id,
            attempt=1,
            error_type=type(exc).__name__,
            error=str(exc),
        )
        return FAILED
    tally.record(entity, outcome)
    return outcome


def _text(value: Any) -> str | None:
    if value is None:
        return None
    text = " ".join(str(value).split())
    return text or None


def _resolve_academy(context: MigrationContext, academy_name: Any, level_name: Any) -> tuple[int | None, int | None]:
    academy = _text(academy_name)
    level = _text(level_name)
    if not is_billable_name(academy):
        return None, None
    alias = ACADEMY_ALIASES.get(normalize_name(academy))
    if alias is not None:
        academy, level = alias
    academy_id = context.academy_ids.get(normalize_name(academy))
    if academy_id is None:
        return None, None
    level_id = None
    if is_billable_name(level):
        level_id = context.level_ids.get((academy_id, normalize_name(level)))
    return academy_id, level_id


def _create_semester(db: Session, *, name: str, start_date: date | None, end_date: date | None) -> Semester:
    semester = Semester(name=name, start_date=start_date, end_date=end_date, is_active=True)
    db.add(semester)
    try:
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise DuplicateError(f"Semester {name!r} already exists") from exc
    return semester


def ensure_semester(
    db: Session,
    *,
    name: str,
    start_date: date | None = None,
    end_date: date | None = None,
) -> Semester:
    semester = get_semester_by_name(db=db, name=name)
    if semester is not None:
        logger.info("migration_semester_found", semester_id=semester.id, name=name)
        return semester
    try:
        semester = _create_semester(db, name=name, start_date=start_date, end_date=end_date)
    except DuplicateError:
        semester = get_semester_by_name(db=db, name=name)
        if semester is None:
            raise ConfigurationError(f"Semester {name!r} could not be created or fetched")
        logger.info("migration_semester_refetched_after_conflict", semester_id=semester.id, name=name)
        return semester
    except SQLAlchemyError as exc:
        db.rollback()
        raise ConfigurationError(f"Semester {name!r} could not be created: {exc}") from exc
    logger.info("migration_semester_created", semester_id=semester.id, name=name)
    return semester


def _upsert_level(db: Session, *, academy: Academy, raw: dict[str, Any], context: MigrationContext) -> str:
    name = _text(raw.get("name"))
    if name is None:
        return SKIPPED
    normalized = normalize_name(name)
    level = db.execute(
        select(Level).where(Level.academy_id == academy.id, Level.normalized_name == normalized)
    ).scalar_one_or_none()
    outcome = EXISTING
    if level is None:
        level = Level(academy_id=academy.id, name=name, normalized_name=normalized)
        db.add(level)
        outcome = CREATED
    level.schedule = _text(raw.get("schedule"))
    level.display_order = int(raw.get("order") or 0)
    db.flush()
    context.level_ids[(academy.id, normalized)] = level.id
    return outcome


def migrate_academies(db: Session, *, snapshot: LegacySnapshot, context: MigrationContext, tally: MigrationTally) -> None:
    for document in snapshot.documents("academies"):

        def handle(document: LegacyDocument = document) -> str:
            name = _text(document.get("name"))
            if name is None or not document.get("enabled"):
                return SKIPPED
            normalized = normalize_name(name)
            academy = db.execute(
                select(Academy).where(Academy.semester_id == context.semester_id, Academy.normalized_name == normalized)
            ).scalar_one_or_none()
            outcome = EXISTING
            if academy is None:
                academy = Academy(semester_id=context.semester_id, name=name, normalized_name=normalized)
                db.add(academy)
                outcome = CREATED
            academy.description = document.get("description")
            academy.price = to_major(to_minor(document.get("price") or 0))
            academy.schedule_summary = _text(document.get("schedule"))
            academy.display_order = int(document.get("order") or 0)
            academy.is_active = True
            db.flush()
            context.academy_ids[normalized] = academy.id
            return outcome

        outcome = _process_record(db, tally, entity="academies", legacy_id=document.id, handler=handle)
        academy_id = context.academy_ids.get(normalize_name(_text(document.get("name"))))
        levels = document.get("levels")
        if outcome == FAILED or academy_id is None or not document.get("hasLevels") or not isinstance(levels, list):
            continue
        academy = db.get(Academy, academy_id)
        for index, raw_level in enumerate(levels):
            if not isinstance(raw_level, dict):
                tally.record("levels", SKIPPED)
                continue
            _process_record(
                db,
                tally,
                entity="levels",
                legacy_id=f"{document.id}:{index}",
                handler=lambda raw_level=raw_level: _upsert_level(db, academy=academy, raw=raw_level, context=context),
            )


def refresh_level_map(db: Session, *, context: MigrationContext) -> None:
    rows = db.execute(
        select(Level.id, Level.academy_id, Level.normalized_name)
        .join(Academy, Academy.id == Level.academy_id)
        .where(Academy.semester_id == context.semester_id)
    ).all()
    for row in rows:
        context.level_ids[(row.academy_id, row.normalized_name)] = row.id


def _student_from_registration(document: LegacyDocument) -> Student:
    email = _text(document.get("email"))
    return Student(
        legacy_id=document.id,
        first_name=_text(document.get("firstName")),
        last_name=_text(document.get("lastName")),
        email=email.lower() if email else None,
        phone=_text(document.get("cellNumber") or document.get("phone")),
        guardian_name=_text(document.get("guardianName")),
        guardian_phone=_text(document.get("guardianPhone")),
        birth_date=parse_legacy_date(document.get("birthday")),
        gender=_text(document.get("gender")),
        t_shirt_size=_text(document.get("tShirtSize")),
        address={
            "street": document.get("address"),
            "city": document.get("city"),
            "state": document.get("state"),
            "zip": document.get("zipCode"),
        },
    )


def _migrate_student(db: Session, *, document: LegacyDocument, context: MigrationContext) -> str:
    if not _text(document.get("firstName")) or not _text(document.get("lastName")):
        return SKIPPED
    student = db.execute(select(Student).where(Student.legacy_id == document.id)).scalar_one_or_none()
    if student is not None:
        context.student_ids[document.id] = student.id
        return EXISTING
    email = _text(document.get("email"))
    if email:
        student = (
            db.execute(select(Student).where(func.lower(Student.email) == email.lower()).order_by(Student.id).limit(1))
            .scalars()
            .first()
        )
        if student is not None:
            logger.info(
                "migration_student_merged_by_email",
                legacy_id=document.id,
                student_id=student.id,
                kept_legacy_id=student.legacy_id,
            )
            context.student_ids[document.id] = student.id
            return MERGED
    student = _student_from_registration(document)
    db.add(student)
    db.flush()
    context.student_ids[document.id] = student.id
    return CREATED


def _migrate_enrollment(
    db: Session, *, student_id: int, academy_id: int, level_id: int | None, context: MigrationContext
) -> str:
    level_clause = Enrollment.level_id.is_(None) if level_id is None else Enrollment.level_id == level_id
    existing = db.execute(
        select(Enrollment.id).where(
            Enrollment.student_id == student_id,
            Enrollment.academy_id == academy_id,
            Enrollment.semester_id == context.semester_id,
            level_clause,
        )
    ).first()
    if existing is not None:
        return EXISTING
    db.add(
        Enrollment(
            student_id=student_id,
            academy_id=academy_id,
            level_id=level_id,
            semester_id=context.semester_id,
            status=EnrollmentStatus.active,
        )
    )
    db.flush()
    return CREATED


def migrate_registrations(
    db: Session, *, snapshot: LegacySnapshot, context: MigrationContext, tally: MigrationTally
) -> None:
    for document in snapshot.documents("registrations"):
        outcome = _process_record(
            db,
            tally,
            entity="students",
            legacy_id=document.id,
            handler=lambda document=document: _migrate_student(db, document=document, context=context),
        )
        student_id = context.student_ids.get(document.id)
        if outcome in {FAILED, SKIPPED} or student_id is None:
            continue
        for selection in normalize_enrollments(parse_selection(document.data), apply_aliases=True):
            academy_id, level_id = _resolve_academy(context, selection.academy_name, selection.level_name)
            if academy_id is None:
                logger.warning(
                    "migration_enrollment_academy_unresolved",
                    legacy_id=document.id,
                    academy_name=selection.academy_name,
                )
                tally.record("enrollments", SKIPPED)
                continue
            _process_record(
                db,
                tally,
                entity="enrollments",
                legacy_id=f"{document.id}:{selection.academy_name}",
                handler=lambda academy_id=academy_id, level_id=level_id: _migrate_enrollment(
                    db, student_id=student_id, academy_id=academy_id, level_id=level_id, context=context
                ),
            )


def _find_session(db: Session, *, academy_id: int, session_date: date, level_id: int | None) -> int | None:
    level_clause = AttendanceSession.level_id.is_(None) if level_id is None else AttendanceSession.level_id == level_id
    return db.execute(
        select(AttendanceSession.id).where(
            AttendanceSession.academy_id == academy_id,
            AttendanceSession.date == session_date,
            level_clause,
        )
    ).scalar_one_or_none()


def _ensure_session(
    db: Session,
    *,
    academy_id: int,
    session_date: date,
    level_id: int | None,
    notes: str | None,
    context: MigrationContext,
) -> int:
    key = (academy_id, session_date, level_id)
    session_id = context.session_ids.get(key)
    if session_id is not None:
        return session_id
    session_id = _find_session(db, academy_id=academy_id, session_date=session_date, level_id=level_id)
    if session_id is None:
        try:
            with db.begin_nested():
                session = AttendanceSession(academy_id=academy_id, level_id=level_id, date=session_date, notes=notes)
                db.add(session)
                db.flush()
                session_id = session.id
        except IntegrityError:
            session_id = _find_session(db, academy_id=academy_id, session_date=session_date, level_id=level_id)
            if session_id is None:
                raise
    context.session_ids[key] = session_id
    return session_id


def _migrate_attendance_record(db: Session, *, document: LegacyDocument, context: MigrationContext) -> str:
    student_id = context.student_ids.get(str(document.get("registrationId")))
    academy_id, level_id = _resolve_academy(context, document.get("academy"), document.get("level"))
    session_date = parse_legacy_date(document.get("date"))
    if student_id is None or academy_id is None or session_date is None:
        return SKIPPED
    session_id = _ensure_session(
        db,
        academy_id=academy_id,
        session_date=session_date,
        level_id=level_id,
        notes=_text(document.get("teacherNote")),
        context=context,
    )
    existing = db.execute(
        select(AttendanceRecord.id).where(
            AttendanceRecord.session_id == session_id,
            AttendanceRecord.student_id == student_id,
        )
    ).first()
    if existing is not None:
        return EXISTING
    db.add(
        AttendanceRecord(
            session_id=session_id,
            student_id=student_id,
            status=AttendanceStatus.present if document.get("present") else AttendanceStatus.absent,
            reason=_text(document.get("reason")),
        )
    )
    db.flush()
    return CREATED


def migrate_attendance(db: Session, *, snapshot: LegacySnapshot, context: MigrationContext, tally: MigrationTally) -> None:
    for document in snapshot.documents("attendance"):
        _process_record(
            db,
            tally,
            entity="attendance",
            legacy_id=document.id,
            handler=lambda document=document: _migrate_attendance_record(db, document=document, context=context),
        )


def _migrate_progress_report(db: Session, *, document: LegacyDocument, context: MigrationContext) -> str:
    student_id = context.student_ids.get(str(document.get("registrationId")))
    academy_id, level_id = _resolve_academy(context, document.get("academy"), document.get("level"))
    report_date = parse_legacy_date(document.get("date"))
    if student_id is None or academy_id is None or report_date is None:
        return SKIPPED
    level_clause = ProgressReport.level_id.is_(None) if level_id is None else ProgressReport.level_id == level_id
    existing = db.execute(
        select(ProgressReport.id).where(
            ProgressReport.student_id == student_id,
            ProgressReport.academy_id == academy_id,
            ProgressReport.date == report_date,
            level_clause,
        )
    ).first()
    if existing is not None:
        return EXISTING
    score = document.get("score")
    db.add(
        ProgressReport(
            student_id=student_id,
            academy_id=academy_id,
            level_id=level_id,
            date=report_date,
            score=int(score) if isinstance(score, (int, float)) and not isinstance(score, bool) else None,
            comments=_text(document.get("note")),
        )
    )
    db.flush()
    return CREATED


def migrate_progress(db: Session, *, snapshot: LegacySnapshot, context: MigrationContext, tally: MigrationTally) -> None:
    for document in snapshot.documents("progress"):
        _process_record(
            db,
            tally,
            entity="progress",
            legacy_id=document.id,
            handler=lambda document=document: _migrate_progress_report(db, document=document, context=context),
        )


def _legacy_line_type(raw: dict[str, Any], academy_name: str | None) -> LineType:
    try:
        return LineType(str(raw.get("type")))
    except ValueError:
        return LineType.tuition if academy_name else LineType.other


def _items_from_legacy(document: LegacyDocument) -> list[InvoiceItem]:
    raw_lines = document.get("lines")
    if not isinstance(raw_lines, list):
        raw_lines = document.get("items")
    if not isinstance(raw_lines, list):
        return []
    items = []
    for raw in raw_lines:
        if not isinstance(raw, dict):
            continue
        academy_name = _text(raw.get("academy") or raw.get("academyName"))
        level_name = _text(raw.get("level") or raw.get("levelName"))
        quantity = int(raw.get("quantity") or 1)
        amount = legacy_minor(raw.get("amount")) if raw.get("amount") is not None else None
        unit_price = legacy_minor(raw.get("unitPrice")) if raw.get("unitPrice") is not None else None
        if unit_price is None:
            unit_price = amount // quantity if amount is not None else 0
        if amount is None:
            amount = unit_price * quantity
        description = _text(raw.get("description")) or (describe(academy_name, level_name) if academy_name else "Item")
        items.append(
            InvoiceItem(
                description=description,
                academy_name=academy_name,
                level_name=level_name,
                unit_price=to_major(unit_price),
                quantity=quantity,
                amount=to_major(amount),
                type=_legacy_line_type(raw, academy_name),
            )
        )
    return items


def _migrate_invoice(db: Session, *, document: LegacyDocument, context: MigrationContext) -> str:
    existing = db.execute(select(Invoice.id).where(Invoice.legacy_id == document.id)).scalar_one_or_none()
    if existing is not None:
        context.invoice_ids[document.id] = existing
        return EXISTING
    student_id = context.student_ids.get(str(document.get("studentId")))
    if student_id is None:
        return SKIPPED
    items = _items_from_legacy(document)
    total = legacy_minor(document.get("total"))
    items_total = sum((to_minor(item.amount) for item in items), 0)
    subtotal = legacy_minor(document.get("subtotal")) if document.get("subtotal") is not None else None
    if subtotal is None:
        subtotal = items_total if items else total
    if document.get("discountAmount") is not None:
        discount = legacy_minor(document.get("discountAmount"))
    else:
        discount = max(subtotal - total, 0)
    exonerated = str(document.get("status") or "").lower() == InvoiceStatus.exonerated.value

    invoice = Invoice(
        legacy_id=document.id,
        student_id=student_id,
        semester_id=context.semester_id,
        discount_note=_text(document.get("discountNote") or document.get("discountCode")),
    )
    created_at = parse_legacy_datetime(document.get("createdAt"))
    if created_at is not None:
        invoice.created_at = created_at
    invoice.items.extend(items)
    set_invoice_amounts(
        invoice,
        subtotal=subtotal,
        discount=discount,
        paid=legacy_minor(document.get("paid")),
        exonerated=exonerated,
    )
    db.add(invoice)
    db.flush()
    context.invoice_ids[document.id] = invoice.id
    return CREATED


def migrate_invoices(db: Session, *, snapshot: LegacySnapshot, context: MigrationContext, tally: MigrationTally) -> None:
    for document in snapshot.documents("invoices"):
        _process_record(
            db,
            tally,
            entity="invoices",
            legacy_id=document.id,
            handler=lambda document=document: _migrate_invoice(db, document=document, context=context),
        )


def _migrate_payment(db: Session, *, document: LegacyDocument, context: MigrationContext) -> str:
    existing = db.execute(select(Payment.id).where(Payment.legacy_id == document.id)).first()
    if existing is not None:
        return EXISTING
    invoice_id = None
    legacy_invoice_id = _text(document.get("invoiceId"))
    if legacy_invoice_id:
        invoice_id = context.invoice_ids.get(legacy_invoice_id)
        if invoice_id is None:
            invoice_id = db.execute(
                select(Invoice.id).where(Invoice.legacy_id == legacy_invoice_id)
            ).scalar_one_or_none()
    student_id = context.student_ids.get(str(document.get("studentId")))
    if student_id is None and invoice_id is not None:
        student_id = db.execute(select(Invoice.student_id).where(Invoice.id == invoice_id)).scalar_one()
    if student_id is None:
        return SKIPPED
    created_at = parse_legacy_datetime(document.get("createdAt"))
    transaction_date = parse_legacy_datetime(document.get("date")) or created_at or datetime.now(timezone.utc)
    payment = Payment(
        legacy_id=document.id,
        student_id=student_id,
        invoice_id=invoice_id,
        amount=to_major(legacy_minor(document.get("amount"))),
        method=(_text(document.get("method")) or "unknown").lower(),
        notes=_text(document.get("notes")),
        transaction_date=transaction_date,
    )
    if created_at is not None:
        payment.created_at = created_at
    db.add(payment)
    db.flush()
    return CREATED


def migrate_payments(db: Session, *, snapshot: LegacySnapshot, context: MigrationContext, tally: MigrationTally) -> None:
    for document in snapshot.documents("payments"):
        _process_record(
            db,
            tally,
            entity="payments",
            legacy_id=document.id,
            handler=lambda document=document: _migrate_payment(db, document=document, context=context),
        )


def run_migration(
    db: Session,
    *,
    snapshot: LegacySnapshot,
    semester: Semester,
    snapshot_path: str | None = None,
) -> MigrationRun:
    """Reconcile a legacy snapshot into the relational schema.

    Steps run strictly in dependency order. Each record is applied inside its
    own savepoint, so a failing record is rolled back, logged and counted
    while the run carries on. Running twice over the same snapshot leaves the
    same rows behind.
    """
    run = MigrationRun(
        status=MigrationRunStatus.running,
        semester_name=semester.name,
        snapshot_path=snapshot_path,
        started_at=datetime.now(timezone.utc),
    )
    db.add(run)
    db.commit()
    bind_log_context(migration_run_id=run.id)
    logger.info("migration_run_started", run_id=run.id, semester_id=semester.id, snapshot_path=snapshot_path)

    context = MigrationContext(semester_id=semester.id)
    tally = MigrationTally()
    try:
        migrate_academies(db, snapshot=snapshot, context=context, tally=tally)
        refresh_level_map(db, context=context)
        db.commit()
        migrate_registrations(db, snapshot=snapshot, context=context, tally=tally)
        db.commit()
        migrate_attendance(db, snapshot=snapshot, context=context, tally=tally)
        migrate_progress(db, snapshot=snapshot, context=context, tally=tally)
        db.commit()
        migrate_invoices(db, snapshot=snapshot, context=context, tally=tally)
        migrate_payments(db, snapshot=snapshot, context=context, tally=tally)
        db.commit()
        findings = run_all_integrity_checks(db=db, semester_id=semester.id)
    except Exception as exc:
        db.rollback()
        mark_migration_run_failed(db=db, run_id=run.id, error_message=str(exc), tally=tally)
        clear_log_context()
        raise

    run.status = MigrationRunStatus.completed
    run.finished_at = datetime.now(timezone.utc)
    run.summary_json = {
        "tally": tally.as_dict(),
        "integrity": summarize_findings(findings),
        "findings": findings,
    }
    db.commit()
    logger.info(
        "migration_run_completed",
        run_id=run.id,
        tally=tally.as_dict(),
        findings_total=len(findings),
    )
    clear_log_context()
    return run


def mark_migration_run_failed(
    db: Session, *, run_id: int, error_message: str, tally: MigrationTally | None = None
) -> None:
    run = db.get(MigrationRun, run_id)
    if run is None:
        return
    run.status = MigrationRunStatus.failed
    run.finished_at = datetime.now(timezone.utc)
    run.summary_json = {"error": error_message, "tally": tally.as_dict() if tally is not None else {}}
    db.commit()
    logger.error("migration_run_failed", run_id=run_id, error=error_message)
