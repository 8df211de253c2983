from datetime import date

from academy_office.application.services.invoice_service import invoice_to_snapshot
from academy_office.application.services.migration_service import ensure_semester, run_migration
from academy_office.domain.invoice_status import InvoiceStatus
from academy_office.domain.record_status import MigrationRunStatus
from academy_office.infrastructure.db.models import Academy, Enrollment, Invoice, Level, Payment, Student
from academy_office.infrastructure.legacy.snapshot import LegacyDocument, LegacySnapshot, parse_legacy_datetime
from tests.helpers.factories import (
    count_attendance,
    count_progress_reports,
    count_rows,
    list_enrollments_for_student,
    list_invoices_for_student,
    list_migration_runs,
    list_payments_for_invoice,
    list_students,
)


def _snapshot() -> LegacySnapshot:
    def docs(*items: tuple[str, dict]) -> list[LegacyDocument]:
        return [LegacyDocument(id=doc_id, data=data) for doc_id, data in items]

    return LegacySnapshot(
        collections={
            "academies": docs(
                (
                    "a1",
                    {
                        "name": "Art",
                        "enabled": True,
                        "price": 100,
                        "order": 1,
                        "hasLevels": True,
                        "levels": [{"name": "Beginner", "schedule": "9:00"}],
                    },
                ),
                (
                    "a2",
                    {
                        "name": "Korean Language",
                        "enabled": True,
                        "price": "50",
                        "order": 2,
                        "hasLevels": True,
                        "levels": [{"name": "Conversation"}],
                    },
                ),
                ("a3", {"name": "Retired", "enabled": False, "price": 10}),
            ),
            "registrations": docs(
                (
                    "r1",
                    {
                        "firstName": "Alice",
                        "lastName": "Kim",
                        "email": "alice@example.com",
                        "birthday": "2014-06-01",
                        "firstPeriod": {"academy": "Art", "level": "Beginner"},
                        "secondPeriod": {"academy": "Korean Conversation"},
                    },
                ),
                (
                    "r2",
                    {"firstName": "Alice", "lastName": "Kim", "email": "ALICE@example.com", "selectedAcademies": []},
                ),
                (
                    "r3",
                    {
                        "firstName": "Bob",
                        "lastName": "Lee",
                        "selectedAcademies": [{"academy": "Art"}, {"academy": "Underwater Chess"}],
                    },
                ),
                ("r4", {"lastName": "Nameless", "firstPeriod": {"academy": "Art"}}),
            ),
            "attendance": docs(
                (
                    "t1",
                    {"registrationId": "r1", "academy": "Art", "level": "Beginner", "date": "2026-03-01", "present": True},
                ),
                (
                    "t2",
                    {
                        "registrationId": "r3",
                        "academy": "Art",
                        "level": "Beginner",
                        "date": "2026-03-01",
                        "present": False,
                        "reason": "Sick",
                    },
                ),
            ),
            "progress": docs(
                (
                    "p1",
                    {
                        "registrationId": "r1",
                        "academy": "Korean Language",
                        "level": "Conversation",
                        "date": "2026-03-05",
                        "score": 4,
                        "note": "Great pronunciation",
                    },
                ),
            ),
            "invoices": docs(
                (
                    "i1",
                    {
                        "studentId": "r1",
                        "total": 15000,
                        "paid": 5000,
                        "createdAt": {"_seconds": 1772323200, "_nanoseconds": 0},
                        "items": [
                            {"academy": "Art", "level": "Beginner", "amount": 10000},
                            {"academy": "Korean Language", "level": "Conversation", "amount": 5000},
                        ],
                    },
                ),
                ("i2", {"studentId": "ghost", "total": 5000}),
            ),
            "payments": docs(
                (
                    "pay1",
                    {
                        "invoiceId": "i1",
                        "studentId": "r1",
                        "amount": 5000,
                        "method": "Zelle",
                        "date": "2026-03-02T10:00:00Z",
                    },
                ),
                ("pay2", {"invoiceId": "i1", "studentId": "r1", "amount": "abc", "method": "cash"}),
            ),
        }
    )


def _tally(run) -> dict[str, dict[str, int]]:
    return run.summary_json["tally"]


def test_run_migration_reconciles_snapshot(db_session, semester):
    """
    Validate a first migration run over a legacy snapshot.

    1. Run the migration into the active semester.
    2. Validate per-entity created, skipped, merged and failed tallies.
    3. Validate duplicate emails merge into the first student.
    4. Validate the legacy invoice keeps its paid amount and the migrated payment is linked.
    5. Validate the run completed with no integrity findings.
    """
    run = run_migration(db_session, snapshot=_snapshot(), semester=semester, snapshot_path="memory")
    tally = _tally(run)

    assert run.status == MigrationRunStatus.completed
    assert tally["academies"]["created"] == 2
    assert tally["academies"]["skipped"] == 1
    assert tally["levels"]["created"] == 2
    assert tally["students"]["created"] == 2
    assert tally["students"]["merged"] == 1
    assert tally["students"]["skipped"] == 1
    assert tally["enrollments"]["created"] == 3
    assert tally["enrollments"]["skipped"] == 1
    assert tally["attendance"]["created"] == 2
    assert tally["progress"]["created"] == 1
    assert tally["invoices"]["created"] == 1
    assert tally["invoices"]["skipped"] == 1
    assert tally["payments"]["created"] == 1
    assert tally["payments"]["failed"] == 1
    assert run.summary_json["integrity"]["findings_total"] == 0

    students = list_students(db_session)
    assert [(student.first_name, student.legacy_id, student.email) for student in students] == [
        ("Alice", "r1", "alice@example.com"),
        ("Bob", "r3", None),
    ]
    assert students[0].birth_date == date(2014, 6, 1)
    alice_enrollments = list_enrollments_for_student(db_session, student_id=students[0].id)
    assert len(alice_enrollments) == 2
    assert all(enrollment.level_id is not None for enrollment in alice_enrollments)
    assert [enrollment.level_id for enrollment in list_enrollments_for_student(db_session, student_id=students[1].id)] == [
        None
    ]

    invoices = list_invoices_for_student(db_session, student_id=students[0].id)
    assert len(invoices) == 1
    snapshot = invoice_to_snapshot(invoices[0])
    assert (snapshot.total, snapshot.paid, snapshot.balance, snapshot.status) == (15000, 5000, 10000, InvoiceStatus.partial)
    assert invoices[0].legacy_id == "i1"
    payments = list_payments_for_invoice(db_session, invoice_id=invoices[0].id)
    assert [(payment.legacy_id, payment.method) for payment in payments] == [("pay1", "zelle")]
    assert count_attendance(db_session) == (1, 2)
    assert count_progress_reports(db_session) == 1


def test_run_migration_twice_is_idempotent(db_session, semester):
    """
    Validate re-running the migration over the same snapshot.

    1. Run the migration twice.
    2. Validate the second run reports existing rows instead of creating them.
    3. Validate domain row counts are unchanged.
    4. Validate each run is recorded.
    """
    run_migration(db_session, snapshot=_snapshot(), semester=semester)
    counts_after_first = {
        model.__name__: count_rows(db_session, model) for model in (Academy, Level, Student, Enrollment, Invoice, Payment)
    }

    second = run_migration(db_session, snapshot=_snapshot(), semester=semester)
    tally = _tally(second)
    assert tally["academies"]["existing"] == 2
    assert tally["academies"]["created"] == 0
    assert tally["levels"]["existing"] == 2
    assert tally["students"]["existing"] == 2
    assert tally["students"]["merged"] == 1
    assert tally["enrollments"]["existing"] == 3
    assert tally["attendance"]["existing"] == 2
    assert tally["progress"]["existing"] == 1
    assert tally["invoices"]["existing"] == 1
    assert tally["payments"]["existing"] == 1
    assert tally["payments"]["failed"] == 1

    counts_after_second = {
        model.__name__: count_rows(db_session, model) for model in (Academy, Level, Student, Enrollment, Invoice, Payment)
    }
    assert counts_after_second == counts_after_first
    assert counts_after_first == {"Academy": 2, "Level": 2, "Student": 2, "Enrollment": 3, "Invoice": 1, "Payment": 1}
    assert count_attendance(db_session) == (1, 2)
    assert [run.status for run in list_migration_runs(db_session)] == [
        MigrationRunStatus.completed,
        MigrationRunStatus.completed,
    ]


def test_ensure_semester_reuses_or_creates(db_session, semester):
    assert ensure_semester(db_session, name="Spring 2026").id == semester.id
    fall = ensure_semester(db_session, name="Fall 2026", start_date=date(2026, 9, 1), end_date=date(2026, 12, 15))
    assert fall.id != semester.id
    assert fall.start_date == date(2026, 9, 1)
    assert ensure_semester(db_session, name="Fall 2026").id == fall.id


def test_run_migration_counts_unexpected_record_errors(db_session, semester, monkeypatch):
    """
    Validate one bad record never aborts the run.

    1. Add an invoice whose creation timestamp is far out of range.
    2. Make parsing one payment date fail with an OverflowError.
    3. Run the migration.
    4. Validate the invoice is created, the payment is counted as failed and the run completes.
    """
    snapshot = _snapshot()
    snapshot.collections["invoices"].append(
        LegacyDocument(
            id="i3",
            data={
                "studentId": "r3",
                "total": 5000,
                "createdAt": {"_seconds": 10**20},
                "items": [{"academy": "Art", "amount": 5000}],
            },
        )
    )

    def parse_or_overflow(value):
        if value == "2026-03-02T10:00:00Z":
            raise OverflowError("date value out of range")
        return parse_legacy_datetime(value)

    monkeypatch.setattr(
        "academy_office.application.services.migration_service.parse_legacy_datetime", parse_or_overflow
    )

    run = run_migration(db_session, snapshot=snapshot, semester=semester)
    tally = _tally(run)
    assert run.status == MigrationRunStatus.completed
    assert tally["invoices"]["created"] == 2
    assert tally["invoices"]["skipped"] == 1
    assert tally["payments"]["created"] == 0
    assert tally["payments"]["failed"] == 2
    assert run.summary_json["integrity"]["by_check"] == {"invoice_paid_vs_payments_mismatch": 1}
    assert count_rows(db_session, Payment) == 0
