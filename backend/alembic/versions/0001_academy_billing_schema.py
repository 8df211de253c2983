"""create academy catalog, enrollment and billing tables

Revision ID: 0001_academy_billing_schema
Revises:
Create Date: 2026-03-02 09:00:00
"""

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "0001_academy_billing_schema"
down_revision = None
branch_labels = None
depends_on = None


INVOICE_STATUS = sa.Enum("unpaid", "partial", "paid", "exonerated", name="invoice_status")
LINE_TYPE = sa.Enum("tuition", "lunch_semester", "lunch_single", "other", name="invoice_line_type")
ENROLLMENT_STATUS = sa.Enum("active", "dropped", name="enrollment_status")
ATTENDANCE_STATUS = sa.Enum("present", "absent", name="attendance_status")
MIGRATION_RUN_STATUS = sa.Enum("queued", "running", "completed", "failed", name="migration_run_status")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    op.create_table(
        "semesters",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=True),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )
    op.create_index("ix_semesters_id", "semesters", ["id"], unique=False)
    op.create_index("ix_semesters_name", "semesters", ["name"], unique=True)

    op.create_table(
        "academies",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("semester_id", sa.Integer(), sa.ForeignKey("semesters.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("normalized_name", sa.String(length=255), nullable=False),
        sa.Column("price", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("schedule_summary", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("semester_id", "normalized_name", name="uq_academy_semester_name"),
    )
    op.create_index("ix_academies_id", "academies", ["id"], unique=False)
    op.create_index("ix_academies_semester_id", "academies", ["semester_id"], unique=False)
    op.create_index("ix_academies_normalized_name", "academies", ["normalized_name"], unique=False)

    op.create_table(
        "levels",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("academy_id", sa.Integer(), sa.ForeignKey("academies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("normalized_name", sa.String(length=255), nullable=False),
        sa.Column("schedule", sa.String(length=255), nullable=True),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("academy_id", "normalized_name", name="uq_level_academy_name"),
    )
    op.create_index("ix_levels_id", "levels", ["id"], unique=False)
    op.create_index("ix_levels_academy_id", "levels", ["academy_id"], unique=False)

    op.create_table(
        "students",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("legacy_id", sa.String(length=100), nullable=True, unique=True),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=50), nullable=True),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("gender", sa.String(length=20), nullable=True),
        sa.Column("guardian_name", sa.String(length=200), nullable=True),
        sa.Column("guardian_phone", sa.String(length=50), nullable=True),
        sa.Column("t_shirt_size", sa.String(length=20), nullable=True),
        sa.Column("address", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_students_id", "students", ["id"], unique=False)
    op.create_index("ix_students_email", "students", ["email"], unique=False)

    op.create_table(
        "enrollments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False),
        sa.Column("academy_id", sa.Integer(), sa.ForeignKey("academies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("level_id", sa.Integer(), sa.ForeignKey("levels.id", ondelete="SET NULL"), nullable=True),
        sa.Column("semester_id", sa.Integer(), sa.ForeignKey("semesters.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", ENROLLMENT_STATUS, nullable=False, server_default="active"),
        *_timestamps(),
        sa.UniqueConstraint("student_id", "academy_id", "level_id", "semester_id", name="uq_enrollment_selection"),
    )
    op.create_index("ix_enrollments_id", "enrollments", ["id"], unique=False)
    op.create_index("ix_enrollments_student_id", "enrollments", ["student_id"], unique=False)
    op.create_index("ix_enrollments_academy_id", "enrollments", ["academy_id"], unique=False)
    op.create_index("ix_enrollments_level_id", "enrollments", ["level_id"], unique=False)
    op.create_index("ix_enrollments_semester_id", "enrollments", ["semester_id"], unique=False)

    op.create_table(
        "invoices",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("legacy_id", sa.String(length=100), nullable=True, unique=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("semester_id", sa.Integer(), sa.ForeignKey("semesters.id", ondelete="CASCADE"), nullable=False),
        sa.Column("subtotal", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("discount_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("discount_note", sa.String(length=255), nullable=True),
        sa.Column("total", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("paid_amount", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("balance", sa.Numeric(10, 2), nullable=False, server_default="0"),
        sa.Column("status", INVOICE_STATUS, nullable=False, server_default="unpaid"),
        sa.Column("is_exonerated", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("ix_invoices_id", "invoices", ["id"], unique=False)
    op.create_index("ix_invoices_student_id", "invoices", ["student_id"], unique=False)
    op.create_index("ix_invoices_semester_id", "invoices", ["semester_id"], unique=False)
    op.create_index("ix_invoices_status", "invoices", ["status"], unique=False)

    op.create_table(
        "invoice_items",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("invoice_id", sa.Integer(), sa.ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False),
        sa.Column("description", sa.String(length=255), nullable=False),
        sa.Column("academy_name", sa.String(length=255), nullable=True),
        sa.Column("level_name", sa.String(length=255), nullable=True),
        sa.Column("unit_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("type", LINE_TYPE, nullable=False, server_default="tuition"),
        *_timestamps(),
    )
    op.create_index("ix_invoice_items_id", "invoice_items", ["id"], unique=False)
    op.create_index("ix_invoice_items_invoice_id", "invoice_items", ["invoice_id"], unique=False)

    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("legacy_id", sa.String(length=100), nullable=True, unique=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("invoice_id", sa.Integer(), sa.ForeignKey("invoices.id", ondelete="SET NULL"), nullable=True),
        sa.Column("amount", sa.Numeric(10, 2), nullable=False),
        sa.Column("method", sa.String(length=50), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_payments_id", "payments", ["id"], unique=False)
    op.create_index("ix_payments_student_id", "payments", ["student_id"], unique=False)
    op.create_index("ix_payments_invoice_id", "payments", ["invoice_id"], unique=False)
    op.create_index("ix_payments_method", "payments", ["method"], unique=False)
    op.create_index("ix_payments_transaction_date", "payments", ["transaction_date"], unique=False)

    op.create_table(
        "attendance_sessions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("academy_id", sa.Integer(), sa.ForeignKey("academies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("level_id", sa.Integer(), sa.ForeignKey("levels.id", ondelete="SET NULL"), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("academy_id", "date", "level_id", name="uq_attendance_session"),
    )
    op.create_index("ix_attendance_sessions_id", "attendance_sessions", ["id"], unique=False)
    op.create_index("ix_attendance_sessions_academy_id", "attendance_sessions", ["academy_id"], unique=False)
    op.create_index("ix_attendance_sessions_date", "attendance_sessions", ["date"], unique=False)

    op.create_table(
        "attendance_records",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "session_id",
            sa.Integer(),
            sa.ForeignKey("attendance_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", ATTENDANCE_STATUS, nullable=False),
        sa.Column("reason", sa.String(length=255), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("session_id", "student_id", name="uq_attendance_record"),
    )
    op.create_index("ix_attendance_records_id", "attendance_records", ["id"], unique=False)
    op.create_index("ix_attendance_records_session_id", "attendance_records", ["session_id"], unique=False)
    op.create_index("ix_attendance_records_student_id", "attendance_records", ["student_id"], unique=False)

    op.create_table(
        "progress_reports",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("student_id", sa.Integer(), sa.ForeignKey("students.id", ondelete="CASCADE"), nullable=False),
        sa.Column("academy_id", sa.Integer(), sa.ForeignKey("academies.id", ondelete="CASCADE"), nullable=False),
        sa.Column("level_id", sa.Integer(), sa.ForeignKey("levels.id", ondelete="SET NULL"), nullable=True),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("comments", sa.Text(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_progress_reports_id", "progress_reports", ["id"], unique=False)
    op.create_index("ix_progress_reports_student_id", "progress_reports", ["student_id"], unique=False)
    op.create_index("ix_progress_reports_academy_id", "progress_reports", ["academy_id"], unique=False)

    op.create_table(
        "migration_runs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("status", MIGRATION_RUN_STATUS, nullable=False, server_default="queued"),
        sa.Column("semester_name", sa.String(length=100), nullable=False),
        sa.Column("snapshot_path", sa.String(length=500), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("summary_json", sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_migration_runs_id", "migration_runs", ["id"], unique=False)
    op.create_index("ix_migration_runs_status", "migration_runs", ["status"], unique=False)


def downgrade() -> None:
    op.drop_table("migration_runs")
    op.drop_table("progress_reports")
    op.drop_table("attendance_records")
    op.drop_table("attendance_sessions")
    op.drop_table("payments")
    op.drop_table("invoice_items")
    op.drop_table("invoices")
    op.drop_table("enrollments")
    op.drop_table("students")
    op.drop_table("levels")
    op.drop_table("academies")
    op.drop_table("semesters")

    bind = op.get_bind()
    for enum_type in (MIGRATION_RUN_STATUS, ATTENDANCE_STATUS, ENROLLMENT_STATUS, LINE_TYPE, INVOICE_STATUS):
        enum_type.drop(bind, checkfirst=True)
