"""users, cases and case audit trail

Revision ID: 0001_users_and_cases
Revises:
Create Date: 2026-10-16
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_users_and_cases"
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ─────────── USERS ───────────
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("email", sa.String(length=256), nullable=False, unique=True),
        sa.Column("first_name", sa.String(length=128), nullable=False),
        sa.Column("last_name", sa.String(length=128), nullable=False),
        sa.Column("phone", sa.String(length=64), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("password_hash", sa.String(length=256), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("creation_method", sa.String(length=32), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "role IN ('family', 'donor', 'checker', 'admin')", name="ck_users_role"
        ),
    )
    op.create_index("ix_users_role_active", "users", ["role", "is_active"])

    # ─────────── CASES ───────────
    op.create_table(
        "cases",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("case_id", sa.String(length=32), nullable=False, unique=True),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("user_email", sa.String(length=256), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'draft'")),
        sa.Column("family_data", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("village", sa.String(length=128), nullable=True),
        sa.Column("total_needed", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("total_raised", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("donation_progress", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("form_completion", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("source", sa.String(length=64), nullable=False, server_default=sa.text("'family_dashboard'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("last_modified", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("review_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("fully_funded_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        sa.CheckConstraint(
            "status IN ('draft', 'submitted', 'under_review', 'approved', 'rejected', 'fully_funded')",
            name="ck_cases_status",
        ),
        sa.CheckConstraint("total_needed >= 0", name="ck_cases_total_needed_nonnegative"),
        sa.CheckConstraint("total_raised >= 0", name="ck_cases_total_raised_nonnegative"),
        sa.CheckConstraint(
            "donation_progress >= 0 AND donation_progress <= 100",
            name="ck_cases_donation_progress_range",
        ),
    )
    op.create_index("ix_cases_user_id", "cases", ["user_id"])
    op.create_index("ix_cases_user_email", "cases", ["user_email"])
    op.create_index("ix_cases_status", "cases", ["status"])
    op.create_index("ix_cases_user_status", "cases", ["user_id", "status"])
    op.create_index("ix_cases_village_status", "cases", ["village", "status"])
    op.create_index("ix_cases_status_created", "cases", ["status", "created_at"])

    op.create_table(
        "case_files",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "case_pk",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("cases.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("position", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("original_name", sa.String(length=256), nullable=False),
        sa.Column("content_type", sa.String(length=128), nullable=False),
        sa.Column("size", sa.Integer(), nullable=False),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.Column("content", sa.LargeBinary(), nullable=True),
        sa.Column("checksum", sa.String(length=64), nullable=True),
        sa.Column("url", sa.String(length=512), nullable=True),
    )
    op.create_index("ix_case_files_case_pk", "case_files", ["case_pk"])
    op.create_index("ix_case_files_checksum", "case_files", ["checksum"])

    op.create_table(
        "case_assignments",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "case_pk",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("cases.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("checker_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("assigned_by", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
    )
    op.create_index("ix_case_assignments_checker_id", "case_assignments", ["checker_id"])

    op.create_table(
        "case_decisions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "case_pk",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("cases.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("checker_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("decision", sa.String(length=16), nullable=False),
        sa.Column("comments", sa.Text(), nullable=False),
        sa.Column("final_damage_percentage", sa.Float(), nullable=True),
        sa.Column("estimated_cost", sa.Numeric(14, 2), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "decision IN ('approved', 'rejected')", name="ck_case_decisions_decision"
        ),
        sa.CheckConstraint(
            "decision <> 'approved' OR (final_damage_percentage IS NOT NULL AND estimated_cost > 0)",
            name="ck_case_decisions_approval_fields",
        ),
    )

    # ─────────── AUDIT (append-only) ───────────
    op.create_table(
        "case_audit_entries",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "case_pk",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("cases.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("seq", sa.Integer(), nullable=False),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column(
            "performed_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("performed_by_role", sa.String(length=16), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("details_json", postgresql.JSONB, nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("ip_address", sa.String(length=64), nullable=True),
        sa.UniqueConstraint("case_pk", "seq", name="uq_case_audit_case_seq"),
    )
    op.create_index("ix_case_audit_action", "case_audit_entries", ["action"])
    op.create_index("ix_case_audit_timestamp", "case_audit_entries", ["timestamp"])

    op.execute(
        """
        CREATE OR REPLACE FUNCTION prevent_update_case_audit()
        RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'Case audit entries are immutable (append-only).';
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        DROP TRIGGER IF EXISTS trg_prevent_update_case_audit ON case_audit_entries;
        CREATE TRIGGER trg_prevent_update_case_audit
        BEFORE UPDATE ON case_audit_entries
        FOR EACH ROW
        EXECUTE FUNCTION prevent_update_case_audit();
        """
    )


def downgrade():
    op.execute("DROP TRIGGER IF EXISTS trg_prevent_update_case_audit ON case_audit_entries;")
    op.execute("DROP FUNCTION IF EXISTS prevent_update_case_audit();")

    op.drop_index("ix_case_audit_timestamp", table_name="case_audit_entries")
    op.drop_index("ix_case_audit_action", table_name="case_audit_entries")
    op.drop_table("case_audit_entries")

    op.drop_table("case_decisions")
    op.drop_index("ix_case_assignments_checker_id", table_name="case_assignments")
    op.drop_table("case_assignments")
    op.drop_index("ix_case_files_checksum", table_name="case_files")
    op.drop_index("ix_case_files_case_pk", table_name="case_files")
    op.drop_table("case_files")

    for ix in (
        "ix_cases_status_created",
        "ix_cases_village_status",
        "ix_cases_user_status",
        "ix_cases_status",
        "ix_cases_user_email",
        "ix_cases_user_id",
    ):
        op.drop_index(ix, table_name="cases")
    op.drop_table("cases")

    op.drop_index("ix_users_role_active", table_name="users")
    op.drop_table("users")
