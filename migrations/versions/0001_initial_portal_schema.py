"""initial portal schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create users, agencies, colleges/courses, applications, documents, payments, settings and audit tables."""
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = set(inspector.get_table_names())

    if "users" not in existing_tables:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("username", sa.String(128), nullable=False, unique=True),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("role", sa.String(32), nullable=False, server_default="agency"),
            sa.Column("status", sa.String(32), nullable=False, server_default="active"),
            sa.Column("agency_id", sa.Integer(), nullable=True),
            sa.Column("agency_name", sa.String(255), nullable=True),
            sa.Column("last_login", sa.DateTime(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_users_role", "users", ["role"])
        op.create_index("idx_users_agency_id", "users", ["agency_id"])

    if "agencies" not in existing_tables:
        op.create_table(
            "agencies",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("email", sa.String(320), nullable=False, unique=True),
            sa.Column("phone", sa.String(64), nullable=True),
            sa.Column("address", sa.Text(), nullable=True),
            sa.Column("contact_person", sa.String(255), nullable=True),
            sa.Column("commission_rate", sa.Float(), nullable=False, server_default="15"),
            sa.Column("status", sa.String(32), nullable=False, server_default="active"),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("username", sa.String(128), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_agencies_status", "agencies", ["status"])
        op.create_index("idx_agencies_user_id", "agencies", ["user_id"])

    if "colleges" not in existing_tables:
        op.create_table(
            "colleges",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("location", sa.String(255), nullable=True),
            sa.Column("type", sa.String(64), nullable=True),
            sa.Column("ranking", sa.Integer(), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("email", sa.String(320), nullable=True),
            sa.Column("phone", sa.String(64), nullable=True),
            sa.Column("website", sa.String(512), nullable=True),
            sa.Column("facilities", sa.JSON(), nullable=True),
            sa.Column("established_year", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(32), nullable=False, server_default="active"),
            *_timestamps(),
        )
        op.create_index("idx_colleges_name", "colleges", ["name"])
        op.create_index("idx_colleges_status", "colleges", ["status"])

    if "courses" not in existing_tables:
        op.create_table(
            "courses",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("college_id", sa.Integer(), sa.ForeignKey("colleges.id", ondelete="CASCADE"), nullable=False),
            sa.Column("name", sa.String(255), nullable=False),
            sa.Column("level", sa.String(64), nullable=True),
            sa.Column("duration", sa.String(64), nullable=True),
            sa.Column("fee", sa.Float(), nullable=False, server_default="0"),
            sa.Column("currency", sa.String(8), nullable=False, server_default="INR"),
            sa.Column("requirements", sa.Text(), nullable=True),
            sa.Column("sessions", sa.JSON(), nullable=True),
            sa.Column("course_type", sa.String(64), nullable=True),
            sa.Column("streams", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(32), nullable=False, server_default="active"),
            *_timestamps(),
        )
        op.create_index("idx_courses_college_id", "courses", ["college_id"])

    if "applications" not in existing_tables:
        op.create_table(
            "applications",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("application_code", sa.String(64), nullable=False, unique=True),
            sa.Column("student_name", sa.String(255), nullable=False),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("phone", sa.String(64), nullable=False),
            sa.Column("agency_id", sa.Integer(), nullable=False),
            sa.Column("agency_name", sa.String(255), nullable=False, server_default=""),
            sa.Column("college_id", sa.Integer(), nullable=False),
            sa.Column("college_name", sa.String(255), nullable=False, server_default=""),
            sa.Column("course_id", sa.Integer(), nullable=False),
            sa.Column("course_name", sa.String(255), nullable=False, server_default=""),
            sa.Column("course_type", sa.String(64), nullable=True),
            sa.Column("stream", sa.String(128), nullable=True),
            sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
            sa.Column("fees", sa.Float(), nullable=False, server_default="0"),
            sa.Column("pending_documents", sa.JSON(), nullable=True),
            sa.Column("abc_id", sa.String(128), nullable=True),
            sa.Column("deb_id", sa.String(128), nullable=True),
            sa.Column("academic_records", sa.JSON(), nullable=True),
            sa.Column("student_details", sa.JSON(), nullable=True),
            sa.Column("pdf_generated", sa.Boolean(), nullable=False, server_default=sa.false()),
            *_timestamps(),
        )
        op.create_index("idx_applications_agency_id", "applications", ["agency_id"])
        op.create_index("idx_applications_status", "applications", ["status"])
        op.create_index("idx_applications_created_at", "applications", ["created_at"])

    if "documents" not in existing_tables:
        op.create_table(
            "documents",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(512), nullable=False),
            sa.Column("type", sa.String(128), nullable=False),
            sa.Column("size", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("application_ref", sa.String(64), nullable=False),
            sa.Column("agency_id", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
            sa.Column("file_path", sa.String(1024), nullable=False),
            sa.Column("file_data", sa.Text(), nullable=True),
            sa.Column("uploaded_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            *_timestamps(),
        )
        op.create_index("idx_documents_application_ref", "documents", ["application_ref"])
        op.create_index("idx_documents_agency_id", "documents", ["agency_id"])

    if "payments" not in existing_tables:
        op.create_table(
            "payments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "application_id",
                sa.Integer(),
                sa.ForeignKey("applications.id", ondelete="CASCADE"),
                nullable=False,
                unique=True,
            ),
            sa.Column("student_name", sa.String(255), nullable=True),
            sa.Column("email", sa.String(320), nullable=True),
            sa.Column("phone", sa.String(64), nullable=True),
            sa.Column("agency_id", sa.Integer(), nullable=True),
            sa.Column("agency_name", sa.String(255), nullable=True),
            sa.Column("college_id", sa.Integer(), nullable=True),
            sa.Column("college_name", sa.String(255), nullable=True),
            sa.Column("course_name", sa.String(255), nullable=True),
            sa.Column("application_fee", sa.Float(), nullable=False, server_default="0"),
            sa.Column("tuition_fee", sa.Float(), nullable=False, server_default="0"),
            sa.Column("payment_amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("payment_date", sa.DateTime(), nullable=True),
            sa.Column("payment_method", sa.String(64), nullable=True),
            sa.Column("transaction_id", sa.String(128), nullable=True),
            sa.Column("payment_link", sa.String(1024), nullable=True),
            sa.Column("payment_receipt", sa.JSON(), nullable=True),
            sa.Column("payment_status", sa.String(32), nullable=False, server_default="pending"),
            sa.Column("lead_status", sa.String(32), nullable=False, server_default="new"),
            sa.Column("documents", sa.JSON(), nullable=True),
            sa.Column("commission_rate", sa.Float(), nullable=False, server_default="0"),
            sa.Column("commission_amount", sa.Float(), nullable=False, server_default="0"),
            sa.Column("commission_paid", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("admin_notes", sa.Text(), nullable=False, server_default=""),
            sa.Column("verified_at", sa.DateTime(), nullable=True),
            sa.Column("verified_by", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("agency_notes", sa.Text(), nullable=False, server_default=""),
            sa.Column("notes", sa.Text(), nullable=False, server_default=""),
            sa.Column("last_contact", sa.DateTime(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_payments_agency_id", "payments", ["agency_id"])
        op.create_index("idx_payments_payment_status", "payments", ["payment_status"])
        op.create_index("idx_payments_lead_status", "payments", ["lead_status"])
        op.create_index("idx_payments_created_at", "payments", ["created_at"])

    if "offline_payments" not in existing_tables:
        op.create_table(
            "offline_payments",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("agency_id", sa.Integer(), nullable=False),
            sa.Column("beneficiary", sa.String(255), nullable=False),
            sa.Column("payment_type", sa.String(32), nullable=False),
            sa.Column("account_holder_name", sa.String(255), nullable=False),
            sa.Column("transaction_id", sa.String(128), nullable=False),
            sa.Column("amount", sa.Float(), nullable=False),
            sa.Column("txn_date", sa.Date(), nullable=False),
            sa.Column("status", sa.String(32), nullable=False, server_default="pending"),
            sa.Column("receipt_file", sa.Text(), nullable=True),
            *_timestamps(),
        )
        op.create_index("idx_offline_payments_agency_id", "offline_payments", ["agency_id"])
        op.create_index("idx_offline_payments_status", "offline_payments", ["status"])

    if "portal_settings" not in existing_tables:
        op.create_table(
            "portal_settings",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("system_name", sa.String(255), nullable=False, server_default="Education Management System"),
            sa.Column("admin_email", sa.String(320), nullable=False),
            sa.Column("email_notifications", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("auto_backup", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("maintenance_mode", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("escalation_matrix", sa.JSON(), nullable=True),
            sa.Column("banking_details", sa.JSON(), nullable=True),
            sa.Column("payment_settings", sa.JSON(), nullable=True),
            *_timestamps(),
        )

    if "audit_events" not in existing_tables:
        op.create_table(
            "audit_events",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.Column("request_id", sa.String(64), nullable=True),
            sa.Column("actor_user_id", sa.Integer(), sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
            sa.Column("actor_user_email", sa.String(320), nullable=True),
            sa.Column("actor_agency_id", sa.Integer(), nullable=True),
            sa.Column("action", sa.String(128), nullable=False),
            sa.Column("entity_type", sa.String(128), nullable=True),
            sa.Column("entity_id", sa.String(128), nullable=True),
            sa.Column("reason", sa.String(512), nullable=True),
            sa.Column("metadata_json", sa.Text(), nullable=True),
            sa.Column("client_ip", sa.String(64), nullable=True),
            sa.UniqueConstraint("request_id", "id", name="uq_audit_request_id_id"),
        )
        op.create_index("idx_audit_events_created_at", "audit_events", ["created_at"])


def downgrade() -> None:
    for table in (
        "audit_events",
        "portal_settings",
        "offline_payments",
        "payments",
        "documents",
        "applications",
        "courses",
        "colleges",
        "agencies",
        "users",
    ):
        op.drop_table(table)
