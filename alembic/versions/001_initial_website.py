"""Initial website schema: submissions, CRM sync log, form analytics.

Revision ID: 001_initial_website
Revises:
Create Date: 2026-10-17

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_initial_website"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SCHEMA = "website"


def upgrade() -> None:
    op.execute(f"CREATE SCHEMA IF NOT EXISTS {SCHEMA}")

    op.create_table(
        "contact_submissions",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("company", sa.String(255), nullable=True),
        sa.Column("use_case", sa.Text(), nullable=True),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("sync_status", sa.String(20), server_default=sa.text("'unsynced'"), nullable=False),
        sa.Column("hubspot_contact_id", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_sync_attempt_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=True),
        schema=SCHEMA,
    )
    op.create_index("idx_contact_email", "contact_submissions", ["email"], schema=SCHEMA)
    op.create_index("idx_contact_sync_status", "contact_submissions", ["sync_status"], schema=SCHEMA)
    op.create_index("idx_contact_created_at", "contact_submissions", ["created_at"], schema=SCHEMA)

    op.create_table(
        "crm_sync_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "submission_id",
            sa.Integer(),
            sa.ForeignKey(f"{SCHEMA}.contact_submissions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("operation", sa.String(50), nullable=False),
        sa.Column("success", sa.Boolean(), server_default=sa.text("false"), nullable=False),
        sa.Column("response", sa.Text(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("attempt_number", sa.Integer(), server_default=sa.text("1"), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        schema=SCHEMA,
    )
    op.create_index("idx_crm_sync_submission", "crm_sync_log", ["submission_id"], schema=SCHEMA)
    op.create_index("idx_crm_sync_email", "crm_sync_log", ["email"], schema=SCHEMA)
    op.create_index("idx_crm_sync_success", "crm_sync_log", ["success"], schema=SCHEMA)
    op.create_index("idx_crm_sync_created", "crm_sync_log", ["created_at"], schema=SCHEMA)

    op.create_table(
        "form_analytics",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("form_name", sa.String(100), nullable=False),
        sa.Column("submission_date", sa.Date(), server_default=sa.func.current_date(), nullable=False),
        sa.Column("total_submissions", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("successful_submissions", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("failed_submissions", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("crm_synced_count", sa.Integer(), server_default=sa.text("0"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("form_name", "submission_date", name="uq_form_analytics_form_date"),
        schema=SCHEMA,
    )


def downgrade() -> None:
    op.drop_table("form_analytics", schema=SCHEMA)
    op.drop_table("crm_sync_log", schema=SCHEMA)
    op.drop_table("contact_submissions", schema=SCHEMA)
