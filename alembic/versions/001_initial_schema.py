"""Initial run engine schema

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Check if tables already exist and skip if so
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()

    if "workflow_runs" in existing_tables:
        # Tables already exist, skip migration
        return

    # Create users table
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("email", sa.String(256)),
        sa.Column("credit_balance", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )

    # Create workflows table
    op.create_table(
        "workflows",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(256), nullable=False, unique=True),
        sa.Column("provider", sa.String(50), nullable=False, server_default="replicate"),
        sa.Column("model_identifier", sa.Text, nullable=False),
        sa.Column("version", sa.Text),
        sa.Column("image_name", sa.Text),
        sa.Column("credit_cost", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("dedup_enabled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("data", sa.JSON),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
    )

    # Create workflow_runs table
    op.create_table(
        "workflow_runs",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("workflow_id", sa.Integer, sa.ForeignKey("workflows.id"), nullable=False),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("ran_with_platform_key", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("event_id", sa.String(64), nullable=False, unique=True),
        sa.Column("request_id", sa.String(256)),
        sa.Column("inputs", sa.JSON),
        sa.Column("input_hash", sa.String(64)),
        sa.Column("output", sa.JSON),
        sa.Column("status", sa.String(50), nullable=False, server_default="pending"),
        sa.Column("error", sa.Text),
        sa.Column("credits_charged", sa.Numeric(12, 2), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime),
        sa.Column("completed_at", sa.DateTime),
        sa.Column("ran_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("archived", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("display_name", sa.String(256)),
    )
    op.create_index("workflow_runs_user_idx", "workflow_runs", ["user_id"])
    op.create_index("workflow_runs_workflow_idx", "workflow_runs", ["workflow_id"])
    op.create_index("workflow_runs_hash_idx", "workflow_runs", ["input_hash"])
    op.create_index("workflow_runs_status_idx", "workflow_runs", ["status"])

    # Create credit_transactions table
    op.create_table(
        "credit_transactions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.id"), nullable=False),
        sa.Column("event_id", sa.String(64), nullable=False),
        sa.Column("kind", sa.String(16), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint("event_id", "kind", name="uq_credit_transactions_event_kind"),
    )

    # Create jobs table
    op.create_table(
        "jobs",
        sa.Column("job_id", sa.Uuid, primary_key=True),
        sa.Column("event_id", sa.String(64), nullable=False),
        sa.Column("run_id", sa.Integer, sa.ForeignKey("workflow_runs.id")),
        sa.Column("step", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("payload", sa.JSON),
        sa.Column("retries", sa.Integer, server_default="0"),
        sa.Column("last_error", sa.Text),
        sa.Column("run_after", sa.DateTime, server_default=sa.func.now()),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_jobs_status_run_after", "jobs", ["status", "run_after"])
    op.create_index("idx_jobs_event_id", "jobs", ["event_id"])

    # Create processed_events table
    op.create_table(
        "processed_events",
        sa.Column("key", sa.String(256), primary_key=True),
        sa.Column("event_id", sa.String(64), nullable=False),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime, nullable=False),
    )
    op.create_index("idx_processed_events_expires_at", "processed_events", ["expires_at"])


def downgrade() -> None:
    op.drop_table("processed_events")
    op.drop_table("jobs")
    op.drop_table("credit_transactions")
    op.drop_table("workflow_runs")
    op.drop_table("workflows")
    op.drop_table("users")
