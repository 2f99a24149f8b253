"""Workflow run ledger model."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, Numeric, String, Text

from app.database import Base

ACTIVE_STATUSES = ("pending", "processing")
TERMINAL_STATUSES = ("complete", "failed", "cancelled")


class WorkflowRun(Base):
    """One attempt to execute a workflow against a provider."""

    __tablename__ = "workflow_runs"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    workflow_id = Column(Integer, ForeignKey("workflows.id"), nullable=False)
    provider = Column(String(50), nullable=False)  # 'fal', 'replicate'
    ran_with_platform_key = Column(Boolean, nullable=False, default=True)
    event_id = Column(String(64), nullable=False, unique=True)
    request_id = Column(String(256))  # Fal request id / Replicate prediction id
    inputs = Column(JSON)
    input_hash = Column(String(64))
    output = Column(JSON)
    status = Column(String(50), nullable=False, default="pending")  # 'pending', 'processing', 'complete', 'failed', 'cancelled'
    error = Column(Text)
    credits_charged = Column(Numeric(12, 2), nullable=False, default=0)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)
    ran_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    archived = Column(Boolean, nullable=False, default=False)
    display_name = Column(String(256))

    __table_args__ = (
        Index("workflow_runs_user_idx", "user_id"),
        Index("workflow_runs_workflow_idx", "workflow_id"),
        Index("workflow_runs_hash_idx", "input_hash"),
        Index("workflow_runs_status_idx", "status"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES
