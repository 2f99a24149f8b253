"""Job model for the durable step queue."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text, Uuid

from app.database import Base


class Job(Base):
    """Job is one queued step of a run pipeline."""

    __tablename__ = "jobs"

    job_id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    event_id = Column(String(64), nullable=False)
    run_id = Column(Integer, ForeignKey("workflow_runs.id"))  # Null until create_run has run
    step = Column(Text, nullable=False)  # 'create_run', 'dispatch', 'poll', 'finalize', 'fail_run'
    status = Column(Text, nullable=False)  # 'queued', 'running', 'done', 'failed'
    payload = Column(JSON)
    retries = Column(Integer, default=0)
    last_error = Column(Text)
    run_after = Column(DateTime, default=datetime.utcnow)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_jobs_status_run_after", "status", "run_after"),
        Index("idx_jobs_event_id", "event_id"),
    )
