"""Processed key model (bounded, expiring dedup table)."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, String

from app.database import Base


class ProcessedEvent(Base):
    """A client idempotency key that was already accepted."""

    __tablename__ = "processed_events"

    key = Column(String(256), primary_key=True)
    event_id = Column(String(64), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
    expires_at = Column(DateTime, nullable=False)

    __table_args__ = (Index("idx_processed_events_expires_at", "expires_at"),)
