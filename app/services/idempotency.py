"""Durable, expiring store of client idempotency keys."""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.models.processed_event import ProcessedEvent

logger = logging.getLogger(__name__)


def find_event_id(db: Session, key: str) -> Optional[str]:
    """Event id previously accepted for ``key``, unless the key has expired."""
    record = (
        db.query(ProcessedEvent)
        .filter(ProcessedEvent.key == key, ProcessedEvent.expires_at > datetime.utcnow())
        .first()
    )
    return record.event_id if record else None


def remember(db: Session, key: str, event_id: str, ttl_seconds: Optional[int] = None) -> None:
    ttl = ttl_seconds if ttl_seconds is not None else settings.IDEMPOTENCY_TTL_SECONDS
    now = datetime.utcnow()
    db.merge(ProcessedEvent(key=key, event_id=event_id, created_at=now, expires_at=now + timedelta(seconds=ttl)))
    db.flush()


def prune(db: Session, max_entries: Optional[int] = None) -> int:
    """
    Delete expired keys, then the oldest keys beyond ``max_entries``.

    Returns:
        Number of deleted rows
    """
    max_entries = max_entries if max_entries is not None else settings.IDEMPOTENCY_MAX_ENTRIES

    deleted = (
        db.query(ProcessedEvent)
        .filter(ProcessedEvent.expires_at <= datetime.utcnow())
        .delete(synchronize_session=False)
    )

    overflow = db.query(ProcessedEvent).count() - max_entries
    if overflow > 0:
        oldest = [
            row.key
            for row in db.query(ProcessedEvent.key).order_by(ProcessedEvent.created_at).limit(overflow).all()
        ]
        deleted += (
            db.query(ProcessedEvent)
            .filter(ProcessedEvent.key.in_(oldest))
            .delete(synchronize_session=False)
        )

    if deleted:
        logger.info(f"Pruned {deleted} processed idempotency keys")
    return deleted
