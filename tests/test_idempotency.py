"""Tests for the idempotency key store."""

from datetime import datetime, timedelta

from app.models.processed_event import ProcessedEvent
from app.services import idempotency


def test_remember_and_find(test_db):
    idempotency.remember(test_db, "1:key-a", "evt-1")
    test_db.commit()

    assert idempotency.find_event_id(test_db, "1:key-a") == "evt-1"
    assert idempotency.find_event_id(test_db, "1:key-b") is None


def test_expired_keys_are_not_found(test_db):
    idempotency.remember(test_db, "1:key-a", "evt-1", ttl_seconds=-1)
    test_db.commit()

    assert idempotency.find_event_id(test_db, "1:key-a") is None


def test_prune_removes_expired_then_oldest(test_db):
    """Test that pruning drops expired keys and caps the table size."""
    now = datetime.utcnow()
    test_db.add(ProcessedEvent(key="expired", event_id="e0", created_at=now, expires_at=now - timedelta(seconds=1)))
    for i in range(4):
        test_db.add(
            ProcessedEvent(
                key=f"k{i}",
                event_id=f"e{i + 1}",
                created_at=now - timedelta(minutes=10 - i),
                expires_at=now + timedelta(hours=1),
            )
        )
    test_db.commit()

    deleted = idempotency.prune(test_db, max_entries=2)
    test_db.commit()

    assert deleted == 3
    remaining = sorted(row.key for row in test_db.query(ProcessedEvent).all())
    assert remaining == ["k2", "k3"]
