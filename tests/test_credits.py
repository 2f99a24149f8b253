"""Tests for the credit accountant."""

import threading
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from app.database import Base
from app.errors import InsufficientCredits
from app.models.credit import CreditTransaction
from app.models.user import User
from app.services.credits import CreditAccountant


def test_debit_reduces_balance(test_db, make_user):
    """Test that a debit subtracts the amount and records a transaction."""
    user = make_user("10")
    accountant = CreditAccountant(test_db)

    result = accountant.debit(user.id, Decimal("3"), "evt-1")
    test_db.commit()

    assert result.ok
    assert result.new_balance == Decimal("7")
    assert accountant.balance(user.id) == Decimal("7")

    txn = test_db.query(CreditTransaction).filter(CreditTransaction.event_id == "evt-1").one()
    assert txn.kind == "debit"
    assert Decimal(txn.amount) == Decimal("-3")


def test_debit_insufficient_credits(test_db, make_user):
    """Test that a debit above the balance fails without changing anything."""
    user = make_user("2")
    accountant = CreditAccountant(test_db)

    with pytest.raises(InsufficientCredits) as exc_info:
        accountant.debit(user.id, Decimal("3"), "evt-1")
    test_db.rollback()

    assert exc_info.value.balance == Decimal("2")
    assert exc_info.value.required == Decimal("3")
    assert exc_info.value.message.startswith("Insufficient credits.")
    assert accountant.balance(user.id) == Decimal("2")
    assert test_db.query(CreditTransaction).count() == 0


def test_debit_of_exact_balance_succeeds(test_db, make_user):
    user = make_user("3")
    result = CreditAccountant(test_db).debit(user.id, 3, "evt-1")

    assert result.new_balance == Decimal("0")


def test_zero_cost_debit_is_noop(test_db, make_user):
    user = make_user("5")
    accountant = CreditAccountant(test_db)

    result = accountant.debit(user.id, 0, "evt-free")

    assert result.ok
    assert result.new_balance == Decimal("5")
    assert test_db.query(CreditTransaction).count() == 0


def test_refund_applies_once(test_db, make_user):
    """Test that a second refund for the same event is ignored."""
    user = make_user("10")
    accountant = CreditAccountant(test_db)
    accountant.debit(user.id, 3, "evt-1")
    test_db.commit()

    assert accountant.refund(user.id, 3, "evt-1") is True
    test_db.commit()
    assert accountant.refund(user.id, 3, "evt-1") is False
    test_db.commit()

    assert accountant.balance(user.id) == Decimal("10")
    assert accountant.has_refund("evt-1")
    refunds = test_db.query(CreditTransaction).filter(CreditTransaction.kind == "refund").all()
    assert len(refunds) == 1


def test_refund_of_zero_is_skipped(test_db, make_user):
    user = make_user("10")
    assert CreditAccountant(test_db).refund(user.id, 0, "evt-1") is False


def test_concurrent_debits_never_overdraw(tmp_path):
    """Test that N simultaneous debits against a single-charge balance allow exactly one."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'credits.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = Session()
    user = User(email="racer@example.com", credit_balance=Decimal("3"))
    setup.add(user)
    setup.commit()
    user_id = user.id
    setup.close()

    attempts = 8
    barrier = threading.Barrier(attempts)
    outcomes = []
    lock = threading.Lock()

    def attempt(event_id):
        db = Session()
        try:
            barrier.wait()
            CreditAccountant(db).debit(user_id, 3, event_id)
            db.commit()
            outcome = "ok"
        except InsufficientCredits:
            db.rollback()
            outcome = "insufficient"
        finally:
            db.close()
        with lock:
            outcomes.append(outcome)

    threads = [threading.Thread(target=attempt, args=(f"evt-{i}",)) for i in range(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("ok") == 1
    assert outcomes.count("insufficient") == attempts - 1

    check = Session()
    assert Decimal(check.query(User).filter(User.id == user_id).one().credit_balance) == Decimal("0")
    check.close()
    engine.dispose()
