"""Credit accountant: debits before dispatch, refunds after failure."""

import logging
from decimal import Decimal
from typing import NamedTuple, Optional

from sqlalchemy.orm import Session

from app.errors import InsufficientCredits
from app.models.credit import CreditTransaction
from app.models.user import User

logger = logging.getLogger(__name__)


class DebitResult(NamedTuple):
    ok: bool
    new_balance: Decimal


class CreditAccountant:
    """
    Atomic balance mutations for run charges.

    Balances are only changed with SQL increments/decrements, never
    read-modify-write. Callers own the transaction and commit.
    """

    def __init__(self, db: Session):
        """Initialize the accountant."""
        self.db = db

    def balance(self, user_id: int) -> Optional[Decimal]:
        self.db.expire_all()
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            return None
        return Decimal(user.credit_balance)

    def debit(self, user_id: int, amount, event_id: str) -> DebitResult:
        """
        Charge ``amount`` credits for the run identified by ``event_id``.

        Raises:
            InsufficientCredits: If the current balance is below ``amount``
        """
        amount = Decimal(str(amount))
        if amount <= 0:
            return DebitResult(ok=True, new_balance=self.balance(user_id))

        updated = (
            self.db.query(User)
            .filter(User.id == user_id, User.credit_balance >= amount)
            .update({User.credit_balance: User.credit_balance - amount}, synchronize_session=False)
        )
        if not updated:
            raise InsufficientCredits(self.balance(user_id) or Decimal(0), amount)

        self.db.add(CreditTransaction(user_id=user_id, event_id=event_id, kind="debit", amount=-amount))
        self.db.flush()

        new_balance = self.balance(user_id)
        logger.info(f"Debited {amount} credits from user {user_id} for event {event_id}, balance {new_balance}")
        return DebitResult(ok=True, new_balance=new_balance)

    def has_refund(self, event_id: str) -> bool:
        return (
            self.db.query(CreditTransaction)
            .filter(CreditTransaction.event_id == event_id, CreditTransaction.kind == "refund")
            .first()
            is not None
        )

    def refund(self, user_id: int, amount, event_id: str) -> bool:
        """
        Give back ``amount`` credits for a failed run.

        Returns False without touching the balance when ``event_id`` was already refunded.
        """
        amount = Decimal(str(amount))
        if amount <= 0:
            return False

        if self.has_refund(event_id):
            logger.info(f"Event {event_id} already refunded, skipping")
            return False

        self.db.query(User).filter(User.id == user_id).update(
            {User.credit_balance: User.credit_balance + amount}, synchronize_session=False
        )
        self.db.add(CreditTransaction(user_id=user_id, event_id=event_id, kind="refund", amount=amount))
        self.db.flush()

        logger.info(f"Refunded {amount} credits to user {user_id} due to workflow failure")
        return True
