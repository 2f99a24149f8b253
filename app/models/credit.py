"""Credit transaction model."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, UniqueConstraint

from app.database import Base


class CreditTransaction(Base):
    """Signed balance mutation made by the run engine (debit or refund)."""

    __tablename__ = "credit_transactions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    event_id = Column(String(64), nullable=False)
    kind = Column(String(16), nullable=False)  # 'debit', 'refund'
    amount = Column(Numeric(12, 2), nullable=False)  # Negative for debits
    created_at = Column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("event_id", "kind", name="uq_credit_transactions_event_kind"),
    )
