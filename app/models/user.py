"""User model (credit balance only)."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Integer, Numeric, String

from app.database import Base


class User(Base):
    """Platform user holding a credit balance."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(256))
    credit_balance = Column(Numeric(12, 2), nullable=False, default=0)
    created_at = Column(DateTime, default=datetime.utcnow)
