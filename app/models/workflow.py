"""Workflow catalog model."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, JSON, Numeric, String, Text

from app.database import Base


class Workflow(Base):
    """A runnable model published in the catalog."""

    __tablename__ = "workflows"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(256), nullable=False, unique=True)
    provider = Column(String(50), nullable=False, default="replicate")
    model_identifier = Column(Text, nullable=False)  # 'fal-ai/flux/schnell', 'owner/model'
    version = Column(Text)
    image_name = Column(Text)
    credit_cost = Column(Numeric(12, 2), nullable=False, default=0)
    dedup_enabled = Column(Boolean, nullable=False, default=False)
    data = Column(JSON)  # Input/output schema
    created_at = Column(DateTime, default=datetime.utcnow)
