"""SQLAlchemy ORM models."""

from app.models.user import User
from app.models.workflow import Workflow
from app.models.run import WorkflowRun
from app.models.credit import CreditTransaction
from app.models.job import Job
from app.models.processed_event import ProcessedEvent

__all__ = [
    "User",
    "Workflow",
    "WorkflowRun",
    "CreditTransaction",
    "Job",
    "ProcessedEvent",
]
