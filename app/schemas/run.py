"""Run-related Pydantic schemas."""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict


class ExecuteWorkflowRequest(BaseModel):
    """Schema for executing a workflow."""

    workflow_id: int
    inputs: Dict[str, Any] = {}


class ExecuteWorkflowResponse(BaseModel):
    """Response after enqueueing (or reusing) a run."""

    event_id: str
    credits_charged: Decimal
    cached: bool = False
    run_id: Optional[int] = None
    output: Optional[Any] = None


class RunResponse(BaseModel):
    """A workflow run as stored in the ledger."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    workflow_id: int
    event_id: str
    provider: str
    status: str
    inputs: Optional[Dict[str, Any]] = None
    output: Optional[Any] = None
    error: Optional[str] = None
    credits_charged: Decimal
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    ran_at: datetime
    archived: bool
    display_name: Optional[str] = None


class ActiveRunResponse(BaseModel):
    """In-flight run shown to a polling client."""

    id: int
    event_id: str
    workflow_id: int
    workflow_name: Optional[str] = None
    input_prompt: str
    status: str  # 'running', 'queued'
    progress: float
    start_time: datetime
