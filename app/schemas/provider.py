"""Provider adapter input/output schemas."""

from typing import Any, List, Optional, Union

from pydantic import BaseModel


class JobHandle(BaseModel):
    """Handle of a remote job returned by ``start``."""

    correlation_id: str
    initial_status: str


class PollStatus(BaseModel):
    """Result of a single status poll."""

    completed: bool
    status: str
    progress_hint: Optional[float] = None
    logs: Optional[str] = None


class FetchResult(BaseModel):
    """Final result of a remote job."""

    success: bool
    output_ref: Optional[Union[str, List[str], Any]] = None
    media_type: str = "image"
    processing_time: Optional[float] = None
    error: Optional[str] = None
