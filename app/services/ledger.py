"""Run ledger: persistent record of every execution attempt."""

import hashlib
import json
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import case
from sqlalchemy.orm import Session

from app.models.run import ACTIVE_STATUSES, WorkflowRun

logger = logging.getLogger(__name__)


def compute_input_hash(workflow_id: int, inputs: Optional[Dict[str, Any]]) -> str:
    """SHA-256 of the canonical JSON form of {workflowId, inputs}."""
    serialized = json.dumps(
        {"workflowId": workflow_id, "inputs": inputs or {}},
        sort_keys=True,
        separators=(",", ":"),
        default=str,
    )
    return hashlib.sha256(serialized.encode()).hexdigest()


class RunLedger:
    """
    Status transitions of workflow runs.

    Every transition is a single guarded UPDATE so a run only ever moves
    forward and terminal rows are never rewritten. Callers commit.
    """

    def __init__(self, db: Session):
        """Initialize the ledger."""
        self.db = db

    def create_run(
        self,
        workflow_id: int,
        user_id: int,
        provider: str,
        inputs: Optional[Dict[str, Any]],
        event_id: str,
        credits_charged=0,
        display_name: Optional[str] = None,
        ran_with_platform_key: bool = True,
    ) -> int:
        """Insert a pending run, or return the existing one for ``event_id``."""
        existing = self.get_by_event_id(event_id)
        if existing:
            logger.info(f"Run {existing.id} already exists for event {event_id}")
            return existing.id

        run = WorkflowRun(
            workflow_id=workflow_id,
            user_id=user_id,
            provider=provider,
            inputs=inputs,
            input_hash=compute_input_hash(workflow_id, inputs),
            event_id=event_id,
            status="pending",
            credits_charged=credits_charged,
            display_name=display_name,
            ran_with_platform_key=ran_with_platform_key,
            ran_at=datetime.utcnow(),
        )
        self.db.add(run)
        self.db.flush()

        logger.info(f"Created run {run.id} for event {event_id}")
        return run.id

    def get(self, run_id: int) -> Optional[WorkflowRun]:
        return self.db.query(WorkflowRun).filter(WorkflowRun.id == run_id).first()

    def get_by_event_id(self, event_id: str) -> Optional[WorkflowRun]:
        return self.db.query(WorkflowRun).filter(WorkflowRun.event_id == event_id).first()

    def _transition(self, run_id: int, from_statuses, values: Dict[str, Any]) -> bool:
        updated = (
            self.db.query(WorkflowRun)
            .filter(WorkflowRun.id == run_id, WorkflowRun.status.in_(from_statuses))
            .update(values, synchronize_session=False)
        )
        self.db.expire_all()
        return updated > 0

    def mark_processing(self, run_id: int, request_id: Optional[str] = None) -> bool:
        values = {"status": "processing", "started_at": datetime.utcnow()}
        if request_id:
            values["request_id"] = request_id
        return self._transition(run_id, ("pending",), values)

    def record_progress(self, run_id: int, snapshot: Dict[str, Any]) -> bool:
        """Store a progress snapshot in ``output`` while the run is active."""
        return self._transition(run_id, ACTIVE_STATUSES, {"output": snapshot})

    def mark_complete(self, run_id: int, output: Dict[str, Any]) -> bool:
        changed = self._transition(
            run_id,
            ACTIVE_STATUSES,
            {"status": "complete", "output": output, "completed_at": datetime.utcnow()},
        )
        if not changed:
            logger.info(f"Run {run_id} already finalized, ignoring completion")
        return changed

    def mark_failed(self, run_id: int, error: str) -> bool:
        changed = self._transition(
            run_id,
            ACTIVE_STATUSES,
            {"status": "failed", "error": error, "completed_at": datetime.utcnow()},
        )
        if not changed:
            logger.info(f"Run {run_id} already finalized, ignoring failure")
        return changed

    def mark_cancelled(self, run_id: int, user_id: int) -> bool:
        updated = (
            self.db.query(WorkflowRun)
            .filter(
                WorkflowRun.id == run_id,
                WorkflowRun.user_id == user_id,
                WorkflowRun.status.in_(ACTIVE_STATUSES),
            )
            .update({"status": "cancelled", "completed_at": datetime.utcnow()}, synchronize_session=False)
        )
        self.db.expire_all()
        return updated > 0

    def find_cached_complete(self, workflow_id: int, input_hash: str) -> Optional[WorkflowRun]:
        """Latest completed run with identical inputs for the same workflow."""
        return (
            self.db.query(WorkflowRun)
            .filter(
                WorkflowRun.workflow_id == workflow_id,
                WorkflowRun.input_hash == input_hash,
                WorkflowRun.status == "complete",
                WorkflowRun.output.isnot(None),
            )
            .order_by(WorkflowRun.completed_at.desc(), WorkflowRun.id.desc())
            .first()
        )

    def list_active(self, user_id: int) -> List[WorkflowRun]:
        """Non-terminal runs of a user, running before queued, newest first."""
        running_first = case((WorkflowRun.status == "processing", 0), else_=1)
        return (
            self.db.query(WorkflowRun)
            .filter(WorkflowRun.user_id == user_id, WorkflowRun.status.in_(ACTIVE_STATUSES))
            .order_by(running_first, WorkflowRun.ran_at.desc(), WorkflowRun.id.desc())
            .all()
        )

    def list_history(self, user_id: int, limit: int = 50) -> List[WorkflowRun]:
        return (
            self.db.query(WorkflowRun)
            .filter(
                WorkflowRun.user_id == user_id,
                WorkflowRun.status == "complete",
                WorkflowRun.archived.is_(False),
            )
            .order_by(WorkflowRun.completed_at.desc(), WorkflowRun.id.desc())
            .limit(limit)
            .all()
        )

    def archive(self, run_id: int, user_id: int) -> bool:
        updated = (
            self.db.query(WorkflowRun)
            .filter(WorkflowRun.id == run_id, WorkflowRun.user_id == user_id)
            .update({"archived": True}, synchronize_session=False)
        )
        self.db.expire_all()
        return updated > 0
