"""Run routes."""

import logging
from typing import List, Optional

import httpx
from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.auth import get_current_user
from app.database import get_db
from app.errors import InsufficientCredits, ProviderUnavailable, WorkflowNotFound
from app.models.run import WorkflowRun
from app.models.user import User
from app.models.workflow import Workflow
from app.schemas.run import (
    ActiveRunResponse,
    ExecuteWorkflowRequest,
    ExecuteWorkflowResponse,
    RunResponse,
)
from app.services.execution import execute_workflow
from app.services.ledger import RunLedger
from app.services.providers import api_key_for, get_adapter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/runs", tags=["runs"])

PROMPT_FIELDS = ["prompt", "input", "text", "message", "query"]


def get_adapter_factory():
    """Dependency returning the provider adapter factory."""
    return get_adapter


def to_active_run(run: WorkflowRun, workflow_name: Optional[str]) -> ActiveRunResponse:
    """Project a ledger row into the shape polled by the client."""
    input_prompt = ""
    if isinstance(run.inputs, dict):
        for field in PROMPT_FIELDS:
            if run.inputs.get(field):
                input_prompt = str(run.inputs[field])
                break

    running = run.status == "processing"
    progress = 25 if running else 5
    if isinstance(run.output, dict) and run.output.get("progress") is not None:
        progress = run.output["progress"]

    return ActiveRunResponse(
        id=run.id,
        event_id=run.event_id,
        workflow_id=run.workflow_id,
        workflow_name=workflow_name,
        input_prompt=input_prompt,
        status="running" if running else "queued",
        progress=progress,
        start_time=run.started_at or run.ran_at,
    )


@router.post("/execute", response_model=ExecuteWorkflowResponse)
def execute(
    data: ExecuteWorkflowRequest,
    idempotency_key: Optional[str] = Header(default=None),
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Debit credits and enqueue a workflow run. Returns immediately with the event id."""
    try:
        result = execute_workflow(db, user.id, data.workflow_id, data.inputs, idempotency_key=idempotency_key)
    except WorkflowNotFound as e:
        raise HTTPException(status_code=404, detail=e.message)
    except InsufficientCredits as e:
        raise HTTPException(status_code=402, detail=e.message)

    return ExecuteWorkflowResponse(**result)


@router.get("/active", response_model=List[ActiveRunResponse])
def list_active_runs(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """In-flight runs of the caller, running before queued."""
    runs = RunLedger(db).list_active(user.id)

    titles = {}
    workflow_ids = {run.workflow_id for run in runs}
    if workflow_ids:
        titles = {
            w.id: w.title
            for w in db.query(Workflow).filter(Workflow.id.in_(workflow_ids)).all()
        }

    logger.info(f"Found {len(runs)} active runs for user {user.id}")

    return [to_active_run(run, titles.get(run.workflow_id)) for run in runs]


@router.get("/history", response_model=List[RunResponse])
def list_history(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Completed, non-archived runs of the caller."""
    return RunLedger(db).list_history(user.id)


@router.get("/events/{event_id}", response_model=Optional[RunResponse])
def get_run_by_event(
    event_id: str,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Run created for an event id, or null while the pipeline has not created it yet."""
    run = RunLedger(db).get_by_event_id(event_id)
    if not run or run.user_id != user.id:
        return None
    return run


@router.get("/{run_id}", response_model=RunResponse)
def get_run(
    run_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get a single run."""
    run = RunLedger(db).get(run_id)
    if not run or run.user_id != user.id:
        raise HTTPException(status_code=404, detail="Run not found")
    return run


@router.post("/{run_id}/cancel")
def cancel_run(
    run_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    adapter_factory=Depends(get_adapter_factory),
):
    """
    Cancel an active run.

    The status change is authoritative; the remote cancel is best effort and a
    job that keeps running has its result discarded by the poller.
    """
    ledger = RunLedger(db)
    if not ledger.mark_cancelled(run_id, user.id):
        raise HTTPException(status_code=400, detail="Run not found or already completed")
    db.commit()

    run = ledger.get(run_id)
    remote_cancelled = False
    if run.request_id:
        workflow = db.query(Workflow).filter(Workflow.id == run.workflow_id).first()
        try:
            adapter = adapter_factory(run.provider)
            remote_cancelled = adapter.cancel(
                workflow.model_identifier if workflow else "",
                run.request_id,
                api_key_for(run.provider),
            )
        except (httpx.HTTPError, ProviderUnavailable, ValueError) as e:
            logger.warning(f"Remote cancel of run {run_id} failed: {e}")

    logger.info(f"Cancelled run {run_id} (remote cancel: {remote_cancelled})")

    return {"success": True, "remote_cancelled": remote_cancelled}


@router.post("/{run_id}/archive")
def archive_run(
    run_id: int,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Hide a run from history. Runs are never deleted."""
    if not RunLedger(db).archive(run_id, user.id):
        raise HTTPException(status_code=404, detail="Run not found")
    db.commit()

    return {"success": True}
