"""Entry point for executing a workflow on behalf of a user."""

import logging
import uuid
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.errors import WorkflowNotFound
from app.models.workflow import Workflow
from app.services import idempotency
from app.services.credits import CreditAccountant
from app.services.ledger import RunLedger, compute_input_hash
from app.steps.base import enqueue_job

logger = logging.getLogger(__name__)


def execute_workflow(
    db: Session,
    user_id: int,
    workflow_id: int,
    inputs: Dict[str, Any],
    idempotency_key: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Debit the caller and enqueue the run pipeline.

    The debit, the first pipeline step and the idempotency record commit in
    one transaction, so a request either is fully accepted or leaves no trace.

    Args:
        db: Database session
        user_id: Caller
        workflow_id: Catalog id of the workflow to run
        inputs: Model inputs
        idempotency_key: Optional client key; a repeated key returns the first event id

    Returns:
        Dict with ``event_id``, ``credits_charged`` and ``cached`` (plus ``run_id`` and
        ``output`` for cache hits)

    Raises:
        WorkflowNotFound: Unknown workflow
        InsufficientCredits: Balance below the workflow cost
    """
    workflow = db.query(Workflow).filter(Workflow.id == workflow_id).first()
    if not workflow:
        raise WorkflowNotFound(workflow_id)

    if idempotency_key:
        scoped_key = f"{user_id}:{idempotency_key}"
        previous = idempotency.find_event_id(db, scoped_key)
        if previous:
            logger.info(f"Idempotency key reused, returning event {previous}")
            return {"event_id": previous, "credits_charged": Decimal(0), "cached": False}

    if workflow.dedup_enabled:
        cached = RunLedger(db).find_cached_complete(workflow.id, compute_input_hash(workflow.id, inputs))
        if cached:
            logger.info(f"Returning cached run {cached.id} for workflow {workflow.title}")
            return {
                "event_id": cached.event_id,
                "credits_charged": Decimal(0),
                "cached": True,
                "run_id": cached.id,
                "output": cached.output,
            }

    cost = Decimal(workflow.credit_cost or 0)
    event_id = uuid.uuid4().hex

    try:
        CreditAccountant(db).debit(user_id, cost, event_id)

        enqueue_job(
            db,
            "create_run",
            {
                "event_id": event_id,
                "workflow_id": workflow.id,
                "workflow_title": workflow.title,
                "user_id": user_id,
                "provider": workflow.provider,
                "model_identifier": workflow.model_identifier,
                "version": workflow.version,
                "inputs": inputs,
                "credits_charged": str(cost),
            },
        )

        if idempotency_key:
            idempotency.remember(db, f"{user_id}:{idempotency_key}", event_id)

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"Enqueued workflow {workflow.title} for user {user_id} as event {event_id}")

    return {"event_id": event_id, "credits_charged": cost, "cached": False}
