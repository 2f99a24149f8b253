"""Start the remote job on the provider."""

import logging
from typing import Any, Dict

from app.services.ledger import RunLedger
from app.steps.base import BaseStep

logger = logging.getLogger(__name__)


class DispatchStep(BaseStep):
    """Submit inputs to the provider and move the run to processing."""

    def _run(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        ledger = RunLedger(self.db)
        run = ledger.get(payload["run_id"])

        if run and run.status == "processing" and run.request_id:
            # Already started; the poll job was lost before it was committed
            logger.info(f"Run {run.id} already dispatched as {run.request_id}, resuming poll")
            return {"dispatched": True, "request_id": run.request_id}

        if not run or run.status != "pending":
            logger.info(f"Run {payload['run_id']} is no longer pending, not dispatching")
            return {"dispatched": False}

        provider = payload["provider"]
        adapter = self.services.adapter(provider)

        handle = adapter.start(
            payload["model_identifier"],
            payload.get("inputs") or {},
            self.services.api_key(provider),
            version=payload.get("version"),
        )
        logger.info(f"Run {run.id} dispatched to {provider} as {handle.correlation_id}")

        if not ledger.mark_processing(run.id, request_id=handle.correlation_id):
            # Cancelled while the request was in flight; the remote result is discarded
            self.db.commit()
            return {"dispatched": False}

        ledger.record_progress(
            run.id,
            {"requestId": handle.correlation_id, "provider": provider, "status": handle.initial_status},
        )
        self.db.commit()

        return {"dispatched": True, "request_id": handle.correlation_id}
