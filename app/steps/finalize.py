"""Fetch the result, migrate it and complete the run."""

import logging
from datetime import datetime
from typing import Any, Dict

from app.errors import ProviderRejected
from app.services.ledger import RunLedger
from app.steps.base import BaseStep

logger = logging.getLogger(__name__)


class FinalizeStep(BaseStep):
    """Turn a finished remote job into a completed run."""

    def _run(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        ledger = RunLedger(self.db)
        run = ledger.get(payload["run_id"])

        if not run or not run.is_active:
            logger.info(f"Run {payload['run_id']} is no longer active, discarding result")
            return {"completed": False}

        provider = payload["provider"]
        started = run.started_at or run.ran_at
        elapsed = (datetime.utcnow() - started).total_seconds() if started else 0.0

        result = self.services.adapter(provider).fetch_result(
            payload["model_identifier"],
            payload["request_id"],
            self.services.api_key(provider),
            elapsed,
        )

        if not result.success:
            raise ProviderRejected(result.error or "Unknown error")

        output_path = result.output_ref
        if output_path is not None:
            output_path = self.services.migrator.migrate(output_path, payload["workflow_title"], result.media_type)

        output = {
            "outputPath": output_path,
            "type": result.media_type,
            "processingTime": result.processing_time,
            "provider": provider,
        }

        completed = ledger.mark_complete(run.id, output)
        self.db.commit()

        if completed:
            self.services.notifier.run_completed(payload["workflow_title"], output_path, result.media_type)

        return {"completed": completed, "output": output}
