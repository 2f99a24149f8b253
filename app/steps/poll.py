"""Poll the provider once and decide whether to keep waiting."""

import logging
from typing import Any, Dict

from app.errors import RunTimedOut
from app.services.ledger import RunLedger
from app.steps.base import BaseStep

logger = logging.getLogger(__name__)


def progress_percent(attempts: int, max_attempts: int) -> float:
    """Heuristic progress shown while a job is in flight."""
    return min(50 + attempts / max_attempts * 40, 90)


class PollStep(BaseStep):
    """
    One poll attempt.

    The attempt counter travels in the job payload, so a restarted worker
    resumes at the right attempt instead of restarting the wait.
    """

    def _run(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        ledger = RunLedger(self.db)
        run = ledger.get(payload["run_id"])

        if not run or not run.is_active:
            logger.info(f"Run {payload['run_id']} is no longer active, stopping poll")
            return {"active": False}

        provider = payload["provider"]
        request_id = payload["request_id"]
        attempt = payload.get("attempt", 0)
        max_attempts = self.services.max_poll_attempts

        status = self.services.adapter(provider).poll(
            payload["model_identifier"],
            request_id,
            self.services.api_key(provider),
        )

        if status.completed:
            logger.info(f"Run {run.id} reported {status.status} after {attempt + 1} polls")
            return {"active": True, "completed": True, "status": status.status}

        attempts = attempt + 1

        if attempts % self.services.progress_every == 0:
            snapshot = {
                "requestId": request_id,
                "provider": provider,
                "status": status.status,
                "progress": progress_percent(attempts, max_attempts),
            }
            if status.progress_hint is not None:
                snapshot["providerProgress"] = status.progress_hint
            if status.logs:
                snapshot["logs"] = status.logs
            ledger.record_progress(run.id, snapshot)
            self.db.commit()

        if attempts >= max_attempts:
            raise RunTimedOut()

        return {"active": True, "completed": False, "attempt": attempts}
