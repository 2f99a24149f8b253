"""Failure hook: mark the run failed and refund its charge once."""

import logging
from decimal import Decimal
from typing import Any, Dict

from app.services.credits import CreditAccountant
from app.services.ledger import RunLedger
from app.steps.base import BaseStep

logger = logging.getLogger(__name__)


class FailRunStep(BaseStep):
    """Runs as its own durable step so the refund survives a restart."""

    def _run(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        ledger = RunLedger(self.db)
        accountant = CreditAccountant(self.db)

        event_id = payload["event_id"]
        error = payload.get("error") or "Unknown error"
        credits = Decimal(str(payload.get("credits_charged") or 0))

        run = ledger.get_by_event_id(event_id)
        if run:
            ledger.mark_failed(run.id, error)
            run = ledger.get(run.id)
            credits = Decimal(run.credits_charged or 0)
            # Completed and cancelled runs keep their charge
            should_refund = run.status == "failed"
        else:
            # The ledger row was never created
            should_refund = True

        refunded = False
        if should_refund and credits > 0:
            refunded = accountant.refund(payload["user_id"], credits, event_id)

        self.db.commit()

        logger.info(f"Event {event_id} failed: {error} (refunded: {refunded})")
        return {"refunded": refunded, "error": error}
