"""Create the ledger row for a debited request."""

from decimal import Decimal
from typing import Any, Dict

from app.services.ledger import RunLedger
from app.steps.base import BaseStep


class CreateRunStep(BaseStep):
    """Insert the pending run. Safe to repeat for the same event."""

    def _run(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        ledger = RunLedger(self.db)
        run_id = ledger.create_run(
            workflow_id=payload["workflow_id"],
            user_id=payload["user_id"],
            provider=payload["provider"],
            inputs=payload.get("inputs"),
            event_id=payload["event_id"],
            credits_charged=Decimal(str(payload.get("credits_charged") or 0)),
            display_name=payload.get("workflow_title"),
            ran_with_platform_key=payload.get("ran_with_platform_key", True),
        )
        self.db.commit()

        return {"run_id": run_id}
