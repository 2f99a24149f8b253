"""Base step and shared services for the run pipeline."""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.models.job import Job
from app.services.migrator import OutputMigrator
from app.services.notifications import RunNotifier
from app.services.providers import ProviderAdapter, api_key_for, get_adapter

logger = logging.getLogger(__name__)


def enqueue_job(
    db: Session,
    step: str,
    payload: Dict[str, Any],
    run_id: Optional[int] = None,
    delay: float = 0,
) -> Job:
    """Add a queued step for the pipeline identified by ``payload['event_id']``."""
    job = Job(
        event_id=payload["event_id"],
        run_id=run_id,
        step=step,
        status="queued",
        payload=payload,
        run_after=datetime.utcnow() + timedelta(seconds=delay),
    )
    db.add(job)
    db.flush()
    return job


class StepServices:
    """Collaborators shared by every step: adapters, migrator, notifier and polling limits."""

    def __init__(
        self,
        adapters: Optional[Dict[str, ProviderAdapter]] = None,
        migrator: Optional[OutputMigrator] = None,
        notifier: Optional[RunNotifier] = None,
        api_keys: Optional[Dict[str, str]] = None,
        poll_interval: Optional[float] = None,
        max_poll_attempts: Optional[int] = None,
        progress_every: Optional[int] = None,
    ):
        """Initialize step services, falling back to settings."""
        self.adapters = adapters or {}
        self.migrator = migrator or OutputMigrator()
        self.notifier = notifier or RunNotifier()
        self.api_keys = api_keys or {}
        self.poll_interval = settings.POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        self.max_poll_attempts = max_poll_attempts or settings.MAX_POLL_ATTEMPTS
        self.progress_every = progress_every or settings.PROGRESS_SNAPSHOT_EVERY

    def adapter(self, provider: str) -> ProviderAdapter:
        if provider not in self.adapters:
            self.adapters[provider] = get_adapter(provider)
        return self.adapters[provider]

    def api_key(self, provider: str) -> str:
        if provider in self.api_keys:
            return self.api_keys[provider]
        return api_key_for(provider)


class BaseStep:
    """Base class for all pipeline steps."""

    def __init__(self, services: StepServices, db_session: Session):
        """Initialize base step."""
        self.services = services
        self.db = db_session

    def execute(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Execute the step once. Retries are the worker's concern.

        Args:
            payload: Pipeline context plus step state

        Returns:
            Step output dict, used by the worker to enqueue the next step
        """
        logger.info(f"Step {self.__class__.__name__} for event {payload.get('event_id')}")

        # Refresh database session to see recently committed data
        self.db.expire_all()

        return self._run(payload)

    def _run(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Run the step logic (to be implemented by subclasses).

        Args:
            payload: Input payload

        Returns:
            Output dict
        """
        raise NotImplementedError
