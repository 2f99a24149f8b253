"""Background worker executing run pipeline steps from the job table."""

import logging
import time
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Type

from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.errors import RunEngineError
from app.models.job import Job
from app.services import idempotency
from app.steps import (
    BaseStep,
    CreateRunStep,
    DispatchStep,
    FailRunStep,
    FinalizeStep,
    PollStep,
    StepServices,
    enqueue_job,
)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

# Idle loops between housekeeping passes (stale job recovery, key pruning)
HOUSEKEEPING_EVERY = 60


class Worker:
    """Background worker for processing pipeline steps."""

    def __init__(
        self,
        session_factory=None,
        services: Optional[StepServices] = None,
        poll_interval: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_backoff: Optional[float] = None,
        stale_after: Optional[int] = None,
    ):
        """Initialize worker."""
        self.session_factory = session_factory or SessionLocal
        self.services = services or StepServices()
        self.poll_interval = settings.WORKER_POLL_INTERVAL if poll_interval is None else poll_interval
        self.max_retries = settings.MAX_JOB_RETRIES if max_retries is None else max_retries
        self.retry_backoff = settings.JOB_RETRY_BACKOFF_SECONDS if retry_backoff is None else retry_backoff
        self.stale_after = settings.STALE_JOB_SECONDS if stale_after is None else stale_after

        # Step registry
        self.steps: Dict[str, Type[BaseStep]] = {
            "create_run": CreateRunStep,
            "dispatch": DispatchStep,
            "poll": PollStep,
            "finalize": FinalizeStep,
            "fail_run": FailRunStep,
        }

    def run(self, stop_event=None):
        """Main worker loop.

        Args:
            stop_event: Optional threading.Event to signal worker to stop
        """
        logger.info("Worker started - waiting for database to be ready...")

        # Wait for database tables to be created
        import sqlalchemy
        max_wait = 60  # Wait up to 60 seconds for migrations
        waited = 0
        while waited < max_wait:
            try:
                db = self.session_factory()
                db.execute(sqlalchemy.text("SELECT 1 FROM jobs LIMIT 1"))
                db.close()
                logger.info("Database is ready, starting worker loop")
                break
            except Exception as e:
                logger.info(f"Waiting for database ({waited}s): {e}")
                time.sleep(2)
                waited += 2

        if waited >= max_wait:
            logger.error("Database not ready after 60 seconds, starting anyway...")

        self.housekeeping()
        idle = 0

        while True:
            # Check if stop signal received
            if stop_event and stop_event.is_set():
                logger.info("Worker stop signal received")
                break

            try:
                if self.run_once():
                    continue

                idle += 1
                if idle % HOUSEKEEPING_EVERY == 0:
                    self.housekeeping()

                if stop_event:
                    stop_event.wait(self.poll_interval)
                else:
                    time.sleep(self.poll_interval)

            except KeyboardInterrupt:
                logger.info("Worker shutting down")
                break
            except Exception as e:
                logger.error(f"Worker error: {e}", exc_info=True)
                time.sleep(self.poll_interval)

    def run_once(self) -> bool:
        """Process the next due job, if any. Returns True when a job was processed."""
        db = self.session_factory()
        job = self.get_next_job(db)

        if not job:
            db.close()
            return False

        self.process_job(job, db)
        return True

    def get_next_job(self, db: Session) -> Optional[Job]:
        """Get next queued job whose timer has expired."""
        job = (
            db.query(Job)
            .filter(Job.status == "queued", Job.run_after <= datetime.utcnow())
            .order_by(Job.run_after, Job.created_at)
            .with_for_update(skip_locked=True)
            .first()
        )
        return job

    def process_job(self, job: Job, db: Session):
        """Process a single job."""
        logger.info(f"Processing job {job.job_id} (step: {job.step}, event: {job.event_id})")

        # Mark as running
        job.status = "running"
        db.commit()

        try:
            step_class = self.steps.get(job.step)
            if not step_class:
                raise ValueError(f"Unknown step: {job.step}")

            step = step_class(self.services, db)

            # Execute
            result = step.execute(dict(job.payload or {}))

            # Next step and completion commit together
            self.enqueue_next_jobs(job, result, db)
            job.status = "done"
            db.commit()

            logger.info(f"Job {job.job_id} completed successfully")

        except Exception as e:
            db.rollback()
            retryable = not isinstance(e, RunEngineError) or e.retryable
            if retryable:
                logger.error(f"Job {job.job_id} failed: {e}", exc_info=True)
            else:
                logger.warning(f"Job {job.job_id} ({job.step}) failed terminally: {e}")
            self.handle_failure(job, e, retryable, db)

        finally:
            db.close()

    def handle_failure(self, job: Job, error: Exception, retryable: bool, db: Session):
        """Re-queue a transient failure or hand the run to the failure step."""
        message = error.message if isinstance(error, RunEngineError) else str(error)
        job.last_error = message

        if retryable and (job.retries or 0) < self.max_retries:
            job.retries = (job.retries or 0) + 1
            job.status = "queued"
            job.run_after = datetime.utcnow() + timedelta(seconds=self.retry_backoff * job.retries)
            logger.warning(f"Job {job.job_id} retry {job.retries}/{self.max_retries}")
            db.commit()
            return

        job.status = "failed"
        if job.step == "fail_run":
            logger.error(f"Failure step for event {job.event_id} gave up after {job.retries} retries")
        else:
            self.enqueue_failure(job, message, db)
        db.commit()

    def enqueue_failure(self, job: Job, error: str, db: Session):
        """Enqueue the failure step once per event."""
        existing = (
            db.query(Job)
            .filter(Job.event_id == job.event_id, Job.step == "fail_run")
            .first()
        )
        if existing:
            return

        payload = dict(job.payload or {})
        payload["error"] = error
        enqueue_job(db, "fail_run", payload, run_id=job.run_id)
        logger.info(f"Enqueued failure step for event {job.event_id}")

    def enqueue_next_jobs(self, job: Job, result: Dict[str, Any], db: Session):
        """Enqueue next step based on the finished step."""
        payload = dict(job.payload or {})

        if job.step == "create_run":
            payload["run_id"] = result["run_id"]
            enqueue_job(db, "dispatch", payload, run_id=result["run_id"])

        elif job.step == "dispatch":
            if result.get("dispatched"):
                payload["request_id"] = result["request_id"]
                payload["attempt"] = 0
                enqueue_job(db, "poll", payload, run_id=job.run_id, delay=self.services.poll_interval)

        elif job.step == "poll":
            if not result.get("active"):
                logger.info(f"Run {job.run_id} left the active states, poll loop stopped")
            elif result.get("completed"):
                enqueue_job(db, "finalize", payload, run_id=job.run_id)
            else:
                payload["attempt"] = result["attempt"]
                enqueue_job(db, "poll", payload, run_id=job.run_id, delay=self.services.poll_interval)

        elif job.step == "finalize":
            if result.get("completed"):
                logger.info(f"Run {job.run_id} completed")

    def recover_stale_jobs(self) -> int:
        """Re-queue jobs left running by a worker that died mid-step."""
        cutoff = datetime.utcnow() - timedelta(seconds=self.stale_after)
        db = self.session_factory()
        try:
            count = (
                db.query(Job)
                .filter(Job.status == "running", Job.updated_at < cutoff)
                .update({"status": "queued", "run_after": datetime.utcnow()}, synchronize_session=False)
            )
            db.commit()
        finally:
            db.close()

        if count:
            logger.warning(f"Re-queued {count} stale running jobs")
        return count

    def housekeeping(self):
        """Recover stale jobs and prune expired idempotency keys."""
        self.recover_stale_jobs()

        db = self.session_factory()
        try:
            idempotency.prune(db)
            db.commit()
        finally:
            db.close()


def worker_loop(stop_event=None):
    """Run worker loop (for use as background thread).

    Args:
        stop_event: Optional threading.Event to signal worker to stop
    """
    worker = Worker()
    worker.run(stop_event=stop_event)


def main():
    """Entry point for standalone worker."""
    worker = Worker()
    worker.run()


if __name__ == "__main__":
    main()
