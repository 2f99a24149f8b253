"""Run pipeline steps."""

from app.steps.base import BaseStep, StepServices, enqueue_job
from app.steps.create_run import CreateRunStep
from app.steps.dispatch import DispatchStep
from app.steps.fail_run import FailRunStep
from app.steps.finalize import FinalizeStep
from app.steps.poll import PollStep

__all__ = [
    "BaseStep",
    "StepServices",
    "enqueue_job",
    "CreateRunStep",
    "DispatchStep",
    "FailRunStep",
    "FinalizeStep",
    "PollStep",
]
