"""Error taxonomy for the run engine."""


class RunEngineError(Exception):
    """Base class for run engine errors.

    ``retryable`` tells the step worker whether a failed step may be re-queued.
    """

    retryable = False

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class InsufficientCredits(RunEngineError):
    """Debit rejected because the balance does not cover the cost."""

    def __init__(self, balance, required):
        self.balance = balance
        self.required = required
        super().__init__(
            f"Insufficient credits. You have {balance} credits but need {required} credits to run this workflow."
        )


class WorkflowNotFound(RunEngineError):
    """Workflow id is not in the catalog."""

    def __init__(self, workflow_id: int):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow {workflow_id} not found")


class ProviderUnavailable(RunEngineError):
    """Provider API unreachable or rejected the request."""

    retryable = True


class ProviderRejected(RunEngineError):
    """The remote job itself failed."""


class RunTimedOut(RunEngineError):
    """Poll attempt bound exceeded."""

    def __init__(self, message: str = "timed out"):
        super().__init__(message)


class StorageUploadFailed(RunEngineError):
    """Upload to platform object storage failed."""
