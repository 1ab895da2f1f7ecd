"""Typed errors for the pipeline.

Every error raised by the executor, entity store, or provider adapters
derives from PipelineError. The API maps ValidationError and the
not-found errors to 4xx responses; everything else raised inside a
job is recorded on the job row as its error string.
"""

from typing import Optional


class PipelineError(Exception):
    """Base error for the pipeline."""


class JobNotFoundError(PipelineError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found")


class EntityNotFoundError(PipelineError):
    def __init__(self, kind: str, entity_id: str):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind.capitalize()} {entity_id} not found")


class ValidationError(PipelineError):
    """A trigger payload or action precondition was rejected."""


class UndeclaredStepError(PipelineError):
    def __init__(self, workflow_name: str, step_name: str, expected: Optional[str]):
        self.workflow_name = workflow_name
        self.step_name = step_name
        self.expected = expected
        super().__init__(
            f"Step '{step_name}' is not the next declared step of "
            f"workflow '{workflow_name}' (expected '{expected}')"
        )


class StepFailedError(PipelineError):
    """Work inside a step could not produce its result."""


class ProviderError(PipelineError):
    """An external service call failed."""

    def __init__(self, provider: str, message: str):
        self.provider = provider
        self.message = message
        super().__init__(f"{provider}: {message}")


class TransientProviderError(ProviderError):
    """Network error, timeout, 5xx or 429. Retried inside the adapter."""


class ProviderFailedError(ProviderError):
    """The provider reported a terminal failure for a submitted handle."""


class StepTimeoutError(PipelineError):
    def __init__(self, label: str, timeout: float):
        self.label = label
        self.timeout = timeout
        super().__init__(f"{label} did not finish within {timeout:.0f}s")


class StepCancelledError(PipelineError):
    def __init__(self, label: str):
        self.label = label
        super().__init__(f"{label} cancelled")
