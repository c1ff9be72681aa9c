"""
Error Types Module

Typed exceptions raised by the client, credential providers and the
Bulk API orchestrator.
"""
from typing import Optional


class SfuError(Exception):
    """Base exception for all sfu failures."""


class ConfigError(SfuError, ValueError):
    """Invalid configuration value."""


class CredentialError(SfuError):
    """Credential retrieval or login failure."""


class TransportError(SfuError):
    """
    A remote Salesforce call failed.

    Attributes:
        status_code: HTTP status code when a response was received
        resource: Relative resource that was called
    """

    def __init__(self, message: str, status_code: Optional[int] = None, resource: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.resource = resource


class BulkJobError(SfuError):
    """
    Base exception for Bulk API ingestion failures.

    Attributes:
        step: Orchestration step that failed (e.g. 'upload')
        job_id: Remote job id when the job had already been created
    """

    step: Optional[str] = None

    def __init__(self, reason: str, step: Optional[str] = None, job_id: Optional[str] = None):
        self.reason = reason
        if step is not None:
            self.step = step
        self.job_id = job_id
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.step and self.job_id:
            return f"{self.step} failed for job {self.job_id}: {self.reason}"
        if self.step:
            return f"{self.step} failed: {self.reason}"
        return self.reason


# Pre-flight errors: nothing has been created remotely.

class InvalidJobSpecError(BulkJobError, ValueError):
    """Job request is inconsistent (operation / upsert key mismatch)."""

    step = "validate"


class EmptyPayloadError(BulkJobError, ValueError):
    """Payload has no content."""

    step = "validate"


class BulkConnectionError(BulkJobError, ConnectionError):
    """Connection liveness probe failed."""

    step = "probe"


class InvalidTargetError(BulkJobError):
    """Target object cannot be described."""

    step = "describe"


# Mid-flight errors: a remote job may exist in a partially advanced state.

class JobCreationError(BulkJobError):
    """Job creation endpoint rejected the request."""

    step = "create"


class UploadError(BulkJobError):
    """Uploading the CSV payload failed."""

    step = "upload"


class CloseError(BulkJobError):
    """Marking the job UploadComplete failed."""

    step = "close"


class PollError(BulkJobError):
    """A status read failed while waiting for the job."""

    step = "poll"


class PollTimeoutError(BulkJobError, TimeoutError):
    """
    Job did not reach a terminal state within the poll attempt ceiling.

    The remote job is left as is; it may still complete later.
    """

    step = "poll"

    def __init__(self, reason: str, job_id: Optional[str] = None,
                 last_state: Optional[str] = None, attempts: int = 0):
        self.last_state = last_state
        self.attempts = attempts
        super().__init__(reason, job_id=job_id)
