"""Error taxonomy for the verification engine.

ValidationError and InvalidTransition are caller mistakes. DependencyUnavailable
is retryable and is recorded per item during bulk runs. JobFault aborts the
whole bulk job.
"""

from typing import Optional


class HubzoneError(Exception):
    """Base class for all engine errors."""


class ValidationError(HubzoneError):
    """Input rejected before any work was started."""

    def __init__(self, message: str, details: Optional[list[str]] = None):
        super().__init__(message)
        self.details = details or []

    def __str__(self) -> str:
        message = super().__str__()
        if not self.details:
            return message
        shown = "; ".join(self.details[:5])
        if len(self.details) > 5:
            shown += f"; ... ({len(self.details) - 5} more)"
        return f"{message}: {shown}"


class DependencyUnavailable(HubzoneError):
    """An external collaborator (geocoder, business source) could not be reached."""

    retryable = True

    def __init__(self, dependency: str, message: str):
        super().__init__(f"{dependency} unavailable: {message}")
        self.dependency = dependency


class JobFault(HubzoneError):
    """An orchestration-level failure that aborts the whole bulk job."""


class InvalidTransition(HubzoneError):
    """A bulk job was asked to move to a state its current state cannot reach."""

    def __init__(self, job_id: str, current: str, requested: str):
        super().__init__(f"Job {job_id}: cannot move from {current} to {requested}")
        self.job_id = job_id
        self.current = current
        self.requested = requested
