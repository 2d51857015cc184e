from __future__ import annotations


class PathTrackError(RuntimeError):
    """Base class for failures raised by the analysis pipeline."""


class NetworkError(PathTrackError):
    """Raised when the analysis API cannot be reached or answers with an error."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class AuthError(PathTrackError):
    """Raised when the API key is missing or rejected."""


class NotFoundError(PathTrackError):
    """Raised when an accession cannot be matched against the reference cache."""

    def __init__(self, identifier: str | None) -> None:
        super().__init__(f"no reference entry matches {identifier!r}")
        self.identifier = identifier


class JobFailedError(PathTrackError):
    """Raised when the remote job reports a failure."""

    def __init__(self, job_id: str, reason: str) -> None:
        super().__init__(f"job {job_id} failed: {reason}")
        self.job_id = job_id
        self.reason = reason


class JobTimeoutError(PathTrackError):
    """Raised when a job exhausts its poll budget without finishing."""

    def __init__(self, job_id: str, attempts: int) -> None:
        super().__init__(f"job {job_id} did not finish after {attempts} status checks")
        self.job_id = job_id
        self.attempts = attempts


class CacheLoadError(PathTrackError):
    """Raised when the reference dataset cannot be loaded."""


__all__ = [
    "AuthError",
    "CacheLoadError",
    "JobFailedError",
    "JobTimeoutError",
    "NetworkError",
    "NotFoundError",
    "PathTrackError",
]
