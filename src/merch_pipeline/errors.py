"""Exception hierarchy shared by every pipeline stage.

Transient errors are retried by :mod:`merch_pipeline.retry`; everything that
derives from :class:`PermanentError` fails immediately without consuming
retry budget.
"""
from __future__ import annotations

from typing import Optional


class PipelineError(Exception):
    """Base exception for pipeline errors."""
    pass


class TransientTransportError(PipelineError):
    """Network failure, timeout, 5xx or rate limit. Always retried."""

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class ExhaustedRetriesError(PipelineError):
    """All retry attempts failed; wraps the last underlying error."""

    def __init__(self, cause: BaseException, attempts: int, description: str = "operation"):
        super().__init__(f"{description} failed after {attempts} attempt(s): {cause}")
        self.cause = cause
        self.attempts = attempts
        self.description = description


class PermanentError(PipelineError):
    """Base class for errors that must never be retried."""
    pass


class MalformedContentError(PermanentError):
    """Generated listing content is missing fields or could not be parsed."""
    pass


class InvalidInputError(PermanentError):
    """Argument, file or configuration value is invalid."""
    pass


class AssetTooLargeError(InvalidInputError):
    """Local asset exceeds the host's maximum upload size."""

    def __init__(self, message: str, *, size_bytes: int, max_bytes: int):
        super().__init__(message)
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes


class MissingCredentialsError(PermanentError):
    """A required configuration key is absent."""

    def __init__(self, key: str, message: Optional[str] = None):
        super().__init__(message or f"Missing required configuration: {key}")
        self.key = key


class AuthenticationError(PermanentError):
    """Remote service rejected the credentials (401/403)."""
    pass


class RemoteRequestError(PermanentError):
    """Remote service rejected the request with a non-retryable status."""

    def __init__(self, message: str, *, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class DomainRejectionError(PermanentError):
    """Commerce API refused the operation on business-rule grounds.

    ``known_limitation`` is set when the rejection is an expected store
    limitation (e.g. platform-linked stores refusing API product creation)
    rather than a bug in the request.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        known_limitation: bool = False,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.known_limitation = known_limitation


TRANSIENT_STATUS_CODES = frozenset({408, 425, 429})


def is_transient_status(status_code: int) -> bool:
    """Return True for HTTP statuses worth retrying (408, 425, 429, 5xx)."""

    return status_code in TRANSIENT_STATUS_CODES or status_code >= 500


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parse a ``Retry-After`` header given in seconds; ignore HTTP dates."""

    if not value:
        return None
    try:
        seconds = float(value)
    except (TypeError, ValueError):
        return None
    return seconds if seconds >= 0 else None


__all__ = [
    "PipelineError",
    "TransientTransportError",
    "ExhaustedRetriesError",
    "PermanentError",
    "MalformedContentError",
    "InvalidInputError",
    "AssetTooLargeError",
    "MissingCredentialsError",
    "AuthenticationError",
    "RemoteRequestError",
    "DomainRejectionError",
    "is_transient_status",
    "parse_retry_after",
]
