"""
Error taxonomy for cache fetches.

TransportError and LogicalError describe a single failed attempt.
RetryExhaustedError is what consumers finally observe once every
attempt has failed.
"""
from typing import Optional


class CacheError(Exception):
    """Base class for all cache fetch failures."""


class TransportError(CacheError):
    """The fetcher raised (network failure, timeout, broken transport)."""


class LogicalError(CacheError):
    """The fetcher resolved but reported a non-success response."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class RetryExhaustedError(CacheError):
    """All attempts failed; carries the last underlying error."""

    def __init__(self, last_error: Exception, attempts: int):
        super().__init__(str(last_error))
        self.last_error = last_error
        self.attempts = attempts

    @property
    def status_code(self) -> Optional[int]:
        """Status code of the last attempt, if it was a logical failure."""
        return getattr(self.last_error, "status_code", None)
