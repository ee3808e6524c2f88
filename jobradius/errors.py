"""
Error taxonomy for JobRadius.

Each error carries the HTTP-equivalent status code a transport layer
should answer with.
"""

from typing import Optional


class JobRadiusError(Exception):
    """Base class for all JobRadius errors."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(JobRadiusError):
    """Malformed or out-of-range client input. Never retried."""
    status_code = 400


class JobNotFoundError(JobRadiusError):
    """The job store has no record for the requested job."""
    status_code = 404


class NotResolvedError(JobRadiusError):
    """The job exists but its address has never been resolved."""
    status_code = 404


class StoreUnavailable(JobRadiusError):
    """The location store could not be reached. Retried by the caller."""
    status_code = 503


class CacheUnavailable(JobRadiusError):
    """Raised by cache backends; always absorbed by ResultCache."""
    status_code = 503
