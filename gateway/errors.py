"""Error classes raised by the calendar gateway."""
from typing import Optional


class GatewayError(Exception):
    """Base error for calendar API failures."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retryable: bool = False
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class TokenInvalidatedError(GatewayError):
    """The change token is no longer valid; a full resync is required."""


class NotFoundError(GatewayError):
    """The requested event does not exist or was already deleted."""


class PermissionDeniedError(GatewayError):
    """Authentication or authorization failed."""
