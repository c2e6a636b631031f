"""Exception hierarchy for the EVM rescue client."""

from typing import Any


class RescueError(Exception):
    """Base exception for all rescue client errors."""

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class AuthenticationError(RescueError):
    """Raised when no signer session is available or the key material is unusable."""

    pass


class NetworkError(RescueError):
    """Raised when network/connection issues occur."""

    def __init__(
        self,
        message: str,
        endpoint: str | None = None,
        status_code: int | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.endpoint = endpoint
        self.status_code = status_code


class TransientNetworkError(NetworkError):
    """Raised for timeouts and dropped connections that are worth retrying."""

    pass


class RateLimitError(NetworkError):
    """Raised when a provider answers with a throttling signature."""

    pass


class AllEndpointsFailedError(NetworkError):
    """Raised once every candidate endpoint has failed for one operation."""

    def __init__(
        self,
        message: str,
        operation: str,
        attempts: int = 0,
        last_error: BaseException | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details=details)
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


class ValidationError(RescueError):
    """Raised when input validation fails."""

    def __init__(
        self,
        message: str,
        field: str | None = None,
        value: Any | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.field = field
        self.value = value


class InsufficientFundsError(ValidationError):
    """Raised when a balance cannot cover the requested amount plus fees."""

    def __init__(
        self,
        message: str,
        required: str,
        available: str,
        asset: str,
        field: str | None = "balance",
        details: dict | None = None,
    ):
        super().__init__(message, field=field, value=available, details=details)
        self.required = required
        self.available = available
        self.asset = asset


class ContractStateError(RescueError):
    """Raised when execution reverted on-chain or during simulation."""

    def __init__(
        self,
        message: str,
        revert_reason: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.revert_reason = revert_reason


class ExhaustedRetriesError(RescueError):
    """Terminal error raised after the retry budget has been spent."""

    def __init__(
        self,
        message: str,
        attempts: int,
        last_error: BaseException | None = None,
        details: dict | None = None,
    ):
        super().__init__(message, details)
        self.attempts = attempts
        self.last_error = last_error
