"""
Exception types for tabby-agent.

Provides typed exceptions for:
- API call failures (canceled, auth-rejected, server error, network error)
- Agent misuse (calls before initialization)
- Configuration and authentication errors

and classify_error(), the single place that maps a raw call failure to
the outcome that drives the status state machine.
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Optional

# Status codes treated as "credentials rejected"
AUTH_REJECTED_STATUS_CODES = frozenset({401, 403, 405})


class TabbyAgentError(Exception):
    """Base exception for all tabby-agent errors."""
    pass


# =============================================================================
# API Call Errors
# =============================================================================


class CanceledError(TabbyAgentError):
    """
    Raised when a call was canceled by its caller.

    A canceled call is never treated as a connectivity failure.
    """

    is_canceled = True

    def __init__(self, message: str = "Request canceled") -> None:
        super().__init__(message)


class ApiError(TabbyAgentError):
    """
    Raised when the server answers with a non-success status code.

    Attributes:
        status_code: HTTP status code returned by the server
        body: Response body (parsed JSON or text), if any
        url: Request URL

    Example:
        try:
            response = await agent.get_completions(request)
        except ApiError as e:
            logger.warning(f"Server error {e.status_code}: {e}")
    """

    is_canceled = False

    def __init__(
        self,
        status_code: int,
        message: Optional[str] = None,
        body: Any = None,
        url: Optional[str] = None,
    ):
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(message or f"API request failed with status {status_code}")

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(status_code={self.status_code!r}, "
            f"url={self.url!r})"
        )


class AuthRejectedError(ApiError):
    """
    Raised when the server rejects the request's credentials.

    The status code is one of 401, 403 or 405.
    """
    pass


class UnknownError(TabbyAgentError):
    """
    Raised when a call fails without a server response.

    This includes:
    - Connection refused / DNS failures
    - Timeouts
    - Malformed responses
    """

    is_canceled = False
    status_code: Optional[int] = None


# =============================================================================
# Agent Usage Errors
# =============================================================================


class NotInitializedError(TabbyAgentError):
    """Raised when a request is made before the agent has left notInitialized."""

    def __init__(self, message: str = "Agent is not initialized") -> None:
        super().__init__(message)


class ConfigError(TabbyAgentError):
    """
    Raised when configuration is invalid.

    This includes:
    - Empty or non-string server endpoint
    - Unknown log level
    - Non-positive completion window sizes
    """
    pass


class AuthError(TabbyAgentError):
    """Raised when the device-token authentication flow fails."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


# =============================================================================
# Classification
# =============================================================================


class ErrorKind(str, Enum):
    """Outcome class of a failed API call."""
    CANCELED = "canceled"
    AUTH_REJECTED = "auth_rejected"
    API_ERROR = "api_error"
    UNKNOWN = "unknown"


def classify_error(error: BaseException) -> ErrorKind:
    """
    Map a failure raised by a transport call to its outcome class.

    Classification is by cancellation flag first, then by status code, so a
    plain ApiError carrying 401 is auth-rejected just like AuthRejectedError.

    Args:
        error: The exception raised by the call

    Returns:
        The ErrorKind driving the status transition
    """
    if isinstance(error, (CanceledError, asyncio.CancelledError)):
        return ErrorKind.CANCELED
    if getattr(error, "is_canceled", False):
        return ErrorKind.CANCELED
    if isinstance(error, ApiError):
        if error.status_code in AUTH_REJECTED_STATUS_CODES:
            return ErrorKind.AUTH_REJECTED
        return ErrorKind.API_ERROR
    return ErrorKind.UNKNOWN
