"""Error definitions and error reporting for auroraboot_client.

Exceptions carry a stable ``code`` attribute for programmatic handling.
Components that perform I/O on behalf of a view absorb these errors and
hand them to an ``ErrorReporter`` instead of raising them to the caller.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)

# Error code constants
API_ERROR = "api_error"
BUILD_NOT_FOUND = "build_not_found"
TRANSPORT_ERROR = "transport_error"
INVALID_RESPONSE = "invalid_response"


class APIError(Exception):
    """Raised when a request to the build API fails."""

    def __init__(
        self,
        message: str,
        code: str = API_ERROR,
        status_code: int | None = None,
    ) -> None:
        """Initialize APIError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
            status_code: HTTP status code, if a response was received.
        """
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class BuildNotFoundError(APIError):
    """Raised when the server does not know a build id."""

    def __init__(self, build_id: str) -> None:
        super().__init__(
            f"Build not found: {build_id}", code=BUILD_NOT_FOUND, status_code=404
        )
        self.build_id = build_id


class ErrorReporter(Protocol):
    """Collaborator that receives absorbed failures."""

    def report(self, context: str, error: BaseException) -> None:
        """Report a failure that was absorbed at a component boundary."""
        ...


class LoggingErrorReporter:
    """ErrorReporter that writes failures to the log."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logger

    def report(self, context: str, error: BaseException) -> None:
        code = getattr(error, "code", None)
        if code:
            self._log.error("%s failed [%s]: %s", context, code, error)
        else:
            self._log.error("%s failed: %s", context, error)


__all__ = [
    "API_ERROR",
    "APIError",
    "BUILD_NOT_FOUND",
    "BuildNotFoundError",
    "ErrorReporter",
    "INVALID_RESPONSE",
    "LoggingErrorReporter",
    "TRANSPORT_ERROR",
]
