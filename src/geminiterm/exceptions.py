"""Domain exception hierarchy for the Gemini chat application."""

from __future__ import annotations

from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Domain error codes returned by the Gemini web service."""

    USAGE_LIMIT = 3
    USAGE_LIMIT_EXCEEDED = 1037
    MODEL_INCONSISTENT = 1050
    MODEL_HEADER_INVALID = 1052
    IP_TEMPORARILY_BLOCKED = 1060

    @property
    def description(self) -> str:
        return _ERROR_CODE_DESCRIPTIONS[self]


_ERROR_CODE_DESCRIPTIONS: dict[ErrorCode, str] = {
    ErrorCode.USAGE_LIMIT: "usage limit reached",
    ErrorCode.USAGE_LIMIT_EXCEEDED: "usage limit exceeded",
    ErrorCode.MODEL_INCONSISTENT: "model inconsistent",
    ErrorCode.MODEL_HEADER_INVALID: "model header invalid",
    ErrorCode.IP_TEMPORARILY_BLOCKED: "IP temporarily blocked",
}


def describe_error_code(code: int) -> str:
    """Return ``"<code> (<description>)"`` for known codes, else the bare number."""
    try:
        return f"{code} ({ErrorCode(code).description})"
    except ValueError:
        return str(code)


class GeminiTermError(RuntimeError):
    """Base class for all domain-level chat errors.

    Optional structured metadata mirrors what the remote service reports
    and is shown by the error banner.
    """

    kind = "error"

    def __init__(
        self,
        message: str = "",
        *,
        http_status: int | None = None,
        error_code: int | None = None,
        endpoint: str = "",
        body: str = "",
    ) -> None:
        super().__init__(message)
        self.message = message
        self.http_status = http_status
        self.error_code = error_code
        self.endpoint = endpoint
        self.body = body

    def metadata(self) -> dict[str, Any]:
        """Return non-empty structured fields for logging."""
        data: dict[str, Any] = {}
        if self.http_status:
            data["http_status"] = self.http_status
        if self.error_code:
            data["error_code"] = self.error_code
        if self.endpoint:
            data["endpoint"] = self.endpoint
        return data


class AuthError(GeminiTermError):
    """Raised when the web session cookies are missing or expired."""

    kind = "auth"


class RateLimitError(GeminiTermError):
    """Raised when the service refuses a request because of usage limits."""

    kind = "rate_limit"


class NetworkError(GeminiTermError):
    """Raised when the service cannot be reached."""

    kind = "network"


class RequestTimeoutError(GeminiTermError):
    """Raised when a request does not complete in time."""

    kind = "timeout"


class UploadError(GeminiTermError):
    """Raised when a file upload is rejected."""

    kind = "upload"


class ToolExecutionError(GeminiTermError):
    """Raised when a tool fails or the tool chain runs away."""

    kind = "tool"

    def __init__(self, tool_name: str, message: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.tool_name = tool_name

    def __str__(self) -> str:
        if self.tool_name:
            return f"tool '{self.tool_name}' execution failed: {self.message}"
        return self.message


class UserDeniedError(ToolExecutionError):
    """Synthesized when the user declines a tool confirmation."""

    kind = "user_denied"

    def __init__(self, tool_name: str) -> None:
        super().__init__(tool_name, "user denied")

    def __str__(self) -> str:
        return "user denied"


class CommandValidationError(GeminiTermError):
    """Raised when slash-command arguments are invalid."""

    kind = "validation"


class NotFoundError(GeminiTermError):
    """Raised when a referenced file or conversation does not exist."""

    kind = "not_found"


class PersistenceError(GeminiTermError):
    """Raised when the history store cannot complete an operation."""

    kind = "persistence"


class ConfigValidationError(GeminiTermError):
    """Raised when configuration cannot be validated safely."""

    kind = "config"
