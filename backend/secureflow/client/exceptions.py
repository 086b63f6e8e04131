"""Exceptions raised by the job API client."""

from __future__ import annotations

from typing import Any, Optional

import httpx


class ClientError(Exception):
    """Base exception for client failures."""


class ApiError(ClientError):
    """Raised for an HTTP error response that retrying will not fix."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        code: Optional[str] = None,
    ):
        super().__init__(f"HTTP {status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail
        self.code = code

    @classmethod
    def from_response(cls, response: httpx.Response) -> "ApiError":
        detail: Any = response.text or response.reason_phrase
        code = None
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict):
            detail = body.get("detail", detail)
            code = body.get("code")
        return cls(response.status_code, str(detail), code)


class UnauthorizedError(ApiError):
    """Raised on HTTP 401. The stored token has already been cleared."""


class TransientNetworkError(ClientError):
    """Raised when every retry attempt hit a retryable failure."""

    def __init__(self, message: str, last_error: Exception | None = None, attempts: int = 0):
        super().__init__(message)
        self.last_error = last_error
        self.attempts = attempts


class PollTimeoutError(ClientError):
    """Raised when a job does not reach a terminal status in time."""
