"""
Job API Client - polls and drives analysis jobs over HTTP.

Every request carries a bounded timeout and the stored bearer token, if any.
Retryable failures (5xx, 408, 429 and connection errors) are retried with
exponential backoff; everything else surfaces immediately.

Usage:
    store = TokenStore(token, on_unauthorized=redirect_to_login)
    with JobApiClient("https://secureflow.example.com", store) as client:
        job = client.trigger_job("42")
        final = client.wait_for_completion(job["id"])
"""

import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx

from .exceptions import (
    ApiError,
    PollTimeoutError,
    TransientNetworkError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)

RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})
AUTH_PATH_PREFIX = "/api/auth"
TERMINAL_STATUSES = frozenset({"COMPLETED", "FAILED", "CANCELLED"})
DEFAULT_TIMEOUT_SECONDS = 10.0


def is_retryable_status(status_code: int) -> bool:
    return status_code in RETRYABLE_STATUS_CODES or 500 <= status_code < 600


@dataclass(frozen=True)
class RetryPolicy:
    """``attempts`` counts the first call; delays start at ``initial_delay`` and grow."""

    attempts: int = 3
    initial_delay: float = 2.0
    multiplier: float = 2.0

    def delays(self) -> List[float]:
        return [
            self.initial_delay * self.multiplier**i for i in range(max(self.attempts - 1, 0))
        ]


class TokenStore:
    """
    Holds the bearer token and the login-redirect hook.

    The hook fires once per token: after a 401 clears the token, further 401s
    stay quiet until ``set`` stores a new one.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        on_unauthorized: Optional[Callable[[], None]] = None,
    ):
        self._token = token
        self._on_unauthorized = on_unauthorized
        self._redirected = False

    def get(self) -> Optional[str]:
        return self._token

    def set(self, token: str) -> None:
        self._token = token
        self._redirected = False

    def clear(self) -> None:
        self._token = None

    def handle_unauthorized(self) -> None:
        self.clear()
        if self._redirected:
            return
        self._redirected = True
        if self._on_unauthorized is not None:
            self._on_unauthorized()


class JobApiClient:
    def __init__(
        self,
        base_url: str,
        token_store: Optional[TokenStore] = None,
        retry: Optional[RetryPolicy] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.tokens = token_store or TokenStore()
        self.retry = retry or RetryPolicy()
        self._sleep = sleep
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"), timeout=timeout, transport=transport
        )

    def __enter__(self) -> "JobApiClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def _headers(self) -> Dict[str, str]:
        token = self.tokens.get()
        return {"Authorization": f"Bearer {token}"} if token else {}

    def request(self, method: str, path: str, **kwargs: Any) -> Any:
        """
        Send a request with retries and return the decoded JSON body.

        Raises:
            UnauthorizedError: HTTP 401
            ApiError: any other non-retryable error response
            TransientNetworkError: retryable failures on every attempt
        """
        delays = self.retry.delays()
        last_error: Optional[Exception] = None

        for attempt in range(1, self.retry.attempts + 1):
            try:
                response = self._client.request(
                    method, path, headers=self._headers(), **kwargs
                )
            except httpx.TransportError as e:
                last_error = e
                logger.warning(f"{method} {path} attempt {attempt} failed: {e!r}")
            else:
                if response.status_code == 401:
                    if not path.startswith(AUTH_PATH_PREFIX):
                        self.tokens.handle_unauthorized()
                    error = ApiError.from_response(response)
                    raise UnauthorizedError(401, error.detail, error.code)
                if is_retryable_status(response.status_code):
                    last_error = ApiError.from_response(response)
                    logger.warning(
                        f"{method} {path} attempt {attempt} got HTTP {response.status_code}"
                    )
                elif response.is_error:
                    raise ApiError.from_response(response)
                else:
                    return response.json() if response.content else None

            if attempt < self.retry.attempts:
                self._sleep(delays[attempt - 1])

        raise TransientNetworkError(
            f"{method} {path} failed after {self.retry.attempts} attempts: {last_error}",
            last_error=last_error,
            attempts=self.retry.attempts,
        )

    # -------------------------------------------------------------------------
    # Job API
    # -------------------------------------------------------------------------

    def get_job(self, job_id: str) -> Dict[str, Any]:
        return self.request("GET", f"/api/jobs/{job_id}")

    def get_progress(self, job_id: str) -> Dict[str, Any]:
        return self.request("GET", f"/api/jobs/{job_id}/progress")

    def list_project_jobs(self, project_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        body = self.request(
            "GET", f"/api/projects/{project_id}/jobs", params={"limit": limit}
        )
        return body["items"]

    def trigger_job(
        self, project_id: str, commit_hash: str = "latest", **extra: Any
    ) -> Dict[str, Any]:
        return self.request(
            "POST",
            f"/api/projects/{project_id}/jobs",
            json={"commitHash": commit_hash, **extra},
        )

    def cancel_job(self, job_id: str) -> Dict[str, Any]:
        return self.request("POST", f"/api/jobs/{job_id}/cancel")

    def trigger_scheduled_run(self, frequency: str) -> Dict[str, Any]:
        return self.request(
            "POST", "/api/jobs/scheduled/trigger", json={"frequency": frequency}
        )

    def list_notifications(self, unread_only: bool = False) -> Dict[str, Any]:
        return self.request(
            "GET", "/api/notifications", params={"unread_only": unread_only}
        )

    def mark_notification_read(self, notification_id: str) -> Dict[str, Any]:
        return self.request("PUT", f"/api/notifications/{notification_id}/read")

    def wait_for_completion(
        self,
        job_id: str,
        poll_interval: float = 2.0,
        timeout: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> Dict[str, Any]:
        """Poll until the job is terminal and return the full job record."""
        deadline = clock() + timeout
        while True:
            progress = self.get_progress(job_id)
            if progress["status"] in TERMINAL_STATUSES:
                return self.get_job(job_id)
            if clock() >= deadline:
                raise PollTimeoutError(
                    f"Job {job_id} still {progress['status']} after {timeout}s"
                )
            self._sleep(poll_interval)
