"""HTTP client for the analysis job API."""

from .exceptions import (
    ApiError,
    ClientError,
    PollTimeoutError,
    TransientNetworkError,
    UnauthorizedError,
)
from .job_client import JobApiClient, RetryPolicy, TokenStore

__all__ = [
    "ApiError",
    "ClientError",
    "PollTimeoutError",
    "TransientNetworkError",
    "UnauthorizedError",
    "JobApiClient",
    "RetryPolicy",
    "TokenStore",
]
