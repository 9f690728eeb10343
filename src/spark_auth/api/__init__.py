"""Authorized Spark API requests."""

from .request import (
    ApiRequest,
    AuthorizedRequestFactory,
    SparkAPIError,
    SparkAuthError,
    SparkRateLimitError,
)

__all__ = [
    "ApiRequest",
    "AuthorizedRequestFactory",
    "SparkAPIError",
    "SparkAuthError",
    "SparkRateLimitError",
]
