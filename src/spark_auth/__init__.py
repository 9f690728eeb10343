"""Spark API authentication client.

Keeps guest and user access tokens, refreshes them when they expire and
attaches them to Spark API requests.

Usage:
    from spark_auth import SparkClient

    async with SparkClient.initialize("app_key", guest_token_url=...) as spark:
        files = await spark.authorized_as_guest_api_request("/files").get()
"""

__version__ = "0.1.0"

from .client import SparkClient
from .config import ClientConfig, SparkSettings

__all__ = [
    "SparkClient",
    "ClientConfig",
    "SparkSettings",
    "__version__",
]
