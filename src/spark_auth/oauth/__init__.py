"""OAuth token storage and auth server access.

Usage:
    from spark_auth.oauth import TokenStore, TokenSlot, MemoryKeyValueStore

    store = TokenStore(MemoryKeyValueStore(), clock=system_clock)
    record = store.get(TokenSlot.ACCESS)
"""

from .client import (
    OAuthError,
    UnsupportedOperationError,
    ServerReportedError,
    MissingInputError,
    TokenServiceClient,
)
from .storage import (
    TokenStore,
    TokenRecord,
    TokenSlot,
    KeyValueStore,
    MemoryKeyValueStore,
    FileKeyValueStore,
)

__all__ = [
    "OAuthError",
    "UnsupportedOperationError",
    "ServerReportedError",
    "MissingInputError",
    "TokenServiceClient",
    "TokenStore",
    "TokenRecord",
    "TokenSlot",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "FileKeyValueStore",
]
