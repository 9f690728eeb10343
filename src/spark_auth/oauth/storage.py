"""Token storage for guest and user access tokens.

Tokens live in a key-value store under two fixed keys. The file-backed
store keeps them in ~/.spark/ with restrictive file permissions.

Note: Tokens are stored in plaintext and protected by file permissions (0o600).
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from ..clock import Clock, parse_int
from ..config import DEFAULT_TOKEN_DIR

logger = logging.getLogger(__name__)

GUEST_TOKEN_KEY = "spark-guest-token"
ACCESS_TOKEN_KEY = "spark-access-token"

# Never persisted
REFRESH_TOKEN_FIELD = "refresh_token"


class TokenSlot(str, Enum):
    """Named storage slots, valued by their storage key."""

    GUEST = GUEST_TOKEN_KEY
    ACCESS = ACCESS_TOKEN_KEY


class KeyValueStore(Protocol):
    """Minimal persistent string store."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryKeyValueStore:
    """Dict-backed store, mainly for tests and short-lived processes."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileKeyValueStore:
    """Key-value store persisted as one JSON object in a file.

    Usage:
        store = FileKeyValueStore()            # ~/.spark/tokens.json
        store.set("spark-access-token", "{...}")
        raw = store.get("spark-access-token")
    """

    def __init__(self, config_dir: Path | str | None = None, filename: str = "tokens.json"):
        """Initialize file store.

        Args:
            config_dir: Directory for the tokens file (default: ~/.spark)
            filename: Name of the tokens file inside config_dir
        """
        self.config_dir = Path(config_dir) if config_dir else DEFAULT_TOKEN_DIR
        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.tokens_file = self.config_dir / filename

    def _load(self) -> dict[str, str]:
        if not self.tokens_file.exists():
            return {}

        try:
            with open(self.tokens_file) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Could not load tokens file %s: %s", self.tokens_file, e)
            return {}

        if not isinstance(data, dict):
            logger.warning("Ignoring tokens file %s: not a JSON object", self.tokens_file)
            return {}
        return {k: v for k, v in data.items() if isinstance(v, str)}

    def _save(self, data: dict[str, str]) -> None:
        with open(self.tokens_file, "w") as f:
            json.dump(data, f, indent=2)

        # Set restrictive permissions
        os.chmod(self.tokens_file, 0o600)

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is not None:
            self._save(data)


@dataclass
class TokenRecord:
    """A stored token with its absolute expiry in epoch milliseconds."""

    access_token: str
    expires_at: int | None = None
    expires_in: int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def is_valid(self, now: int) -> bool:
        """True if the token has an expiry and it lies strictly after ``now``."""
        return self.expires_at is not None and self.expires_at > now

    def without_refresh_token(self) -> "TokenRecord":
        """Copy of this record with any refresh token dropped."""
        extra = {k: v for k, v in self.extra.items() if k != REFRESH_TOKEN_FIELD}
        return TokenRecord(
            access_token=self.access_token,
            expires_at=self.expires_at,
            expires_in=self.expires_in,
            extra=extra,
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to the persisted JSON layout."""
        data = dict(self.extra)
        data["access_token"] = self.access_token
        if self.expires_in is not None:
            data["expires_in"] = self.expires_in
        if self.expires_at is not None:
            data["expires_at"] = self.expires_at
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TokenRecord":
        """Create from a server response or persisted payload.

        Raises:
            KeyError: If access_token is missing
            ValueError: If expiry fields are not numeric
        """
        extra = {
            k: v for k, v in data.items()
            if k not in ("access_token", "expires_at", "expires_in")
        }
        expires_at = data.get("expires_at")
        expires_in = data.get("expires_in")
        return cls(
            access_token=data["access_token"],
            expires_at=parse_int(expires_at) if expires_at is not None else None,
            expires_in=parse_int(expires_in) if expires_in is not None else None,
            extra=extra,
        )


class TokenStore:
    """Reads and writes the guest and access token slots.

    Malformed stored data reads as absent and is never raised.

    Usage:
        store = TokenStore(MemoryKeyValueStore(), clock=system_clock)
        store.set(TokenSlot.ACCESS, record)
        record = store.get(TokenSlot.ACCESS)  # None once expired
    """

    def __init__(self, backend: KeyValueStore, clock: Clock):
        self.backend = backend
        self.clock = clock

    @staticmethod
    def is_valid(record: TokenRecord | None, now: int) -> bool:
        return record is not None and record.is_valid(now)

    def _has_expired(self, record: TokenRecord) -> bool:
        return record.expires_at is not None and record.expires_at <= self.clock()

    def get(self, slot: TokenSlot, include_expired: bool = False) -> TokenRecord | None:
        """Load the record for ``slot``.

        An access token whose expiry has passed is removed from storage
        unless ``include_expired`` is set. A record without an expiry is
        kept; callers decide validity with ``is_valid``. Guest tokens are
        returned as stored.
        """
        raw = self.backend.get(slot.value)
        if raw is None:
            return None

        try:
            data = json.loads(raw)
            if not isinstance(data, dict):
                raise TypeError("stored token is not an object")
            record = TokenRecord.from_dict(data)
            if not isinstance(record.access_token, str) or not record.access_token:
                raise ValueError("empty access_token")
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning("Ignoring malformed %s: %s", slot.value, e)
            return None

        if slot is TokenSlot.ACCESS and not include_expired and self._has_expired(record):
            logger.debug("Removing expired %s", slot.value)
            self.remove(slot)
            return None

        return record

    def set(self, slot: TokenSlot, record: TokenRecord) -> None:
        """Persist ``record``, replacing whatever the slot held."""
        stored = record.without_refresh_token()
        self.backend.set(slot.value, json.dumps(stored.to_dict()))

    def remove(self, slot: TokenSlot) -> None:
        self.backend.remove(slot.value)

