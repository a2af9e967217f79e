"""In-memory entity cache with typed keys and TTL"""

import enum
import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Any

logger = logging.getLogger(__name__)


class CacheKind(enum.Enum):
    PROFILE = "profile"
    EARNINGS_SUMMARY = "earnings_summary"
    REQUEST = "request"


@dataclass(frozen=True)
class CacheKey:
    kind: CacheKind
    entity_id: str

    @classmethod
    def profile(cls, user_id: str) -> "CacheKey":
        return cls(CacheKind.PROFILE, str(user_id))

    @classmethod
    def earnings(cls, judge_id: str) -> "CacheKey":
        return cls(CacheKind.EARNINGS_SUMMARY, str(judge_id))

    @classmethod
    def request(cls, request_id) -> "CacheKey":
        return cls(CacheKind.REQUEST, str(request_id))


class EntityCache:
    """Thread-safe in-memory cache with TTL.

    Constructed once at startup and handed to services; entries are dropped
    explicitly by the entity that changed.
    """

    def __init__(self, default_ttl: int = 60):
        self._entries: dict[CacheKey, tuple[Any, float]] = {}
        self._lock = Lock()
        self.default_ttl = default_ttl

    def get(self, key: CacheKey) -> Any | None:
        """Get value from cache if not expired"""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            value, expiry = entry
            if time.monotonic() < expiry:
                return value
            del self._entries[key]
            return None

    def set(self, key: CacheKey, value: Any, ttl: int | None = None) -> None:
        """Set value in cache with TTL (seconds)"""
        ttl = self.default_ttl if ttl is None else ttl
        with self._lock:
            self._entries[key] = (value, time.monotonic() + ttl)

    def delete(self, key: CacheKey) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_profile(self, user_id: str) -> None:
        self.delete(CacheKey.profile(user_id))

    def invalidate_earnings(self, judge_id: str) -> None:
        self.delete(CacheKey.earnings(judge_id))

    def invalidate_request(self, request_id) -> None:
        self.delete(CacheKey.request(request_id))

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def cleanup_expired(self) -> int:
        """Remove all expired entries"""
        now = time.monotonic()
        with self._lock:
            expired = [k for k, (_, expiry) in self._entries.items() if now >= expiry]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired cache entries")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
