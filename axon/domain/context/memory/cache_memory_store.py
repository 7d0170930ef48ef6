from typing import Dict, List, Any, Optional
import asyncio
from datetime import datetime, timedelta, timezone


class CacheMemoryStore:
    """In-memory cache store with TTL support"""

    def __init__(self, default_ttl: int = 3600):
        self.default_ttl = default_ttl
        self.cache: Dict[str, Dict[str, Any]] = {}
        self.hits = 0
        self.misses = 0
        self._lock = asyncio.Lock()

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        """Set a value in cache with TTL"""

        async with self._lock:
            self._put(key, value, ttl)

    async def set_many(self, entries: Dict[str, Any], ttl: Optional[int] = None) -> None:
        async with self._lock:
            for key, value in entries.items():
                self._put(key, value, ttl)

    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache if not expired"""

        async with self._lock:
            return self._lookup(key, datetime.now(timezone.utc))

    async def get_many(self, keys: List[str]) -> Dict[str, Any]:
        """Get all unexpired values for ``keys``; missing keys are left out"""

        async with self._lock:
            now = datetime.now(timezone.utc)
            found = {}
            for key in keys:
                value = self._lookup(key, now)
                if value is not None:
                    found[key] = value
            return found

    async def delete(self, key: str) -> bool:
        """Delete a key from cache"""

        async with self._lock:
            if key in self.cache:
                del self.cache[key]
                return True
            return False

    async def clear(self) -> None:
        async with self._lock:
            self.cache.clear()

    async def clear_expired(self) -> int:
        """Clear expired entries and return count"""

        async with self._lock:
            now = datetime.now(timezone.utc)
            expired_keys = [
                key for key, entry in self.cache.items()
                if now > entry["expires_at"]
            ]

            for key in expired_keys:
                del self.cache[key]

            return len(expired_keys)

    async def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics"""

        async with self._lock:
            now = datetime.now(timezone.utc)
            active_count = sum(
                1 for entry in self.cache.values()
                if now <= entry["expires_at"]
            )

            return {
                "total_keys": len(self.cache),
                "active_keys": active_count,
                "expired_keys": len(self.cache) - active_count,
                "hits": self.hits,
                "misses": self.misses
            }

    def _put(self, key: str, value: Any, ttl: Optional[int]) -> None:
        seconds = self.default_ttl if ttl is None else ttl
        self.cache[key] = {
            "value": value,
            "expires_at": datetime.now(timezone.utc) + timedelta(seconds=seconds)
        }

    def _lookup(self, key: str, now: datetime) -> Optional[Any]:
        entry = self.cache.get(key)
        if entry is None:
            self.misses += 1
            return None

        # Check if expired
        if now > entry["expires_at"]:
            del self.cache[key]
            self.misses += 1
            return None

        self.hits += 1
        return entry["value"]
