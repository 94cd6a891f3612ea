from datetime import datetime, timedelta
from typing import Any, Dict, Optional
import logging

logger = logging.getLogger(__name__)

_MISSING = object()


class TTLCache:
    """Process-local cache for values read on nearly every request (betting settings)."""

    def __init__(self, default_ttl: int = 30):
        self._cache: Dict[str, Dict[str, Any]] = {}
        self.default_ttl = default_ttl
        self.hits = 0
        self.misses = 0

    def get(self, key: str, default: Any = _MISSING) -> Any:
        entry = self._cache.get(key)
        if entry is not None:
            if datetime.utcnow() < entry["expires_at"]:
                self.hits += 1
                return entry["value"]
            del self._cache[key]

        self.misses += 1
        return None if default is _MISSING else default

    def contains(self, key: str) -> bool:
        entry = self._cache.get(key)
        return entry is not None and datetime.utcnow() < entry["expires_at"]

    def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._cache[key] = {
            "value": value,
            "expires_at": datetime.utcnow() + timedelta(seconds=ttl),
        }

    def invalidate(self, key: str) -> bool:
        return self._cache.pop(key, None) is not None

    def clear(self) -> int:
        count = len(self._cache)
        self._cache.clear()
        return count

    def stats(self) -> Dict[str, Any]:
        total = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": self.hits / total if total > 0 else 0,
            "size": len(self._cache)
        }


settings_cache = TTLCache(default_ttl=30)
