"""In-memory TTL cache for GET responses."""

from __future__ import annotations

import json
from typing import Any

from cachetools import TTLCache

DEFAULT_MAX_ENTRIES = 512


class ResponseCache:
    """Keyed store whose entries expire ``ttl_ms`` after being written.

    Keys start with the request path, so :meth:`clear` with a pattern
    drops every cached variant of a path prefix. When full, the entry
    closest to expiry is evicted first.
    """

    def __init__(self, ttl_ms: float, maxsize: int = DEFAULT_MAX_ENTRIES) -> None:
        self._entries: TTLCache[str, Any] = TTLCache(maxsize=maxsize, ttl=ttl_ms / 1000.0)

    @staticmethod
    def make_key(method: str, path: str, extra: Any = None) -> str:
        return f"{path}::{method.upper()}::{json.dumps(extra, sort_keys=True, default=str)}"

    def get(self, key: str) -> Any | None:
        return self._entries.get(key)

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = value

    def clear(self, pattern: str | None = None) -> None:
        """Drop everything, or only keys starting with ``pattern``."""
        if pattern is None:
            self._entries.clear()
            return
        for key in [k for k in self._entries if k.startswith(pattern)]:
            self._entries.pop(key, None)

    def __len__(self) -> int:
        self._entries.expire()
        return len(self._entries)
