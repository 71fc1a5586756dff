"""In-process TTL store for tests and single-process development."""

from __future__ import annotations

import json
import time
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .base import check_ttl


class InMemoryTTLStore:
    """Dict-backed TTL store with lazy expiry.

    Values are round-tripped through JSON so callers see the same shapes a
    network store would hand back.
    """

    def __init__(self, *, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._entries: Dict[str, Tuple[float, str]] = {}

    async def set(self, key: str, value: Mapping[str, Any], ttl_seconds: int) -> None:
        ttl = check_ttl(ttl_seconds)
        self._entries[key] = (self._clock() + ttl, json.dumps(dict(value)))

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self._live(key)
        return json.loads(raw) if raw is not None else None

    async def delete(self, key: str) -> bool:
        existed = self._live(key) is not None
        self._entries.pop(key, None)
        return existed

    async def take(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self._live(key)
        self._entries.pop(key, None)
        return json.loads(raw) if raw is not None else None

    async def close(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        self.purge_expired()
        return len(self._entries)

    def purge_expired(self) -> int:
        now = self._clock()
        expired = [key for key, (deadline, _) in self._entries.items() if deadline <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def _live(self, key: str) -> Optional[str]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        deadline, raw = entry
        if deadline <= self._clock():
            del self._entries[key]
            return None
        return raw
