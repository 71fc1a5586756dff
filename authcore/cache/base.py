"""TTL key-value store contract shared by sessions and verification tokens."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Protocol, runtime_checkable

from ..errors import InvalidInputError


@runtime_checkable
class TTLStore(Protocol):
    """Key-value store whose entries expire after a per-key TTL.

    Values are JSON-serialisable mappings. Every method is a single atomic
    call against the backing store; failures raise ``TransientError``.
    """

    async def set(self, key: str, value: Mapping[str, Any], ttl_seconds: int) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the live value for ``key`` or ``None``."""

    async def delete(self, key: str) -> bool:
        """Delete ``key``; return whether a live value existed."""

    async def take(self, key: str) -> Optional[Dict[str, Any]]:
        """Atomically return and delete the live value for ``key``."""

    async def close(self) -> None:
        """Release connections held by the store."""


def check_ttl(ttl_seconds: int) -> int:
    if isinstance(ttl_seconds, bool) or not isinstance(ttl_seconds, int) or ttl_seconds <= 0:
        raise InvalidInputError(f"TTL must be a positive number of seconds, got {ttl_seconds!r}")
    return ttl_seconds
