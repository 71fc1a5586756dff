"""Redis-backed TTL store with deadlines and retrying on connection failures."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Tuple, TypeVar
from urllib.parse import urlparse

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from ..errors import TransientError
from .base import check_ttl

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT_SECONDS = 5.0
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_INITIAL_DELAY = 0.05
DEFAULT_RETRY_MAX_DELAY = 1.0

RETRYABLE_ERRORS: Tuple[type[BaseException], ...] = (
    RedisConnectionError,
    RedisTimeoutError,
    asyncio.TimeoutError,
    ConnectionResetError,
    ConnectionAbortedError,
    OSError,
)


def mask_url(url: str) -> str:
    """Mask the password in a Redis URL for logging."""

    parsed = urlparse(url)
    if parsed.password:
        return url.replace(parsed.password, "***")
    return url


class RedisTTLStore:
    """TTL store on a shared Redis instance.

    Every call runs under ``timeout`` seconds. A timeout or connection
    failure is retried with exponential backoff and finally raised as
    ``TransientError``; it is never reported as a missing key.
    """

    def __init__(
        self,
        client: redis.Redis,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        retries: int = DEFAULT_RETRY_ATTEMPTS,
        retry_initial_delay: float = DEFAULT_RETRY_INITIAL_DELAY,
        retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY,
    ) -> None:
        self._client = client
        self._timeout = timeout
        self._retry_attempts = max(1, retries)
        self._retry_initial_delay = max(0.0, retry_initial_delay)
        self._retry_max_delay = max(self._retry_initial_delay, retry_max_delay)

    @classmethod
    def from_url(cls, url: str, **kwargs: Any) -> "RedisTTLStore":
        pool_kwargs = {
            "max_connections": kwargs.pop("max_connections", 20),
            "socket_connect_timeout": kwargs.pop("socket_connect_timeout", 5),
            "socket_timeout": kwargs.pop("socket_timeout", 10),
        }
        client = redis.from_url(url, decode_responses=True, **pool_kwargs)
        logger.info("Redis TTL store created for %s", mask_url(url))
        return cls(client, **kwargs)

    async def set(self, key: str, value: Mapping[str, Any], ttl_seconds: int) -> None:
        ttl = check_ttl(ttl_seconds)
        serialized = json.dumps(dict(value))
        await self._call("set", key, lambda: self._client.set(key, serialized, ex=ttl))

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = await self._call("get", key, lambda: self._client.get(key))
        return self._decode(key, raw)

    async def delete(self, key: str) -> bool:
        removed = await self._call("delete", key, lambda: self._client.delete(key))
        return bool(removed)

    async def take(self, key: str) -> Optional[Dict[str, Any]]:
        raw = await self._call("getdel", key, lambda: self._client.getdel(key))
        return self._decode(key, raw)

    async def ping(self) -> bool:
        try:
            return bool(await self._call("ping", "-", self._client.ping))
        except TransientError:
            return False

    async def close(self) -> None:
        await self._client.aclose()

    async def _call(self, op: str, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        delay = self._retry_initial_delay
        for attempt in range(1, self._retry_attempts + 1):
            try:
                return await asyncio.wait_for(factory(), timeout=self._timeout)
            except asyncio.CancelledError:
                raise
            except RETRYABLE_ERRORS as exc:
                if attempt == self._retry_attempts:
                    logger.error(
                        "Redis %s failed for %s after %s attempts: %s",
                        op,
                        _redact(key),
                        attempt,
                        exc,
                    )
                    raise TransientError(
                        f"Redis {op} failed", details={"attempts": attempt}
                    ) from exc
                logger.warning(
                    "Redis %s attempt %s/%s failed: %s",
                    op,
                    attempt,
                    self._retry_attempts,
                    exc,
                )
                await asyncio.sleep(delay)
                delay = min(delay * 2, self._retry_max_delay)
            except RedisError as exc:
                logger.error("Redis %s failed for %s: %s", op, _redact(key), exc)
                raise TransientError(f"Redis {op} failed") from exc
        raise TransientError(f"Redis {op} failed without an explicit error")

    @staticmethod
    def _decode(key: str, raw: Any) -> Optional[Dict[str, Any]]:
        if raw is None:
            return None
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8", errors="replace")
        try:
            value = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding undecodable value under %s", _redact(key))
            return None
        return value if isinstance(value, dict) else None


def _redact(key: str) -> str:
    # Keys embed session ids and token digests; keep only the namespace and a prefix.
    namespace, _, rest = key.partition(":")
    if not rest:
        return namespace[:8]
    return f"{namespace}:{rest[:8]}..."
