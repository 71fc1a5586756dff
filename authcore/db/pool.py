"""Shared async PostgreSQL connection pool with resilient reconnects."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence, Tuple

from psycopg import InterfaceError, OperationalError, errors as pg_errors
from psycopg.rows import dict_row
from psycopg_pool import AsyncConnectionPool, PoolClosed, PoolTimeout

from ..errors import FatalError

logger = logging.getLogger(__name__)

DEFAULT_RETRY_ATTEMPTS = 5
DEFAULT_RETRY_INITIAL_DELAY = 0.5
DEFAULT_RETRY_MAX_DELAY = 5.0

DEFAULT_RETRYABLE_EXCEPTIONS: Tuple[type[BaseException], ...] = (
    OperationalError,
    InterfaceError,
    pg_errors.AdminShutdown,
    pg_errors.CannotConnectNow,
    pg_errors.ConnectionException,
    pg_errors.CrashShutdown,
    PoolClosed,
    PoolTimeout,
    ConnectionResetError,
    ConnectionAbortedError,
    TimeoutError,
    OSError,
)


class _RetryingConnection:
    """Async context manager that retries acquiring a pooled connection."""

    __slots__ = ("_pool", "_args", "_kwargs", "_inner")

    def __init__(self, pool: "ResilientAsyncConnectionPool", args, kwargs):
        self._pool = pool
        self._args = args
        self._kwargs = kwargs
        self._inner = None

    async def __aenter__(self):
        delay = self._pool.retry_initial_delay
        attempts = self._pool.retry_attempts
        for attempt in range(1, attempts + 1):
            try:
                self._inner = self._pool.acquire(*self._args, **self._kwargs)
                conn = await self._inner.__aenter__()
            except asyncio.CancelledError:
                raise
            except self._pool.retryable_errors as exc:
                self._inner = None
                if attempt == attempts:
                    logger.error("Unable to acquire PostgreSQL connection after %s attempts", attempts)
                    raise
                logger.warning("PostgreSQL connection attempt %s/%s failed: %s", attempt, attempts, exc)
                await asyncio.sleep(delay)
                delay = min(delay * 2, self._pool.retry_max_delay)
            else:
                if attempt > 1:
                    logger.info("PostgreSQL connection re-established after %s attempts", attempt)
                return conn
        raise RuntimeError("Connection retry loop exited without a connection")

    async def __aexit__(self, exc_type, exc, tb):
        if self._inner is None:
            return False
        return await self._inner.__aexit__(exc_type, exc, tb)


class ResilientAsyncConnectionPool(AsyncConnectionPool):
    """AsyncConnectionPool whose ``connection()`` survives database restarts."""

    def __init__(
        self,
        *args,
        acquire_retries: int = DEFAULT_RETRY_ATTEMPTS,
        retry_initial_delay: float = DEFAULT_RETRY_INITIAL_DELAY,
        retry_max_delay: float = DEFAULT_RETRY_MAX_DELAY,
        retryable_errors: Optional[Sequence[type[BaseException]]] = None,
        **kwargs,
    ):
        super().__init__(*args, **kwargs)
        self.retry_attempts = max(1, acquire_retries)
        self.retry_initial_delay = max(0.05, retry_initial_delay)
        self.retry_max_delay = max(self.retry_initial_delay, retry_max_delay)
        self.retryable_errors: Tuple[type[BaseException], ...] = tuple(
            retryable_errors or DEFAULT_RETRYABLE_EXCEPTIONS
        )

    def acquire(self, *args, **kwargs):
        return super().connection(*args, **kwargs)

    def connection(self, *args, **kwargs):
        return _RetryingConnection(self, args, kwargs)


def with_application_name(conninfo: str, application_name: str) -> str:
    if "application_name" in conninfo:
        return conninfo
    separator = "&" if "?" in conninfo else "?"
    return f"{conninfo}{separator}application_name={application_name}"


async def open_pool(
    database_url: Optional[str],
    *,
    application_name: str = "authcore",
    min_size: int = 2,
    max_size: int = 10,
) -> ResilientAsyncConnectionPool:
    """Open the pool shared by the user store for the life of the process."""

    if not database_url:
        raise FatalError("DATABASE_URL is required for the PostgreSQL user store")

    pool = ResilientAsyncConnectionPool(
        conninfo=with_application_name(database_url, application_name),
        kwargs={"autocommit": True, "prepare_threshold": 0, "row_factory": dict_row},
        min_size=min_size,
        max_size=max_size,
        max_idle=300.0,
        max_lifetime=3600.0,
        timeout=30.0,
        reconnect_timeout=300.0,
        open=False,
        acquire_retries=7,
        retry_initial_delay=0.5,
        retry_max_delay=8.0,
    )
    await pool.open()
    logger.info("User store pool initialized")
    return pool
