"""PostgreSQL access for the user store."""

from .pool import ResilientAsyncConnectionPool, open_pool

__all__ = ["ResilientAsyncConnectionPool", "open_pool"]
