"""TTL key-value stores backing sessions and verification tokens."""

from .base import TTLStore
from .memory import InMemoryTTLStore
from .redis_store import RedisTTLStore

__all__ = [
    "TTLStore",
    "InMemoryTTLStore",
    "RedisTTLStore",
]
