"""CSPRNG access shared by the hasher, token service and session store."""

from __future__ import annotations

import secrets
from typing import Callable

from ..errors import FatalError

RandomSource = Callable[[int], bytes]


def secure_random(length: int, source: RandomSource = secrets.token_bytes) -> bytes:
    """Return ``length`` random bytes, failing loudly rather than degrading."""

    try:
        data = source(length)
    except (OSError, NotImplementedError) as exc:
        raise FatalError("Secure random source unavailable") from exc
    if not isinstance(data, (bytes, bytearray)) or len(data) != length:
        raise FatalError("Secure random source returned a short read")
    return bytes(data)
