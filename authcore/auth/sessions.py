"""Opaque server-side sessions kept in a TTL store."""

from __future__ import annotations

import logging
import math
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional, Union

from ..cache.base import TTLStore
from .randomness import RandomSource, secure_random
from .roles import Role, parse_role, require_role

logger = logging.getLogger(__name__)

SESSION_ID_BYTES = 32
KEY_PREFIX = "session:"
_SESSION_ID_RE = re.compile(r"[0-9a-f]{%d}" % (SESSION_ID_BYTES * 2))


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Session:
    session_id: str
    user_id: str
    role: Role
    created_at: datetime
    expires_at: datetime

    def to_payload(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "role": self.role.value,
            "created_at": self.created_at.isoformat(),
            "expires_at": self.expires_at.isoformat(),
        }

    @classmethod
    def from_payload(cls, session_id: str, payload: Dict[str, Any]) -> Optional["Session"]:
        role = parse_role(payload.get("role"))
        user_id = payload.get("user_id")
        try:
            created_at = datetime.fromisoformat(payload["created_at"])
            expires_at = datetime.fromisoformat(payload["expires_at"])
        except (KeyError, TypeError, ValueError):
            return None
        if role is None or not user_id:
            return None
        return cls(
            session_id=session_id,
            user_id=str(user_id),
            role=role,
            created_at=created_at,
            expires_at=expires_at,
        )


class SessionStore:
    """Issue, look up, refresh and invalidate sessions keyed ``session:<id>``."""

    def __init__(
        self,
        store: TTLStore,
        *,
        ttl_seconds: int = 86400,
        clock: Callable[[], datetime] = _utcnow,
        random_source: RandomSource = secrets.token_bytes,
    ) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._random = random_source

    def new_session_id(self) -> str:
        return secure_random(SESSION_ID_BYTES, self._random).hex()

    @staticmethod
    def is_session_id(value: Any) -> bool:
        return isinstance(value, str) and _SESSION_ID_RE.fullmatch(value) is not None

    @staticmethod
    def key(session_id: str) -> str:
        return f"{KEY_PREFIX}{session_id}"

    async def create(
        self, user_id: str, role: Union[Role, str], ttl: Optional[int] = None
    ) -> str:
        ttl = ttl if ttl is not None else self.ttl_seconds
        now = self._clock()
        session = Session(
            session_id=self.new_session_id(),
            user_id=str(user_id),
            role=require_role(role),
            created_at=now,
            expires_at=now + timedelta(seconds=ttl),
        )
        await self.store.set(self.key(session.session_id), session.to_payload(), ttl)
        logger.info(
            "Created session %s... for user %s (role=%s)",
            session.session_id[:8],
            session.user_id,
            session.role.value,
        )
        return session.session_id

    async def get(self, session_id: str) -> Optional[Session]:
        if not self.is_session_id(session_id):
            return None
        payload = await self.store.get(self.key(session_id))
        if payload is None:
            return None
        session = Session.from_payload(session_id, payload)
        if session is None:
            logger.warning("Session %s... has an unreadable payload", session_id[:8])
        return session

    async def invalidate(self, session_id: str) -> bool:
        if not self.is_session_id(session_id):
            return False
        removed = await self.store.delete(self.key(session_id))
        if removed:
            logger.info("Invalidated session %s...", session_id[:8])
        return removed

    async def refresh(self, session_id: str, role: Union[Role, str]) -> Optional[Session]:
        """Rewrite the payload of a live session; no-op when none exists."""

        current = await self.get(session_id)
        if current is None:
            return None
        remaining = math.floor((current.expires_at - self._clock()).total_seconds())
        if remaining <= 0:
            return None
        updated = Session(
            session_id=current.session_id,
            user_id=current.user_id,
            role=require_role(role),
            created_at=current.created_at,
            expires_at=current.expires_at,
        )
        await self.store.set(self.key(session_id), updated.to_payload(), remaining)
        logger.info("Refreshed session %s... (role=%s)", session_id[:8], updated.role.value)
        return updated
