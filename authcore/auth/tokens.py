"""Helpers for issuing and redeeming single-use verification/reset tokens."""

from __future__ import annotations

import enum
import hashlib
import hmac
import logging
import re
import secrets
from typing import Dict, Optional

from ..cache.base import TTLStore
from ..config import MIN_HMAC_SECRET_BYTES
from ..errors import FatalError, InvalidInputError
from .randomness import RandomSource, secure_random

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32
_TOKEN_RE = re.compile(r"[0-9a-f]{%d}" % (TOKEN_BYTES * 2))


class TokenPurpose(str, enum.Enum):
    EMAIL_VERIFICATION = "email-verification"
    PASSWORD_RESET = "password-reset"


class TokenService:
    """Issue random tokens and keep only their keyed digests in the TTL store.

    A token moves from issued to consumed (first successful ``validate``) or
    to expired (TTL elapsed). Both end states look the same to callers.
    """

    def __init__(
        self,
        store: TTLStore,
        *,
        secret: str,
        ttl_seconds: Optional[Dict[TokenPurpose, int]] = None,
        random_source: RandomSource = secrets.token_bytes,
    ) -> None:
        if not secret:
            raise FatalError("Token HMAC secret is not configured")
        key = secret.encode("utf-8")
        if len(key) < MIN_HMAC_SECRET_BYTES:
            raise FatalError(
                f"Token HMAC secret must be at least {MIN_HMAC_SECRET_BYTES} bytes long"
            )
        self.store = store
        self._key = key
        self._random = random_source
        self.ttl_seconds = {
            TokenPurpose.EMAIL_VERIFICATION: 86400,
            TokenPurpose.PASSWORD_RESET: 86400,
        }
        if ttl_seconds:
            self.ttl_seconds.update(ttl_seconds)

    def new_token(self) -> str:
        return secure_random(TOKEN_BYTES, self._random).hex()

    def digest(self, token: str) -> str:
        return hmac.new(self._key, token.encode("utf-8"), hashlib.sha256).hexdigest()

    @staticmethod
    def storage_key(purpose: TokenPurpose, digest: str) -> str:
        return f"{TokenPurpose(purpose).value}:{digest}"

    async def issue(
        self, user_id: str, purpose: TokenPurpose, ttl: Optional[int] = None
    ) -> str:
        purpose = TokenPurpose(purpose)
        token = self.new_token()
        digest = self.digest(token)
        await self.store.set(
            self.storage_key(purpose, digest),
            {"user_id": str(user_id), "purpose": purpose.value},
            ttl if ttl is not None else self.ttl_seconds[purpose],
        )
        logger.info("Issued %s token %s... for user %s", purpose.value, digest[:8], user_id)
        return token

    async def validate(self, token: str, purpose: TokenPurpose) -> Optional[str]:
        """Consume ``token`` and return its user id, or ``None`` if unusable."""

        purpose = TokenPurpose(purpose)
        if not isinstance(token, str) or not _TOKEN_RE.fullmatch(token):
            raise InvalidInputError("Malformed token")
        digest = self.digest(token)
        record = await self.store.take(self.storage_key(purpose, digest))
        if not record or record.get("purpose") != purpose.value or not record.get("user_id"):
            logger.info("Rejected %s token %s...", purpose.value, digest[:8])
            return None
        logger.info("Consumed %s token %s...", purpose.value, digest[:8])
        return str(record["user_id"])
