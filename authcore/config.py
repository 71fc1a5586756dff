"""Environment-driven settings for the authentication core."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from .errors import FatalError

logger = logging.getLogger(__name__)

PRODUCTION = "production"
MIN_HMAC_SECRET_BYTES = 32


def configure_logging(level: int | str = logging.INFO) -> None:
    logging.basicConfig(level=level)


def _int(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise FatalError(f"{name} must be an integer, got {raw!r}") from exc


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise FatalError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class AuthSettings:
    hmac_secret: str
    session_ttl_seconds: int = 86400
    token_ttl_seconds: int = 86400
    reset_token_ttl_seconds: int = 86400
    hash_scheme: str = "pbkdf2_sha512"
    hash_iterations: int = 10000
    hash_digest_length: int = 64
    hash_memory_cost: int = 64 * 1024
    hash_parallelism: int = 2
    salt_length: int = 16
    password_max_length: int = 1024
    pepper: str = ""
    environment: str = "development"
    cookie_name: str = "session-id"
    cookie_samesite: str = "lax"
    redis_url: str = "redis://localhost:6379/0"
    store_timeout_seconds: float = 5.0
    store_retries: int = 3
    database_url: Optional[str] = None
    frontend_url: str = "http://localhost:3000"
    email_sender: str = "no-reply@localhost"
    sendgrid_api_key: Optional[str] = None

    @property
    def cookie_secure_mode(self) -> bool:
        return self.environment == PRODUCTION

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AuthSettings":
        """Build settings from ``environ`` (defaults to ``os.environ`` after loading ``.env``)."""

        if environ is None:
            load_dotenv()
            environ = os.environ
        env = environ

        secret = env.get("AUTH_HMAC_SECRET", "")
        if not secret:
            raise FatalError("AUTH_HMAC_SECRET environment variable is required")
        if len(secret.encode("utf-8")) < MIN_HMAC_SECRET_BYTES:
            raise FatalError(
                f"AUTH_HMAC_SECRET must be at least {MIN_HMAC_SECRET_BYTES} bytes long"
            )

        token_ttl = _int(env, "AUTH_TOKEN_TTL_SECONDS", 86400)
        settings = cls(
            hmac_secret=secret,
            session_ttl_seconds=_int(env, "AUTH_SESSION_TTL_SECONDS", 86400),
            token_ttl_seconds=token_ttl,
            reset_token_ttl_seconds=_int(env, "AUTH_RESET_TOKEN_TTL_SECONDS", token_ttl),
            hash_scheme=env.get("AUTH_HASH_SCHEME", "pbkdf2_sha512").strip().lower(),
            hash_iterations=_int(env, "AUTH_HASH_ITERATIONS", 10000),
            hash_digest_length=_int(env, "AUTH_HASH_LENGTH", 64),
            hash_memory_cost=_int(env, "AUTH_HASH_MEMORY_COST", 64 * 1024),
            hash_parallelism=_int(env, "AUTH_HASH_PARALLELISM", 2),
            salt_length=_int(env, "AUTH_SALT_LENGTH", 16),
            password_max_length=_int(env, "AUTH_PASSWORD_MAX_LENGTH", 1024),
            pepper=env.get("AUTH_PEPPER", ""),
            environment=env.get("APP_ENV", "development").strip().lower(),
            cookie_name=env.get("AUTH_SESSION_COOKIE", "session-id"),
            cookie_samesite=env.get("AUTH_COOKIE_SAMESITE", "lax").strip().lower(),
            redis_url=env.get("REDIS_URL", "redis://localhost:6379/0"),
            store_timeout_seconds=_float(env, "AUTH_STORE_TIMEOUT_SECONDS", 5.0),
            store_retries=_int(env, "AUTH_STORE_RETRIES", 3),
            database_url=env.get("DATABASE_URL") or None,
            frontend_url=env.get("FRONTEND_URL", "http://localhost:3000"),
            email_sender=env.get("EMAIL_SENDER", "no-reply@localhost"),
            sendgrid_api_key=env.get("SENDGRID_API_KEY") or None,
        )
        for name in ("session_ttl_seconds", "token_ttl_seconds", "reset_token_ttl_seconds"):
            if getattr(settings, name) <= 0:
                raise FatalError(f"{name} must be positive")
        logger.debug(
            "Auth settings loaded (environment=%s, hash_scheme=%s)",
            settings.environment,
            settings.hash_scheme,
        )
        return settings
