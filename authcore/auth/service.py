"""High-level authentication workflows."""

from __future__ import annotations

import asyncio
import logging
import secrets
from dataclasses import dataclass
from typing import Coroutine, Iterable, Optional, Set, Union

from email_validator import EmailNotValidError, validate_email

from ..cache.redis_store import RedisTTLStore
from ..config import AuthSettings
from ..db.pool import ResilientAsyncConnectionPool, open_pool
from ..errors import AlreadyRegisteredError, InvalidInputError
from .cookies import SessionCookie, SessionCookiePolicy
from .emailer import EmailService, Notifier, build_link
from .passwords import Credential, HashParams, PasswordHasher
from .repository import PostgresUserStore, UserRecord, UserStore, normalize_email
from .roles import Role, authorize
from .sessions import Session, SessionStore
from .tokens import TokenPurpose, TokenService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthenticatedSession:
    user: UserRecord
    session_id: str
    cookie: SessionCookie


class AuthService:
    """Compose credentials, sessions and tokens with the user store and notifier.

    Expected negatives come back as ``None``/``False`` and never say which
    check failed. Store failures propagate as ``TransientError``.
    """

    def __init__(
        self,
        *,
        users: UserStore,
        hasher: PasswordHasher,
        tokens: TokenService,
        sessions: SessionStore,
        cookies: SessionCookiePolicy,
        notifier: Notifier,
        frontend_url: str,
        pool: Optional[ResilientAsyncConnectionPool] = None,
    ) -> None:
        self.users = users
        self.hasher = hasher
        self.tokens = tokens
        self.sessions = sessions
        self.cookies = cookies
        self.notifier = notifier
        self.frontend_url = frontend_url
        self._pool = pool
        self._background: Set[asyncio.Task] = set()
        # Stand-in credential for unknown accounts.
        self._dummy: Credential = hasher.derive(secrets.token_hex(16))

    @classmethod
    async def from_settings(cls, settings: AuthSettings) -> "AuthService":
        store = RedisTTLStore.from_url(
            settings.redis_url,
            timeout=settings.store_timeout_seconds,
            retries=settings.store_retries,
        )
        pool = await open_pool(settings.database_url)
        hasher = PasswordHasher(
            HashParams(
                scheme=settings.hash_scheme,
                iterations=settings.hash_iterations,
                length=settings.hash_digest_length,
                memory_cost=settings.hash_memory_cost,
                parallelism=settings.hash_parallelism,
            ),
            salt_length=settings.salt_length,
            max_length=settings.password_max_length,
            pepper=settings.pepper,
        )
        return cls(
            users=PostgresUserStore(pool),
            hasher=hasher,
            tokens=TokenService(
                store,
                secret=settings.hmac_secret,
                ttl_seconds={
                    TokenPurpose.EMAIL_VERIFICATION: settings.token_ttl_seconds,
                    TokenPurpose.PASSWORD_RESET: settings.reset_token_ttl_seconds,
                },
            ),
            sessions=SessionStore(store, ttl_seconds=settings.session_ttl_seconds),
            cookies=SessionCookiePolicy(
                name=settings.cookie_name,
                secure=settings.cookie_secure_mode,
                samesite=settings.cookie_samesite,
            ),
            notifier=EmailService(
                sender=settings.email_sender,
                api_key=settings.sendgrid_api_key,
            ),
            frontend_url=settings.frontend_url,
            pool=pool,
        )

    async def sign_up(
        self, email: str, username: str, name: str, password: str
    ) -> AuthenticatedSession:
        normalized = self._validate_email(email)
        username = (username or "").strip()
        if not username:
            raise InvalidInputError("Username is required")
        self.hasher.check_password(password)

        if await self.users.find_by_field("email", normalized):
            raise AlreadyRegisteredError("This email is already registered.")
        if await self.users.find_by_field("username", username):
            raise AlreadyRegisteredError("This username is already taken.")

        credential = await asyncio.to_thread(self.hasher.derive, password)
        user = await self.users.create_user(
            email=normalized,
            username=username,
            name=(name or "").strip(),
            password_hash=credential.password_hash,
            salt=credential.salt,
        )
        logger.info("Created user account %s (%s)", user.id, user.username)

        authenticated = await self._start_session(user)
        self._in_background(self._deliver_token(user, TokenPurpose.EMAIL_VERIFICATION))
        return authenticated

    async def sign_in(self, email: str, password: str) -> Optional[AuthenticatedSession]:
        """Return a new session, or ``None`` whatever the reason for refusal."""

        try:
            normalized = self._validate_email(email)
        except InvalidInputError:
            return None
        user = await self.users.find_by_field("email", normalized)
        if user is None:
            # Same KDF cost as a real check.
            await asyncio.to_thread(
                self.hasher.verify, password, self._dummy.salt, self._dummy.password_hash
            )
            logger.debug("Sign-in refused: unknown account")
            return None
        matches = await asyncio.to_thread(
            self.hasher.verify, password, user.salt, user.password_hash
        )
        if not matches:
            logger.debug("Sign-in refused for user %s: wrong password", user.id)
            return None
        return await self._start_session(user)

    async def sign_out(self, session_id: Optional[str]) -> SessionCookie:
        if session_id:
            await self.sessions.invalidate(session_id)
        return self.cookies.clear()

    async def current_session(self, session_id: Optional[str]) -> Optional[Session]:
        if not session_id:
            return None
        return await self.sessions.get(session_id)

    async def authorize_session(
        self, session_id: Optional[str], required_roles: Iterable[Union[Role, str]]
    ) -> bool:
        session = await self.current_session(session_id)
        if session is None:
            return False
        return authorize(required_roles, session.role)

    async def refresh_session(self, session_id: str) -> Optional[Session]:
        """Carry user-record changes (e.g. a new role) into a live session."""

        session = await self.current_session(session_id)
        if session is None:
            return None
        user = await self.users.find_by_field("id", session.user_id)
        if user is None:
            await self.sessions.invalidate(session_id)
            return None
        return await self.sessions.refresh(session_id, user.role)

    async def send_verification(self, email: str) -> None:
        try:
            normalized = self._validate_email(email)
        except InvalidInputError:
            return
        user = await self.users.find_by_field("email", normalized)
        if user is None or user.is_email_verified:
            return
        self._in_background(self._deliver_token(user, TokenPurpose.EMAIL_VERIFICATION))

    async def verify_email(self, token: str) -> bool:
        user = await self._redeem(token, TokenPurpose.EMAIL_VERIFICATION)
        if user is None:
            return False
        if not user.is_email_verified:
            await self.users.update_verified_flag(user.id)
            logger.info("Verified email for user %s", user.id)
        return True

    async def request_password_reset(self, email: str) -> None:
        try:
            normalized = self._validate_email(email)
        except InvalidInputError:
            return
        user = await self.users.find_by_field("email", normalized)
        if user is None:
            return
        self._in_background(self._deliver_token(user, TokenPurpose.PASSWORD_RESET))

    async def reset_password(self, token: str, new_password: str) -> bool:
        # Reject a bad password before the token is spent.
        self.hasher.check_password(new_password)
        user = await self._redeem(token, TokenPurpose.PASSWORD_RESET)
        if user is None:
            return False
        credential = await asyncio.to_thread(self.hasher.derive, new_password)
        await self.users.update_password_hash(user.id, credential.password_hash, credential.salt)
        logger.info("Password reset for user %s", user.id)
        return True

    async def drain_notifications(self) -> None:
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def aclose(self) -> None:
        await self.drain_notifications()
        stores = {id(self.sessions.store): self.sessions.store, id(self.tokens.store): self.tokens.store}
        for store in stores.values():
            await store.close()
        if self._pool is not None:
            await self._pool.close()
            logger.info("User store pool closed")

    async def _start_session(self, user: UserRecord) -> AuthenticatedSession:
        session_id = await self.sessions.create(user.id, user.role)
        cookie = self.cookies.issue(session_id, self.sessions.ttl_seconds)
        return AuthenticatedSession(user=user, session_id=session_id, cookie=cookie)

    async def _redeem(self, token: str, purpose: TokenPurpose) -> Optional[UserRecord]:
        try:
            user_id = await self.tokens.validate(token, purpose)
        except InvalidInputError:
            return None
        if user_id is None:
            return None
        return await self.users.find_by_field("id", user_id)

    async def _deliver_token(self, user: UserRecord, purpose: TokenPurpose) -> None:
        try:
            token = await self.tokens.issue(user.id, purpose)
            link = build_link(self.frontend_url, purpose, token)
            await asyncio.to_thread(self.notifier.send, user.email, link, purpose)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Failed to deliver %s link to user %s: %s", purpose.value, user.id, exc)

    def _in_background(self, coro: Coroutine) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def _validate_email(self, email: str) -> str:
        try:
            result = validate_email((email or "").strip(), check_deliverability=False)
        except EmailNotValidError as exc:
            raise InvalidInputError(str(exc)) from exc
        return normalize_email(result.normalized)
