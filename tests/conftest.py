import uuid
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Tuple

import pytest

from authcore.auth.cookies import SessionCookiePolicy
from authcore.auth.passwords import HashParams, PasswordHasher
from authcore.auth.repository import UserRecord, check_lookup_field, normalize_email
from authcore.auth.roles import Role
from authcore.auth.service import AuthService
from authcore.auth.sessions import SessionStore
from authcore.auth.tokens import TokenPurpose, TokenService
from authcore.cache.memory import InMemoryTTLStore
from authcore.errors import AlreadyRegisteredError

SECRET = "test-hmac-secret-0123456789abcdef0123"
FAST_PARAMS = HashParams(scheme="pbkdf2_sha256", iterations=1000, length=32)


class ManualClock:
    """Drives both the TTL store (monotonic seconds) and session timestamps."""

    def __init__(self) -> None:
        self._offset = 0.0
        self._start = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def monotonic(self) -> float:
        return 1000.0 + self._offset

    def utcnow(self) -> datetime:
        return self._start + timedelta(seconds=self._offset)

    def advance(self, seconds: float) -> None:
        self._offset += seconds


class InMemoryUserStore:
    def __init__(self) -> None:
        self.users: Dict[str, UserRecord] = {}

    async def find_by_field(self, field: str, value: str) -> Optional[UserRecord]:
        check_lookup_field(field)
        if field == "email":
            value = normalize_email(value)
        for user in self.users.values():
            if getattr(user, field) == value:
                return user
        return None

    async def create_user(self, *, email, username, name, password_hash, salt, role=Role.USER):
        if await self.find_by_field("email", email) or await self.find_by_field("username", username):
            raise AlreadyRegisteredError("User already exists")
        user = UserRecord(
            id=str(uuid.uuid4()),
            email=normalize_email(email),
            username=username,
            name=name,
            password_hash=password_hash,
            salt=salt,
            role=role,
        )
        self.users[user.id] = user
        return user

    async def update_verified_flag(self, user_id: str) -> None:
        self.users[user_id].is_email_verified = True

    async def update_password_hash(self, user_id: str, password_hash: bytes, salt: bytes) -> None:
        self.users[user_id].password_hash = password_hash
        self.users[user_id].salt = salt


class RecordingNotifier:
    def __init__(self) -> None:
        self.sent: List[Tuple[str, str, Optional[TokenPurpose]]] = []
        self.fail = False

    def send(self, to_address: str, link: str, purpose: Optional[TokenPurpose] = None) -> None:
        if self.fail:
            raise RuntimeError("mail relay down")
        self.sent.append((to_address, link, purpose))

    def last_token(self) -> str:
        link = self.sent[-1][1]
        return link.split("token=", 1)[1]


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def ttl_store(clock):
    return InMemoryTTLStore(clock=clock.monotonic)


@pytest.fixture
def hasher():
    return PasswordHasher(FAST_PARAMS)


@pytest.fixture
def tokens(ttl_store):
    return TokenService(ttl_store, secret=SECRET)


@pytest.fixture
def sessions(ttl_store, clock):
    return SessionStore(ttl_store, ttl_seconds=86400, clock=clock.utcnow)


@pytest.fixture
def cookie_policy(clock):
    return SessionCookiePolicy(secure=False, clock=clock.utcnow)


@pytest.fixture
def users():
    return InMemoryUserStore()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def service(users, hasher, tokens, sessions, cookie_policy, notifier):
    return AuthService(
        users=users,
        hasher=hasher,
        tokens=tokens,
        sessions=sessions,
        cookies=cookie_policy,
        notifier=notifier,
        frontend_url="https://app.example.com",
    )
