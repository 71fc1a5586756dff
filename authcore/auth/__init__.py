"""Credential, session and verification-token lifecycle."""

from .cookies import SessionCookie, SessionCookiePolicy
from .passwords import Credential, HashParams, PasswordHasher
from .repository import PostgresUserStore, UserRecord, UserStore
from .roles import Role, authorize
from .service import AuthenticatedSession, AuthService
from .sessions import Session, SessionStore
from .tokens import TokenPurpose, TokenService

__all__ = [
    "AuthService",
    "AuthenticatedSession",
    "Credential",
    "HashParams",
    "PasswordHasher",
    "PostgresUserStore",
    "Role",
    "Session",
    "SessionCookie",
    "SessionCookiePolicy",
    "SessionStore",
    "TokenPurpose",
    "TokenService",
    "UserRecord",
    "UserStore",
    "authorize",
]
