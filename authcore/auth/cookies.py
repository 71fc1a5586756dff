"""Session cookie attribute sets handed back to the HTTP boundary."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from http.cookies import SimpleCookie
from typing import Any, Callable, Dict

from ..errors import FatalError

SAMESITE_POLICIES = ("lax", "strict", "none")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class SessionCookie:
    name: str
    value: str
    max_age: int
    expires: datetime
    secure: bool
    samesite: str
    httponly: bool = True
    path: str = "/"

    def as_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for Starlette/FastAPI ``Response.set_cookie``."""

        return {
            "key": self.name,
            "value": self.value,
            "max_age": self.max_age,
            "expires": self.expires,
            "path": self.path,
            "secure": self.secure,
            "httponly": self.httponly,
            "samesite": self.samesite,
        }

    def header_value(self) -> str:
        """Render the ``Set-Cookie`` header value."""

        jar: SimpleCookie = SimpleCookie()
        jar[self.name] = self.value
        morsel = jar[self.name]
        morsel["max-age"] = self.max_age
        morsel["expires"] = self.expires.strftime("%a, %d %b %Y %H:%M:%S GMT")
        morsel["path"] = self.path
        morsel["samesite"] = self.samesite.capitalize()
        if self.secure:
            morsel["secure"] = True
        if self.httponly:
            morsel["httponly"] = True
        return morsel.OutputString()


class SessionCookiePolicy:
    """Build the cookies that carry a session id to the browser."""

    def __init__(
        self,
        *,
        name: str = "session-id",
        secure: bool,
        samesite: str = "lax",
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        samesite = samesite.lower()
        if samesite not in SAMESITE_POLICIES:
            raise FatalError(f"Unsupported SameSite policy: {samesite}")
        if samesite == "none" and not secure:
            raise FatalError("SameSite=None cookies must be Secure")
        self.name = name
        self.secure = secure
        self.samesite = samesite
        self._clock = clock

    def issue(self, session_id: str, ttl_seconds: int) -> SessionCookie:
        return SessionCookie(
            name=self.name,
            value=session_id,
            max_age=ttl_seconds,
            expires=self._clock() + timedelta(seconds=ttl_seconds),
            secure=self.secure,
            samesite=self.samesite,
        )

    def clear(self) -> SessionCookie:
        return SessionCookie(
            name=self.name,
            value="",
            max_age=0,
            expires=_EPOCH,
            secure=self.secure,
            samesite=self.samesite,
        )
