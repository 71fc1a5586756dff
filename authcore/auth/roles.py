"""User roles and the pure role check used by every boundary layer."""

from __future__ import annotations

import enum
from typing import Iterable, Optional, Union

from ..errors import InvalidInputError


class Role(str, enum.Enum):
    USER = "user"
    MODERATOR = "moderator"
    ADMIN = "admin"

    @property
    def rank(self) -> int:
        return _RANKS[self]


_RANKS = {Role.USER: 0, Role.MODERATOR: 1, Role.ADMIN: 2}


def parse_role(value: Union[Role, str, None]) -> Optional[Role]:
    if value is None:
        return None
    try:
        return Role(value)
    except ValueError:
        return None


def authorize(
    required_roles: Iterable[Union[Role, str]],
    session_role: Union[Role, str, None],
) -> bool:
    """Return whether ``session_role`` satisfies any of ``required_roles``.

    An empty requirement always passes. A missing or unknown session role
    never satisfies a non-empty one, and neither can an unknown required role.
    """

    required = [parse_role(r) for r in required_roles]
    if not required:
        return True
    role = parse_role(session_role)
    if role is None:
        return False
    return any(need is not None and role.rank >= need.rank for need in required)


def require_role(value: Union[Role, str, None]) -> Role:
    role = parse_role(value)
    if role is None:
        raise InvalidInputError(f"Unknown role: {value!r}")
    return role
