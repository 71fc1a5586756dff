"""User store contract and its PostgreSQL implementation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from psycopg import InterfaceError, OperationalError, sql
from psycopg.errors import UniqueViolation
from psycopg.rows import dict_row
from psycopg_pool import PoolTimeout

from ..db.pool import ResilientAsyncConnectionPool
from ..errors import AlreadyRegisteredError, InvalidInputError, TransientError
from .roles import Role, parse_role

logger = logging.getLogger(__name__)

LOOKUP_FIELDS = frozenset({"id", "email", "username"})
_UNAVAILABLE = (OperationalError, InterfaceError, PoolTimeout, OSError)
_COLUMNS = "id, email, username, name, password_hash, salt, role, is_email_verified"


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass
class UserRecord:
    id: str
    email: str
    username: str
    name: str
    password_hash: bytes
    salt: bytes
    role: Role = Role.USER
    is_email_verified: bool = False


class UserStore(Protocol):
    """Persistent user records, owned outside the authentication core."""

    async def find_by_field(self, field: str, value: str) -> Optional[UserRecord]:
        ...

    async def create_user(
        self,
        *,
        email: str,
        username: str,
        name: str,
        password_hash: bytes,
        salt: bytes,
        role: Role = Role.USER,
    ) -> UserRecord:
        ...

    async def update_verified_flag(self, user_id: str) -> None:
        ...

    async def update_password_hash(self, user_id: str, password_hash: bytes, salt: bytes) -> None:
        ...


def check_lookup_field(field: str) -> str:
    if field not in LOOKUP_FIELDS:
        raise InvalidInputError(f"Users cannot be looked up by {field!r}")
    return field


def row_to_user(row: Dict[str, Any]) -> UserRecord:
    return UserRecord(
        id=str(row["id"]),
        email=row["email"],
        username=row["username"],
        name=row["name"],
        password_hash=bytes(row["password_hash"]),
        salt=bytes(row["salt"]),
        role=parse_role(row.get("role")) or Role.USER,
        is_email_verified=bool(row.get("is_email_verified")),
    )


class PostgresUserStore:
    """Execute user queries on the shared resilient pool."""

    def __init__(self, pool: ResilientAsyncConnectionPool) -> None:
        self.pool = pool

    async def find_by_field(self, field: str, value: str) -> Optional[UserRecord]:
        check_lookup_field(field)
        if field == "email":
            value = normalize_email(value)
        query = sql.SQL("SELECT {columns} FROM users WHERE {field} = %s LIMIT 1").format(
            columns=sql.SQL(_COLUMNS),
            field=sql.Identifier(field),
        )
        row = await self._fetchone(query, (value,))
        return row_to_user(row) if row else None

    async def create_user(
        self,
        *,
        email: str,
        username: str,
        name: str,
        password_hash: bytes,
        salt: bytes,
        role: Role = Role.USER,
    ) -> UserRecord:
        row = await self._fetchone(
            f"""
            INSERT INTO users (email, username, name, password_hash, salt, role)
            VALUES (%s, %s, %s, %s, %s, %s)
            RETURNING {_COLUMNS}
            """,
            (normalize_email(email), username, name, password_hash, salt, Role(role).value),
        )
        return row_to_user(row)

    async def update_verified_flag(self, user_id: str) -> None:
        await self._execute(
            """
            UPDATE users
            SET is_email_verified = TRUE, updated_at = NOW()
            WHERE id = %s
            """,
            (user_id,),
        )

    async def update_password_hash(self, user_id: str, password_hash: bytes, salt: bytes) -> None:
        await self._execute(
            """
            UPDATE users
            SET password_hash = %s, salt = %s, updated_at = NOW()
            WHERE id = %s
            """,
            (password_hash, salt, user_id),
        )

    async def _fetchone(self, query, params) -> Optional[Dict[str, Any]]:
        try:
            async with self.pool.connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(query, params)
                    return await cur.fetchone()
        except UniqueViolation as exc:
            raise AlreadyRegisteredError("User already exists") from exc
        except _UNAVAILABLE as exc:
            logger.error("User store query failed: %s", exc)
            raise TransientError("User store unavailable") from exc

    async def _execute(self, query, params) -> None:
        try:
            async with self.pool.connection() as conn:
                async with conn.cursor() as cur:
                    await cur.execute(query, params)
        except _UNAVAILABLE as exc:
            logger.error("User store update failed: %s", exc)
            raise TransientError("User store unavailable") from exc
