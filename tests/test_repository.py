"""Tests for the PostgreSQL user store with a mocked pool."""

from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest
from psycopg import OperationalError

from authcore.auth.repository import PostgresUserStore, row_to_user
from authcore.auth.roles import Role
from authcore.db.pool import open_pool, with_application_name
from authcore.errors import FatalError, InvalidInputError, TransientError

ROW = {
    "id": "0b6f3c36-8c1b-4c1c-9a8e-2f0d5d2a1e11",
    "email": "ada@example.com",
    "username": "ada",
    "name": "Ada",
    "password_hash": memoryview(b"\x01\x02"),
    "salt": memoryview(b"\x03\x04"),
    "role": "admin",
    "is_email_verified": True,
}


def _pool_with(cursor):
    conn = MagicMock()

    @asynccontextmanager
    async def cursor_cm(*args, **kwargs):
        yield cursor

    conn.cursor = cursor_cm

    @asynccontextmanager
    async def connection():
        yield conn

    pool = MagicMock()
    pool.connection = connection
    return pool


def test_row_to_user_converts_types():
    user = row_to_user(ROW)

    assert user.password_hash == b"\x01\x02"
    assert user.salt == b"\x03\x04"
    assert user.role is Role.ADMIN
    assert user.is_email_verified is True


@pytest.mark.asyncio
async def test_find_by_email_normalizes():
    cursor = AsyncMock()
    cursor.fetchone.return_value = ROW
    store = PostgresUserStore(_pool_with(cursor))

    user = await store.find_by_field("email", "  ADA@Example.com ")

    assert user.username == "ada"
    assert cursor.execute.await_args.args[1] == ("ada@example.com",)


@pytest.mark.asyncio
async def test_find_returns_none_when_missing():
    cursor = AsyncMock()
    cursor.fetchone.return_value = None
    store = PostgresUserStore(_pool_with(cursor))

    assert await store.find_by_field("username", "nobody") is None


@pytest.mark.asyncio
async def test_unknown_lookup_field_is_rejected():
    store = PostgresUserStore(MagicMock())

    with pytest.raises(InvalidInputError):
        await store.find_by_field("password_hash", "x")


@pytest.mark.asyncio
async def test_update_password_hash_passes_credential():
    cursor = AsyncMock()
    store = PostgresUserStore(_pool_with(cursor))

    await store.update_password_hash("u1", b"hash", b"salt")

    assert cursor.execute.await_args.args[1] == (b"hash", b"salt", "u1")


@pytest.mark.asyncio
async def test_connection_failure_is_transient():
    cursor = AsyncMock()
    cursor.execute.side_effect = OperationalError("server closed the connection")
    store = PostgresUserStore(_pool_with(cursor))

    with pytest.raises(TransientError):
        await store.update_verified_flag("u1")


def test_with_application_name():
    assert with_application_name("postgresql://db/auth", "authcore") == (
        "postgresql://db/auth?application_name=authcore"
    )
    assert with_application_name("postgresql://db/auth?sslmode=require", "authcore").endswith(
        "&application_name=authcore"
    )


@pytest.mark.asyncio
async def test_open_pool_requires_url():
    with pytest.raises(FatalError):
        await open_pool(None)
