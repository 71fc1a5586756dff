"""Tests for the Redis TTL store against a mocked asyncio client."""

import asyncio
import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError

from authcore.cache.redis_store import RedisTTLStore, mask_url
from authcore.errors import TransientError


@pytest.fixture
def mock_client():
    return AsyncMock()


@pytest.fixture
def store(mock_client):
    return RedisTTLStore(mock_client, timeout=0.5, retries=3, retry_initial_delay=0)


@pytest.mark.asyncio
async def test_set_serializes_with_expiry(store, mock_client):
    await store.set("session:abc", {"user_id": "u1"}, 60)

    mock_client.set.assert_awaited_once_with("session:abc", json.dumps({"user_id": "u1"}), ex=60)


@pytest.mark.asyncio
async def test_get_decodes_json(store, mock_client):
    mock_client.get.return_value = json.dumps({"user_id": "u1"})

    assert await store.get("session:abc") == {"user_id": "u1"}
    mock_client.get.assert_awaited_once_with("session:abc")


@pytest.mark.asyncio
async def test_get_missing_returns_none(store, mock_client):
    mock_client.get.return_value = None

    assert await store.get("session:abc") is None


@pytest.mark.asyncio
async def test_get_corrupt_value_returns_none(store, mock_client):
    mock_client.get.return_value = "invalid json {"

    assert await store.get("session:abc") is None


@pytest.mark.asyncio
async def test_delete_reports_existence(store, mock_client):
    mock_client.delete.return_value = 1
    assert await store.delete("session:abc") is True

    mock_client.delete.return_value = 0
    assert await store.delete("session:abc") is False


@pytest.mark.asyncio
async def test_take_uses_getdel(store, mock_client):
    mock_client.getdel.return_value = json.dumps({"user_id": "u2"})

    assert await store.take("password-reset:d1") == {"user_id": "u2"}
    mock_client.getdel.assert_awaited_once_with("password-reset:d1")


@pytest.mark.asyncio
async def test_connection_errors_are_retried(store, mock_client):
    mock_client.get.side_effect = [RedisConnectionError("reset"), json.dumps({"a": 1})]

    assert await store.get("k") == {"a": 1}
    assert mock_client.get.await_count == 2


@pytest.mark.asyncio
async def test_exhausted_retries_raise_transient(store, mock_client):
    mock_client.get.side_effect = RedisConnectionError("down")

    with pytest.raises(TransientError):
        await store.get("k")
    assert mock_client.get.await_count == 3


@pytest.mark.asyncio
async def test_timeout_is_transient_not_missing(mock_client):
    async def slow(*args, **kwargs):
        await asyncio.sleep(1)

    mock_client.getdel.side_effect = slow
    store = RedisTTLStore(mock_client, timeout=0.01, retries=1)

    with pytest.raises(TransientError):
        await store.take("email-verification:d1")


@pytest.mark.asyncio
async def test_command_errors_are_not_retried(store, mock_client):
    mock_client.set.side_effect = ResponseError("WRONGTYPE")

    with pytest.raises(TransientError):
        await store.set("k", {}, 10)
    assert mock_client.set.await_count == 1


@pytest.mark.asyncio
async def test_ping_reports_health(store, mock_client):
    mock_client.ping.return_value = True
    assert await store.ping() is True

    mock_client.ping.side_effect = RedisConnectionError("down")
    assert await store.ping() is False


@pytest.mark.asyncio
async def test_close_releases_client(store, mock_client):
    await store.close()

    mock_client.aclose.assert_awaited_once()


def test_from_url_builds_client():
    with patch("authcore.cache.redis_store.redis.from_url") as from_url:
        from_url.return_value = MagicMock()
        store = RedisTTLStore.from_url("redis://:pw@cache:6379/0", timeout=2.0)

    assert from_url.call_args.args == ("redis://:pw@cache:6379/0",)
    assert from_url.call_args.kwargs["decode_responses"] is True
    assert store._timeout == 2.0


def test_mask_url():
    assert mask_url("redis://:hunter2@cache:6379/0") == "redis://:***@cache:6379/0"
    assert mask_url("redis://cache:6379/0") == "redis://cache:6379/0"
