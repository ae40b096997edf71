"""
Unit tests for RedisStore.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import ResponseError, TimeoutError as RedisTimeoutError

from condo_shared.errors import StoreError
from condo_shared.metrics import MetricsCollector
from service_condo.app.store import RedisStore, StoreAvailability
from service_condo.app.store.redis_store import INCREMENT_WITH_EXPIRY, SCAN_COUNT


def scan_results(*keys):
    """scan_iter stand-in returning an async iterator over ``keys``."""
    async def _iterate():
        for key in keys:
            yield key

    return MagicMock(side_effect=lambda **kwargs: _iterate())


class TestRedisStore:
    """Test cases for RedisStore."""

    @pytest.fixture
    def client(self):
        client = MagicMock()
        client.ping = AsyncMock(return_value=True)
        client.get = AsyncMock(return_value=None)
        client.set = AsyncMock(return_value=True)
        client.delete = AsyncMock(return_value=0)
        client.eval = AsyncMock(return_value=[1, 900000])
        client.aclose = AsyncMock()
        client.scan_iter = scan_results()
        return client

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("condo-api-test")

    @pytest.fixture
    def redis_store(self, client, metrics):
        return RedisStore(
            "redis://:s3cret@cache.internal:6379/0",
            client=client,
            health_check_interval=0,
            metrics=metrics,
        )

    def test_starts_connecting(self, redis_store):
        assert redis_store.availability is StoreAvailability.CONNECTING
        assert not redis_store.is_ready()

    @pytest.mark.asyncio
    async def test_connect_success(self, redis_store, metrics):
        assert await redis_store.connect() is True

        assert redis_store.is_ready()
        assert metrics.get_metric("store_available")._value.get() == 1

    @pytest.mark.asyncio
    async def test_connect_failure_never_raises(self, redis_store, client, metrics):
        client.ping.side_effect = RedisConnectionError("Connection refused")

        assert await redis_store.connect() is False

        assert redis_store.availability is StoreAvailability.UNAVAILABLE
        assert metrics.get_metric("store_available")._value.get() == 0

    @pytest.mark.asyncio
    async def test_connection_error_marks_unavailable(self, redis_store, client):
        await redis_store.connect()
        client.get.side_effect = RedisConnectionError("Connection reset")

        with pytest.raises(StoreError) as exc_info:
            await redis_store.get("cache:/condominios")

        assert exc_info.value.operation == "get"
        assert exc_info.value.status_code == 503
        assert redis_store.availability is StoreAvailability.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_timeout_marks_unavailable(self, redis_store, client):
        await redis_store.connect()
        client.set.side_effect = RedisTimeoutError("Timeout reading from socket")

        with pytest.raises(StoreError):
            await redis_store.set_with_expiry("cache:/condominios", "{}", 60)

        assert redis_store.availability is StoreAvailability.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_command_error_keeps_availability(self, redis_store, client):
        await redis_store.connect()
        client.eval.side_effect = ResponseError("WRONGTYPE")

        with pytest.raises(StoreError):
            await redis_store.increment_with_expiry("rate-limit:10.0.0.1", 60000)

        assert redis_store.is_ready()

    @pytest.mark.asyncio
    async def test_recovers_after_outage(self, redis_store, client):
        client.ping.side_effect = RedisConnectionError("Connection refused")
        await redis_store.connect()

        client.ping.side_effect = None
        await redis_store.connect()

        assert redis_store.is_ready()

    @pytest.mark.asyncio
    async def test_watcher_restores_availability(self, client):
        outcomes = iter([RedisConnectionError("Connection refused")])

        async def ping():
            failure = next(outcomes, None)
            if failure is not None:
                raise failure
            return True

        client.ping.side_effect = ping
        redis_store = RedisStore("redis://localhost:6379/0", client=client, health_check_interval=0.01)

        await redis_store.start()
        assert redis_store.availability is StoreAvailability.UNAVAILABLE

        for _ in range(50):
            if redis_store.is_ready():
                break
            await asyncio.sleep(0.01)

        assert redis_store.is_ready()
        await redis_store.close()
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_get_and_set(self, redis_store, client):
        client.get.return_value = '{"id": 1}'

        assert await redis_store.get("cache:/condominios/1") == '{"id": 1}'
        assert await redis_store.set_with_expiry("cache:/condominios/1", '{"id": 1}', 300) is True

        client.set.assert_awaited_once_with("cache:/condominios/1", '{"id": 1}', ex=300)

    @pytest.mark.asyncio
    async def test_delete_many(self, redis_store, client):
        client.delete.return_value = 2

        deleted = await redis_store.delete_many(["cache:/a", "cache:/b"])

        assert deleted == 2
        client.delete.assert_awaited_once_with("cache:/a", "cache:/b")

    @pytest.mark.asyncio
    async def test_delete_many_empty_skips_round_trip(self, redis_store, client):
        assert await redis_store.delete_many([]) == 0
        client.delete.assert_not_called()

    @pytest.mark.asyncio
    async def test_keys_matching_uses_scan(self, redis_store, client):
        client.scan_iter = scan_results("cache:/condominios", "cache:/condominios/1", "cache:/condominios")

        keys = await redis_store.keys_matching("cache:/condominios*")

        assert keys == {"cache:/condominios", "cache:/condominios/1"}
        client.scan_iter.assert_called_once_with(match="cache:/condominios*", count=SCAN_COUNT)

    @pytest.mark.asyncio
    async def test_increment_with_expiry(self, redis_store, client):
        client.eval.return_value = [3, 41000]

        assert await redis_store.increment_with_expiry("rate-limit:10.0.0.1", 60000) == (3, 41000)
        client.eval.assert_awaited_once_with(INCREMENT_WITH_EXPIRY, 1, "rate-limit:10.0.0.1", 60000)

    def test_safe_url_hides_password(self, redis_store):
        assert redis_store._safe_url() == "redis://***@cache.internal:6379/0"

    def test_safe_url_without_credentials(self, client):
        redis_store = RedisStore("redis://localhost:6379/0", client=client)
        assert redis_store._safe_url() == "redis://localhost:6379/0"
