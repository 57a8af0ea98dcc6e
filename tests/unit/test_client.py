"""NamespacedRedisClient facade tests over fakeredis (and mocks for failure paths)."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
import redis.asyncio as redis
from fakeredis import FakeAsyncRedis

from nsredis.client import NamespacedRedisClient
from nsredis.core.config import Settings
from nsredis.domain.entities.keyspace_event import KeyspaceEvent
from nsredis.domain.exceptions import StoreConnectionException
from nsredis.domain.value_objects.connection import RemoteAddress


def _mock_redis() -> AsyncMock:
    """Redis mock with a working PING and pool disconnect."""
    client = AsyncMock()
    client.ping = AsyncMock(return_value=True)
    client.connection_pool.disconnect = AsyncMock()
    return client


async def _no_messages():
    for message in ():
        yield message


class TestKeys:
    @pytest.mark.asyncio
    async def test_set_and_get_round_trip(self, client: NamespacedRedisClient, redis_client) -> None:
        await client.set_key("users", "john", {"name": "John", "age": 30})
        assert await client.get_key("users", "john") == {"name": "John", "age": 30}
        raw = await redis_client.get("users:john")
        assert raw is not None
        assert "John" not in raw

    @pytest.mark.asyncio
    async def test_get_missing_key_is_none(self, client: NamespacedRedisClient) -> None:
        assert await client.get_key("users", "nobody") is None

    @pytest.mark.asyncio
    async def test_plain_string_value(self, client: NamespacedRedisClient) -> None:
        await client.set_key("users", "greeting", "hello")
        assert await client.get_key("users", "greeting") == "hello"

    @pytest.mark.asyncio
    async def test_set_with_ttl(self, client: NamespacedRedisClient, redis_client) -> None:
        await client.set_key("sessions", "abc", {"u": 1}, ttl_seconds=60)
        assert 0 < await redis_client.ttl("sessions:abc") <= 60

    @pytest.mark.asyncio
    async def test_check_expire_and_delete(self, client: NamespacedRedisClient, redis_client) -> None:
        await client.set_key("users", "john", "x")
        assert await client.check_key("users", "john") is True
        assert await client.expire_key("users", "john", 30) is True
        assert 0 < await redis_client.ttl("users:john") <= 30
        assert await client.delete_key("users", "john") is True
        assert await client.delete_key("users", "john") is False
        assert await client.check_key("users", "john") is False
        assert await client.expire_key("users", "john", 30) is False

    @pytest.mark.asyncio
    async def test_delete_queued_on_pipeline(self, client: NamespacedRedisClient) -> None:
        await client.set_key("users", "a", "1")
        await client.set_key("users", "b", "2")
        pipe = client.create_pipeline()
        assert await client.delete_key("users", "a", pipeline=pipe) is None
        assert await client.delete_key("users", "b", pipeline=pipe) is None
        assert await client.execute_pipeline(pipe) == [1, 1]
        assert await client.get_namespace_size("users") == 0

    @pytest.mark.asyncio
    async def test_invalid_namespace_rejected(self, client: NamespacedRedisClient) -> None:
        with pytest.raises(ValueError):
            await client.set_key("bad:ns", "k", "v")


class TestNamespace:
    @pytest.mark.asyncio
    async def test_size_keys_and_namespace(self, client: NamespacedRedisClient) -> None:
        for name in ("a", "b", "c"):
            await client.set_key("items", name, name)
        await client.set_key("other", "z", "z")
        assert await client.get_namespace_size("items") == 3
        assert sorted(await client.get_keys("items")) == ["items:a", "items:b", "items:c"]
        assert sorted(await client.get_namespace("items")) == ["items:a", "items:b", "items:c"]


class TestHashes:
    @pytest.mark.asyncio
    async def test_single_field(self, client: NamespacedRedisClient) -> None:
        assert await client.hset("users", "john", "profile", {"age": 30}) == 1
        assert await client.hget("users", "john", "profile") == {"age": 30}
        assert await client.hget("users", "john", "missing") is None

    @pytest.mark.asyncio
    async def test_all_and_listed_fields(self, client: NamespacedRedisClient) -> None:
        await client.hset("users", "john", {"email": "j@example.com", "tags": ["a"]})
        assert await client.hget("users", "john") == {"email": "j@example.com", "tags": ["a"]}
        assert await client.hget("users", "john", ["email", "nope"]) == {
            "email": "j@example.com",
            "nope": None,
        }
        assert await client.hdel("users", "john", "email") == 1
        assert await client.hget("users", "john") == {"tags": ["a"]}


class TestCounters:
    @pytest.mark.asyncio
    async def test_increment_and_decrement(self, client: NamespacedRedisClient, redis_client) -> None:
        assert await client.increment_counter("stats", "visits") == 1
        assert await client.increment_counter("stats", "visits", 5) == 6
        assert await client.decrement_counter("stats", "visits", 2) == 4
        assert await redis_client.get("stats:visits") == "4"
        assert await client.get_key("stats", "visits") == "4"

    @pytest.mark.asyncio
    async def test_increment_with_ttl(self, client: NamespacedRedisClient, redis_client) -> None:
        await client.increment_counter("stats", "hits", ttl_seconds=120)
        assert 0 < await redis_client.ttl("stats:hits") <= 120


class TestCollections:
    @pytest.mark.asyncio
    async def test_list(self, client: NamespacedRedisClient) -> None:
        assert await client.list_push("q", "jobs", "a", {"b": 1}) == 2
        assert await client.list_range("q", "jobs") == ["a", '{"b":1}']

    @pytest.mark.asyncio
    async def test_set(self, client: NamespacedRedisClient) -> None:
        assert await client.set_add("tags", "post", "x", "y", "x") == 2
        assert await client.set_members("tags", "post") == {"x", "y"}

    @pytest.mark.asyncio
    async def test_sorted_set(self, client: NamespacedRedisClient) -> None:
        await client.sorted_set_add("board", "top", {"bob": 5, "amy": 10})
        assert await client.sorted_set_scores("board", "top") == {"bob": 5.0, "amy": 10.0}


class TestBulkAndSnapshots:
    @pytest.mark.asyncio
    async def test_bulk_round_trip(self, client: NamespacedRedisClient) -> None:
        entries = {"a": {"v": 1}, "b": {"v": 2}}
        outcomes = await client.set_bulk("bulk", entries)
        assert all(o.ok for o in outcomes)
        assert await client.get_bulk("bulk", ["a", "b", "c"]) == {**entries, "c": None}
        assert await client.delete_bulk("bulk", ["a"]) == {"a": True}

    @pytest.mark.asyncio
    async def test_batched_bulk(self, client: NamespacedRedisClient) -> None:
        entries = {f"k{i}": [i] for i in range(12)}
        await client.set_bulk_batched("bulk", entries, batch_size=5)
        assert await client.get_bulk_batched("bulk", list(entries), batch_size=5) == entries
        deleted = await client.delete_bulk_batched("bulk", list(entries), batch_size=5)
        assert len(deleted) == 12
        assert await client.get_namespace_size("bulk") == 0

    @pytest.mark.asyncio
    async def test_snapshots(self, client: NamespacedRedisClient) -> None:
        await client.set_key("app", "user", {"name": "John"})
        await client.hset("app", "profile", "email", "j@example.com")
        await client.list_push("app", "queue", "first")
        await client.set_add("app", "tags", "b", "a")
        await client.sorted_set_add("app", "scores", {"x": 1})
        expected = {
            "user": {"name": "John"},
            "profile": {"email": "j@example.com"},
            "queue": ["first"],
            "tags": ["a", "b"],
            "scores": {"x": 1.0},
        }
        assert await client.get_namespace_snapshot("app") == expected
        assert await client.get_namespace_snapshot_clean("app", batch_size=2) == expected
        assert isinstance(await client.get_namespace_snapshot_clean("app", pretty=True), str)
        assert await client.get_namespace_snapshot_strings("app") == {"user": {"name": "John"}}


class TestKeyspaceEvents:
    @pytest.mark.asyncio
    async def test_subscribe_and_unsubscribe(self, client: NamespacedRedisClient) -> None:
        pubsub = MagicMock()
        pubsub.psubscribe = AsyncMock()
        pubsub.punsubscribe = AsyncMock()
        pubsub.aclose = AsyncMock()
        pubsub.listen = MagicMock(return_value=_no_messages())
        client.redis.config_set = AsyncMock(return_value=True)
        client.redis.pubsub = MagicMock(return_value=pubsub)
        handler = client.on("keyspace", lambda event: None)
        assert await client.subscribe_to_keyspace_events(["users", "orders"]) == ["users", "orders"]
        assert client.subscribed_namespaces == {"users", "orders"}
        assert client.get_performance_stats()["subscribed_namespaces"] == 2
        assert await client.unsubscribe_from_namespace("users") is True
        assert await client.unsubscribe_from_namespace("users") is False
        client.off("keyspace", handler)
        assert client.listeners.listener_count("keyspace") == 0

    @pytest.mark.asyncio
    async def test_set_key_emits_one_event(self, client: NamespacedRedisClient) -> None:
        received: list[KeyspaceEvent] = []
        arrived = asyncio.Event()

        def handler(event: KeyspaceEvent) -> None:
            received.append(event)
            arrived.set()

        client.on("keyspace", handler)
        await client.subscribe_to_keyspace_events("ns")
        await client.set_key("ns", "key1", {"v": 1})
        await asyncio.wait_for(arrived.wait(), timeout=2)
        await asyncio.sleep(0.05)
        assert received == [KeyspaceEvent("ns", "key1", "set")]

    @pytest.mark.asyncio
    async def test_unsubscribe_without_router(self, client: NamespacedRedisClient) -> None:
        assert await client.unsubscribe_from_namespace("users") is False


class TestInstrumentation:
    @pytest.mark.asyncio
    async def test_stats_and_cache_hits(self, client: NamespacedRedisClient) -> None:
        await client.set_key("users", "john", {"name": "John"})
        await client.get_key("users", "john")
        await client.get_key("users", "john")
        stats = client.get_performance_stats()
        assert stats["operation_count"] == 3
        assert stats["cache_hits"] >= 1
        assert stats["compression_cache_size"] == 1
        assert stats["decompression_cache_size"] == 1
        assert stats["key_cache_size"] == 1
        client.reset_performance_stats()
        assert client.get_performance_stats()["operation_count"] == 0

    @pytest.mark.asyncio
    async def test_clear_caches(self, client: NamespacedRedisClient) -> None:
        await client.set_key("users", "john", "x")
        client.clear_caches()
        stats = client.get_performance_stats()
        assert stats["compression_cache_size"] == 0
        assert stats["key_cache_size"] == 0

    @pytest.mark.asyncio
    async def test_optimize_caches(self, redis_client) -> None:
        settings = Settings(_env_file=None, transform_cache_max_size=10)
        ns_client = NamespacedRedisClient("opt", redis_client=redis_client, settings=settings)
        for i in range(9):
            await ns_client.set_key("ns", f"k{i}", f"value-{i}")
        assert ns_client.optimize_caches() == {"compression": 4, "decompression": 0}
        assert len(ns_client.compression_cache) == 5

    @pytest.mark.asyncio
    async def test_caches_are_per_client(self, redis_client, settings) -> None:
        one = NamespacedRedisClient("one", redis_client=redis_client, settings=settings)
        two = NamespacedRedisClient("two", redis_client=redis_client, settings=settings)
        await one.set_key("ns", "k", "v")
        assert len(one.compression_cache) == 1
        assert len(two.compression_cache) == 0


class TestConnection:
    def test_connection_options_resolved_at_construction(self, settings) -> None:
        ns_client = NamespacedRedisClient("c", RemoteAddress("cache.internal", 6390), settings=settings)
        assert ns_client.descriptor.host == "cache.internal"
        assert ns_client.descriptor.port == 6390
        assert ns_client.redis is None
        assert not ns_client.is_available()

    def test_create_pipeline_requires_connection(self, settings) -> None:
        with pytest.raises(StoreConnectionException):
            NamespacedRedisClient("c", settings=settings).create_pipeline()

    @pytest.mark.asyncio
    async def test_lazy_connect_on_first_operation(
        self, settings, redis_client, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr("nsredis.client.create_redis_client", lambda descriptor, s: redis_client)
        ns_client = NamespacedRedisClient("lazy", settings=settings)
        await ns_client.set_key("ns", "k", "v")
        assert ns_client.is_available()
        assert await ns_client.get_key("ns", "k") == "v"

    @pytest.mark.asyncio
    async def test_context_manager(self, settings) -> None:
        fake = FakeAsyncRedis(decode_responses=True, encoding_errors="replace")
        async with NamespacedRedisClient("ctx", redis_client=fake, settings=settings) as ns_client:
            assert ns_client.is_available()
        assert ns_client.redis is None
        assert not ns_client.is_available()

    @pytest.mark.asyncio
    async def test_connect_failure_raises(self, settings) -> None:
        mock = _mock_redis()
        mock.ping.side_effect = redis.ConnectionError("refused")
        ns_client = NamespacedRedisClient("down", redis_client=mock, settings=settings)
        with pytest.raises(StoreConnectionException) as exc_info:
            await ns_client.connect()
        assert exc_info.value.details == {"alias": "down"}
        assert not ns_client.is_available()

    @pytest.mark.asyncio
    async def test_connection_error_reconnects_and_retries_once(self, settings) -> None:
        mock = _mock_redis()
        mock.get.side_effect = [redis.ConnectionError("reset"), None]
        ns_client = NamespacedRedisClient("retry", redis_client=mock, settings=settings)
        assert await ns_client.get_key("ns", "k") is None
        assert mock.get.await_count == 2
        mock.connection_pool.disconnect.assert_awaited_once()
        assert ns_client.is_available()

    @pytest.mark.asyncio
    async def test_unavailable_store_raises(self, settings) -> None:
        mock = _mock_redis()
        mock.set.side_effect = redis.ConnectionError("reset")
        mock.ping.side_effect = redis.ConnectionError("refused")
        ns_client = NamespacedRedisClient("gone", redis_client=mock, settings=settings)
        with pytest.raises(StoreConnectionException):
            await ns_client.set_key("ns", "k", "v")
        assert mock.set.await_count == 1
        assert not ns_client.is_available()

    @pytest.mark.asyncio
    async def test_destroy_drops_listeners_and_caches(self, redis_client, settings) -> None:
        ns_client = NamespacedRedisClient("d", redis_client=redis_client, settings=settings)
        ns_client.on("keyspace", print)
        await ns_client.set_key("ns", "k", "v")
        await ns_client.destroy()
        assert ns_client.listeners.listener_count("keyspace") == 0
        assert len(ns_client.compression_cache) == 0
        assert ns_client.redis is None
