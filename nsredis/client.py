"""Namespaced Redis client: the public operation surface.

Composes the key codec, value codec, transform caches, bulk executor,
snapshot service and keyspace router around one redis.asyncio client.
All caches, counters and listeners are fields of the client instance;
nothing is shared between instances.

Usage:

    async with NamespacedRedisClient("app", RemoteAddress("localhost")) as client:
        await client.set_key("users", "john", {"name": "John"}, ttl_seconds=300)
        user = await client.get_key("users", "john")
        snapshot = await client.get_namespace_snapshot("users")
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from typing import Any, TypeVar

import redis.asyncio as redis

from nsredis.application.services.bulk_executor import BulkExecutor, BulkOutcome
from nsredis.application.services.snapshot_service import NamespaceSnapshotService
from nsredis.application.services.value_codec import ValueCodec, serialize
from nsredis.core.config import Settings, get_settings
from nsredis.domain.exceptions import StoreConnectionException
from nsredis.domain.value_objects.connection import ConnectionOptions, resolve_connection
from nsredis.infrastructure.cache.keys import KeyFormatter, namespace_pattern
from nsredis.infrastructure.cache.transform_cache import TransformCache
from nsredis.infrastructure.connection import create_redis_client
from nsredis.infrastructure.messaging.keyspace_pubsub import KeyspaceNotificationRouter
from nsredis.infrastructure.messaging.listeners import Handler, ListenerRegistry
from nsredis.shared.telemetry.performance import PerformanceStats
from nsredis.shared.telemetry.telemetry import TelemetryConfig

logger = logging.getLogger(__name__)

T = TypeVar("T")


class NamespacedRedisClient:
    """Async Redis client with namespaced keys, compression, and bulk/snapshot operations.

    Connects lazily on the first operation (or explicitly via connect()).
    A dropped connection triggers one reconnect-and-retry per single-key
    operation; bulk writes are not retried and raise BulkWriteException.
    """

    def __init__(
        self,
        alias: str | None = None,
        connection: ConnectionOptions = None,
        username: str | None = None,
        password: str | None = None,
        *,
        redis_client: redis.Redis | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            alias: Name used in log messages; defaults to settings.client_alias.
            connection: LocalSocket, RemoteAddress, FullConfig, a connection
                string (socket path or host[:port]) or None for settings.
            username: Optional username override.
            password: Optional password override.
            redis_client: Optional pre-built client for testing or DI.
            settings: Optional settings; defaults to get_settings().
        """
        self.settings = settings or get_settings()
        self.alias = alias or self.settings.client_alias
        self.descriptor = resolve_connection(connection, self.settings, username, password)
        self.redis = redis_client
        self._connected = redis_client is not None

        self.stats = PerformanceStats()
        self.compression_cache = TransformCache(self.settings.transform_cache_max_size, "compression")
        self.decompression_cache = TransformCache(self.settings.transform_cache_max_size, "decompression")
        self.keys = KeyFormatter(self.settings.key_cache_max_size)
        self.listeners = ListenerRegistry()
        self.codec = ValueCodec(
            compression_enabled=self.settings.compression_enabled,
            compression_level=self.settings.compression_level,
            compression_cache=self.compression_cache,
            decompression_cache=self.decompression_cache,
            stats=self.stats,
            fingerprint_chars=self.settings.fingerprint_prefix_chars,
            offload_bytes=self.settings.compression_offload_bytes,
            alias=self.alias,
        )
        self.telemetry: TelemetryConfig | None = None
        self._bulk: BulkExecutor | None = None
        self._snapshots: NamespaceSnapshotService | None = None
        self._router: KeyspaceNotificationRouter | None = None
        self._connect_lock = asyncio.Lock()

    # ---- Connection ----

    async def connect(self) -> None:
        """Create the driver client (if needed) and verify it with PING.

        Raises:
            StoreConnectionException: If Redis is unreachable.
        """
        async with self._connect_lock:
            if self.redis is None:
                logger.info("[%s] Initializing Redis client...", self.alias)
                self.redis = create_redis_client(self.descriptor, self.settings)
            try:
                await self.redis.ping()
            except (redis.ConnectionError, redis.TimeoutError) as e:
                self._connected = False
                logger.error("[%s] Connection error: %s", self.alias, e)
                raise StoreConnectionException(
                    f"Cannot connect to {self.descriptor.describe()}: {e}", alias=self.alias
                ) from e
            self._connected = True
            logger.info("[%s] Redis connected: %s", self.alias, self.descriptor.describe())
            self._setup_telemetry()

    def _setup_telemetry(self) -> None:
        if not self.settings.telemetry_enabled or self.telemetry is not None:
            return
        self.telemetry = TelemetryConfig.from_settings(self.settings)
        self.telemetry.start()

    async def reconnect(self) -> bool:
        """Drop pooled connections and PING again on the same client object.

        Returns:
            True if Redis answered, False otherwise.
        """
        if self.redis is None:
            try:
                await self.connect()
            except StoreConnectionException:
                return False
            return True
        if self._connected:
            logger.info("[%s] Reinitializing connection...", self.alias)
        try:
            await self.redis.connection_pool.disconnect()
            await self.redis.ping()
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.warning("[%s] Reconnect failed: %s", self.alias, e)
            self._connected = False
            return False
        self._connected = True
        return True

    def is_available(self) -> bool:
        """Return True if the client is connected and usable."""
        return self._connected and self.redis is not None

    async def _ensure_connected(self) -> redis.Redis:
        if self.redis is None:
            await self.connect()
        return self.redis

    def _require_redis(self) -> redis.Redis:
        if self.redis is None:
            raise StoreConnectionException(
                "Client not connected; call connect() first", alias=self.alias
            )
        return self.redis

    async def _execute(self, operation: str, func: Callable[[], Awaitable[T]]) -> T:
        """Run func, reconnecting and retrying once on a connection failure."""
        await self._ensure_connected()
        try:
            return await func()
        except (redis.ConnectionError, redis.TimeoutError) as e:
            logger.warning("[%s] %s failed (%s), reconnecting...", self.alias, operation, e)
            if await self.reconnect():
                try:
                    return await func()
                except (redis.ConnectionError, redis.TimeoutError) as retry_error:
                    e = retry_error
            self._connected = False
            raise StoreConnectionException(
                f"{operation} failed: Redis unavailable ({e})", alias=self.alias
            ) from e

    def _log_performance(self, operation: str, started: float, namespace: str, key: str) -> None:
        elapsed = (time.perf_counter() - started) * 1000
        threshold = self.settings.slow_get_ms if operation == "get" else self.settings.slow_set_ms
        slow = elapsed > threshold
        self.stats.record_operation(slow=slow)
        if slow:
            logger.info(
                "[%s] Redis %s took %.2fms for %s:%s",
                self.alias, operation.upper(), elapsed, namespace, key,
            )

    @property
    def bulk(self) -> BulkExecutor:
        if self._bulk is None:
            self._bulk = BulkExecutor(
                self._require_redis(),
                self.codec,
                keys=self.keys,
                stats=self.stats,
                batch_size=self.settings.bulk_batch_size,
                slow_get_ms=self.settings.slow_get_ms,
                slow_set_ms=self.settings.slow_set_ms,
                alias=self.alias,
            )
        return self._bulk

    @property
    def snapshots(self) -> NamespaceSnapshotService:
        if self._snapshots is None:
            self._snapshots = NamespaceSnapshotService(
                self._require_redis(),
                self.codec,
                batch_size=self.settings.snapshot_batch_size,
                scan_count=self.settings.scan_count,
                alias=self.alias,
            )
        return self._snapshots

    # ---- Namespace ----

    async def get_namespace_size(self, namespace: str) -> int:
        """Number of keys under namespace (SCAN based)."""
        count = await self._execute("SCAN", lambda: self.snapshots.namespace_size(namespace))
        logger.debug("[%s] %s keys in '%s'.", self.alias, count, namespace)
        return count

    async def get_keys(self, namespace: str) -> list[str]:
        """Full keys under namespace (SCAN based, non-blocking on the server)."""
        return await self._execute("SCAN", lambda: self.snapshots.namespace_keys(namespace))

    async def get_namespace(self, namespace: str) -> list[str]:
        """Full keys under namespace via KEYS (blocks the server; small namespaces only)."""
        return await self._execute("KEYS", lambda: self.redis.keys(namespace_pattern(namespace)))

    # ---- Keys ----

    async def set_key(
        self, namespace: str, key: str, value: Any, ttl_seconds: int | None = None
    ) -> None:
        """Serialize, compress and store value, with an optional TTL in seconds."""
        redis_key = self.keys.format(namespace, key)
        payload = await self.codec.encode(value)
        started = time.perf_counter()
        await self._execute(
            "SET", lambda: self.redis.set(redis_key, payload, ex=ttl_seconds or None)
        )
        self._log_performance("set", started, namespace, key)

    async def get_key(self, namespace: str, key: str) -> Any:
        """Stored value (decompressed, JSON-decoded when applicable) or None if missing."""
        redis_key = self.keys.format(namespace, key)
        started = time.perf_counter()
        raw = await self._execute("GET", lambda: self.redis.get(redis_key))
        self._log_performance("get", started, namespace, key)
        if raw is None:
            return None
        return await self.codec.decode_lenient(raw)

    async def check_key(self, namespace: str, key: str) -> bool:
        redis_key = self.keys.format(namespace, key)
        return await self._execute("EXISTS", lambda: self.redis.exists(redis_key)) == 1

    async def delete_key(self, namespace: str, key: str, pipeline: Any = None) -> bool | None:
        """Delete key now, or queue the DELETE on pipeline (returns None in that case)."""
        redis_key = self.keys.format(namespace, key)
        if pipeline is not None:
            pipeline.delete(redis_key)
            return None
        return await self._execute("DEL", lambda: self.redis.delete(redis_key)) > 0

    async def expire_key(self, namespace: str, key: str, ttl_seconds: int) -> bool:
        redis_key = self.keys.format(namespace, key)
        return bool(await self._execute("EXPIRE", lambda: self.redis.expire(redis_key, ttl_seconds)))

    # ---- Hashes ----

    async def hset(
        self,
        namespace: str,
        key: str,
        field: str | Mapping[str, Any],
        value: Any = None,
    ) -> int:
        """Set one field (field, value) or several (field as a mapping); values are encoded.

        Returns:
            Number of fields that were newly created.
        """
        redis_key = self.keys.format(namespace, key)
        if isinstance(field, Mapping):
            names = [str(f) for f in field]
            encoded = await asyncio.gather(*(self.codec.encode(v) for v in field.values()))
            mapping = dict(zip(names, encoded))
            return await self._execute("HSET", lambda: self.redis.hset(redis_key, mapping=mapping))
        payload = await self.codec.encode(value)
        return await self._execute("HSET", lambda: self.redis.hset(redis_key, field, payload))

    async def hget(
        self,
        namespace: str,
        key: str,
        field: str | Sequence[str] | None = None,
    ) -> Any:
        """Read hash fields.

        - field is a str: that field's value (None if missing).
        - field is a list: {field: value} for those fields (None for missing ones).
        - field is None: {field: value} for every field.
        """
        redis_key = self.keys.format(namespace, key)
        if isinstance(field, str):
            raw = await self._execute("HGET", lambda: self.redis.hget(redis_key, field))
            return await self.codec.decode_lenient(raw)
        if field is None:
            raw_map = await self._execute("HGETALL", lambda: self.redis.hgetall(redis_key))
            names = list(raw_map)
            values = list(raw_map.values())
        else:
            names = [str(f) for f in field]
            values = await self._execute("HMGET", lambda: self.redis.hmget(redis_key, names))
        decoded = await asyncio.gather(*(self.codec.decode_lenient(v) for v in values))
        return dict(zip(names, decoded))

    async def hdel(self, namespace: str, key: str, *fields: str) -> int:
        redis_key = self.keys.format(namespace, key)
        return await self._execute("HDEL", lambda: self.redis.hdel(redis_key, *fields))

    # ---- Counters (stored as plain integers, never compressed) ----

    async def increment_counter(
        self, namespace: str, key: str, amount: int = 1, ttl_seconds: int | None = None
    ) -> int:
        """INCRBY amount; with ttl_seconds the EXPIRE is applied in the same transaction."""
        return await self._counter(namespace, key, amount, ttl_seconds)

    async def decrement_counter(
        self, namespace: str, key: str, amount: int = 1, ttl_seconds: int | None = None
    ) -> int:
        return await self._counter(namespace, key, -amount, ttl_seconds)

    async def _counter(
        self, namespace: str, key: str, delta: int, ttl_seconds: int | None
    ) -> int:
        redis_key = self.keys.format(namespace, key)

        async def run() -> int:
            async with self.redis.pipeline(transaction=True) as pipe:
                if delta >= 0:
                    pipe.incrby(redis_key, delta)
                else:
                    pipe.decrby(redis_key, -delta)
                if ttl_seconds:
                    pipe.expire(redis_key, ttl_seconds)
                results = await pipe.execute()
            return int(results[0])

        return await self._execute("INCRBY", run)

    # ---- Collections (members are serialized, not compressed) ----

    async def list_push(self, namespace: str, key: str, *values: Any) -> int:
        redis_key = self.keys.format(namespace, key)
        items = [serialize(v) for v in values]
        return await self._execute("RPUSH", lambda: self.redis.rpush(redis_key, *items))

    async def list_range(self, namespace: str, key: str, start: int = 0, end: int = -1) -> list[str]:
        redis_key = self.keys.format(namespace, key)
        return await self._execute("LRANGE", lambda: self.redis.lrange(redis_key, start, end))

    async def set_add(self, namespace: str, key: str, *members: Any) -> int:
        redis_key = self.keys.format(namespace, key)
        items = [serialize(m) for m in members]
        return await self._execute("SADD", lambda: self.redis.sadd(redis_key, *items))

    async def set_members(self, namespace: str, key: str) -> set[str]:
        redis_key = self.keys.format(namespace, key)
        return set(await self._execute("SMEMBERS", lambda: self.redis.smembers(redis_key)))

    async def sorted_set_add(self, namespace: str, key: str, scores: Mapping[str, float]) -> int:
        redis_key = self.keys.format(namespace, key)
        mapping = {serialize(m): s for m, s in scores.items()}
        return await self._execute("ZADD", lambda: self.redis.zadd(redis_key, mapping))

    async def sorted_set_scores(self, namespace: str, key: str) -> dict[str, float]:
        """{member: score} in ascending score order."""
        redis_key = self.keys.format(namespace, key)
        pairs = await self._execute(
            "ZRANGE", lambda: self.redis.zrange(redis_key, 0, -1, withscores=True)
        )
        return {member: score for member, score in pairs}

    # ---- Pipelines ----

    def create_pipeline(self, transaction: bool = True) -> Any:
        """New pipeline on the main connection (MULTI/EXEC when transaction is True)."""
        return self._require_redis().pipeline(transaction=transaction)

    async def execute_pipeline(self, pipeline: Any) -> list[Any]:
        try:
            return await pipeline.execute()
        except redis.RedisError as e:
            logger.error("[%s] Pipeline error: %s", self.alias, e)
            raise

    # ---- Bulk ----

    async def set_bulk(
        self, namespace: str, entries: Mapping[str, Any], ttl_seconds: int | None = None
    ) -> list[BulkOutcome]:
        await self._ensure_connected()
        return await self.bulk.set_many(namespace, entries, ttl_seconds)

    async def get_bulk(self, namespace: str, keys: Sequence[str]) -> dict[str, Any]:
        await self._ensure_connected()
        return await self.bulk.get_many(namespace, keys)

    async def delete_bulk(self, namespace: str, keys: Sequence[str]) -> dict[str, bool]:
        await self._ensure_connected()
        return await self.bulk.delete_many(namespace, keys)

    async def set_bulk_batched(
        self,
        namespace: str,
        entries: Mapping[str, Any],
        batch_size: int | None = None,
        ttl_seconds: int | None = None,
    ) -> list[BulkOutcome]:
        await self._ensure_connected()
        return await self.bulk.set_many_batched(namespace, entries, ttl_seconds, batch_size)

    async def get_bulk_batched(
        self, namespace: str, keys: Sequence[str], batch_size: int | None = None
    ) -> dict[str, Any]:
        await self._ensure_connected()
        return await self.bulk.get_many_batched(namespace, keys, batch_size)

    async def delete_bulk_batched(
        self, namespace: str, keys: Sequence[str], batch_size: int | None = None
    ) -> dict[str, bool]:
        await self._ensure_connected()
        return await self.bulk.delete_many_batched(namespace, keys, batch_size)

    # ---- Snapshots ----

    async def get_namespace_snapshot(
        self, namespace: str, batch_size: int | None = None
    ) -> dict[str, Any]:
        """Every key under namespace, by local key, with type-correct values."""
        return await self._execute(
            "SNAPSHOT", lambda: self.snapshots.snapshot(namespace, batch_size=batch_size)
        )

    async def get_namespace_snapshot_clean(
        self, namespace: str, batch_size: int | None = None, pretty: bool = False
    ) -> dict[str, Any] | str:
        """Snapshot passed through a JSON round trip; indented JSON text when pretty."""
        return await self._execute(
            "SNAPSHOT",
            lambda: self.snapshots.snapshot_clean(namespace, batch_size=batch_size, pretty=pretty),
        )

    async def get_namespace_snapshot_strings(
        self, namespace: str, batch_size: int | None = None
    ) -> dict[str, Any]:
        """Snapshot of a namespace known to hold only string values (no TYPE round-trip)."""
        return await self._execute(
            "SNAPSHOT", lambda: self.snapshots.snapshot_strings(namespace, batch_size=batch_size)
        )

    # ---- Keyspace notifications ----

    async def subscribe_to_keyspace_events(self, namespaces: str | Iterable[str]) -> list[str]:
        """Subscribe to change events for one namespace or several.

        Events are delivered to handlers registered with on("keyspace", handler)
        as KeyspaceEvent(namespace, key, event).
        """
        redis_client = await self._ensure_connected()
        if self._router is None:
            self._router = KeyspaceNotificationRouter(
                redis_client,
                self.listeners,
                alias=self.alias,
                db=self.descriptor.db,
                notify_flags=self.settings.keyspace_notify_flags,
                reconnect_delay=self.settings.keyspace_reconnect_delay_seconds,
            )
        return await self._router.subscribe(namespaces)

    async def unsubscribe_from_namespace(self, namespace: str) -> bool:
        if self._router is None:
            return False
        return await self._router.unsubscribe(namespace)

    @property
    def subscribed_namespaces(self) -> set[str]:
        return set(self._router.namespaces) if self._router else set()

    def on(self, event: str, handler: Handler) -> Handler:
        """Register a listener (e.g. on("keyspace", handler))."""
        return self.listeners.on(event, handler)

    def off(self, event: str, handler: Handler | None = None) -> None:
        self.listeners.off(event, handler)

    # ---- Instrumentation and caches ----

    def get_performance_stats(self) -> dict[str, Any]:
        """Counters, hit rate and average transform times plus current cache sizes."""
        data = self.stats.as_dict()
        data["compression_cache_size"] = len(self.compression_cache)
        data["decompression_cache_size"] = len(self.decompression_cache)
        data["key_cache_size"] = len(self.keys)
        data["subscribed_namespaces"] = len(self.subscribed_namespaces)
        return data

    def reset_performance_stats(self) -> None:
        self.stats.reset()

    def clear_caches(self) -> None:
        """Empty the transform and key-format caches."""
        self.compression_cache.clear()
        self.decompression_cache.clear()
        self.keys.clear()
        logger.info("[%s] Caches cleared.", self.alias)

    def optimize_caches(self) -> dict[str, int]:
        """Trim transform caches that are over 80% full down to half their ceiling.

        Returns:
            Entries evicted per cache.
        """
        evicted = {}
        for cache in (self.compression_cache, self.decompression_cache):
            evicted[cache.name] = (
                cache.trim(cache.max_size // 2) if len(cache) > cache.max_size * 0.8 else 0
            )
        logger.info("[%s] Caches optimized: %s", self.alias, evicted)
        return evicted

    # ---- Lifecycle ----

    async def close(self) -> None:
        """Close the keyspace router and the main connection."""
        if self._router is not None:
            await self._router.close()
            self._router = None
        if self.redis is not None:
            await self.redis.aclose()
            self.redis = None
        self._bulk = None
        self._snapshots = None
        self._connected = False
        logger.info("[%s] Connection closed.", self.alias)

    async def destroy(self) -> None:
        """Close connections, drop listeners and caches, and stop telemetry."""
        self.clear_caches()
        self.listeners.clear()
        await self.close()
        if self.telemetry is not None:
            self.telemetry.shutdown()
            self.telemetry = None
        logger.info("[%s] Client destroyed.", self.alias)

    async def __aenter__(self) -> NamespacedRedisClient:
        await self.connect()
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: BaseException | None, exc_tb: object) -> None:
        await self.close()


__all__ = ["NamespacedRedisClient"]
