"""Namespace snapshot: every key under a namespace, fetched by type and normalized.

A snapshot runs Discover (SCAN namespace:*), then for each batch of keys
two pipelined round-trips: Classify (TYPE per key) and Fetch (a
type-specific read per key). Fetched structures are normalized into
plain dicts, lists, strings and numbers so the result is directly
JSON-serializable. One malformed or concurrently deleted key never
aborts the snapshot; it is skipped or kept in raw form.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any

import redis.asyncio as redis

from nsredis.application.services.value_codec import ValueCodec
from nsredis.core.constants import DEFAULT_BATCH_SIZE
from nsredis.domain.enums import RedisType
from nsredis.domain.exceptions import TypeClassificationException
from nsredis.infrastructure.cache.keys import namespace_pattern, strip_namespace
from nsredis.shared.telemetry.tracing import annotate_span, traced

logger = logging.getLogger(__name__)

# Sentinel for keys that must be left out of the snapshot
_SKIP = object()

# Types with a dedicated read command; a failed read is retried once after re-classifying
_TYPED_READS = frozenset({
    RedisType.STRING, RedisType.HASH, RedisType.LIST, RedisType.SET, RedisType.ZSET,
})


def normalize(value: Any) -> Any:
    """Rewrite a fetched structure into plain JSON-compatible types.

    bytes become str, tuples and lists become lists, sets become sorted
    lists, and mapping keys become str. Other values are returned as-is.
    """
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {normalize_key(k): normalize(v) for k, v in value.items()}
    if isinstance(value, (set, frozenset)):
        items = [normalize(v) for v in value]
        try:
            return sorted(items)
        except TypeError:
            return sorted(items, key=repr)
    if isinstance(value, (list, tuple)):
        return [normalize(v) for v in value]
    return value


def normalize_key(key: Any) -> str:
    if isinstance(key, (bytes, bytearray)):
        return bytes(key).decode("utf-8", errors="replace")
    return str(key)


def _queue_fetch(pipe: Any, key: str, redis_type: RedisType | None) -> None:
    """Queue the read command matching redis_type on pipe."""
    if redis_type is RedisType.HASH:
        pipe.hgetall(key)
    elif redis_type is RedisType.LIST:
        pipe.lrange(key, 0, -1)
    elif redis_type is RedisType.SET:
        pipe.smembers(key)
    elif redis_type is RedisType.ZSET:
        pipe.zrange(key, 0, -1, withscores=True)
    else:
        pipe.get(key)


class NamespaceSnapshotService:
    """Builds type-correct snapshots of a namespace over one redis client."""

    def __init__(
        self,
        redis_client: redis.Redis,
        codec: ValueCodec,
        batch_size: int = DEFAULT_BATCH_SIZE,
        scan_count: int = 1000,
        alias: str = "default",
    ) -> None:
        self.redis = redis_client
        self.codec = codec
        self.batch_size = batch_size
        self.scan_count = scan_count
        self.alias = alias

    # ---- Discover ----

    async def namespace_keys(self, namespace: str) -> list[str]:
        """All full keys under namespace via SCAN, de-duplicated, in scan order."""
        found: dict[str, None] = {}
        async for key in self.redis.scan_iter(
            match=namespace_pattern(namespace), count=self.scan_count
        ):
            found[normalize_key(key)] = None
        return list(found)

    async def namespace_size(self, namespace: str) -> int:
        """Number of keys under namespace."""
        return len(await self.namespace_keys(namespace))

    # ---- Snapshot ----

    @traced("nsredis.snapshot.full")
    async def snapshot(self, namespace: str, batch_size: int | None = None) -> dict[str, Any]:
        """Every key under namespace mapped (by local key) to its normalized value.

        Strings are decompressed and JSON-decoded when possible, hashes become
        dicts (field values decoded the same way), lists become lists, sets
        become sorted lists and sorted sets become {member: score}.
        """
        size = batch_size or self.batch_size
        if size < 1:
            raise ValueError(f"batch_size must be >= 1, got: {size}")
        keys = await self.namespace_keys(namespace)
        if not keys:
            return {}
        result: dict[str, Any] = {}
        for start in range(0, len(keys), size):
            result.update(await self._snapshot_batch(namespace, keys[start:start + size]))
        annotate_span(key_count=len(keys), entry_count=len(result))
        logger.debug(
            "[%s] Snapshot of '%s': %s keys, %s entries", self.alias, namespace, len(keys), len(result)
        )
        return result

    async def _classify(self, keys: list[str]) -> list[RedisType | None]:
        async with self.redis.pipeline(transaction=False) as pipe:
            for key in keys:
                pipe.type(key)
            replies = await pipe.execute()
        types = []
        for key, reply in zip(keys, replies):
            redis_type = RedisType.from_reply(reply)
            if redis_type is None:
                logger.warning(
                    "[%s] %s; falling back to GET",
                    self.alias,
                    TypeClassificationException(key, normalize_key(reply)),
                )
            types.append(redis_type)
        return types

    async def _fetch(self, keys: list[str], types: list[RedisType | None]) -> list[Any]:
        async with self.redis.pipeline(transaction=False) as pipe:
            for key, redis_type in zip(keys, types):
                _queue_fetch(pipe, key, redis_type)
            return await pipe.execute(raise_on_error=False)

    async def _snapshot_batch(self, namespace: str, batch: list[str]) -> dict[str, Any]:
        classified = await self._classify(batch)
        live = [(k, t) for k, t in zip(batch, classified) if t is not RedisType.NONE]
        if not live:
            return {}
        keys = [k for k, _ in live]
        types = [t for _, t in live]
        fetched = await self._fetch(keys, types)

        partial: dict[str, Any] = {}
        for key, redis_type, raw in zip(keys, types, fetched):
            if isinstance(raw, Exception):
                if redis_type in _TYPED_READS:
                    redis_type, raw = await self._refetch(key, raw)
                    if raw is _SKIP:
                        continue
                else:
                    logger.warning("[%s] Cannot read %s (%s); storing None", self.alias, key, raw)
                    raw = None
            local_key = strip_namespace(key, namespace)
            try:
                partial[local_key] = await self._convert(redis_type, raw)
            except Exception:
                logger.exception("[%s] Error processing key %s, storing raw value", self.alias, key)
                partial[local_key] = raw
        return partial

    async def _refetch(self, key: str, error: Exception) -> tuple[RedisType | None, Any]:
        """Classify and fetch one key again after its batched fetch failed.

        The key may have changed type between the two round-trips. Returns
        _SKIP when it has since been deleted and None when it still fails.
        """
        logger.debug("[%s] Fetch failed for %s (%s), re-classifying", self.alias, key, error)
        (redis_type,) = await self._classify([key])
        if redis_type is RedisType.NONE:
            return redis_type, _SKIP
        (raw,) = await self._fetch([key], [redis_type])
        if isinstance(raw, Exception):
            logger.warning("[%s] Cannot read %s (%s); storing None", self.alias, key, raw)
            return redis_type, None
        return redis_type, raw

    async def _convert(self, redis_type: RedisType | None, raw: Any) -> Any:
        if raw is None:
            return None
        if redis_type is RedisType.HASH:
            return {
                normalize_key(field): normalize(await self.codec.decode_lenient(value))
                for field, value in raw.items()
            }
        if redis_type is RedisType.ZSET:
            return {normalize_key(member): score for member, score in raw}
        if redis_type in (RedisType.LIST, RedisType.SET):
            return normalize(raw)
        return normalize(await self.codec.decode_lenient(raw))

    # ---- Derived snapshots ----

    async def snapshot_clean(
        self,
        namespace: str,
        batch_size: int | None = None,
        pretty: bool = False,
    ) -> dict[str, Any] | str:
        """Snapshot deep-copied through a JSON round trip.

        With pretty=True the snapshot is returned as indented JSON text.
        """
        snapshot = await self.snapshot(namespace, batch_size=batch_size)
        text = json.dumps(snapshot, default=str, ensure_ascii=False)
        if pretty:
            return json.dumps(json.loads(text), indent=2, ensure_ascii=False)
        return json.loads(text)

    @traced("nsredis.snapshot.strings")
    async def snapshot_strings(
        self, namespace: str, batch_size: int | None = None
    ) -> dict[str, Any]:
        """Snapshot for namespaces that hold only plain string values.

        Skips type classification (one round-trip per batch). Keys that are
        not strings, or vanished after discovery, are left out.
        """
        size = batch_size or self.batch_size
        if size < 1:
            raise ValueError(f"batch_size must be >= 1, got: {size}")
        keys = await self.namespace_keys(namespace)
        result: dict[str, Any] = {}
        for start in range(0, len(keys), size):
            batch = keys[start:start + size]
            fetched = await self._fetch(batch, [RedisType.STRING] * len(batch))
            for key, raw in zip(batch, fetched):
                if raw is None:
                    continue
                if isinstance(raw, Exception):
                    logger.debug("[%s] Skipping non-string key %s: %s", self.alias, key, raw)
                    continue
                result[strip_namespace(key, namespace)] = normalize(
                    await self.codec.decode_lenient(raw)
                )
        return result
