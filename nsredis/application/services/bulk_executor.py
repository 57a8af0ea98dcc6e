"""Bulk executor: pipelined multi-key reads, writes, and deletes.

Values are encoded (and decoded) concurrently, then every command for a
batch is submitted in one pipeline round-trip. Per-key failures become
per-entry outcomes; only a failed submission raises.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

import redis.asyncio as redis

from nsredis.application.services.value_codec import ValueCodec
from nsredis.core.constants import DEFAULT_BATCH_SIZE
from nsredis.domain.exceptions import (
    BulkReadException,
    BulkWriteException,
    NsRedisException,
)
from nsredis.infrastructure.cache.keys import KeyFormatter
from nsredis.shared.telemetry.performance import PerformanceStats
from nsredis.shared.telemetry.tracing import annotate_span, traced

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass(frozen=True)
class BulkOutcome:
    """Result of one entry in a bulk write."""

    key: str
    ok: bool
    error: str | None = None


async def chunked(
    operation: Callable[[Any], Awaitable[R]],
    items: Iterable[T] | Mapping[str, Any],
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> list[R]:
    """Apply operation to consecutive slices of at most batch_size items, one slice at a time.

    Mappings are sliced into smaller mappings; any other iterable into lists.
    Slices are processed sequentially to cap peak load on the store.

    Returns:
        The result of each call, in slice order.

    Raises:
        ValueError: If batch_size is less than 1.
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be >= 1, got: {batch_size}")
    if isinstance(items, Mapping):
        pairs = list(items.items())
        slices: list[Any] = [
            dict(pairs[i:i + batch_size]) for i in range(0, len(pairs), batch_size)
        ]
    else:
        seq = list(items)
        slices = [seq[i:i + batch_size] for i in range(0, len(seq), batch_size)]
    results: list[R] = []
    for chunk in slices:
        results.append(await operation(chunk))
    return results


class BulkExecutor:
    """Pipelined multi-key operations over one redis client."""

    def __init__(
        self,
        redis_client: redis.Redis,
        codec: ValueCodec,
        keys: KeyFormatter | None = None,
        stats: PerformanceStats | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
        slow_get_ms: float = 10.0,
        slow_set_ms: float = 30.0,
        alias: str = "default",
    ) -> None:
        self.redis = redis_client
        self.codec = codec
        self.keys = keys or KeyFormatter()
        self.stats = stats if stats is not None else codec.stats
        self.batch_size = batch_size
        self.slow_get_ms = slow_get_ms
        self.slow_set_ms = slow_set_ms
        self.alias = alias

    def _record(self, label: str, count: int, started: float, threshold: float) -> None:
        elapsed = (time.perf_counter() - started) * 1000
        slow = elapsed > threshold
        self.stats.record_operation(slow=slow)
        if slow:
            logger.info("[%s] Bulk %s of %s keys took %.2fms", self.alias, label, count, elapsed)

    @traced("nsredis.bulk.set_many")
    async def set_many(
        self,
        namespace: str,
        entries: Mapping[str, Any],
        ttl_seconds: int | None = None,
    ) -> list[BulkOutcome]:
        """Encode every value and write all entries in one atomic pipeline.

        Entries whose value cannot be encoded are reported as failed and not
        written. With ttl_seconds, each SET is followed by an EXPIRE.

        Returns:
            One BulkOutcome per entry, in input order.

        Raises:
            BulkWriteException: If the pipeline submission itself fails.
        """
        if not entries:
            return []
        local_keys = [str(k) for k in entries]
        encoded = await asyncio.gather(
            *(self.codec.encode(v) for v in entries.values()), return_exceptions=True
        )
        outcomes: dict[str, BulkOutcome] = {}
        writes: list[tuple[str, str]] = []
        for key, value in zip(local_keys, encoded):
            if isinstance(value, NsRedisException):
                logger.warning("[%s] Skipping %s:%s: %s", self.alias, namespace, key, value.message)
                outcomes[key] = BulkOutcome(key=key, ok=False, error=value.message)
            elif isinstance(value, BaseException):
                raise value
            else:
                writes.append((key, value))
        if not writes:
            return [outcomes[k] for k in local_keys]

        started = time.perf_counter()
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                for key, value in writes:
                    redis_key = self.keys.format(namespace, key)
                    pipe.set(redis_key, value)
                    if ttl_seconds:
                        pipe.expire(redis_key, ttl_seconds)
                results = await pipe.execute(raise_on_error=False)
        except redis.RedisError as e:
            logger.error("[%s] Error in bulk set: %s", self.alias, e)
            raise BulkWriteException(
                namespace,
                len(writes),
                outcomes=[outcomes[k] for k in local_keys if k in outcomes],
            ) from e
        self._record("SET", len(writes), started, self.slow_set_ms)

        step = 2 if ttl_seconds else 1
        for i, (key, _) in enumerate(writes):
            errors = [r for r in results[i * step:(i + 1) * step] if isinstance(r, Exception)]
            outcomes[key] = BulkOutcome(
                key=key, ok=not errors, error=str(errors[0]) if errors else None
            )
        annotate_span(written=len(writes))
        return [outcomes[k] for k in local_keys]

    async def _decode_result(self, namespace: str, key: str, result: Any) -> Any:
        if isinstance(result, Exception):
            logger.warning("[%s] Bulk GET failed for %s:%s: %s", self.alias, namespace, key, result)
            return None
        return await self.codec.decode_lenient(result)

    @traced("nsredis.bulk.get_many")
    async def get_many(self, namespace: str, keys: Sequence[str]) -> dict[str, Any]:
        """Read keys in one pipeline and decode them concurrently.

        Missing keys, and keys whose GET fails, map to None.

        Raises:
            BulkReadException: If the pipeline submission itself fails.
        """
        if not keys:
            return {}
        local_keys = [str(k) for k in keys]
        started = time.perf_counter()
        try:
            async with self.redis.pipeline(transaction=False) as pipe:
                for key in local_keys:
                    pipe.get(self.keys.format(namespace, key))
                results = await pipe.execute(raise_on_error=False)
        except redis.RedisError as e:
            logger.error("[%s] Error in bulk get: %s", self.alias, e)
            raise BulkReadException(namespace, len(local_keys)) from e
        self._record("GET", len(local_keys), started, self.slow_get_ms)

        values = await asyncio.gather(
            *(self._decode_result(namespace, k, r) for k, r in zip(local_keys, results))
        )
        return dict(zip(local_keys, values))

    @traced("nsredis.bulk.delete_many")
    async def delete_many(self, namespace: str, keys: Sequence[str]) -> dict[str, bool]:
        """Delete keys in one atomic pipeline.

        Returns:
            Mapping of local key to True when the key existed and was removed.

        Raises:
            BulkWriteException: If the pipeline submission itself fails.
        """
        if not keys:
            return {}
        local_keys = [str(k) for k in keys]
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                for key in local_keys:
                    pipe.delete(self.keys.format(namespace, key))
                results = await pipe.execute(raise_on_error=False)
        except redis.RedisError as e:
            logger.error("[%s] Error in bulk delete: %s", self.alias, e)
            raise BulkWriteException(namespace, len(local_keys)) from e
        self.stats.record_operation()
        return {
            key: (not isinstance(r, Exception)) and int(r or 0) > 0
            for key, r in zip(local_keys, results)
        }

    async def set_many_batched(
        self,
        namespace: str,
        entries: Mapping[str, Any],
        ttl_seconds: int | None = None,
        batch_size: int | None = None,
    ) -> list[BulkOutcome]:
        """set_many() over consecutive slices of at most batch_size entries."""
        results = await chunked(
            lambda chunk: self.set_many(namespace, chunk, ttl_seconds),
            entries,
            batch_size or self.batch_size,
        )
        return [outcome for outcomes in results for outcome in outcomes]

    async def get_many_batched(
        self,
        namespace: str,
        keys: Sequence[str],
        batch_size: int | None = None,
    ) -> dict[str, Any]:
        """get_many() over consecutive slices of at most batch_size keys."""
        results = await chunked(
            lambda chunk: self.get_many(namespace, chunk), keys, batch_size or self.batch_size
        )
        merged: dict[str, Any] = {}
        for partial in results:
            merged.update(partial)
        return merged

    async def delete_many_batched(
        self,
        namespace: str,
        keys: Sequence[str],
        batch_size: int | None = None,
    ) -> dict[str, bool]:
        """delete_many() over consecutive slices of at most batch_size keys."""
        results = await chunked(
            lambda chunk: self.delete_many(namespace, chunk), keys, batch_size or self.batch_size
        )
        merged: dict[str, bool] = {}
        for partial in results:
            merged.update(partial)
        return merged
