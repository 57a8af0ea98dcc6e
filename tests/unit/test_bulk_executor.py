"""BulkExecutor unit tests: pipelined writes/reads/deletes and chunked batching."""

from unittest.mock import AsyncMock, MagicMock

import pytest
import redis.asyncio as redis

from nsredis.application.services.bulk_executor import BulkExecutor, BulkOutcome, chunked
from nsredis.application.services.value_codec import ValueCodec
from nsredis.domain.exceptions import BulkReadException, BulkWriteException


@pytest.fixture
def executor(redis_client, codec: ValueCodec) -> BulkExecutor:
    return BulkExecutor(redis_client, codec, alias="test")


def _failing_redis(error: Exception) -> MagicMock:
    """Redis mock whose pipeline submission raises error."""
    pipe = MagicMock()
    pipe.__aenter__.return_value = pipe
    pipe.__aexit__.return_value = False
    pipe.execute = AsyncMock(side_effect=error)
    client = MagicMock()
    client.pipeline.return_value = pipe
    return client


@pytest.mark.asyncio
async def test_set_many_then_get_many_round_trip(executor: BulkExecutor) -> None:
    entries = {"a": {"n": 1}, "b": "text", "c": [1, 2, 3]}
    outcomes = await executor.set_many("ns", entries)
    assert outcomes == [BulkOutcome("a", True), BulkOutcome("b", True), BulkOutcome("c", True)]
    assert await executor.get_many("ns", ["a", "b", "c"]) == entries


@pytest.mark.asyncio
async def test_get_many_missing_key_is_none(executor: BulkExecutor) -> None:
    await executor.set_many("ns", {"a": "one"})
    assert await executor.get_many("ns", ["a", "missing"]) == {"a": "one", "missing": None}


@pytest.mark.asyncio
async def test_get_many_survives_non_utf8_value(executor: BulkExecutor, redis_client) -> None:
    await executor.set_many("ns", {"ok": "kept"})
    await redis_client.set("ns:bin", b"\xff\xfe\x00binary")
    values = await executor.get_many("ns", ["ok", "bin"])
    assert values["ok"] == "kept"
    assert values["bin"].endswith("\x00binary")


@pytest.mark.asyncio
async def test_values_are_stored_compressed(executor: BulkExecutor, redis_client) -> None:
    await executor.set_many("ns", {"a": {"x": 1}})
    raw = await redis_client.get("ns:a")
    assert raw is not None
    assert raw != '{"x":1}'


@pytest.mark.asyncio
async def test_set_many_with_ttl(executor: BulkExecutor, redis_client) -> None:
    await executor.set_many("ns", {"a": 1, "b": 2}, ttl_seconds=100)
    assert 0 < await redis_client.ttl("ns:a") <= 100
    assert 0 < await redis_client.ttl("ns:b") <= 100


@pytest.mark.asyncio
async def test_set_many_reports_unencodable_entries(executor: BulkExecutor, redis_client) -> None:
    """One bad value fails only its own entry; the rest are written."""
    outcomes = await executor.set_many("ns", {"good": 1, "bad": object()})
    assert outcomes[0] == BulkOutcome("good", True)
    assert outcomes[1].key == "bad"
    assert outcomes[1].ok is False
    assert outcomes[1].error
    assert await redis_client.exists("ns:good") == 1
    assert await redis_client.exists("ns:bad") == 0


@pytest.mark.asyncio
async def test_empty_inputs(executor: BulkExecutor) -> None:
    assert await executor.set_many("ns", {}) == []
    assert await executor.get_many("ns", []) == {}
    assert await executor.delete_many("ns", []) == {}


@pytest.mark.asyncio
async def test_delete_many(executor: BulkExecutor, redis_client) -> None:
    await executor.set_many("ns", {"a": 1, "b": 2})
    assert await executor.delete_many("ns", ["a", "b", "missing"]) == {
        "a": True,
        "b": True,
        "missing": False,
    }
    assert await redis_client.exists("ns:a", "ns:b") == 0


@pytest.mark.asyncio
async def test_set_many_submission_failure_raises(codec: ValueCodec) -> None:
    executor = BulkExecutor(_failing_redis(redis.ConnectionError("down")), codec)
    with pytest.raises(BulkWriteException) as exc_info:
        await executor.set_many("ns", {"a": 1, "b": 2})
    assert exc_info.value.error_code == "BULK_WRITE_ERROR"
    assert exc_info.value.details == {"namespace": "ns", "attempted": 2}


@pytest.mark.asyncio
async def test_get_many_submission_failure_raises(codec: ValueCodec) -> None:
    executor = BulkExecutor(_failing_redis(redis.ConnectionError("down")), codec)
    with pytest.raises(BulkReadException) as exc_info:
        await executor.get_many("ns", ["a"])
    assert exc_info.value.details == {"namespace": "ns", "requested": 1}


@pytest.mark.asyncio
async def test_chunked_slices_sequentially() -> None:
    seen: list[int] = []

    async def operation(chunk):
        seen.append(len(chunk))
        return len(chunk)

    results = await chunked(operation, range(250), batch_size=100)
    assert seen == [100, 100, 50]
    assert results == [100, 100, 50]


@pytest.mark.asyncio
async def test_chunked_slices_mappings_into_mappings() -> None:
    chunks: list[dict] = []

    async def operation(chunk):
        chunks.append(chunk)

    await chunked(operation, {str(i): i for i in range(5)}, batch_size=2)
    assert chunks == [{"0": 0, "1": 1}, {"2": 2, "3": 3}, {"4": 4}]


@pytest.mark.asyncio
async def test_chunked_rejects_invalid_batch_size() -> None:
    with pytest.raises(ValueError):
        await chunked(AsyncMock(), [1], batch_size=0)


@pytest.mark.asyncio
async def test_batched_variants_cover_every_key(executor: BulkExecutor) -> None:
    entries = {f"k{i}": {"i": i} for i in range(25)}
    outcomes = await executor.set_many_batched("ns", entries, batch_size=10)
    assert len(outcomes) == 25
    assert all(o.ok for o in outcomes)
    assert await executor.get_many_batched("ns", list(entries), batch_size=7) == entries
    deleted = await executor.delete_many_batched("ns", list(entries), batch_size=10)
    assert all(deleted.values())
    assert len(deleted) == 25
