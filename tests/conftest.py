"""Pytest configuration and fixtures for nsredis.

Redis is replaced by fakeredis (in-process, no server needed). Every
test gets a flushed store, default settings that ignore any local .env,
and a client wired to the fake store.
"""

import pytest
from fakeredis import FakeAsyncRedis

from nsredis.application.services.value_codec import ValueCodec
from nsredis.client import NamespacedRedisClient
from nsredis.core.config import Settings, get_settings


@pytest.fixture(autouse=True)
def _clear_settings_cache():
    """Settings are cached per process; start and end each test clean."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings() -> Settings:
    """Default settings, independent of the environment's .env file."""
    return Settings(_env_file=None)


@pytest.fixture
async def redis_client() -> FakeAsyncRedis:
    """Flushed in-memory Redis with str responses (as the real client is built)."""
    client = FakeAsyncRedis(decode_responses=True, encoding_errors="replace")
    await client.flushall()
    yield client
    await client.aclose()


@pytest.fixture
def codec() -> ValueCodec:
    """Compression-enabled codec with its own caches and counters."""
    return ValueCodec(alias="test")


@pytest.fixture
async def client(redis_client: FakeAsyncRedis, settings: Settings) -> NamespacedRedisClient:
    """NamespacedRedisClient over the fake store."""
    ns_client = NamespacedRedisClient("test", redis_client=redis_client, settings=settings)
    yield ns_client
    await ns_client.destroy()
