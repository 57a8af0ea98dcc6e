"""Value transform pipeline: serialize, compress, decompress, and JSON-decode values.

Stored strings are zlib-deflated and base64-encoded text when compression
is enabled. Both directions go through a content-addressed transform
cache; entries hold (source, result) so a fingerprint collision is
detected on lookup and treated as a miss.
"""

from __future__ import annotations

import asyncio
import base64
import binascii
import json
import logging
import time
import zlib
from typing import Any, Final

from nsredis.core.constants import FINGERPRINT_PREFIX_CHARS
from nsredis.domain.exceptions import (
    CompressionException,
    DecompressionException,
    EncodingException,
)
from nsredis.infrastructure.cache.cache_protocol import CacheProtocol
from nsredis.infrastructure.cache.transform_cache import TransformCache, fingerprint
from nsredis.shared.telemetry.performance import PerformanceStats

logger = logging.getLogger(__name__)


class _NotJson:
    """Sentinel type for values that are not JSON documents."""

    _instance: _NotJson | None = None

    def __new__(cls) -> _NotJson:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_JSON"


NOT_JSON: Final = _NotJson()


def parse_if_json(value: Any) -> Any:
    """Decode value as JSON if it looks like an object or array.

    Only strings starting with '{' or '[' are parsed. Returns NOT_JSON when
    the fast path rejects the value or parsing fails; a decoded JSON null
    is never confused with "not JSON".
    """
    if not isinstance(value, str) or not value or value[0] not in "{[":
        return NOT_JSON
    try:
        return json.loads(value)
    except ValueError:
        return NOT_JSON


def serialize(value: Any) -> str:
    """Strings pass through; everything else is encoded as compact JSON text.

    Raises:
        EncodingException: On circular references or non-JSON types.
    """
    if isinstance(value, str):
        return value
    try:
        return json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError, RecursionError) as e:
        raise EncodingException(
            f"Cannot serialize value of type {type(value).__name__}: {e}",
            value_type=type(value).__name__,
        ) from e


def _as_text(data: str | bytes) -> str:
    return data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data


class ValueCodec:
    """Compression and decoding for one client instance.

    Caches and counters are owned by the client and passed in; the codec
    keeps no state of its own beyond configuration.
    """

    def __init__(
        self,
        compression_enabled: bool = True,
        compression_level: int = 6,
        compression_cache: CacheProtocol | None = None,
        decompression_cache: CacheProtocol | None = None,
        stats: PerformanceStats | None = None,
        fingerprint_chars: int = FINGERPRINT_PREFIX_CHARS,
        offload_bytes: int = 64 * 1024,
        alias: str = "default",
    ) -> None:
        self.compression_enabled = compression_enabled
        self.compression_level = compression_level
        self.compression_cache = compression_cache if compression_cache is not None else TransformCache(name="compression")
        self.decompression_cache = decompression_cache if decompression_cache is not None else TransformCache(name="decompression")
        self.stats = stats if stats is not None else PerformanceStats()
        self.fingerprint_chars = fingerprint_chars
        self.offload_bytes = offload_bytes
        self.alias = alias

    serialize = staticmethod(serialize)
    parse_if_json = staticmethod(parse_if_json)

    def _lookup(self, cache: CacheProtocol, key: str, source: str | bytes) -> str | None:
        entry = cache.get(key)
        if entry is not None and entry[0] == source:
            self.stats.record_cache_hit()
            return entry[1]
        self.stats.record_cache_miss(collision=entry is not None)
        return None

    async def _run(self, func: Any, data: bytes) -> Any:
        if len(data) >= self.offload_bytes:
            return await asyncio.to_thread(func, data)
        return func(data)

    def _deflate(self, data: bytes) -> str:
        return base64.b64encode(zlib.compress(data, self.compression_level)).decode("ascii")

    @staticmethod
    def _inflate(data: bytes) -> str:
        return zlib.decompress(base64.b64decode(data, validate=True)).decode("utf-8")

    async def compress(self, data: str | bytes) -> str:
        """Deflate and base64-encode data; identity (as str) when compression is disabled.

        Raises:
            CompressionException: If the codec fails.
        """
        if not self.compression_enabled:
            return _as_text(data)
        key = fingerprint(data, self.fingerprint_chars)
        cached = self._lookup(self.compression_cache, key, data)
        if cached is not None:
            return cached
        raw = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        start = time.perf_counter()
        try:
            result = await self._run(self._deflate, raw)
        except (zlib.error, MemoryError) as e:
            logger.error("[%s] Compression error: %s", self.alias, e)
            raise CompressionException(f"Compression failed: {e}") from e
        finally:
            self.stats.record_compression((time.perf_counter() - start) * 1000)
        self.compression_cache.put(key, (data, result))
        return result

    async def decompress(self, data: str | bytes) -> str:
        """Inverse of compress(); identity (as str) when compression is disabled.

        Raises:
            DecompressionException: If data is not valid base64, deflate, or UTF-8.
        """
        if not self.compression_enabled:
            return _as_text(data)
        key = fingerprint(data, self.fingerprint_chars)
        cached = self._lookup(self.decompression_cache, key, data)
        if cached is not None:
            return cached
        raw = data.encode("ascii", errors="replace") if isinstance(data, str) else bytes(data)
        start = time.perf_counter()
        try:
            result = await self._run(self._inflate, raw)
        except (binascii.Error, zlib.error, UnicodeDecodeError, ValueError) as e:
            raise DecompressionException(f"Invalid compressed payload: {e}") from e
        finally:
            self.stats.record_decompression((time.perf_counter() - start) * 1000)
        self.decompression_cache.put(key, (data, result))
        return result

    async def encode(self, value: Any) -> str:
        """Serialize then compress a value for storage."""
        return await self.compress(serialize(value))

    async def decode(self, raw: str | bytes) -> Any:
        """Decompress a stored value and JSON-decode it when it is a document.

        Raises:
            DecompressionException: If the stored value is not a compressed payload.
        """
        text = await self.decompress(raw)
        parsed = parse_if_json(text)
        return text if parsed is NOT_JSON else parsed

    async def decode_lenient(self, raw: Any) -> Any:
        """Like decode(), but returns the raw value when it cannot be decompressed."""
        if raw is None:
            return None
        if not isinstance(raw, (str, bytes, bytearray)):
            return raw
        try:
            return await self.decode(raw)
        except DecompressionException:
            logger.debug("[%s] Value is not compressed, using raw form", self.alias)
            text = raw if isinstance(raw, str) else bytes(raw).decode("utf-8", errors="replace")
            parsed = parse_if_json(text)
            return text if parsed is NOT_JSON else parsed
