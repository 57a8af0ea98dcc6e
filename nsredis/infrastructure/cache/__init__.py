"""Cache: namespaced key utilities and the bounded transform cache.

Key format is in keys.py (DRY); TransformCache backs the value codec.
"""

from nsredis.infrastructure.cache.cache_protocol import CacheProtocol
from nsredis.infrastructure.cache.keys import (
    KeyFormatter,
    compose_key,
    keyspace_pattern,
    namespace_pattern,
    parse_keyspace_channel,
    split_key,
    strip_namespace,
)
from nsredis.infrastructure.cache.transform_cache import TransformCache, fingerprint

__all__ = [
    "CacheProtocol",
    "KeyFormatter",
    "TransformCache",
    "compose_key",
    "fingerprint",
    "keyspace_pattern",
    "namespace_pattern",
    "parse_keyspace_channel",
    "split_key",
    "strip_namespace",
]
