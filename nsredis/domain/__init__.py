"""Domain layer: entities, value objects, enums, and exceptions.

No dependencies on the redis driver. Used by application and
infrastructure layers.
"""

from nsredis.domain.entities import KeyspaceEvent
from nsredis.domain.enums import RedisType, RouterState
from nsredis.domain.exceptions import (
    BulkReadException,
    BulkWriteException,
    CompressionException,
    ConfigurationException,
    DecompressionException,
    EncodingException,
    NsRedisException,
    StoreConnectionException,
    TypeClassificationException,
)
from nsredis.domain.value_objects import (
    ConnectionDescriptor,
    FullConfig,
    LocalSocket,
    RemoteAddress,
)

__all__ = [
    # Entities
    "KeyspaceEvent",
    # Enums
    "RedisType",
    "RouterState",
    # Exceptions
    "BulkReadException",
    "BulkWriteException",
    "CompressionException",
    "ConfigurationException",
    "DecompressionException",
    "EncodingException",
    "NsRedisException",
    "StoreConnectionException",
    "TypeClassificationException",
    # Value objects
    "ConnectionDescriptor",
    "FullConfig",
    "LocalSocket",
    "RemoteAddress",
]
