"""Domain value objects: connection options and the normalized descriptor."""

from nsredis.domain.value_objects.connection import (
    ConnectionDescriptor,
    ConnectionOptions,
    FullConfig,
    LocalSocket,
    RemoteAddress,
    parse_connection_string,
    resolve_connection,
)

__all__ = [
    "ConnectionDescriptor",
    "ConnectionOptions",
    "FullConfig",
    "LocalSocket",
    "RemoteAddress",
    "parse_connection_string",
    "resolve_connection",
]
