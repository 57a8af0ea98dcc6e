"""Redis driver construction from a resolved ConnectionDescriptor."""

import redis.asyncio as redis

from nsredis.core.config import Settings
from nsredis.domain.value_objects.connection import ConnectionDescriptor


def create_redis_client(descriptor: ConnectionDescriptor, settings: Settings) -> redis.Redis:
    """Build an asyncio Redis client for descriptor.

    Responses are decoded to str; stored values are text (compressed
    payloads are base64). Bytes that are not valid UTF-8 decode to U+FFFD
    instead of failing the whole reply. Keys in descriptor.extra override
    the defaults below. The client connects lazily on first command.
    """
    if descriptor.is_socket:
        target = {"unix_socket_path": descriptor.socket_path}
    else:
        target = {"host": descriptor.host, "port": descriptor.port, "socket_keepalive": True}
    kwargs = {
        **target,
        "db": descriptor.db,
        "username": descriptor.username,
        "password": descriptor.password,
        "decode_responses": True,
        "encoding_errors": "replace",
        "socket_connect_timeout": settings.redis_socket_connect_timeout,
        "max_connections": settings.redis_max_connections,
        **descriptor.extra,
    }
    return redis.Redis(**kwargs)
