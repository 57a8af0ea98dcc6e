"""Messaging: keyspace notification routing and local listener registration."""

from nsredis.infrastructure.messaging.keyspace_pubsub import KeyspaceNotificationRouter
from nsredis.infrastructure.messaging.listeners import ListenerRegistry

__all__ = [
    "KeyspaceNotificationRouter",
    "ListenerRegistry",
]
