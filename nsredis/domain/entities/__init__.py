"""Domain entities."""

from nsredis.domain.entities.keyspace_event import KeyspaceEvent

__all__ = ["KeyspaceEvent"]
