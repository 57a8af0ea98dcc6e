"""Keyspace change event routed to local listeners."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class KeyspaceEvent:
    """A change to one key under a subscribed namespace.

    event is the Redis event kind from the notification payload
    (e.g. "set", "del", "expire", "hset").
    """

    namespace: str
    key: str
    event: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize for listeners that expect plain mappings."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KeyspaceEvent:
        """Build from a plain mapping."""
        return cls(namespace=data["namespace"], key=data["key"], event=data["event"])
