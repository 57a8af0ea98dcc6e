"""Domain enumerations: Redis value types and notification router states."""

from enum import Enum


class _ValuesMixin:
    """Mixin that adds a values() classmethod to str Enums."""

    @classmethod
    def values(cls) -> list[str]:
        """Return all valid values as strings."""
        return [member.value for member in cls]


class RedisType(_ValuesMixin, str, Enum):
    """Store-native value type as reported by the TYPE command."""

    STRING = "string"
    HASH = "hash"
    LIST = "list"
    SET = "set"
    ZSET = "zset"
    STREAM = "stream"
    NONE = "none"

    @classmethod
    def from_reply(cls, reply: str | bytes | None) -> "RedisType | None":
        """Map a TYPE reply to a member; None for types this client does not know."""
        if reply is None:
            return cls.NONE
        text = reply.decode() if isinstance(reply, bytes) else str(reply)
        try:
            return cls(text.lower())
        except ValueError:
            return None


class RouterState(_ValuesMixin, str, Enum):
    """Lifecycle of the keyspace notification router."""

    UNCONFIGURED = "unconfigured"
    CONFIGURING = "configuring"
    ACTIVE = "active"
