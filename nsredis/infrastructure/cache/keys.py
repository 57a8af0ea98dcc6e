"""Namespaced key builders. Single place for key format (DRY).

Namespaces must not contain KEY_SEP so that splitting a composed key on
its first separator always recovers the namespace; local keys may
contain it freely.
"""

from collections import OrderedDict

from nsredis.core.constants import KEY_SEP, KEYSPACE_CHANNEL_TEMPLATE


def _validate_namespace(namespace: str) -> None:
    """Raise ValueError if namespace is empty or contains the key separator.

    Args:
        namespace: Namespace component of a key.

    Raises:
        ValueError: If namespace is empty or contains KEY_SEP.
    """
    if not namespace:
        raise ValueError("Namespace must be a non-empty string")
    if KEY_SEP in namespace:
        raise ValueError(
            f"Namespace {namespace!r} must not contain separator {KEY_SEP!r}"
        )


def compose_key(namespace: object, local_key: object) -> str:
    """Redis key for local_key under namespace (namespace:local_key)."""
    ns = str(namespace)
    _validate_namespace(ns)
    return f"{ns}{KEY_SEP}{local_key}"


def strip_namespace(key: str, namespace: str) -> str:
    """Local key of a composed key.

    Keys that do not start with namespace: are returned unchanged.
    """
    prefix = f"{namespace}{KEY_SEP}"
    if key.startswith(prefix):
        return key[len(prefix):]
    return key


def split_key(key: str) -> tuple[str, str]:
    """Split a composed key on its first separator into (namespace, local_key)."""
    namespace, _, local_key = key.partition(KEY_SEP)
    return namespace, local_key


def namespace_pattern(namespace: str) -> str:
    """Glob pattern matching every key under namespace."""
    _validate_namespace(namespace)
    return f"{namespace}{KEY_SEP}*"


def keyspace_channel_prefix(db: int) -> str:
    """Keyspace notification channel prefix for a logical database."""
    return KEYSPACE_CHANNEL_TEMPLATE.format(db=db)


def keyspace_pattern(db: int, namespace: str) -> str:
    """PSUBSCRIBE pattern for every keyspace notification under namespace."""
    return f"{keyspace_channel_prefix(db)}{KEY_SEP}{namespace_pattern(namespace)}"


def parse_keyspace_channel(channel: str | bytes, db: int) -> tuple[str, str] | None:
    """Recover (namespace, local_key) from a keyspace channel name.

    Returns None for channels outside db or without a namespaced key.
    """
    if isinstance(channel, bytes):
        channel = channel.decode("utf-8", errors="replace")
    prefix = f"{keyspace_channel_prefix(db)}{KEY_SEP}"
    if not channel.startswith(prefix):
        return None
    namespace, sep, local_key = channel[len(prefix):].partition(KEY_SEP)
    if not namespace or not sep:
        return None
    return namespace, local_key


class KeyFormatter:
    """Per-client memo of composed keys, bounded by max_size.

    Oldest entries are dropped first once the ceiling is reached.
    """

    def __init__(self, max_size: int = 10_000) -> None:
        self.max_size = max_size
        self._cache: OrderedDict[tuple[str, str], str] = OrderedDict()

    def format(self, namespace: object, local_key: object) -> str:
        cache_key = (str(namespace), str(local_key))
        key = self._cache.get(cache_key)
        if key is None:
            key = compose_key(*cache_key)
            if len(self._cache) >= self.max_size:
                self._cache.popitem(last=False)
            self._cache[cache_key] = key
        return key

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)
