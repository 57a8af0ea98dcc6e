"""Cache protocol for the value codec (DIP). TransformCache is the default implementation."""

from typing import Any, Protocol


class CacheProtocol(Protocol):
    """Protocol for bounded in-process transform caches."""

    def get(self, key: str) -> Any:
        """Return cached value or None."""
        ...

    def put(self, key: str, value: Any) -> None:
        """Store value, evicting old entries if the cache is full."""
        ...

    def clear(self) -> None:
        """Remove every entry."""
        ...

    def __len__(self) -> int:
        ...
