"""Domain exceptions for the namespaced Redis client.

Defines the error taxonomy surfaced to callers. Payload-level errors
(encoding, compression, decompression) are scoped to one key and are
converted to per-key fallbacks inside batch operations; batch-level
errors (bulk write/read, connection) propagate to the caller.
"""

from typing import Any


class NsRedisException(Exception):
    """Base exception for all client errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code.
        details: Additional error context (e.g. key, namespace, counts).
    """

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error description.
            error_code: Optional machine-readable code; defaults to class name.
            details: Optional dict of extra context.
        """
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)


class StoreConnectionException(NsRedisException):
    """Raised when the store is unreachable or the connection was closed."""

    def __init__(self, message: str = "Redis connection unavailable", alias: str | None = None) -> None:
        details = {"alias": alias} if alias else {}
        super().__init__(message, "CONNECTION_ERROR", details)


class EncodingException(NsRedisException):
    """Raised when a value cannot be serialized to text (cycle or unsupported type)."""

    def __init__(self, message: str, value_type: str | None = None) -> None:
        details = {"value_type": value_type} if value_type else {}
        super().__init__(message, "ENCODING_ERROR", details)


class CompressionException(NsRedisException):
    """Raised when the deflate codec fails on a payload."""

    def __init__(self, message: str = "Compression failed") -> None:
        super().__init__(message, "COMPRESSION_ERROR")


class DecompressionException(NsRedisException):
    """Raised when a stored payload is not valid base64/deflate/UTF-8."""

    def __init__(self, message: str = "Decompression failed") -> None:
        super().__init__(message, "DECOMPRESSION_ERROR")


class BulkWriteException(NsRedisException):
    """Raised when a pipelined bulk write could not be submitted.

    Attributes (in details):
        attempted: Number of entries in the failed submission.
        namespace: Target namespace.
    """

    def __init__(
        self,
        namespace: str,
        attempted: int,
        message: str | None = None,
        outcomes: list[Any] | None = None,
    ) -> None:
        self.outcomes = outcomes or []
        super().__init__(
            message or f"Bulk write of {attempted} entries to '{namespace}' failed",
            "BULK_WRITE_ERROR",
            {"namespace": namespace, "attempted": attempted},
        )


class BulkReadException(NsRedisException):
    """Raised when a pipelined bulk read could not be submitted."""

    def __init__(self, namespace: str, requested: int, message: str | None = None) -> None:
        super().__init__(
            message or f"Bulk read of {requested} keys from '{namespace}' failed",
            "BULK_READ_ERROR",
            {"namespace": namespace, "requested": requested},
        )


class TypeClassificationException(NsRedisException):
    """Raised (and resolved by plain-get fallback) for an unexpected store type."""

    def __init__(self, key: str, redis_type: str) -> None:
        super().__init__(
            f"Unexpected Redis type {redis_type!r} for key {key}",
            "TYPE_CLASSIFICATION_ERROR",
            {"key": key, "redis_type": redis_type},
        )


class ConfigurationException(NsRedisException):
    """Raised when enabling keyspace notifications on the server fails."""

    def __init__(self, message: str, setting: str | None = None) -> None:
        details = {"setting": setting} if setting else {}
        super().__init__(message, "CONFIGURATION_ERROR", details)
