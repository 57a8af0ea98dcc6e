"""Application layer: value codec, bulk executor, and namespace snapshots.

Services receive the redis client and the per-client caches explicitly;
none of them keeps module-level state.
"""

from nsredis.application.services import (
    BulkExecutor,
    BulkOutcome,
    NamespaceSnapshotService,
    ValueCodec,
)

__all__ = [
    "BulkExecutor",
    "BulkOutcome",
    "NamespaceSnapshotService",
    "ValueCodec",
]
