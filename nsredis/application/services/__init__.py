"""Application services: value codec, bulk executor, namespace snapshots."""

from nsredis.application.services.bulk_executor import BulkExecutor, BulkOutcome, chunked
from nsredis.application.services.snapshot_service import NamespaceSnapshotService, normalize
from nsredis.application.services.value_codec import (
    NOT_JSON,
    ValueCodec,
    parse_if_json,
    serialize,
)

__all__ = [
    "BulkExecutor",
    "BulkOutcome",
    "NOT_JSON",
    "NamespaceSnapshotService",
    "ValueCodec",
    "chunked",
    "normalize",
    "parse_if_json",
    "serialize",
]
