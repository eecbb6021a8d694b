"""Schema-typed, content-addressed audit log of keeper decisions."""

from keeper.audit.encoder import DecodeResult, EncodingError
from keeper.audit.feed import FeedSnapshot, KeeperFeed
from keeper.audit.models import AuditRecord, Decision, StreamUpdateRecord
from keeper.audit.publisher import AuditLogPublisher
from keeper.audit.schema import (
    KEEPER_LOG_SCHEMA,
    STREAM_UPDATE_SCHEMA,
    SchemaDefinition,
    compute_schema_id,
)
from keeper.audit.store import SQLiteStreamsStore, StoreError, StreamsStore

__all__ = [
    "AuditLogPublisher",
    "AuditRecord",
    "Decision",
    "DecodeResult",
    "EncodingError",
    "FeedSnapshot",
    "KEEPER_LOG_SCHEMA",
    "KeeperFeed",
    "SQLiteStreamsStore",
    "STREAM_UPDATE_SCHEMA",
    "SchemaDefinition",
    "StoreError",
    "StreamUpdateRecord",
    "StreamsStore",
    "compute_schema_id",
]
