"""Verifiable audit trail of keeper decisions.

Every decision is written as a schema-typed, ABI-encoded entry keyed by a
content id derived from the decision's distinguishing fields, so publishing
the same decision twice leaves one entry and anyone holding the schema can
recompute ids and decode the trail.
"""

from collections.abc import Callable, Iterator
from typing import Any, TypeVar

from eth_utils import keccak

from keeper.audit import encoder
from keeper.audit.models import (
    AuditRecord,
    SchemaRegistration,
    StoredEntry,
    StreamUpdateRecord,
)
from keeper.audit.schema import (
    KEEPER_LOG_SCHEMA,
    STREAM_UPDATE_SCHEMA,
    ZERO_SCHEMA_ID,
    SchemaDefinition,
    SchemaIdCache,
)
from keeper.audit.store import SchemaAlreadyRegisteredError, StreamsStore
from keeper.core.logging import get_logger

logger = get_logger(__name__)

R = TypeVar("R")


def content_id(*parts: Any) -> str:
    """Deterministic entry id: keccak-256 of the dash-joined parts."""
    return "0x" + keccak(text="-".join(str(part) for part in parts)).hex()


def decision_content_id(namespace: str, record: AuditRecord) -> str:
    return content_id(namespace, record.timestamp, record.decision.value)


def stream_update_content_id(record: StreamUpdateRecord) -> str:
    return content_id("stream", record.stream_id, record.timestamp)


class AuditLogPublisher:
    """Registers schemas, publishes records and reads them back."""

    def __init__(self, store: StreamsStore, namespace: str = "keeper"):
        self.store = store
        self.namespace = namespace
        self._schema_ids = SchemaIdCache(compute=store.compute_schema_id)

    def schema_id(self, schema: SchemaDefinition) -> str:
        return self._schema_ids.get(schema)

    def register_schema(
        self, schema: SchemaDefinition, parent_schema_id: str = ZERO_SCHEMA_ID
    ) -> str | None:
        """Register a schema; an existing registration counts as success.

        Returns:
            Write handle, or None when the schema was already registered
        """
        registration = SchemaRegistration(
            name=schema.name,
            definition=schema.canonical,
            parent_schema_id=parent_schema_id,
        )
        try:
            handle = self.store.register_schemas(
                [registration], ignore_already_registered=False
            )
        except SchemaAlreadyRegisteredError:
            logger.info("schema_already_registered", name=schema.name)
            return None

        logger.info(
            "schema_registered",
            name=schema.name,
            schema_id=self.schema_id(schema),
            handle=handle,
        )
        return handle

    def _write(self, schema: SchemaDefinition, data_id: str, fields: dict) -> str:
        # encode first: a schema mismatch must surface before any I/O
        payload = encoder.encode(fields, schema)
        entry = StoredEntry(id=data_id, schema_id=self.schema_id(schema), payload=payload)
        return self.store.set([entry])

    def publish(self, record: AuditRecord) -> str:
        """Publish a keeper decision.

        Returns:
            Write handle of the stored entry

        Raises:
            EncodingError: If the record does not fit the keeper log schema
            StoreError: If the store rejects the write
        """
        data_id = decision_content_id(self.namespace, record)
        handle = self._write(KEEPER_LOG_SCHEMA, data_id, record.to_fields())
        logger.debug(
            "decision_published",
            decision=record.decision.value,
            data_id=data_id,
            handle=handle,
        )
        return handle

    def publish_stream_update(self, record: StreamUpdateRecord) -> str:
        """Publish a stream balance update."""
        data_id = stream_update_content_id(record)
        return self._write(STREAM_UPDATE_SCHEMA, data_id, record.to_fields())

    def list_recent(
        self,
        publisher_key: str,
        schema: SchemaDefinition = KEEPER_LOG_SCHEMA,
        limit: int = 50,
        record_type: Callable[[dict[str, Any]], R] | None = None,
    ) -> Iterator[R | dict[str, Any]]:
        """Yield decoded entries newest first, at most ``limit`` of them.

        Entries are fetched when iteration starts; each call fetches again.
        Entries that fail to decode are skipped with a warning.

        Args:
            publisher_key: Identity the entries were written under
            schema: Schema the entries were written under
            limit: Maximum number of records to yield
            record_type: Converter from decoded field values, e.g.
                ``AuditRecord.from_fields``; plain dicts when omitted
        """
        if limit <= 0:
            return

        raw_entries = self.store.get_all_for_publisher_and_schema(
            self.schema_id(schema), publisher_key
        )
        yielded = 0
        for position in range(len(raw_entries) - 1, -1, -1):
            result = encoder.decode(raw_entries[position], schema)
            if not result.ok:
                logger.warning(
                    "skipping_undecodable_entry",
                    schema=schema.name,
                    position=position,
                    error=result.error,
                )
                continue

            values = result.values or {}
            if record_type is None:
                yield values
            else:
                try:
                    record = record_type(values)
                except ValueError as e:
                    logger.warning(
                        "skipping_invalid_entry",
                        schema=schema.name,
                        position=position,
                        error=str(e),
                    )
                    continue
                yield record

            yielded += 1
            if yielded >= limit:
                return

    def recent_decisions(self, publisher_key: str, limit: int = 50) -> list[AuditRecord]:
        """Newest keeper decisions as AuditRecords."""
        return list(
            self.list_recent(
                publisher_key,
                KEEPER_LOG_SCHEMA,
                limit,
                record_type=AuditRecord.from_fields,
            )
        )
