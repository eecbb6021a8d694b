"""Schema-typed, content-addressed, append-only data store."""

import re
import sqlite3
from abc import ABC, abstractmethod
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from eth_utils import keccak

from keeper.audit.models import SchemaRegistration, StoredEntry
from keeper.audit.schema import ZERO_SCHEMA_ID, compute_schema_id
from keeper.core.logging import get_logger
from keeper.core.retry import with_db_retry

logger = get_logger(__name__)


class StoreError(Exception):
    """Raised when the data store rejects or fails a read or write."""


class SchemaAlreadyRegisteredError(StoreError):
    """Raised when registering a schema that already exists."""


class StreamsStore(ABC):
    """Capability of a schema registry plus append-only data store.

    All writes are made on behalf of one publisher identity.
    """

    @property
    @abstractmethod
    def publisher(self) -> str:
        """Identity entries are written under."""
        raise NotImplementedError

    @abstractmethod
    def compute_schema_id(self, definition: str) -> str:
        raise NotImplementedError

    @abstractmethod
    def register_schemas(
        self,
        registrations: Sequence[SchemaRegistration],
        ignore_already_registered: bool = True,
    ) -> str:
        """Register schema definitions.

        Returns:
            Write handle for the registration

        Raises:
            SchemaAlreadyRegisteredError: If a schema exists and
                ``ignore_already_registered`` is false
        """
        raise NotImplementedError

    @abstractmethod
    def set(self, entries: Sequence[StoredEntry]) -> str:
        """Atomically write entries; an existing id is left untouched.

        Returns:
            Write handle for the write
        """
        raise NotImplementedError

    @abstractmethod
    def get_all_for_publisher_and_schema(
        self, schema_id: str, publisher: str
    ) -> list[bytes]:
        """Raw payloads in write order, oldest first."""
        raise NotImplementedError


class SQLiteStreamsStore(StreamsStore):
    """Local StreamsStore backed by a SQLite index.

    Entries are keyed by ``(publisher, schema_id, id)`` and inserted with
    ``INSERT OR IGNORE``; there is no update or delete path.
    """

    # keccak-256 ids, 0x + 64 hex characters
    _ID_PATTERN = re.compile(r"^0x[a-f0-9]{64}$")

    def __init__(self, store_path: Path, publisher: str):
        """Initialize the store.

        Args:
            store_path: Directory holding the store index
            publisher: Identity writes are made under (the keeper address)
        """
        self.store_path = store_path
        self.db_path = store_path / "streams.db"
        self._publisher = publisher.lower()

        self.store_path.mkdir(parents=True, exist_ok=True)
        self._init_database()

    @property
    def publisher(self) -> str:
        return self._publisher

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path, timeout=5.0)
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    @with_db_retry
    def _init_database(self) -> None:
        """Create tables if missing."""
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS schemas (
                    schema_id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    definition TEXT NOT NULL,
                    parent_schema_id TEXT NOT NULL,
                    created_at TIMESTAMP NOT NULL
                )
            """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS entries (
                    seq INTEGER PRIMARY KEY AUTOINCREMENT,
                    publisher TEXT NOT NULL,
                    schema_id TEXT NOT NULL,
                    data_id TEXT NOT NULL,
                    payload BLOB NOT NULL,
                    created_at TIMESTAMP NOT NULL,
                    UNIQUE (publisher, schema_id, data_id)
                )
            """
            )

    def _validate_id(self, value: str) -> None:
        """Validate id format.

        Raises:
            StoreError: If the id is not 0x-prefixed 32-byte hex
        """
        if not self._ID_PATTERN.match(value):
            raise StoreError(
                f"Invalid id format: expected 0x + 64 hex characters, got: {value}"
            )

    def _write_handle(self, *parts: str) -> str:
        return "0x" + keccak(text="|".join((self._publisher, *parts))).hex()

    def compute_schema_id(self, definition: str) -> str:
        return compute_schema_id(definition)

    @with_db_retry
    def register_schemas(
        self,
        registrations: Sequence[SchemaRegistration],
        ignore_already_registered: bool = True,
    ) -> str:
        now = datetime.now(timezone.utc).isoformat()
        schema_ids = []

        with self._connect() as conn:
            for registration in registrations:
                schema_id = self.compute_schema_id(registration.definition)
                parent = registration.parent_schema_id
                self._validate_id(parent)

                if parent != ZERO_SCHEMA_ID and not self._has_schema(conn, parent):
                    raise StoreError(f"Unknown parent schema {parent}")

                if self._has_schema(conn, schema_id):
                    if not ignore_already_registered:
                        raise SchemaAlreadyRegisteredError(
                            f"Schema {registration.name} already exists ({schema_id})"
                        )
                    logger.debug(
                        "schema_already_registered",
                        name=registration.name,
                        schema_id=schema_id,
                    )
                    continue

                conn.execute(
                    """
                    INSERT INTO schemas
                    (schema_id, name, definition, parent_schema_id, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """,
                    (schema_id, registration.name, registration.definition, parent, now),
                )
                schema_ids.append(schema_id)

        return self._write_handle("register", *schema_ids)

    @staticmethod
    def _has_schema(conn: sqlite3.Connection, schema_id: str) -> bool:
        cursor = conn.execute("SELECT 1 FROM schemas WHERE schema_id = ?", (schema_id,))
        return cursor.fetchone() is not None

    def has_schema(self, schema_id: str) -> bool:
        """Check whether a schema id is registered."""
        with self._connect() as conn:
            return self._has_schema(conn, schema_id)

    @with_db_retry
    def set(self, entries: Sequence[StoredEntry]) -> str:
        if not entries:
            raise StoreError("Nothing to write")

        now = datetime.now(timezone.utc).isoformat()
        with self._connect() as conn:
            for entry in entries:
                self._validate_id(entry.id)
                self._validate_id(entry.schema_id)
                if not self._has_schema(conn, entry.schema_id):
                    raise StoreError(f"Schema {entry.schema_id} is not registered")

                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO entries
                    (publisher, schema_id, data_id, payload, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """,
                    (self._publisher, entry.schema_id, entry.id, entry.payload, now),
                )
                if cursor.rowcount == 0:
                    logger.debug("entry_already_stored", data_id=entry.id)

        return self._write_handle("set", *(entry.id for entry in entries))

    @with_db_retry
    def get_all_for_publisher_and_schema(
        self, schema_id: str, publisher: str
    ) -> list[bytes]:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                SELECT payload FROM entries
                WHERE schema_id = ? AND publisher = ?
                ORDER BY seq
            """,
                (schema_id, publisher.lower()),
            )
            return [bytes(row[0]) for row in cursor.fetchall()]

    def get_statistics(self) -> dict:
        """Get statistics about stored schemas and entries."""
        with self._connect() as conn:
            schemas = conn.execute("SELECT COUNT(*) FROM schemas").fetchone()[0]
            entries = conn.execute("SELECT COUNT(*) FROM entries").fetchone()[0]
            by_schema = dict(
                conn.execute(
                    "SELECT schema_id, COUNT(*) FROM entries GROUP BY schema_id"
                ).fetchall()
            )

        return {
            "total_schemas": schemas,
            "total_entries": entries,
            "entries_by_schema": by_schema,
            "store_size_bytes": self.db_path.stat().st_size,
        }
