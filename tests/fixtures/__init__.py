"""Test fixture package for stream-keeper.

Contains fixtures for:
- An in-memory ledger recording submissions
- A temporary SQLite audit store and publisher
"""

from .keeper import (
    audit_publisher,
    failing_ledger,
    fake_ledger,
    streams_store,
    temp_store_path,
)

__all__ = [
    # Ledger
    "fake_ledger",
    "failing_ledger",
    # Audit store
    "temp_store_path",
    "streams_store",
    "audit_publisher",
]
