"""Ledger access for reading streams and submitting batched settlements."""

from keeper.ledger.base import (
    BatchReverted,
    ConfirmationReceipt,
    ConfirmationTimeout,
    Ledger,
    LedgerError,
)

__all__ = [
    "BatchReverted",
    "ConfirmationReceipt",
    "ConfirmationTimeout",
    "Ledger",
    "LedgerError",
]
