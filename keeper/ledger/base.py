"""Ledger capability used by the keeper."""

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass


class LedgerError(Exception):
    """Raised when a ledger read or write fails."""


class ConfirmationTimeout(LedgerError):
    """Raised when a transaction is not confirmed within the timeout."""


class BatchReverted(LedgerError):
    """Raised when a confirmed transaction reports failure."""


@dataclass(frozen=True)
class ConfirmationReceipt:
    """Receipt of a confirmed transaction."""

    tx_hash: str
    block_number: int | None
    status: int = 1


class Ledger(ABC):
    """Reads stream state and submits signed batch updates.

    All writes go out from a single signing identity and must be issued
    serially by the caller.
    """

    @abstractmethod
    def get_active_stream_ids(self) -> list[int]:
        """Ids of streams that currently accrue balance."""
        raise NotImplementedError

    @abstractmethod
    def get_fee_price(self) -> int:
        """Current network fee per gas unit, in wei."""
        raise NotImplementedError

    @abstractmethod
    def submit_batch_update(self, stream_ids: Sequence[int]) -> str:
        """Sign and send one batched settlement.

        Returns:
            Transaction hash
        """
        raise NotImplementedError

    @abstractmethod
    def await_confirmation(self, tx_hash: str, timeout: float) -> ConfirmationReceipt:
        """Block until ``tx_hash`` is mined or ``timeout`` seconds pass.

        Raises:
            ConfirmationTimeout: If the transaction is not mined in time
            BatchReverted: If the transaction was mined but reverted
        """
        raise NotImplementedError
