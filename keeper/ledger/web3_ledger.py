"""Ledger implementation over web3.py."""

from collections.abc import Sequence
from typing import Any

from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted

from keeper.core.logging import get_logger
from keeper.ledger.base import (
    BatchReverted,
    ConfirmationReceipt,
    ConfirmationTimeout,
    Ledger,
    LedgerError,
)

logger = get_logger(__name__)

# Subset of the stream contract ABI the keeper calls
STREAM_PAY_ABI: list[dict[str, Any]] = [
    {
        "name": "getActiveStreamIds",
        "type": "function",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256[]"}],
    },
    {
        "name": "batchUpdateStreams",
        "type": "function",
        "stateMutability": "nonpayable",
        "inputs": [{"name": "streamIds", "type": "uint256[]"}],
        "outputs": [],
    },
]


class Web3Ledger(Ledger):
    """Stream contract access through a JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        private_key: str,
        chain_id: int,
        web3: Web3 | None = None,
        request_timeout: int = 15,
    ):
        self.web3 = web3 or Web3(
            Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": request_timeout})
        )
        self.account = Account.from_key(private_key)
        self.chain_id = chain_id
        self.contract = self.web3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=STREAM_PAY_ABI
        )

    @property
    def address(self) -> str:
        return self.account.address

    def get_active_stream_ids(self) -> list[int]:
        try:
            ids = self.contract.functions.getActiveStreamIds().call()
        except Exception as e:
            raise LedgerError(f"getActiveStreamIds failed: {e}") from e
        return [int(stream_id) for stream_id in ids]

    def get_fee_price(self) -> int:
        try:
            return int(self.web3.eth.gas_price)
        except Exception as e:
            raise LedgerError(f"gas price query failed: {e}") from e

    def submit_batch_update(self, stream_ids: Sequence[int]) -> str:
        try:
            nonce = self.web3.eth.get_transaction_count(
                self.account.address, block_identifier="pending"
            )
            tx = self.contract.functions.batchUpdateStreams(
                [int(stream_id) for stream_id in stream_ids]
            ).build_transaction(
                {
                    "from": self.account.address,
                    "nonce": nonce,
                    "chainId": self.chain_id,
                }
            )
            signed = self.account.sign_transaction(tx)
            tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        except Exception as e:
            raise LedgerError(f"batchUpdateStreams submission failed: {e}") from e

        return Web3.to_hex(tx_hash)

    def await_confirmation(self, tx_hash: str, timeout: float) -> ConfirmationReceipt:
        try:
            receipt = self.web3.eth.wait_for_transaction_receipt(tx_hash, timeout=timeout)
        except TimeExhausted as e:
            raise ConfirmationTimeout(
                f"Transaction {tx_hash} not confirmed after {timeout}s"
            ) from e
        except Exception as e:
            raise LedgerError(f"Receipt lookup for {tx_hash} failed: {e}") from e

        raw_status = receipt.get("status", 1)
        status = 1 if raw_status is None else int(raw_status)
        block_number = receipt.get("blockNumber")
        if status != 1:
            raise BatchReverted(
                f"Transaction {tx_hash} reverted in block {block_number}"
            )
        return ConfirmationReceipt(
            tx_hash=tx_hash,
            block_number=int(block_number) if block_number is not None else None,
            status=status,
        )
