"""Tests for the web3 ledger adapter."""

from unittest.mock import Mock

import pytest
from eth_account import Account
from web3.exceptions import TimeExhausted

from keeper.ledger.base import BatchReverted, ConfirmationTimeout, LedgerError
from keeper.ledger.web3_ledger import Web3Ledger

TEST_PRIVATE_KEY = "0x" + "11" * 32
CONTRACT_ADDRESS = "0x" + "22" * 20


@pytest.fixture
def mock_web3():
    web3 = Mock()
    web3.eth.gas_price = 6_000_000_000
    web3.eth.get_transaction_count.return_value = 7
    web3.eth.send_raw_transaction.return_value = b"\x12" * 32
    return web3


@pytest.fixture
def ledger(mock_web3):
    return Web3Ledger(
        rpc_url="http://localhost:8545",
        contract_address=CONTRACT_ADDRESS,
        private_key=TEST_PRIVATE_KEY,
        chain_id=50311,
        web3=mock_web3,
    )


@pytest.fixture
def contract(mock_web3):
    return mock_web3.eth.contract.return_value


class TestReads:
    """Stream and fee reads."""

    def test_should_use_key_address(self, ledger):
        assert ledger.address == Account.from_key(TEST_PRIVATE_KEY).address

    def test_should_return_active_stream_ids(self, ledger, contract):
        contract.functions.getActiveStreamIds.return_value.call.return_value = [3, 1, 2]

        assert ledger.get_active_stream_ids() == [3, 1, 2]

    def test_should_wrap_read_failures(self, ledger, contract):
        contract.functions.getActiveStreamIds.return_value.call.side_effect = ConnectionError(
            "connection refused"
        )

        with pytest.raises(LedgerError, match="connection refused"):
            ledger.get_active_stream_ids()

    def test_should_return_fee_price(self, ledger):
        assert ledger.get_fee_price() == 6_000_000_000


class TestSubmit:
    """Signed batch submission."""

    def test_should_sign_and_send_batch(self, ledger, contract, mock_web3):
        builder = contract.functions.batchUpdateStreams.return_value
        builder.build_transaction.return_value = {
            "to": CONTRACT_ADDRESS,
            "data": "0x",
            "gas": 200_000,
            "gasPrice": 6_000_000_000,
            "nonce": 7,
            "chainId": 50311,
            "value": 0,
        }

        tx_hash = ledger.submit_batch_update([4, 5])

        assert tx_hash == "0x" + "12" * 32
        contract.functions.batchUpdateStreams.assert_called_once_with([4, 5])
        tx_params = builder.build_transaction.call_args.args[0]
        assert tx_params["nonce"] == 7
        assert tx_params["chainId"] == 50311
        assert tx_params["from"] == ledger.address
        mock_web3.eth.get_transaction_count.assert_called_once_with(
            ledger.address, block_identifier="pending"
        )
        mock_web3.eth.send_raw_transaction.assert_called_once()

    def test_should_wrap_submission_failures(self, ledger, contract):
        contract.functions.batchUpdateStreams.return_value.build_transaction.side_effect = (
            ValueError("execution reverted")
        )

        with pytest.raises(LedgerError, match="execution reverted"):
            ledger.submit_batch_update([1])


class TestConfirmation:
    """Waiting for receipts."""

    def test_should_return_receipt_on_success(self, ledger, mock_web3):
        mock_web3.eth.wait_for_transaction_receipt.return_value = {
            "status": 1,
            "blockNumber": 1234,
        }

        receipt = ledger.await_confirmation("0xabc", timeout=60)

        assert receipt.block_number == 1234
        assert receipt.status == 1
        mock_web3.eth.wait_for_transaction_receipt.assert_called_once_with(
            "0xabc", timeout=60
        )

    def test_should_raise_confirmation_timeout(self, ledger, mock_web3):
        mock_web3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("timed out")

        with pytest.raises(ConfirmationTimeout):
            ledger.await_confirmation("0xabc", timeout=1)

    def test_should_raise_for_reverted_transaction(self, ledger, mock_web3):
        mock_web3.eth.wait_for_transaction_receipt.return_value = {
            "status": 0,
            "blockNumber": 99,
        }

        with pytest.raises(BatchReverted, match="block 99"):
            ledger.await_confirmation("0xabc", timeout=60)

    def test_should_wrap_other_receipt_errors(self, ledger, mock_web3):
        mock_web3.eth.wait_for_transaction_receipt.side_effect = OSError("reset")

        with pytest.raises(LedgerError) as exc_info:
            ledger.await_confirmation("0xabc", timeout=60)

        assert not isinstance(exc_info.value, ConfirmationTimeout)
