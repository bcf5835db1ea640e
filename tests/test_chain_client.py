"""
Chain client tests against a mocked Web3 instance.
"""

import sys
import asyncio
from pathlib import Path
from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock, Mock

import pytest
from eth_abi import encode
from web3.exceptions import TimeExhausted

sys.path.insert(0, str(Path(__file__).parent.parent))

from chain_client import ChainClient, TransactionHandle, UNBOUNDED_WAIT_SECONDS
from config import Config
from contracts import USDC, NATIVE, faucet, swap_call
from utils import (
    ConfigurationError,
    ConfirmationTimeout,
    TransactionError,
    TransportError,
)


ADDRESS = "0x2c7536E3605D9C16a7a3D7b1898e529396a65c23"


@pytest.fixture
def config():
    return Config(rpc_url="http://localhost:8545", read_retries=1, receipt_poll_interval=0.01)


@pytest.fixture
def web3():
    mock = MagicMock()
    mock.eth.chain_id = 1
    mock.eth.gas_price = 10**9
    mock.eth.get_transaction_count.return_value = 7
    return mock


@pytest.fixture
def client(config, web3):
    return ChainClient(config, web3=web3)


@pytest.fixture
def account():
    signer = Mock()
    signer.address = ADDRESS
    signer.sign_transaction.return_value = SimpleNamespace(raw_transaction=b"\x02signed")
    return signer


class TestReads:

    def test_requires_rpc_url(self):
        with pytest.raises(ConfigurationError):
            ChainClient(Config(rpc_url=""))

    def test_native_balance_scaled(self, client, web3):
        web3.eth.get_balance.return_value = 15 * 10**17

        balance = asyncio.run(client.get_native_balance(ADDRESS))

        assert balance == Decimal("1.5")
        web3.eth.get_balance.assert_called_once_with(ADDRESS)

    def test_native_token_uses_native_balance(self, client, web3):
        web3.eth.get_balance.return_value = 10**18
        assert asyncio.run(client.get_token_balance(NATIVE, ADDRESS)) == Decimal("1")
        web3.eth.call.assert_not_called()

    def test_token_balance_uses_token_decimals(self, client, web3):
        web3.eth.call.return_value = encode(["uint256"], [2_500_000])

        balance = asyncio.run(client.get_token_balance(USDC, ADDRESS))

        assert balance == Decimal("2.5")
        request = web3.eth.call.call_args[0][0]
        assert request['data'].startswith("0x70a08231")

    def test_read_decodes_output(self, client, web3):
        web3.eth.call.return_value = encode(["uint256"], [86400])
        assert asyncio.run(client.read(faucet().call("claimCooldown"))) == 86400

    def test_transport_failure_raises(self, client, web3):
        web3.eth.get_balance.side_effect = ConnectionError("refused")

        with pytest.raises(TransportError):
            asyncio.run(client.get_native_balance(ADDRESS))

    def test_reads_are_retried(self, config, web3):
        config.read_retries = 2
        web3.eth.get_balance.side_effect = [ConnectionError("blip"), 10**18]
        client = ChainClient(config, web3=web3)

        assert asyncio.run(client.get_native_balance(ADDRESS)) == Decimal("1")
        assert web3.eth.get_balance.call_count == 2

    def test_malformed_response_raises(self, client, web3):
        web3.eth.call.return_value = b""

        with pytest.raises(TransportError):
            asyncio.run(client.read(faucet().call("claimCooldown")))


class TestTransactions:

    def test_fixed_gas_limit_skips_estimation(self, client, web3, account):
        web3.eth.send_raw_transaction.return_value = b"\xab" * 32

        handle = asyncio.run(client.call_contract_method(swap_call(USDC, 1000), account, gas_limit=500000))

        assert handle.tx_hash == "0x" + "ab" * 32
        assert handle.method == "swapPriorToUSDC"
        web3.eth.estimate_gas.assert_not_called()

        tx = account.sign_transaction.call_args[0][0]
        assert tx['gas'] == 500000
        assert tx['nonce'] == 7
        assert tx['chainId'] == 1
        assert 'from' not in tx
        web3.eth.send_raw_transaction.assert_called_once_with(b"\x02signed")

    def test_estimated_gas_gets_buffer(self, client, config, web3, account):
        web3.eth.estimate_gas.return_value = 80000
        web3.eth.send_raw_transaction.return_value = b"\x01" * 32

        asyncio.run(client.call_contract_method(faucet().call("claimTokens"), account))

        tx = account.sign_transaction.call_args[0][0]
        assert tx['gas'] == int(80000 * config.gas_limit_buffer)

    def test_submission_failure_raises(self, client, web3, account):
        web3.eth.send_raw_transaction.side_effect = ValueError("nonce too low")

        with pytest.raises(TransactionError):
            asyncio.run(client.call_contract_method(swap_call(USDC, 1), account, gas_limit=500000))


class TestConfirmation:

    def test_receipt_returned_when_mined(self, client, config, web3):
        web3.eth.wait_for_transaction_receipt.return_value = {'status': 1}
        handle = TransactionHandle(tx_hash="0x01", method="approve", sender=ADDRESS)

        receipt = asyncio.run(client.await_confirmation(handle, timeout=5))

        assert client.is_success(receipt)
        web3.eth.wait_for_transaction_receipt.assert_called_once_with(
            "0x01", timeout=5, poll_latency=config.receipt_poll_interval
        )

    def test_timeout_raises(self, client, web3):
        web3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("not mined")
        handle = TransactionHandle(tx_hash="0x02", method="approve", sender=ADDRESS)

        with pytest.raises(ConfirmationTimeout) as exc_info:
            asyncio.run(client.await_confirmation(handle, timeout=0.05))

        assert exc_info.value.tx_hash == "0x02"
        assert exc_info.value.timeout == 0.05

    def test_unbounded_wait_uses_long_timeout(self, client, web3):
        web3.eth.wait_for_transaction_receipt.return_value = {'status': 1}
        handle = TransactionHandle(tx_hash="0x03", method="claimTokens", sender=ADDRESS)

        asyncio.run(client.await_confirmation(handle))

        kwargs = web3.eth.wait_for_transaction_receipt.call_args[1]
        assert kwargs['timeout'] == UNBOUNDED_WAIT_SECONDS

    def test_is_success(self):
        assert ChainClient.is_success({'status': 1})
        assert not ChainClient.is_success({'status': 0})
        assert not ChainClient.is_success(None)
