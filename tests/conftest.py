"""
Shared fixtures: an in-memory chain client and zero-delay configuration.
"""

import sys
from pathlib import Path
from decimal import Decimal
from types import SimpleNamespace

import pytest

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from chain_client import ChainClient, TransactionHandle
from config import Config
from utils import TransportError


TEST_KEYS = [
    "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318",
    "0x" + "11" * 32,
    "0x" + "22" * 32,
]


class FakeChainClient:
    """
    Chain client double.

    - ``token_balances[(symbol, address)]`` / ``native_balances[address]``
      back the balance queries (default 0)
    - ``reads[method_name]`` is a value or ``fn(call)`` for view calls
    - ``outcomes`` is consumed one per confirmation wait: a receipt dict,
      an exception to raise, or ``fn(handle)`` returning a receipt
    """

    def __init__(self):
        self.native_balances = {}
        self.token_balances = {}
        self.reads = {}
        self.outcomes = []
        self.fail_balances = False

        self.submitted = []
        self.confirmations = []
        self.native_queries = 0

    async def get_native_balance(self, address):
        self.native_queries += 1
        if self.fail_balances:
            raise TransportError("node unreachable")
        return self.native_balances.get(address, Decimal("0"))

    async def get_token_balance(self, token, address):
        if self.fail_balances:
            raise TransportError("node unreachable")
        return self.token_balances.get((token.symbol, address), Decimal("0"))

    async def read(self, call):
        value = self.reads[call.method.name]
        return value(call) if callable(value) else value

    async def call_contract_method(self, call, account, gas_limit=None):
        tx_hash = "0x%064x" % (len(self.submitted) + 1)
        self.submitted.append(SimpleNamespace(
            method=call.method.name,
            to=call.to,
            args=call.args,
            sender=account.address,
            gas_limit=gas_limit,
            tx_hash=tx_hash
        ))
        return TransactionHandle(tx_hash=tx_hash, method=call.method.name, sender=account.address)

    async def await_confirmation(self, handle, timeout=None):
        self.confirmations.append((handle.method, timeout))
        outcome = self.outcomes.pop(0) if self.outcomes else {'status': 1}

        if isinstance(outcome, BaseException):
            raise outcome
        if callable(outcome):
            return outcome(handle)
        return outcome

    is_success = staticmethod(ChainClient.is_success)

    @property
    def methods(self):
        return [tx.method for tx in self.submitted]


@pytest.fixture
def fast_config(tmp_path):
    """Config with every pacing delay disabled."""
    return Config(
        rpc_url="http://localhost:8545",
        keys_file=str(tmp_path / "private_keys.txt"),
        cycle_delay_min=0,
        cycle_delay_max=0,
        wallet_delay_min=0,
        wallet_delay_max=0,
        claim_delay=0,
        receipt_poll_interval=0.01,
        read_retries=1,
    )


@pytest.fixture
def fake_client():
    return FakeChainClient()


@pytest.fixture
def keys_file(fast_config):
    def write(keys):
        path = Path(fast_config.keys_file)
        path.write_text("\n".join(keys) + "\n")
        return path
    return write


@pytest.fixture
def registry(fast_config, fake_client, keys_file):
    """Registry with two loaded wallets, each holding 1 PRIOR."""
    from wallet import WalletRegistry

    keys_file(TEST_KEYS[:2])
    reg = WalletRegistry(fast_config.keys_file, fake_client)
    reg.load()
    for wallet in reg:
        fake_client.token_balances[("PRIOR", wallet.address)] = Decimal("1")
    return reg
