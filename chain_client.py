"""
Chain Client Module
===================

Read queries and signed transaction submission against the remote node.

web3.py is synchronous, so every RPC runs in a worker thread via
``asyncio.to_thread``; each remote call is therefore a suspension point for
the event loop that drives the wallets.

Failure policy:
- Reads are retried briefly, then surface as ``TransportError``
- Submissions surface as ``TransactionError`` and are never retried
- Confirmation waits raise ``ConfirmationTimeout`` when their bound elapses;
  the submitted transaction is left alone and may still be mined
"""

import time
import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, Optional

from web3 import Web3
from web3.exceptions import TimeExhausted
from eth_account.signers.local import LocalAccount
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential

from config import Config
from contracts import ContractCall, Token, NATIVE, erc20
from utils import (
    logger,
    from_base_units,
    format_tx_hash,
    ConfigurationError,
    ConfirmationTimeout,
    TransactionError,
    TransportError,
)


# Used when no bound is requested (faucet claims wait until mined)
UNBOUNDED_WAIT_SECONDS = 7 * 24 * 3600


@dataclass
class TransactionHandle:
    """A submitted (not necessarily mined) transaction."""
    tx_hash: str
    method: str
    sender: str
    submitted_at: float = field(default_factory=time.time)

    @property
    def short_hash(self) -> str:
        return format_tx_hash(self.tx_hash)


class ChainClient:
    """
    Thin async facade over a web3 HTTP connection.

    One instance is shared by every wallet; the signing account is passed
    per call.
    """

    def __init__(self, config: Config, web3: Optional[Web3] = None):
        """
        Initialize the client.

        Args:
            config: Bot configuration (RPC URL, timeouts, gas buffer)
            web3: Pre-built Web3 instance (tests inject a mock)
        """
        self.config = config

        if web3 is None:
            if not config.rpc_url:
                raise ConfigurationError("RPC_URL is not set")
            web3 = Web3(Web3.HTTPProvider(
                config.rpc_url,
                request_kwargs={'timeout': config.request_timeout_seconds}
            ))

        self.web3 = web3
        self._chain_id: Optional[int] = None

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def _read(self, fn: Callable, *args: Any) -> Any:
        """Run a blocking read with a short bounded retry."""
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(max(1, self.config.read_retries)),
                wait=wait_exponential(multiplier=0.5, min=0.5, max=4),
                reraise=True
            ):
                with attempt:
                    return await asyncio.to_thread(fn, *args)
        except Exception as e:
            name = getattr(fn, '__name__', 'rpc call')
            raise TransportError(f"{name} failed: {e}") from e

    async def get_native_balance(self, address: str) -> Decimal:
        """Get native coin balance in ether units."""
        raw = await self._read(self.web3.eth.get_balance, address)
        return from_base_units(raw, NATIVE.decimals)

    async def get_token_balance(self, token: Token, address: str) -> Decimal:
        """Get an ERC20 balance scaled by the token's decimals."""
        if token.is_native:
            return await self.get_native_balance(address)

        raw = await self.read(erc20(token).call("balanceOf", address))
        return from_base_units(raw, token.decimals)

    async def read(self, call: ContractCall) -> Any:
        """Execute a view call and decode its output."""
        result = await self._read(self.web3.eth.call, {
            'to': call.to,
            'data': Web3.to_hex(call.data),
        })

        try:
            return call.method.decode_output(result)
        except Exception as e:
            raise TransportError(f"Malformed response from {call.method.name}: {e}") from e

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def _get_chain_id(self) -> int:
        if self._chain_id is None:
            self._chain_id = self.web3.eth.chain_id
        return self._chain_id

    def _build_transaction(
        self,
        call: ContractCall,
        account: LocalAccount,
        gas_limit: Optional[int]
    ) -> Dict[str, Any]:
        tx = {
            'from': account.address,
            'to': call.to,
            'data': Web3.to_hex(call.data),
            'value': 0,
            'nonce': self.web3.eth.get_transaction_count(account.address, 'pending'),
            'chainId': self._get_chain_id(),
            'gasPrice': self.web3.eth.gas_price,
        }

        if gas_limit:
            tx['gas'] = gas_limit
        else:
            estimate = self.web3.eth.estimate_gas(tx)
            tx['gas'] = int(estimate * self.config.gas_limit_buffer)

        return tx

    def _sign_and_send(
        self,
        call: ContractCall,
        account: LocalAccount,
        gas_limit: Optional[int]
    ) -> str:
        tx = self._build_transaction(call, account, gas_limit)
        tx.pop('from')

        signed = account.sign_transaction(tx)
        tx_hash = self.web3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    async def call_contract_method(
        self,
        call: ContractCall,
        account: LocalAccount,
        gas_limit: Optional[int] = None
    ) -> TransactionHandle:
        """
        Sign and submit a state-changing call.

        Returns as soon as the node accepts the transaction; use
        ``await_confirmation`` to wait for it to be mined.

        Args:
            call: Contract call to execute
            account: Signing account
            gas_limit: Fixed gas limit; skips estimation when given

        Raises:
            TransactionError: If building, signing or submission fails
        """
        try:
            tx_hash = await asyncio.to_thread(self._sign_and_send, call, account, gas_limit)
        except Exception as e:
            raise TransactionError(f"{call.method.name} submission failed: {e}") from e

        handle = TransactionHandle(tx_hash=tx_hash, method=call.method.name, sender=account.address)
        logger.debug(f"{call.describe()} submitted: {handle.short_hash}")
        return handle

    async def await_confirmation(
        self,
        handle: TransactionHandle,
        timeout: Optional[float] = None
    ) -> Any:
        """
        Wait until the transaction is mined.

        Args:
            handle: Submitted transaction
            timeout: Seconds to wait, or None to wait until mined

        Returns:
            Transaction receipt (check with ``is_success``)

        Raises:
            ConfirmationTimeout: If ``timeout`` elapses first
        """
        wait_seconds = UNBOUNDED_WAIT_SECONDS if timeout is None else timeout

        try:
            return await asyncio.to_thread(
                self.web3.eth.wait_for_transaction_receipt,
                handle.tx_hash,
                timeout=wait_seconds,
                poll_latency=self.config.receipt_poll_interval
            )
        except TimeExhausted:
            raise ConfirmationTimeout(handle.tx_hash, wait_seconds) from None

    @staticmethod
    def is_success(receipt: Any) -> bool:
        return receipt is not None and receipt.get('status') == 1
