"""
Swap Orchestrator Module - Multi-Wallet Swap Cycles
===================================================

Drives repeated PRIOR -> USDC/USDT swaps for one wallet or for the whole
registry.

Each cycle is an approve transaction followed by a dependent swap
transaction. Both confirmation waits are bounded; a timeout or failed
receipt abandons the current cycle only and the run moves on. Nothing is
retried.

Wallets are processed strictly one after another in registry order. A
shared CancellationToken is checked between cycles and wallets and cuts
pacing delays short; in-flight transactions always run to completion.
"""

import random
from enum import Enum
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field

from rich.table import Table
from rich import box

from cancellation import CancellationToken
from chain_client import ChainClient
from config import Config
from contracts import Token, PRIOR, USDC, USDT, erc20, router, swap_call
from wallet import WalletRegistry
from utils import (
    logger,
    to_base_units,
    truncate_amount,
    ConfirmationTimeout,
    InputValidationError,
)


class CycleOutcome(Enum):
    """How a single approve + swap cycle ended."""
    SWAPPED = "swapped"
    APPROVAL_FAILED = "approval_failed"
    APPROVAL_TIMEOUT = "approval_timeout"
    SWAP_FAILED = "swap_failed"
    SWAP_TIMEOUT = "swap_timeout"
    ERROR = "error"


@dataclass
class SwapCycleResult:
    """Result of one swap cycle."""
    wallet_index: int
    cycle: int
    target: str
    amount: Decimal
    outcome: CycleOutcome = CycleOutcome.ERROR
    approve_tx: Optional[str] = None
    swap_tx: Optional[str] = None
    error: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def success(self) -> bool:
        return self.outcome == CycleOutcome.SWAPPED

    def to_dict(self) -> Dict[str, Any]:
        return {
            'wallet_index': self.wallet_index,
            'cycle': self.cycle,
            'target': self.target,
            'amount': str(self.amount),
            'outcome': self.outcome.value,
            'approve_tx': self.approve_tx,
            'swap_tx': self.swap_tx,
            'error': self.error,
            'timestamp': self.timestamp
        }


@dataclass
class SwapStats:
    """Aggregated statistics for swap cycles in this session."""
    cycles_attempted: int = 0
    swaps_succeeded: int = 0
    cycles_abandoned: int = 0
    wallet_stats: Dict[int, Dict[str, int]] = field(default_factory=dict)

    @property
    def success_rate(self) -> float:
        if self.cycles_attempted == 0:
            return 0.0
        return (self.swaps_succeeded / self.cycles_attempted) * 100

    def record(self, result: SwapCycleResult):
        self.cycles_attempted += 1
        per_wallet = self.wallet_stats.setdefault(
            result.wallet_index, {'attempted': 0, 'succeeded': 0, 'abandoned': 0}
        )
        per_wallet['attempted'] += 1

        if result.success:
            self.swaps_succeeded += 1
            per_wallet['succeeded'] += 1
        else:
            self.cycles_abandoned += 1
            per_wallet['abandoned'] += 1


def target_for_cycle(cycle: int) -> Token:
    """Output token for a 1-indexed cycle: odd -> USDC, even -> USDT."""
    return USDC if cycle % 2 == 1 else USDT


def compute_swap_amount(
    balance: Decimal,
    ceiling: Decimal,
    fraction: Decimal,
    places: int = 6
) -> Decimal:
    """
    Amount of PRIOR to swap in one cycle.

    Capped by ``ceiling`` and by ``balance * fraction``, then truncated so
    rounding can never exceed either cap.
    """
    if balance <= 0:
        return Decimal("0")
    return truncate_amount(min(ceiling, balance * fraction), places)


class SwapOrchestrator:
    """
    Sequential swap-cycle driver for the wallet registry.

    Handles:
    - Per-wallet approve -> swap cycles with bounded confirmation waits
    - Alternating output token per cycle
    - Periodic balance refreshes
    - Fleet runs with pacing and cooperative cancellation
    """

    def __init__(
        self,
        client: ChainClient,
        registry: WalletRegistry,
        config: Config,
        rng: Optional[random.Random] = None
    ):
        self.client = client
        self.registry = registry
        self.config = config
        self.rng = rng or random.Random()

        self.ceiling = Decimal(str(config.swap_amount_ceiling))
        self.fraction = Decimal(str(config.swap_balance_fraction))

        self.prior = erc20(PRIOR)
        self.router = router()

        self.stats = SwapStats()
        self.history: List[SwapCycleResult] = []

    def _record(self, result: SwapCycleResult):
        self.history.append(result)
        self.stats.record(result)

    async def _run_cycle(
        self,
        index: int,
        cycle: int,
        total_cycles: int,
        amount: Decimal
    ) -> SwapCycleResult:
        """Run one approve + swap cycle. Never raises."""
        wallet = self.registry[index]
        label = f"Wallet {index + 1}"
        target = target_for_cycle(cycle)
        timeout = self.config.confirmation_timeout_seconds

        result = SwapCycleResult(
            wallet_index=index,
            cycle=cycle,
            target=target.symbol,
            amount=amount
        )

        try:
            amount_wei = to_base_units(amount, PRIOR.decimals)

            # Approve router to spend PRIOR
            logger.info(f"{label}: Approving {amount} PRIOR for swap")
            approve_tx = await self.client.call_contract_method(
                self.prior.call("approve", self.router.address, amount_wei),
                wallet.account
            )
            result.approve_tx = approve_tx.tx_hash
            logger.info(f"{label}: Approval sent: {approve_tx.short_hash}")

            try:
                receipt = await self.client.await_confirmation(approve_tx, timeout=timeout)
            except ConfirmationTimeout as e:
                result.outcome = CycleOutcome.APPROVAL_TIMEOUT
                result.error = str(e)
                logger.warning(f"{label}: Approval timeout after {timeout:g}s, moving to next cycle")
                return result

            if not self.client.is_success(receipt):
                result.outcome = CycleOutcome.APPROVAL_FAILED
                logger.error(f"{label}: Approval failed, skipping cycle")
                return result

            # Swap with a fixed gas limit; estimation fails on this router
            logger.info(f"{label}: Swapping {amount} PRIOR to {target.symbol}")
            swap_tx = await self.client.call_contract_method(
                swap_call(target, amount_wei),
                wallet.account,
                gas_limit=self.config.swap_gas_limit
            )
            result.swap_tx = swap_tx.tx_hash
            logger.info(f"{label}: Swap transaction sent: {swap_tx.short_hash}")

            try:
                receipt = await self.client.await_confirmation(swap_tx, timeout=timeout)
            except ConfirmationTimeout as e:
                result.outcome = CycleOutcome.SWAP_TIMEOUT
                result.error = str(e)
                logger.warning(f"{label}: Swap timeout after {timeout:g}s, moving to next cycle")
                return result

            if not self.client.is_success(receipt):
                result.outcome = CycleOutcome.SWAP_FAILED
                logger.error(
                    f"{label}: Swap to {target.symbol} failed with status: {receipt.get('status')}"
                )
                return result

            result.outcome = CycleOutcome.SWAPPED
            logger.info(f"{label}: Swap to {target.symbol} successful ({cycle}/{total_cycles})")

            if cycle % self.config.balance_refresh_every == 0 or cycle == total_cycles:
                await self.registry.refresh(index)

        except Exception as e:
            result.error = str(e)
            logger.error(f"{label}: Swap error: {e}")

        return result

    async def run_swap_cycles(
        self,
        index: int,
        total_cycles: int,
        token: Optional[CancellationToken] = None
    ) -> bool:
        """
        Run ``total_cycles`` swap cycles for one wallet.

        Args:
            index: Wallet index in the registry
            total_cycles: Number of cycles requested
            token: Cancellation token checked between cycles

        Returns:
            True if the run finished (or was cancelled) without a top-level
            error. Abandoned cycles do not count as failure.
        """
        if total_cycles <= 0:
            raise InputValidationError(f"Number of swaps must be positive, got {total_cycles}")

        token = token or CancellationToken()
        label = f"Wallet {index + 1}"

        try:
            logger.info(f"{label}: Starting {total_cycles} swap cycles")

            balance = await self.registry.refresh_prior(index)
            logger.info(f"{label}: Current PRIOR balance: {balance}")

            for cycle in range(1, total_cycles + 1):
                if token.cancelled:
                    logger.warning(f"{label}: Stopped before cycle {cycle}/{total_cycles}")
                    break

                amount = compute_swap_amount(
                    self.registry[index].balance_prior,
                    self.ceiling,
                    self.fraction,
                    self.config.swap_amount_places
                )
                if amount <= 0:
                    logger.error(f"{label}: Insufficient PRIOR balance to swap")
                    return False

                result = await self._run_cycle(index, cycle, total_cycles, amount)
                self._record(result)

                if cycle < total_cycles and not token.cancelled:
                    delay = self.rng.uniform(self.config.cycle_delay_min, self.config.cycle_delay_max)
                    logger.info(f"{label}: Waiting {int(delay)}s before next swap")
                    await token.sleep(delay)

            logger.info(f"{label}: Swap operations completed")
            return True

        except Exception as e:
            logger.error(f"{label}: Error: {e}")
            return False

    async def run_swap_cycles_all_wallets(
        self,
        total_cycles_each: int,
        token: Optional[CancellationToken] = None
    ) -> int:
        """
        Run swap cycles for every wallet, one wallet at a time.

        Resets ``token`` before starting.

        Returns:
            Number of wallets whose run completed
        """
        if total_cycles_each <= 0:
            raise InputValidationError(f"Number of swaps must be positive, got {total_cycles_each}")

        total = len(self.registry)
        if total == 0:
            logger.error("No wallets available")
            return 0

        token = token or CancellationToken()
        token.reset()

        completed = 0
        logger.info(f"Starting auto swap for all {total} wallets, {total_cycles_each} swaps each")

        try:
            for index in range(total):
                if token.cancelled:
                    logger.warning("Auto swap stopped")
                    break

                logger.info(f"Processing wallet {index + 1}/{total}")
                if await self.run_swap_cycles(index, total_cycles_each, token):
                    completed += 1

                if index < total - 1 and not token.cancelled:
                    wait = self.rng.uniform(self.config.wallet_delay_min, self.config.wallet_delay_max)
                    logger.info(f"Waiting {int(wait)}s before next wallet")
                    await token.sleep(wait)
        finally:
            logger.info("All wallet swap operations completed")

        return completed

    def get_stats_table(self) -> Table:
        """Get a Rich table with current statistics."""
        table = Table(title="Swap Statistics", box=box.ROUNDED)

        table.add_column("Wallet", style="cyan")
        table.add_column("Address", style="dim")
        table.add_column("Cycles", style="blue", justify="right")
        table.add_column("Swapped", style="green", justify="right")
        table.add_column("Abandoned", style="red", justify="right")

        for index, counts in sorted(self.stats.wallet_stats.items()):
            address = self.registry[index].short_address if index < len(self.registry) else "-"
            table.add_row(
                str(index + 1),
                address,
                str(counts['attempted']),
                str(counts['succeeded']),
                str(counts['abandoned'])
            )

        table.add_row(
            "TOTAL",
            f"{self.stats.success_rate:.1f}%",
            str(self.stats.cycles_attempted),
            str(self.stats.swaps_succeeded),
            str(self.stats.cycles_abandoned),
            style="bold"
        )

        return table
