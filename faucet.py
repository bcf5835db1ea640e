"""
Faucet Claimer Module
=====================

Claims PRIOR from the testnet faucet for each managed wallet.

The faucet contract enforces a per-address cooldown. The cooldown is read
from the contract on every attempt and a claim is only submitted once it
has elapsed; early attempts are reported and skipped, never retried.
Claim transactions wait for confirmation without a local time bound.
"""

import time
from typing import Callable, Optional

from cancellation import CancellationToken
from chain_client import ChainClient
from config import Config
from contracts import faucet
from wallet import WalletRegistry
from utils import logger, format_duration


def cooldown_remaining(last_claim: int, cooldown: int, now: int) -> int:
    """Seconds until the next claim is allowed (0 if allowed now)."""
    next_allowed = int(last_claim) + int(cooldown)
    return max(0, next_allowed - int(now))


class FaucetClaimer:
    """Per-wallet and fleet-wide faucet claims."""

    def __init__(
        self,
        client: ChainClient,
        registry: WalletRegistry,
        config: Config,
        clock: Callable[[], float] = time.time
    ):
        self.client = client
        self.registry = registry
        self.config = config
        self.clock = clock
        self.faucet = faucet()

    async def get_wait_time(self, address: str) -> int:
        """Seconds this address must wait before claiming."""
        last_claim = await self.client.read(self.faucet.call("lastClaimTime", address))
        cooldown = await self.client.read(self.faucet.call("claimCooldown"))
        return cooldown_remaining(last_claim, cooldown, int(self.clock()))

    async def claim(self, index: int) -> bool:
        """
        Claim faucet tokens for one wallet.

        Returns:
            True if the claim transaction was mined successfully
        """
        wallet = self.registry[index]
        label = f"Wallet {index + 1}"

        try:
            wait_time = await self.get_wait_time(wallet.address)
            if wait_time > 0:
                logger.warning(f"{label}: Must wait {format_duration(wait_time)} before claiming")
                return False

            logger.info(f"{label}: Claiming PRIOR tokens...")
            handle = await self.client.call_contract_method(
                self.faucet.call("claimTokens"), wallet.account
            )
            logger.info(f"{label}: Transaction sent: {handle.short_hash}")

            receipt = await self.client.await_confirmation(handle)
            if not self.client.is_success(receipt):
                logger.error(f"{label}: Claim failed")
                return False

        except Exception as e:
            logger.error(f"{label}: Claim error: {e}")
            return False

        logger.info(f"{label}: Claim successful")
        await self.registry.refresh(index)
        return True

    async def claim_all(self, token: Optional[CancellationToken] = None) -> int:
        """
        Claim for every wallet in registry order, one at a time.

        Returns:
            Number of successful claims
        """
        token = token or CancellationToken()
        total = len(self.registry)
        logger.info(f"Attempting to claim faucet for all {total} wallets")

        success_count = 0
        for index in range(total):
            if token.cancelled:
                logger.warning("Faucet claims stopped")
                break

            if await self.claim(index):
                success_count += 1

            # Pace requests to avoid node rate limiting
            if index < total - 1:
                await token.sleep(self.config.claim_delay)

        logger.info(f"Completed claims for {success_count}/{total} wallets")
        return success_count
