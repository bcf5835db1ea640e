"""
Wallet Module - Managed Accounts and Balance Cache
==================================================
Loads signing keys from the keys file, derives addresses and keeps a cache
of each wallet's native, PRIOR, USDC and USDT balances.

Keys file format:
- One private key per line (with or without 0x prefix)
- Lines starting with # are ignored, as are blank lines
- Created with a template comment if missing

Balances change only through explicit refresh calls.
"""

import asyncio
from pathlib import Path
from decimal import Decimal
from dataclasses import dataclass, field
from typing import List, Optional, Iterator, Union

from eth_account import Account
from eth_account.signers.local import LocalAccount

from contracts import PRIOR, USDC, USDT
from utils import (
    logger,
    format_address,
    format_amount,
    validate_private_key,
    ConfigurationError,
    TransportError,
)


KEYS_FILE_TEMPLATE = (
    "# Add your private keys here, one per line\n"
    "# Lines starting with # are ignored\n"
)


def derive_address(private_key: str) -> str:
    """Checksummed address for a private key."""
    return Account.from_key(private_key).address


@dataclass
class Wallet:
    """One managed account and its cached balances."""
    private_key: str = field(repr=False)
    address: str = field(init=False, default="")
    balance_native: Decimal = Decimal("0")
    balance_prior: Decimal = Decimal("0")
    balance_usdc: Decimal = Decimal("0")
    balance_usdt: Decimal = Decimal("0")

    def __post_init__(self):
        self._account: LocalAccount = Account.from_key(self.private_key)
        self.address = self._account.address

    @classmethod
    def from_key(cls, private_key: str) -> "Wallet":
        return cls(private_key=private_key)

    @property
    def account(self) -> LocalAccount:
        return self._account

    @property
    def short_address(self) -> str:
        return format_address(self.address)

    def summary(self) -> str:
        return (
            f"{self.short_address} | ETH: {format_amount(self.balance_native, 4)} | "
            f"PRIOR: {format_amount(self.balance_prior, 2)} | "
            f"USDC: {format_amount(self.balance_usdc, 2)} | "
            f"USDT: {format_amount(self.balance_usdt, 2)}"
        )


def load_private_keys(keys_file: Union[str, Path]) -> List[str]:
    """
    Read private keys from a newline-delimited file.

    If the file does not exist it is created with a template comment and
    an empty list is returned.
    """
    path = Path(keys_file)
    if not path.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(KEYS_FILE_TEMPLATE)
        logger.info(f"Created empty keys file at {path}")
        return []

    keys = []
    for line in path.read_text().splitlines():
        line = line.strip()
        if line and not line.startswith("#"):
            keys.append(line)
    return keys


class WalletRegistry:
    """
    Ordered set of managed wallets.

    Order follows the keys file and is stable until ``reload``.
    """

    def __init__(self, keys_file: Union[str, Path], client=None):
        """
        Args:
            keys_file: Path to the keys file
            client: ChainClient used by the refresh methods
        """
        self.keys_file = Path(keys_file)
        self.client = client
        self.wallets: List[Wallet] = []

    def __len__(self) -> int:
        return len(self.wallets)

    def __iter__(self) -> Iterator[Wallet]:
        return iter(self.wallets)

    def __getitem__(self, index: int) -> Wallet:
        return self.wallets[index]

    def load(self) -> List[Wallet]:
        """
        Load wallets from the keys file, replacing any loaded before.

        Malformed keys are skipped with a warning.

        Raises:
            ConfigurationError: If no usable keys were found
        """
        wallets = []
        for line_no, key in enumerate(load_private_keys(self.keys_file), start=1):
            if not validate_private_key(key):
                logger.warning(f"Skipping malformed private key #{line_no} in {self.keys_file}")
                continue
            try:
                wallets.append(Wallet.from_key(key))
            except Exception:
                # Right shape but outside the curve order (e.g. all zeros)
                logger.warning(f"Skipping invalid private key #{line_no} in {self.keys_file}")

        if not wallets:
            raise ConfigurationError(
                f"No private keys found. Please add keys to {self.keys_file}"
            )

        self.wallets = wallets
        logger.info(f"Loaded {len(wallets)} wallets")
        return wallets

    reload = load

    async def refresh_prior(self, index: int) -> Decimal:
        """
        Re-read only the PRIOR balance of one wallet.

        Raises:
            TransportError: If the node query fails
        """
        wallet = self.wallets[index]
        wallet.balance_prior = await self.client.get_token_balance(PRIOR, wallet.address)
        return wallet.balance_prior

    async def refresh(self, index: int) -> Optional[Wallet]:
        """
        Refresh all cached balances of one wallet.

        The cache is updated only when every query succeeds.

        Returns:
            The wallet, or None if the index is invalid or a query failed
        """
        if index < 0 or index >= len(self.wallets):
            return None

        wallet = self.wallets[index]
        try:
            native, prior, usdc, usdt = await asyncio.gather(
                self.client.get_native_balance(wallet.address),
                self.client.get_token_balance(PRIOR, wallet.address),
                self.client.get_token_balance(USDC, wallet.address),
                self.client.get_token_balance(USDT, wallet.address),
            )
        except TransportError as e:
            logger.error(f"Failed to update wallet {index + 1}: {e}")
            return None

        wallet.balance_native = native
        wallet.balance_prior = prior
        wallet.balance_usdc = usdc
        wallet.balance_usdt = usdt
        return wallet

    async def refresh_all(self) -> int:
        """Refresh every wallet in order. Returns the number refreshed."""
        logger.info(f"Updating data for {len(self.wallets)} wallets...")

        refreshed = 0
        for index in range(len(self.wallets)):
            wallet = await self.refresh(index)
            if wallet:
                refreshed += 1
                logger.info(f"Wallet {index + 1}: {wallet.summary()}")

        logger.info(f"Wallet data updated ({refreshed}/{len(self.wallets)})")
        return refreshed
