"""
Utility Module

Logging, error types, amount conversions and formatting helpers shared by
the chain client, faucet claimer and swap orchestrator.

- Console logging through Rich (timestamped, colored by severity)
- Optional persistent log file
- Log messages are sanitized so private keys never reach the console or disk
"""

import os
import re
import logging
from typing import Optional, Union
from decimal import Decimal, ROUND_DOWN

from rich.logging import RichHandler
from rich.console import Console


# Global console for Rich output
console = Console()


class ConfigurationError(Exception):
    """No usable configuration (e.g. no valid private keys were found)."""
    pass


class TransportError(Exception):
    """The remote node was unreachable or returned a malformed response."""
    pass


class TransactionError(Exception):
    """A transaction was rejected on submission or its receipt reports failure."""
    pass


class ConfirmationTimeout(TimeoutError):
    """Confirmation wait exceeded its bound. The transaction may still be mined."""

    def __init__(self, tx_hash: str, timeout: float):
        super().__init__(f"Confirmation timeout after {timeout:g}s for {tx_hash}")
        self.tx_hash = tx_hash
        self.timeout = timeout


class InputValidationError(ValueError):
    """Invalid user input at the console boundary."""
    pass


class SecureLogger:
    """
    Logger that sanitizes sensitive data from log messages.

    Every wallet operation logs around signing keys, so anything that looks
    like a private key is redacted before it is emitted.
    """

    # Patterns to redact from logs
    SENSITIVE_PATTERNS = [
        (r'0x[a-fA-F0-9]{64}\b', '[PRIVATE_KEY_REDACTED]'),
        (r'\b[a-fA-F0-9]{64}\b', '[PRIVATE_KEY_REDACTED]'),
        (r'password["\']?\s*[:=]\s*["\'][^"\']+["\']', 'password=[REDACTED]'),
    ]

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @property
    def raw(self) -> logging.Logger:
        return self._logger

    def _sanitize(self, msg: str) -> str:
        """Remove sensitive data from log message."""
        if not isinstance(msg, str):
            msg = str(msg)

        sanitized = msg
        for pattern, replacement in self.SENSITIVE_PATTERNS:
            sanitized = re.sub(pattern, replacement, sanitized, flags=re.IGNORECASE)
        return sanitized

    def debug(self, msg: str, *args, **kwargs):
        self._logger.debug(self._sanitize(msg), *args, **kwargs)

    def info(self, msg: str, *args, **kwargs):
        self._logger.info(self._sanitize(msg), *args, **kwargs)

    def warning(self, msg: str, *args, **kwargs):
        self._logger.warning(self._sanitize(msg), *args, **kwargs)

    def error(self, msg: str, *args, **kwargs):
        self._logger.error(self._sanitize(msg), *args, **kwargs)

    def exception(self, msg: str, *args, **kwargs):
        self._logger.exception(self._sanitize(msg), *args, **kwargs)

    def critical(self, msg: str, *args, **kwargs):
        self._logger.critical(self._sanitize(msg), *args, **kwargs)


def setup_logging(log_level: str = "INFO", log_file: Optional[str] = None) -> SecureLogger:
    """
    Setup logging with Rich console output and an optional file.

    Safe to call more than once: handlers are replaced on the same named
    logger, so module-level ``logger`` references stay valid.
    """
    logger = logging.getLogger("prior_bot")
    logger.setLevel(getattr(logging, log_level.upper()))
    logger.propagate = False

    # Remove existing handlers
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_path=False,
        rich_tracebacks=True
    )
    rich_handler.setLevel(getattr(logging, log_level.upper()))
    rich_handler.setFormatter(logging.Formatter("%(message)s"))
    logger.addHandler(rich_handler)

    if log_file:
        log_path = os.path.abspath(log_file)
        os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        ))
        logger.addHandler(file_handler)

    return SecureLogger(logger)


# Initialize global secure logger (console only until configured)
logger = setup_logging()


# Amount conversions

def to_base_units(amount: Union[Decimal, str, int], decimals: int) -> int:
    """
    Convert a human-readable amount to on-chain integer units.

    Raises:
        ValueError: If the amount is negative or has more precision than
            the token supports.
    """
    value = Decimal(amount)
    if value < 0:
        raise ValueError(f"Amount cannot be negative, got {amount}")

    scaled = value.scaleb(decimals)
    if scaled != scaled.to_integral_value():
        raise ValueError(f"Amount {amount} exceeds {decimals} decimal places")
    return int(scaled)


def from_base_units(raw: int, decimals: int) -> Decimal:
    """Convert on-chain integer units to an exact Decimal amount."""
    return Decimal(int(raw)).scaleb(-decimals)


def truncate_amount(amount: Decimal, places: int = 6) -> Decimal:
    """Truncate (never round up) an amount to a number of decimal places."""
    return amount.quantize(Decimal(1).scaleb(-places), rounding=ROUND_DOWN)


# Formatting utilities

def format_amount(amount: Decimal, places: int = 4) -> str:
    """Format a token amount with fixed precision for display."""
    return f"{amount:.{places}f}"


def format_duration(seconds: int) -> str:
    """Format duration in seconds to human-readable string."""
    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        minutes = seconds // 60
        secs = seconds % 60
        return f"{minutes}m {secs}s" if secs > 0 else f"{minutes}m"
    else:
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        return f"{hours}h {minutes}m"


def format_address(address: str, length: int = 4) -> str:
    """Format Ethereum address with ellipsis (0x1234...abcd)."""
    if len(address) <= length * 2 + 2:
        return address
    return f"{address[:length + 2]}...{address[-length:]}"


def format_tx_hash(tx_hash: str, length: int = 4) -> str:
    """Format transaction hash with ellipsis."""
    if len(tx_hash) <= length * 2 + 2:
        return tx_hash
    return f"{tx_hash[:length + 2]}...{tx_hash[-length:]}"


# Validation utilities

def validate_private_key(key: str) -> bool:
    """Validate private key format."""
    if not key:
        return False

    # Remove 0x prefix if present
    key_clean = key[2:] if key.startswith("0x") else key

    # Check length and hex format
    if len(key_clean) != 64:
        return False

    try:
        int(key_clean, 16)
        return True
    except ValueError:
        return False


def mask_sensitive(value: str, visible_chars: int = 4) -> str:
    """Mask sensitive data, showing only first and last few characters."""
    if len(value) <= visible_chars * 2:
        return "*" * len(value)

    return value[:visible_chars] + "***" + value[-visible_chars:]
