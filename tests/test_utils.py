"""
Tests for amount conversions, formatting and log sanitizing.
"""

import sys
import logging
from pathlib import Path
from decimal import Decimal

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from utils import (
    SecureLogger,
    setup_logging,
    to_base_units,
    from_base_units,
    truncate_amount,
    format_amount,
    format_duration,
    format_address,
    format_tx_hash,
    validate_private_key,
    mask_sensitive,
    ConfirmationTimeout,
    InputValidationError,
)


class TestAmountConversions:
    """Decimal <-> base unit conversions."""

    def test_to_base_units_18_decimals(self):
        assert to_base_units(Decimal("0.005"), 18) == 5 * 10**15

    def test_to_base_units_6_decimals(self):
        assert to_base_units("2.5", 6) == 2_500_000

    def test_to_base_units_rejects_excess_precision(self):
        with pytest.raises(ValueError):
            to_base_units(Decimal("0.0000001"), 6)

    def test_to_base_units_rejects_negative(self):
        with pytest.raises(ValueError):
            to_base_units(Decimal("-1"), 18)

    def test_from_base_units(self):
        assert from_base_units(10**18, 18) == Decimal("1")
        assert from_base_units(1_234_567, 6) == Decimal("1.234567")

    def test_truncate_never_rounds_up(self):
        assert truncate_amount(Decimal("0.0009999999"), 6) == Decimal("0.000999")
        assert truncate_amount(Decimal("0.005"), 6) == Decimal("0.005")


class TestFormatting:

    def test_format_amount(self):
        assert format_amount(Decimal("1.23456"), 2) == "1.23"
        assert format_amount(Decimal("0"), 4) == "0.0000"

    def test_format_duration(self):
        assert format_duration(45) == "45s"
        assert format_duration(120) == "2m"
        assert format_duration(125) == "2m 5s"
        assert format_duration(5400) == "1h 30m"

    def test_format_address(self):
        address = "0x1234567890123456789012345678901234567890"
        assert format_address(address) == "0x1234...7890"
        assert format_address("0x12") == "0x12"

    def test_format_tx_hash(self):
        assert format_tx_hash("0x" + "ab" * 32) == "0xabab...abab"


class TestValidation:

    def test_validate_private_key(self):
        assert validate_private_key("0x" + "a" * 64)
        assert validate_private_key("b" * 64)
        assert not validate_private_key("0x1234")
        assert not validate_private_key("0x" + "z" * 64)
        assert not validate_private_key("")

    def test_mask_sensitive(self):
        assert mask_sensitive("abcdefghijkl", 2) == "ab***kl"
        assert mask_sensitive("short", 4) == "*****"


class TestErrors:

    def test_confirmation_timeout_is_timeout_error(self):
        error = ConfirmationTimeout("0xabc", 10)
        assert isinstance(error, TimeoutError)
        assert error.tx_hash == "0xabc"
        assert "10s" in str(error)

    def test_input_validation_error_is_value_error(self):
        assert issubclass(InputValidationError, ValueError)


class TestSecureLogger:

    def test_private_keys_are_redacted(self, caplog):
        base = logging.getLogger("test_secure_logger")
        secure = SecureLogger(base)

        with caplog.at_level(logging.INFO, logger="test_secure_logger"):
            secure.info(f"loaded key 0x{'a' * 64}")

        assert "a" * 64 not in caplog.text
        assert "[PRIVATE_KEY_REDACTED]" in caplog.text

    def test_setup_logging_replaces_handlers(self, tmp_path):
        log_file = tmp_path / "logs" / "bot.log"

        setup_logging("INFO", str(log_file))
        secure = setup_logging("DEBUG", str(log_file))

        assert len(secure.raw.handlers) == 2
        assert secure.raw.level == logging.DEBUG

        secure.info("hello file")
        for handler in secure.raw.handlers:
            handler.flush()
        assert "hello file" in log_file.read_text()

        setup_logging()
