"""
Configuration Management Module

Runtime settings for the PRIOR testnet bot. Values come from dataclass
defaults, an optional YAML file, then environment variables (a local
``.env`` is loaded first), in that order of precedence.

Contract addresses are not configurable; see ``contracts.py``.
"""

import os
from pathlib import Path
from typing import Dict, Any, Optional
from dataclasses import dataclass, asdict

import yaml
from dotenv import load_dotenv

# Setup basic logging for this module
import logging
logger = logging.getLogger(__name__)


# Environment variables mapped onto Config fields
ENV_OVERRIDES = {
    "RPC_URL": "rpc_url",
    "KEYS_FILE": "keys_file",
    "LOG_LEVEL": "log_level",
    "LOG_FILE": "log_file",
}


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class Config:
    """Bot configuration settings."""

    # Network
    rpc_url: str = ""
    request_timeout_seconds: int = 30
    receipt_poll_interval: float = 1.0

    # Wallets
    keys_file: str = "./private_keys.txt"

    # Swap policy
    swap_amount_ceiling: str = "0.005"     # PRIOR per cycle, upper bound
    swap_balance_fraction: str = "0.8"     # Never swap more than this share of the cached balance
    swap_amount_places: int = 6
    swap_gas_limit: int = 500000
    confirmation_timeout_seconds: float = 10.0
    balance_refresh_every: int = 3

    # Pacing (seconds)
    cycle_delay_min: float = 5.0
    cycle_delay_max: float = 15.0
    wallet_delay_min: float = 2.0
    wallet_delay_max: float = 4.0
    claim_delay: float = 3.0

    # Gas settings
    gas_limit_buffer: float = 1.2  # 20% buffer on estimates

    # Operation
    log_level: str = "INFO"
    log_file: Optional[str] = None
    read_retries: int = 3

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        # Filter only valid fields
        valid_fields = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**valid_fields)


class ConfigManager:
    """Loads configuration from an optional YAML file and the environment."""

    def __init__(self, config_path: Path = Path("./bot_config.yaml")):
        self.config_path = Path(config_path)

    def read_raw_config(self) -> Dict[str, Any]:
        """Read the YAML file, or an empty mapping when it does not exist."""
        if not self.config_path.exists():
            return {}

        with open(self.config_path, 'r') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Config file must contain a mapping: {self.config_path}")
        return data

    def load_config(self, env: Optional[Dict[str, str]] = None) -> Config:
        """
        Load configuration.

        Args:
            env: Environment mapping (defaults to ``os.environ`` after
                loading ``.env``)

        Returns:
            Config with file values and environment overrides applied
        """
        if env is None:
            load_dotenv()
            env = dict(os.environ)

        data = self.read_raw_config()
        for env_name, field_name in ENV_OVERRIDES.items():
            value = env.get(env_name)
            if value:
                data[field_name] = value

        config = Config.from_dict(data)

        level = str(config.log_level).upper()
        if level not in LOG_LEVELS:
            raise ValueError(
                f"Invalid log_level '{config.log_level}', expected one of {', '.join(LOG_LEVELS)}"
            )
        config.log_level = level

        logger.debug("Configuration loaded from %s", self.config_path)
        return config

    def save_default(self, overwrite: bool = False) -> bool:
        """Write the default configuration template. Returns False if it exists."""
        if self.config_path.exists() and not overwrite:
            return False

        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, 'w') as f:
            f.write(DEFAULT_CONFIG + "\n")

        logger.info(f"Configuration saved to {self.config_path}")
        return True


# Default configuration template
DEFAULT_CONFIG = """
# PRIOR Testnet Bot Configuration
# RPC_URL, KEYS_FILE, LOG_LEVEL and LOG_FILE environment variables override these.

rpc_url: ""
keys_file: ./private_keys.txt

# Swap policy
swap_amount_ceiling: "0.005"
swap_balance_fraction: "0.8"
swap_gas_limit: 500000
confirmation_timeout_seconds: 10
balance_refresh_every: 3

# Pacing (seconds)
cycle_delay_min: 5
cycle_delay_max: 15
wallet_delay_min: 2
wallet_delay_max: 4
claim_delay: 3

# Operation
log_level: INFO
log_file: null
""".strip()
