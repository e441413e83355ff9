"""
Engine configuration.

Usage:
    from src.config.settings import load_engine_config

    config = load_engine_config()
    config.fee_bps, config.min_stake

Values come from config/engine.yaml, overridden by environment variables
(a .env file at the repo root is loaded on import).

CLI check:
    python -m src.config.settings --check
"""

import logging
import os
import sys
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# src/config/settings.py -> repo root
REPO_ROOT = Path(__file__).resolve().parent.parent.parent
DEFAULT_CONFIG_PATH = REPO_ROOT / "config" / "engine.yaml"

_env_path = REPO_ROOT / ".env"
if _env_path.exists():
    load_dotenv(_env_path)
else:
    load_dotenv()

DEFAULT_FEE_BPS = 200
DEFAULT_MIN_STAKE = 1_000_000
DEFAULT_DECIMALS = 6
DEFAULT_JOURNAL_DIR = "data/journal"

BPS_DENOMINATOR = 10_000


class ConfigError(Exception):
    """Raised when engine configuration is invalid."""
    pass


@dataclass(frozen=True)
class EngineConfig:
    """Settlement and intake parameters shared by the engine components."""
    fee_bps: int = DEFAULT_FEE_BPS
    min_stake: int = DEFAULT_MIN_STAKE
    decimals: int = DEFAULT_DECIMALS
    journal_dir: str = DEFAULT_JOURNAL_DIR

    def __post_init__(self):
        validate_config(self)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def validate_config(config: EngineConfig) -> None:
    """
    Check engine parameters for consistency.

    Raises:
        ConfigError: If any parameter is out of range
    """
    for name in ("fee_bps", "min_stake", "decimals"):
        value = getattr(config, name)
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"{name} must be an integer, got {value!r}")
    if not 0 <= config.fee_bps < BPS_DENOMINATOR:
        raise ConfigError(f"fee_bps must be in [0, {BPS_DENOMINATOR}), got {config.fee_bps}")
    if config.min_stake < 1:
        raise ConfigError(f"min_stake must be at least 1 minor unit, got {config.min_stake}")
    if not 0 <= config.decimals <= 18:
        raise ConfigError(f"decimals must be in [0, 18], got {config.decimals}")


def load_config_file(path: Path = DEFAULT_CONFIG_PATH) -> Dict[str, Any]:
    """
    Load raw engine configuration from YAML.

    Args:
        path: Path to engine.yaml

    Returns:
        Config dict, or empty dict if the file does not exist

    Raises:
        ConfigError: If the file is not valid YAML
    """
    if not path.exists():
        logger.warning(f"Engine config not found at {path}, using defaults")
        return {}
    try:
        with open(path, 'r') as f:
            return yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid engine config YAML in {path}: {e}")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


def load_engine_config(path: Optional[Path] = None) -> EngineConfig:
    """
    Build the effective engine configuration.

    Precedence: environment variable > engine.yaml > built-in default.

    Args:
        path: Optional override for the YAML config path

    Returns:
        Validated EngineConfig

    Raises:
        ConfigError: If any value is invalid
    """
    raw = load_config_file(path or DEFAULT_CONFIG_PATH)
    settlement = raw.get("settlement", {}) or {}
    intake = raw.get("intake", {}) or {}
    journal = raw.get("journal", {}) or {}

    fee_bps = _env_int("STAKING_FEE_BPS", settlement.get("fee_bps", DEFAULT_FEE_BPS))
    min_stake = _env_int("STAKING_MIN_STAKE", intake.get("min_stake", DEFAULT_MIN_STAKE))
    decimals = _env_int("STAKING_DECIMALS", settlement.get("decimals", DEFAULT_DECIMALS))
    journal_dir = os.environ.get("STAKING_JOURNAL_DIR", "").strip() or journal.get("dir", DEFAULT_JOURNAL_DIR)

    return EngineConfig(
        fee_bps=fee_bps,
        min_stake=min_stake,
        decimals=decimals,
        journal_dir=str(journal_dir),
    )


def _cli_check():
    """CLI entry point for --check flag."""
    try:
        config = load_engine_config()
    except ConfigError as e:
        print(f"Invalid configuration: {e}")
        sys.exit(1)

    for key, value in config.to_dict().items():
        print(f"{key}: {value}")
    sys.exit(0)


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(
        description="Check staking engine configuration"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Print the effective configuration"
    )

    args = parser.parse_args()

    if args.check:
        _cli_check()
    else:
        parser.print_help()
