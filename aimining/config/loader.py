"""
AI-Mining TOML Configuration Loader

Loads the [rewards] and [staking] sections of config.toml with environment
variable overrides.

Environment variable mapping:
    [rewards] daily_reward_amount → AIMINING_DAILY_REWARD_AMOUNT
    [rewards] rewards_start_at    → AIMINING_REWARDS_START_AT
    [staking] escrow_address      → AIMINING_ESCROW_ADDRESS
    ...

Token amounts are written in whole tokens (decimal strings or numbers) and
stored internally in 1e18 fixed-point units.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any, Dict, Optional

try:
    import tomllib as tomli  # Python 3.11+
except ImportError:
    import tomli  # type: ignore[no-redef]

from ..constants import (
    SCALE,
    ADMIN_ADDRESS,
    BASE_RESERVE_AMOUNT,
    DAILY_REWARD_AMOUNT,
    ESCROW_ADDRESS,
    IMMEDIATE_RELEASE_DIVISOR,
    LOCK_PERIOD,
    MAX_NFTS_PER_MACHINE,
    MIN_CALC_POINT,
    MIN_MEMORY,
    SLASH_AMOUNT,
)
from ..exceptions import ConfigurationError
from ..logger import get_logger

logger = get_logger(__name__)


def parse_token_amount(value: Any) -> int:
    """
    Convert a whole-token amount ("10000", 2.5, "0.1") into 1e18 units.

    Raises:
        ConfigurationError: if the value is not a non-negative number
    """
    try:
        amount = Decimal(str(value)) * SCALE
    except InvalidOperation as e:
        raise ConfigurationError(f"Invalid token amount: {value!r}") from e
    if amount < 0:
        raise ConfigurationError(f"Token amount cannot be negative: {value!r}")
    return int(amount)


def format_token_amount(amount: int) -> str:
    """Inverse of parse_token_amount, for diagnostics."""
    return format((Decimal(amount) / SCALE).normalize(), "f")


# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass
class RewardsConfig:
    """[rewards] section."""
    daily_reward_amount: int = DAILY_REWARD_AMOUNT
    rewards_start_at: int = 0
    immediate_release_divisor: int = IMMEDIATE_RELEASE_DIVISOR

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RewardsConfig":
        daily = data.get("daily_reward_amount")
        return cls(
            daily_reward_amount=(
                parse_token_amount(daily) if daily is not None else DAILY_REWARD_AMOUNT
            ),
            rewards_start_at=int(data.get("rewards_start_at", 0)),
            immediate_release_divisor=int(
                data.get("immediate_release_divisor", IMMEDIATE_RELEASE_DIVISOR)
            ),
        )

    def apply_env(self) -> None:
        """Override from environment variables."""
        if v := os.environ.get("AIMINING_DAILY_REWARD_AMOUNT"):
            self.daily_reward_amount = parse_token_amount(v)
        if v := os.environ.get("AIMINING_REWARDS_START_AT"):
            self.rewards_start_at = int(v)


@dataclass
class StakingConfig:
    """[staking] section."""
    base_reserve_amount: int = BASE_RESERVE_AMOUNT
    slash_amount: int = SLASH_AMOUNT
    lock_period: int = LOCK_PERIOD
    max_nfts_per_machine: int = MAX_NFTS_PER_MACHINE
    min_calc_point: int = MIN_CALC_POINT
    min_memory: int = MIN_MEMORY
    escrow_address: str = ESCROW_ADDRESS
    admin_address: str = ADMIN_ADDRESS

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StakingConfig":
        base_reserve = data.get("base_reserve_amount")
        slash = data.get("slash_amount")
        return cls(
            base_reserve_amount=(
                parse_token_amount(base_reserve) if base_reserve is not None
                else BASE_RESERVE_AMOUNT
            ),
            slash_amount=parse_token_amount(slash) if slash is not None else SLASH_AMOUNT,
            lock_period=int(data.get("lock_period", LOCK_PERIOD)),
            max_nfts_per_machine=int(data.get("max_nfts_per_machine", MAX_NFTS_PER_MACHINE)),
            min_calc_point=int(data.get("min_calc_point", MIN_CALC_POINT)),
            min_memory=int(data.get("min_memory", MIN_MEMORY)),
            escrow_address=data.get("escrow_address", ESCROW_ADDRESS),
            admin_address=data.get("admin_address", ADMIN_ADDRESS),
        )

    def apply_env(self) -> None:
        if v := os.environ.get("AIMINING_ESCROW_ADDRESS"):
            self.escrow_address = v
        if v := os.environ.get("AIMINING_ADMIN_ADDRESS"):
            self.admin_address = v
        if v := os.environ.get("AIMINING_LOCK_PERIOD"):
            self.lock_period = int(v)


# ---------------------------------------------------------------------------
# Top-level
# ---------------------------------------------------------------------------


@dataclass
class EngineConfig:
    """
    Complete engine configuration.

    Loaded from config.toml; every section is optional and falls back to the
    protocol constants.
    """
    rewards: RewardsConfig = field(default_factory=RewardsConfig)
    staking: StakingConfig = field(default_factory=StakingConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EngineConfig":
        return cls(
            rewards=RewardsConfig.from_dict(data.get("rewards", {})),
            staking=StakingConfig.from_dict(data.get("staking", {})),
        )

    @classmethod
    def from_file(cls, config_path: str) -> "EngineConfig":
        """
        Load configuration from TOML file.

        A missing file yields the defaults (with environment overrides).
        """
        path = Path(config_path)

        if not path.exists():
            logger.debug(f"Config file {path} not found, using defaults")
            config = cls()
        else:
            with open(path, "rb") as f:
                try:
                    data = tomli.load(f)
                except tomli.TOMLDecodeError as e:
                    raise ConfigurationError(f"Invalid TOML in {path}: {e}") from e
            config = cls.from_dict(data)
            logger.info(f"Loaded engine configuration from {path}")

        config.apply_env()
        return config

    def apply_env(self) -> None:
        self.rewards.apply_env()
        self.staking.apply_env()

    def validate(self) -> bool:
        """
        Validate all configuration sections.

        Raises:
            ConfigurationError: on invalid config
        """
        if self.rewards.immediate_release_divisor < 1:
            raise ConfigurationError("immediate_release_divisor must be >= 1")
        if self.rewards.rewards_start_at < 0:
            raise ConfigurationError("rewards_start_at cannot be negative")
        if self.staking.base_reserve_amount < SCALE:
            # ln() is only defined from 1.0 upwards
            raise ConfigurationError("base_reserve_amount must be at least 1 token")
        if not 0 < self.staking.slash_amount <= self.staking.base_reserve_amount:
            # top-ups stop at the floor, so a larger slash could never execute
            raise ConfigurationError(
                "slash_amount must be positive and not above base_reserve_amount"
            )
        if self.staking.lock_period <= 0:
            raise ConfigurationError("lock_period must be positive")
        if self.staking.max_nfts_per_machine < 1:
            raise ConfigurationError("max_nfts_per_machine must be >= 1")
        if self.staking.min_calc_point < 0 or self.staking.min_memory < 0:
            raise ConfigurationError("minimum thresholds cannot be negative")
        if not self.staking.escrow_address:
            raise ConfigurationError("escrow_address is required")
        return True

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to dict (for diagnostics)."""
        return {
            "rewards": {
                "daily_reward_amount": format_token_amount(self.rewards.daily_reward_amount),
                "rewards_start_at": self.rewards.rewards_start_at,
                "immediate_release_divisor": self.rewards.immediate_release_divisor,
            },
            "staking": {
                "base_reserve_amount": format_token_amount(self.staking.base_reserve_amount),
                "slash_amount": format_token_amount(self.staking.slash_amount),
                "lock_period": self.staking.lock_period,
                "max_nfts_per_machine": self.staking.max_nfts_per_machine,
                "min_calc_point": self.staking.min_calc_point,
                "min_memory": self.staking.min_memory,
                "escrow_address": self.staking.escrow_address,
                "admin_address": self.staking.admin_address,
            },
        }


def load_config(path: Optional[str] = None) -> EngineConfig:
    """
    Load engine configuration.

    Resolution order:
        1. Explicit *path* argument
        2. AIMINING_CONFIG env var
        3. ./config.toml in current directory
        4. Defaults (with env overrides)
    """
    if path is None:
        path = os.environ.get("AIMINING_CONFIG", "config.toml")

    config = EngineConfig.from_file(path)
    config.validate()
    return config
