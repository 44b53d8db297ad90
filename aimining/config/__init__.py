"""
AI-Mining Configuration

Loads the [rewards] and [staking] sections of config.toml.
Environment variables override TOML values.
"""

from .loader import (
    EngineConfig,
    RewardsConfig,
    StakingConfig,
    format_token_amount,
    load_config,
    parse_token_amount,
)

__all__ = [
    "EngineConfig",
    "RewardsConfig",
    "StakingConfig",
    "format_token_amount",
    "load_config",
    "parse_token_amount",
]
