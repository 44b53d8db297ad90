"""
AI-Mining Staking Module

Reward accounting and vesting engine for staked machines.

Components:
- StakingManager: Stake / unstake / claim / slash orchestration
- RewardAccumulator: Accumulate-per-share distribution of the daily emission
- WeightModel: calc_point * ln(collateral) share weights
- VestingLedger: Single growing linear lock per machine
- ReserveEscrow: Collateral floor top-ups and slashing
- CapacityOracle: Machine registry capability (static and recording variants)

Usage:
    from aimining.staking import StakingManager, StaticCapacityOracle

    oracle = StaticCapacityOracle()
    manager = StakingManager(oracle)
    manager.stake(owner, "machine-1", nft_count=1, reserve_amount=0)
"""

from .fixed_point import ln, log2
from .weight import WeightModel
from .accumulator import RewardAccumulator
from .vesting import VestingLedger
from .escrow import ReserveEscrow
from .oracle import (
    CapacityOracle,
    CapacityScore,
    OnlineState,
    RecordingCapacityOracle,
    StaticCapacityOracle,
    UnknownMachineError,
)
from .manager import StakingManager
from .types import (
    Position,
    RewardState,
    RewardSnapshot,
    VestingSchedule,
    StakingTotals,
    ClaimResult,
    RewardBreakdown,
    MachineEvent,
    StakedEvent,
    ReserveAddedEvent,
    UnstakedEvent,
    ClaimedEvent,
    SlashedEvent,
    PausedEvent,
    ResumedEvent,
    StakingError,
    NotAuthorizedError,
    AlreadyStakingError,
    NotStakingError,
    MachineNotOnlineError,
    InsufficientCapacityError,
    InvalidAmountError,
    PendingSlashError,
    InsufficientRewardLiquidityError,
    ReserveUnderflowError,
)

__all__ = [
    # Core Components
    'StakingManager',
    'RewardAccumulator',
    'WeightModel',
    'VestingLedger',
    'ReserveEscrow',
    'ln',
    'log2',

    # Oracle
    'CapacityOracle',
    'CapacityScore',
    'OnlineState',
    'RecordingCapacityOracle',
    'StaticCapacityOracle',
    'UnknownMachineError',

    # Types & Data Classes
    'Position',
    'RewardState',
    'RewardSnapshot',
    'VestingSchedule',
    'StakingTotals',
    'ClaimResult',
    'RewardBreakdown',
    'MachineEvent',

    # Events
    'StakedEvent',
    'ReserveAddedEvent',
    'UnstakedEvent',
    'ClaimedEvent',
    'SlashedEvent',
    'PausedEvent',
    'ResumedEvent',

    # Exceptions
    'StakingError',
    'NotAuthorizedError',
    'AlreadyStakingError',
    'NotStakingError',
    'MachineNotOnlineError',
    'InsufficientCapacityError',
    'InvalidAmountError',
    'PendingSlashError',
    'InsufficientRewardLiquidityError',
    'ReserveUnderflowError',
]
