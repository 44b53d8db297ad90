"""
AI-Mining Staking Types and Exceptions

Core data types for the reward accounting engine. All amounts are integers
in 1e18 fixed-point units; all timestamps are integer unix seconds.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class StakingError(Exception):
    """Base exception for staking operations."""
    pass


class NotAuthorizedError(StakingError):
    """Raised when the caller may not act on a machine."""
    pass


class AlreadyStakingError(StakingError):
    """Raised when staking a machine that is already staked."""
    def __init__(self, machine_id: str):
        self.machine_id = machine_id
        super().__init__(f"Machine {machine_id} is already staking")


class NotStakingError(StakingError):
    """Raised when a machine has no active stake."""
    def __init__(self, machine_id: str):
        self.machine_id = machine_id
        super().__init__(f"Machine {machine_id} is not staking")


class MachineNotOnlineError(StakingError):
    """Raised when the registry reports a machine offline or unregistered."""
    pass


class InsufficientCapacityError(StakingError):
    """Raised when a machine's capacity is below the staking threshold."""
    def __init__(self, required: int, actual: int, what: str = "calc point"):
        self.required = required
        self.actual = actual
        super().__init__(f"Insufficient {what}: {actual} (required: {required})")


class InvalidAmountError(StakingError):
    """Raised on a zero, negative or out-of-range amount or count."""
    pass


class PendingSlashError(StakingError):
    """Raised when an unpaid slash blocks the operation."""
    def __init__(self, machine_id: str):
        self.machine_id = machine_id
        super().__init__(f"Machine {machine_id} has an unpaid slash")


class InsufficientRewardLiquidityError(StakingError):
    """Raised when free escrow balance cannot cover a payout."""
    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient reward liquidity: {available} wei available "
            f"(required: {required} wei)"
        )


class ReserveUnderflowError(StakingError):
    """Raised when a slash would take more collateral than is escrowed."""
    def __init__(self, reserved: int, slash_amount: int):
        self.reserved = reserved
        self.slash_amount = slash_amount
        super().__init__(
            f"Cannot slash {slash_amount} wei from a reserve of {reserved} wei"
        )


class MachineEvent(Enum):
    """Registry notifications delivered per machine."""
    REGISTERED = "registered"
    UNREGISTERED = "unregistered"
    WENT_ONLINE = "went_online"
    WENT_OFFLINE = "went_offline"


@dataclass
class Position:
    """
    Stake of one machine.

    Attributes:
        machine_id: Opaque machine identifier
        holder: Address that staked the machine and receives its rewards
        calc_point: Effective calc point (0 while paused)
        staked_calc_point: Oracle calc point times NFT count at stake time
        reserved_amount: Collateral held in escrow
        nft_count: Number of NFTs backing the stake
        weight: Current share weight
        started_at: Timestamp of the current stake
        last_claim_at: Timestamp of the last claim
        claimed_amount: Lifetime amount paid out for this machine
        is_staking: Whether the machine is currently staked
        paused: Whether the machine is offline or unregistered
        slash_beneficiary: Recipient of an unpaid slash, None if none is pending
    """
    machine_id: str
    holder: str
    calc_point: int = 0
    staked_calc_point: int = 0
    reserved_amount: int = 0
    nft_count: int = 0
    weight: int = 0
    started_at: int = 0
    last_claim_at: int = 0
    claimed_amount: int = 0
    is_staking: bool = False
    paused: bool = False
    slash_beneficiary: Optional[str] = None

    @property
    def has_pending_slash(self) -> bool:
        return self.slash_beneficiary is not None

    def to_dict(self) -> dict:
        return {
            'machine_id': self.machine_id,
            'holder': self.holder,
            'calc_point': self.calc_point,
            'staked_calc_point': self.staked_calc_point,
            'reserved_amount': str(self.reserved_amount),
            'nft_count': self.nft_count,
            'weight': str(self.weight),
            'started_at': self.started_at,
            'last_claim_at': self.last_claim_at,
            'claimed_amount': str(self.claimed_amount),
            'is_staking': self.is_staking,
            'paused': self.paused,
            'slash_beneficiary': self.slash_beneficiary,
        }


@dataclass
class RewardState:
    """Global reward accumulator."""
    daily_reward_amount: int
    rewards_start_at: int = 0
    accumulated_per_share: int = 0
    last_updated: int = 0
    total_weight: int = 0


@dataclass
class RewardSnapshot:
    """Accumulator value last seen by one machine and the reward settled since."""
    last_accumulated_per_share: int = 0
    accumulated_pending: int = 0


@dataclass
class VestingSchedule:
    """
    Single growing lock of one machine.

    New lock-ups are added to ``total_locked`` and share the original window,
    which is fixed when the schedule is created.
    """
    lock_start: int
    lock_end: int
    total_locked: int = 0
    released: int = 0

    @property
    def remaining(self) -> int:
        return self.total_locked - self.released


@dataclass
class StakingTotals:
    """Global ledgers used for solvency checks and reporting."""
    total_distributed: int = 0
    total_reserved: int = 0
    total_slashed: int = 0


@dataclass(frozen=True)
class ClaimResult:
    """
    Outcome of one pass through the claim path.

    ``locked`` is the amount added to the vesting schedule, ``released`` the
    amount taken out of it (already included in ``paid`` or
    ``moved_to_reserve``).
    """
    machine_id: str
    paid: int = 0
    moved_to_reserve: int = 0
    locked: int = 0
    released: int = 0
    slashed: bool = False
    slash_amount: int = 0

    def to_dict(self) -> dict:
        return {
            'machine_id': self.machine_id,
            'paid': str(self.paid),
            'moved_to_reserve': str(self.moved_to_reserve),
            'locked': str(self.locked),
            'released': str(self.released),
            'slashed': self.slashed,
            'slash_amount': str(self.slash_amount),
        }


@dataclass(frozen=True)
class RewardBreakdown:
    """
    Reward view of one machine (or the sum over a holder's machines).

    Attributes:
        total: Everything earned and not yet paid (pending plus still locked)
        claimable_now: What a claim at the same instant would pay before top-up
        locked: The part of total that would stay locked after such a claim
        claimed_lifetime: Lifetime paid amount
    """
    total: int = 0
    claimable_now: int = 0
    locked: int = 0
    claimed_lifetime: int = 0

    def __add__(self, other: "RewardBreakdown") -> "RewardBreakdown":
        return RewardBreakdown(
            total=self.total + other.total,
            claimable_now=self.claimable_now + other.claimable_now,
            locked=self.locked + other.locked,
            claimed_lifetime=self.claimed_lifetime + other.claimed_lifetime,
        )


# ══════════════════════════════════════════════════════════════════════
#  EVENTS
# ══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class StakedEvent:
    machine_id: str
    holder: str
    calc_point: int
    nft_count: int
    reserve_amount: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "Staked",
            "machineId": self.machine_id,
            "holder": self.holder,
            "calcPoint": self.calc_point,
            "nftCount": self.nft_count,
            "reserveAmount": str(self.reserve_amount),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ReserveAddedEvent:
    machine_id: str
    holder: str
    amount: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "ReserveAdded",
            "machineId": self.machine_id,
            "holder": self.holder,
            "amount": str(self.amount),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class UnstakedEvent:
    machine_id: str
    holder: str
    refunded: int
    forced: bool = False
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "Unstaked",
            "machineId": self.machine_id,
            "holder": self.holder,
            "refunded": str(self.refunded),
            "forced": self.forced,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ClaimedEvent:
    machine_id: str
    holder: str
    paid: int
    moved_to_reserve: int
    locked: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "Claimed",
            "machineId": self.machine_id,
            "holder": self.holder,
            "paid": str(self.paid),
            "movedToReserve": str(self.moved_to_reserve),
            "locked": str(self.locked),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class SlashedEvent:
    machine_id: str
    beneficiary: str
    amount: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "Slashed",
            "machineId": self.machine_id,
            "beneficiary": self.beneficiary,
            "amount": str(self.amount),
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class PausedEvent:
    machine_id: str
    reason: MachineEvent
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "Paused",
            "machineId": self.machine_id,
            "reason": self.reason.value,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class ResumedEvent:
    machine_id: str
    calc_point: int
    timestamp: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "event": "Resumed",
            "machineId": self.machine_id,
            "calcPoint": self.calc_point,
            "timestamp": self.timestamp,
        }
