"""
Collateral escrow.

Keeps staked machines topped up to the reserve floor out of their claimable
rewards and executes slashes against the escrowed collateral. Token movements
are returned to the caller, which performs them after the accounting is done.
"""

from typing import Tuple

from ..constants import BASE_RESERVE_AMOUNT, SLASH_AMOUNT
from ..logger import get_logger
from .accumulator import RewardAccumulator
from .types import (
    Position,
    ReserveUnderflowError,
    RewardSnapshot,
    StakingTotals,
)

logger = get_logger(__name__)


class ReserveEscrow:

    def __init__(
        self,
        accumulator: RewardAccumulator,
        totals: StakingTotals,
        base_reserve: int = BASE_RESERVE_AMOUNT,
        slash_amount: int = SLASH_AMOUNT,
    ):
        self.accumulator = accumulator
        self.totals = totals
        self.base_reserve = base_reserve
        self.slash_amount = slash_amount

    def needs_top_up(self, position: Position) -> bool:
        return (
            (position.is_staking or position.has_pending_slash)
            and position.reserved_amount < self.base_reserve
        )

    def top_up(
        self,
        position: Position,
        snapshot: RewardSnapshot,
        available: int,
        now: int,
    ) -> Tuple[int, int]:
        """
        Divert up to the reserve deficit from *available* into collateral.

        Returns:
            (moved, remaining)
        """
        if available <= 0 or not self.needs_top_up(position):
            return 0, available

        deficit = self.base_reserve - position.reserved_amount
        moved = min(deficit, available)

        # Below the floor ln() is clamped, so the weight does not change here;
        # going through reweight keeps the ordering contract regardless.
        self.accumulator.reweight(
            position, snapshot, position.calc_point, position.reserved_amount + moved, now,
        )
        self.totals.total_reserved += moved

        logger.info(
            f"Reserve top-up machine={position.machine_id}: +{moved} wei "
            f"(reserve {position.reserved_amount} wei)"
        )
        return moved, available - moved

    def can_slash(self, position: Position) -> bool:
        return position.has_pending_slash and position.reserved_amount >= self.slash_amount

    def slash(
        self,
        position: Position,
        snapshot: RewardSnapshot,
        now: int,
    ) -> Tuple[str, int]:
        """
        Take the slash amount out of the machine's collateral and clear its
        slash flag.

        Returns:
            (beneficiary, amount) the caller must pay out of escrow

        Raises:
            ReserveUnderflowError: if the collateral does not cover the slash
        """
        if not position.has_pending_slash:
            raise ValueError(f"Machine {position.machine_id} has no pending slash")
        if position.reserved_amount < self.slash_amount:
            raise ReserveUnderflowError(position.reserved_amount, self.slash_amount)

        beneficiary = position.slash_beneficiary
        amount = min(position.reserved_amount, self.slash_amount)

        self.accumulator.reweight(
            position, snapshot, position.calc_point,
            position.reserved_amount - self.slash_amount, now,
        )
        self.totals.total_reserved -= amount
        self.totals.total_slashed += amount
        position.slash_beneficiary = None

        logger.warning(
            f"Machine slashed machine={position.machine_id}: {amount} wei to {beneficiary}"
        )
        return beneficiary, amount
