"""
Reward accumulator.

The daily emission is spread over all machines in proportion to their weight
with an accumulate-per-share pattern: the global ``accumulated_per_share``
grows by ``reward * SCALE / total_weight`` for every elapsed interval, and each
machine settles ``weight * (accumulated_per_share - last_seen) / SCALE``
lazily, whenever it is touched.

Ordering contract: every change of a machine's weight (and therefore of
``total_weight``) must be preceded by a settle of that machine under the old
weight. ``reweight`` is the only path that changes weights and enforces this.
"""

from ..constants import SCALE, SECONDS_PER_DAY
from ..logger import get_logger
from .types import Position, RewardSnapshot, RewardState
from .weight import WeightModel

logger = get_logger(__name__)


class RewardAccumulator:
    """Owns the global RewardState and the weight bookkeeping around it."""

    def __init__(self, state: RewardState, weight_model: WeightModel):
        self.state = state
        self.weight_model = weight_model

    # =========================================================================
    # GLOBAL ACCUMULATOR
    # =========================================================================

    def _increment(self, now: int) -> int:
        state = self.state
        if state.total_weight == 0 or now < state.rewards_start_at:
            return 0
        start = max(state.last_updated, state.rewards_start_at)
        if now <= start:
            return 0
        reward = (now - start) * state.daily_reward_amount // SECONDS_PER_DAY
        return reward * SCALE // state.total_weight

    def accumulated_per_share_at(self, now: int) -> int:
        """Accumulator value a refresh at *now* would produce, without mutating."""
        return self.state.accumulated_per_share + self._increment(now)

    def refresh(self, now: int) -> None:
        """
        Advance the accumulator to *now*.

        Emission over intervals with no weight, or before rewards start, is
        not assigned to anyone; the clock still moves forward so it is never
        handed out retroactively.
        """
        increment = self._increment(now)
        if increment:
            self.state.accumulated_per_share += increment
            logger.debug(
                f"Accumulator refreshed to {self.state.accumulated_per_share} "
                f"(+{increment}, total weight {self.state.total_weight})"
            )
        if now > self.state.last_updated:
            self.state.last_updated = now

    # =========================================================================
    # PER-MACHINE SETTLEMENT
    # =========================================================================

    def settle(self, position: Position, snapshot: RewardSnapshot, now: int) -> int:
        """
        Move the reward accrued under the machine's current weight into its
        pending balance.

        Returns:
            Amount newly settled
        """
        self.refresh(now)
        acc = self.state.accumulated_per_share
        earned = position.weight * (acc - snapshot.last_accumulated_per_share) // SCALE
        snapshot.accumulated_pending += earned
        snapshot.last_accumulated_per_share = acc
        return earned

    def pending(self, position: Position, snapshot: RewardSnapshot, now: int) -> int:
        """Unclaimed reward of a machine at *now* (view)."""
        acc = self.accumulated_per_share_at(now)
        return snapshot.accumulated_pending + (
            position.weight * (acc - snapshot.last_accumulated_per_share) // SCALE
        )

    def reweight(
        self,
        position: Position,
        snapshot: RewardSnapshot,
        new_calc_point: int,
        new_reserved_amount: int,
        now: int,
    ) -> int:
        """
        Change a machine's calc point and collateral.

        Settles under the old weight first, then swaps the old weight for the
        new one in the global total. Collateral token movements are the
        caller's responsibility.

        Returns:
            The new weight
        """
        if new_calc_point < 0 or new_reserved_amount < 0:
            raise ValueError("calc point and reserve cannot be negative")

        self.settle(position, snapshot, now)

        old_weight = position.weight
        new_weight = self.weight_model.weight(new_calc_point, new_reserved_amount)

        self.state.total_weight = self.state.total_weight - old_weight + new_weight
        position.calc_point = new_calc_point
        position.reserved_amount = new_reserved_amount
        position.weight = new_weight

        if old_weight != new_weight:
            logger.debug(
                f"Reweighted machine={position.machine_id}: {old_weight} -> {new_weight} "
                f"(total weight {self.state.total_weight})"
            )
        return new_weight
