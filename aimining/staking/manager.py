"""
AI-Mining Staking Manager

Sequences the accumulator, vesting ledger and reserve escrow into the
externally visible operations: stake, add_to_stake, unstake, force_unstake,
claim and slash, plus the registry notifications that pause and resume
machines.

Every mutating operation is a transaction: the global accounting state, the
entries of the machine being operated on and the token ledger are
snapshotted on entry and restored if anything raises, and token transfers
are executed only after all accounting is done. The undo record covers one
machine, so the cost of an operation does not grow with the number of
staked machines.
"""

import copy
import threading
import time
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config import EngineConfig
from ..exceptions import InvariantViolationError, ReentrancyError
from ..logger import get_logger
from ..tokens import TokenLedger
from .accumulator import RewardAccumulator
from .escrow import ReserveEscrow
from .oracle import CapacityOracle, CapacityScore, UnknownMachineError
from .types import (
    AlreadyStakingError,
    ClaimedEvent,
    ClaimResult,
    InsufficientCapacityError,
    InsufficientRewardLiquidityError,
    InvalidAmountError,
    MachineEvent,
    MachineNotOnlineError,
    NotAuthorizedError,
    NotStakingError,
    PausedEvent,
    PendingSlashError,
    Position,
    ReserveAddedEvent,
    ResumedEvent,
    RewardBreakdown,
    RewardSnapshot,
    RewardState,
    SlashedEvent,
    StakedEvent,
    StakingTotals,
    UnstakedEvent,
    VestingSchedule,
)
from .vesting import VestingLedger
from .weight import WeightModel

logger = get_logger(__name__)

# (sender, recipient, amount)
Transfer = Tuple[str, str, int]


class StakingManager:
    """
    Reward accounting engine for staked machines.

    Responsibilities:
    - Track machine weights and the global reward accumulator
    - Split claims into an immediate part and a vesting part
    - Keep collateral at the reserve floor and execute slashes
    - Expose reward views per machine and per holder
    """

    def __init__(
        self,
        oracle: CapacityOracle,
        token: Optional[TokenLedger] = None,
        config: Optional[EngineConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        """
        Initialize the engine.

        Args:
            oracle: Machine registry capability
            token: Token ledger holding balances and the escrow account
            config: Engine configuration (defaults to the protocol constants)
            clock: Source of unix time when an operation is called without ``now``
        """
        self.config = config or EngineConfig()
        self.config.validate()
        self.oracle = oracle
        self.token = token or TokenLedger()
        self._clock = clock or time.time

        self._lock = threading.RLock()
        self._in_flight = False

        rewards = self.config.rewards
        staking = self.config.staking

        self.weight_model = WeightModel(staking.base_reserve_amount, staking.max_nfts_per_machine)
        self.reward_state = RewardState(
            daily_reward_amount=rewards.daily_reward_amount,
            rewards_start_at=rewards.rewards_start_at,
        )
        self.totals = StakingTotals()
        self.accumulator = RewardAccumulator(self.reward_state, self.weight_model)
        self.vesting = VestingLedger(staking.lock_period)
        self.escrow = ReserveEscrow(
            self.accumulator,
            self.totals,
            base_reserve=staking.base_reserve_amount,
            slash_amount=staking.slash_amount,
        )

        self._positions: Dict[str, Position] = {}
        self._snapshots: Dict[str, RewardSnapshot] = {}
        self._schedules: Dict[str, VestingSchedule] = {}
        self._events: List[Any] = []

    @property
    def escrow_address(self) -> str:
        return self.config.staking.escrow_address

    @property
    def admin_address(self) -> str:
        return self.config.staking.admin_address

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    def _machine_stores(self) -> Tuple[Dict[str, Any], ...]:
        return (self._positions, self._snapshots, self._schedules)

    def _save_state(self, machine_id: Optional[str]) -> Dict[str, Any]:
        """
        Undo record of one operation: the global accumulator and totals plus
        the entries of the single machine the operation touches.
        """
        saved = {
            'reward_state': copy.copy(self.reward_state),
            'totals': copy.copy(self.totals),
            'events': len(self._events),
            'machine_id': machine_id,
        }
        if machine_id is not None:
            saved['entries'] = tuple(
                copy.deepcopy(store.get(machine_id)) for store in self._machine_stores()
            )
        return saved

    def _restore_state(self, saved: Dict[str, Any]) -> None:
        # accumulator and escrow hold references to these two objects
        vars(self.reward_state).update(vars(saved['reward_state']))
        vars(self.totals).update(vars(saved['totals']))

        machine_id = saved['machine_id']
        if machine_id is not None:
            for store, entry in zip(self._machine_stores(), saved['entries']):
                if entry is None:
                    store.pop(machine_id, None)
                else:
                    store[machine_id] = entry
        del self._events[saved['events']:]

    @contextmanager
    def _transaction(self, operation: str, machine_id: Optional[str] = None):
        """
        Run one operation atomically.

        Only *machine_id*'s entries are snapshotted, so an operation must not
        touch any other machine.
        """
        with self._lock:
            if self._in_flight:
                raise ReentrancyError(f"{operation} entered while another operation is in flight")
            self._in_flight = True
            saved = self._save_state(machine_id)
            ledger_snapshot = self.token.snapshot()
            try:
                yield
            except Exception as e:
                self.token.revert(ledger_snapshot)
                self._restore_state(saved)
                logger.debug(f"{operation} reverted: {e}")
                raise
            else:
                self.token.discard(ledger_snapshot)
            finally:
                self._in_flight = False

    def _execute_transfers(self, transfers: List[Transfer]) -> None:
        for sender, recipient, amount in transfers:
            if amount > 0:
                self.token.transfer(sender, recipient, amount)

    def _now(self, now: Optional[int]) -> int:
        return int(self._clock()) if now is None else now

    # =========================================================================
    # LOOKUPS AND GUARDS
    # =========================================================================

    def _require_position(self, machine_id: str) -> Position:
        position = self._positions.get(machine_id)
        if position is None:
            raise NotStakingError(machine_id)
        return position

    def _require_staking(self, machine_id: str) -> Position:
        position = self._require_position(machine_id)
        if not position.is_staking:
            raise NotStakingError(machine_id)
        return position

    def _require_holder(self, position: Position, caller: str) -> None:
        if caller != position.holder:
            raise NotAuthorizedError(
                f"{caller} is not the holder of machine {position.machine_id}"
            )

    def _require_admin(self, caller: str) -> None:
        if caller != self.admin_address:
            raise NotAuthorizedError(f"{caller} is not the staking admin")

    def _capacity_score(self, machine_id: str) -> CapacityScore:
        try:
            return self.oracle.get_capacity_score(machine_id)
        except UnknownMachineError:
            raise MachineNotOnlineError(f"Machine {machine_id} is not registered") from None

    def _is_online(self, machine_id: str) -> bool:
        try:
            state = self.oracle.get_online_state(machine_id)
        except UnknownMachineError:
            return False
        return state.is_online and state.is_registered

    def free_balance(self, transfers: Optional[List[Transfer]] = None) -> int:
        """Escrow balance not backing collateral, net of queued outgoing transfers."""
        escrow = self.escrow_address
        balance = self.token.balance_of(escrow) - self.totals.total_reserved
        for sender, recipient, amount in transfers or ():
            if sender == escrow:
                balance -= amount
            if recipient == escrow:
                balance += amount
        return balance

    # =========================================================================
    # CLAIM PATH
    # =========================================================================

    def _execute_slash(
        self,
        position: Position,
        snapshot: RewardSnapshot,
        now: int,
        transfers: List[Transfer],
    ) -> int:
        beneficiary, amount = self.escrow.slash(position, snapshot, now)
        transfers.append((self.escrow_address, beneficiary, amount))
        self._events.append(SlashedEvent(position.machine_id, beneficiary, amount))
        return amount

    def _claim(self, position: Position, now: int, transfers: List[Transfer]) -> ClaimResult:
        """
        Run the claim state machine for one machine.

        settle → split → lock → release → top-up → slash → payout. The new
        lock lands before the release so the part of it the window has
        already vested goes out with this claim. Payouts are queued in
        *transfers*; the caller executes them last.
        """
        machine_id = position.machine_id
        if now < self.reward_state.rewards_start_at:
            return ClaimResult(machine_id)

        snapshot = self._snapshots[machine_id]
        self.accumulator.settle(position, snapshot, now)

        total = snapshot.accumulated_pending
        snapshot.accumulated_pending = 0
        immediate = total // self.config.rewards.immediate_release_divisor
        locked = total - immediate

        schedule = self._schedules.get(machine_id)
        if locked > 0:
            schedule = self._schedules[machine_id] = self.vesting.lock_more(schedule, locked, now)
        released = self.vesting.release(schedule, now)
        immediate += released

        moved, immediate = self.escrow.top_up(position, snapshot, immediate, now)

        slash_amount = 0
        if self.escrow.can_slash(position):
            slash_amount = self._execute_slash(position, snapshot, now, transfers)

        # Top-ups book reward tokens as collateral, so they need the same
        # free escrow balance as a payout
        if immediate > 0 or moved > 0:
            available = self.free_balance(transfers)
            if available < immediate:
                raise InsufficientRewardLiquidityError(immediate + moved, available + moved)
        if immediate > 0:
            transfers.append((self.escrow_address, position.holder, immediate))
            position.claimed_amount += immediate
            self.totals.total_distributed += immediate
        position.last_claim_at = now

        result = ClaimResult(
            machine_id=machine_id,
            paid=immediate,
            moved_to_reserve=moved,
            locked=locked,
            released=released,
            slashed=slash_amount > 0,
            slash_amount=slash_amount,
        )
        if immediate or moved or locked:
            self._events.append(
                ClaimedEvent(machine_id, position.holder, immediate, moved, locked)
            )
            logger.info(
                f"Claim machine={machine_id} holder={position.holder}: paid {immediate} wei, "
                f"reserved {moved} wei, locked {locked} wei"
            )
        return result

    # =========================================================================
    # STAKE OPERATIONS
    # =========================================================================

    def stake(
        self,
        caller: str,
        machine_id: str,
        nft_count: int,
        reserve_amount: int = 0,
        now: Optional[int] = None,
    ) -> Position:
        """
        Stake a machine.

        Args:
            caller: Address staking the machine; must be its registry owner
            machine_id: Machine identifier
            nft_count: Number of NFTs backing the stake (1..max_nfts_per_machine)
            reserve_amount: Collateral pulled from the caller into escrow
            now: Current timestamp

        Returns:
            The machine's Position

        Raises:
            InvalidAmountError, NotAuthorizedError, MachineNotOnlineError,
            InsufficientCapacityError, AlreadyStakingError,
            InsufficientBalanceError (collateral transfer)
        """
        now = self._now(now)
        staking = self.config.staking

        if not 1 <= nft_count <= staking.max_nfts_per_machine:
            raise InvalidAmountError(
                f"nft_count must be between 1 and {staking.max_nfts_per_machine}, got {nft_count}"
            )
        if reserve_amount < 0:
            raise InvalidAmountError("Reserve amount cannot be negative")

        score = self._capacity_score(machine_id)
        if score.owner != caller:
            raise NotAuthorizedError(f"{caller} does not own machine {machine_id}")
        if not self._is_online(machine_id):
            raise MachineNotOnlineError(f"Machine {machine_id} is offline or unregistered")
        if score.calc_point < staking.min_calc_point:
            raise InsufficientCapacityError(staking.min_calc_point, score.calc_point)
        if score.memory < staking.min_memory:
            raise InsufficientCapacityError(staking.min_memory, score.memory, what="memory")

        with self._transaction("stake", machine_id):
            position = self._positions.get(machine_id)
            if position is not None and position.is_staking:
                raise AlreadyStakingError(machine_id)
            if position is None:
                position = Position(machine_id=machine_id, holder=caller)
                self._positions[machine_id] = position

            position.holder = caller
            position.nft_count = nft_count
            position.started_at = now
            position.is_staking = True
            position.paused = False
            position.staked_calc_point = self.weight_model.calc_point(score.calc_point, nft_count)

            snapshot = self._snapshots.setdefault(machine_id, RewardSnapshot())
            if machine_id not in self._schedules:
                self._schedules[machine_id] = self.vesting.create(now)

            self.accumulator.reweight(
                position, snapshot, position.staked_calc_point, reserve_amount, now,
            )
            self.totals.total_reserved += reserve_amount

            self._events.append(StakedEvent(
                machine_id, caller, position.staked_calc_point, nft_count, reserve_amount,
            ))
            self._execute_transfers([(caller, self.escrow_address, reserve_amount)])

        logger.info(
            f"Staked machine={machine_id} holder={caller}: calc point "
            f"{position.staked_calc_point}, {nft_count} NFTs, reserve {reserve_amount} wei"
        )
        return position

    def add_to_stake(
        self,
        caller: str,
        machine_id: str,
        amount: int,
        now: Optional[int] = None,
    ) -> Position:
        """Add collateral to a staked machine."""
        now = self._now(now)
        if amount <= 0:
            raise InvalidAmountError("Reserve amount must be positive")

        with self._transaction("add_to_stake", machine_id):
            position = self._require_staking(machine_id)
            self._require_holder(position, caller)
            snapshot = self._snapshots[machine_id]

            self.accumulator.reweight(
                position, snapshot, position.calc_point, position.reserved_amount + amount, now,
            )
            self.totals.total_reserved += amount

            self._events.append(ReserveAddedEvent(machine_id, caller, amount))
            self._execute_transfers([(caller, self.escrow_address, amount)])

        logger.info(
            f"Reserve added machine={machine_id} holder={caller}: +{amount} wei "
            f"(reserve {position.reserved_amount} wei)"
        )
        return position

    def _unstake(self, position: Position, now: int, forced: bool) -> ClaimResult:
        transfers: List[Transfer] = []
        result = self._claim(position, now, transfers)

        if position.has_pending_slash and not forced:
            raise PendingSlashError(position.machine_id)

        snapshot = self._snapshots[position.machine_id]
        refund = position.reserved_amount
        self.accumulator.reweight(position, snapshot, 0, 0, now)
        self.totals.total_reserved -= refund

        position.is_staking = False
        position.paused = False
        position.nft_count = 0
        position.staked_calc_point = 0

        transfers.append((self.escrow_address, position.holder, refund))
        self._events.append(UnstakedEvent(position.machine_id, position.holder, refund, forced))
        self._execute_transfers(transfers)

        logger.info(
            f"Unstaked machine={position.machine_id} holder={position.holder}: "
            f"refunded {refund} wei{' (forced)' if forced else ''}"
        )
        return result

    def unstake(self, caller: str, machine_id: str, now: Optional[int] = None) -> ClaimResult:
        """
        Claim outstanding rewards, then release the machine's weight and
        collateral. The vesting schedule stays and keeps paying out through
        later claims.

        Raises:
            NotStakingError, NotAuthorizedError,
            PendingSlashError: if a slash is still unpaid after the claim
        """
        now = self._now(now)
        with self._transaction("unstake", machine_id):
            position = self._require_staking(machine_id)
            self._require_holder(position, caller)
            return self._unstake(position, now, forced=False)

    def force_unstake(self, caller: str, machine_id: str, now: Optional[int] = None) -> ClaimResult:
        """
        Admin unstake. An unpaid slash does not block it; the flag survives
        and is paid from later vesting releases.
        """
        now = self._now(now)
        self._require_admin(caller)
        with self._transaction("force_unstake", machine_id):
            position = self._require_staking(machine_id)
            return self._unstake(position, now, forced=True)

    def claim(self, caller: str, machine_id: str, now: Optional[int] = None) -> ClaimResult:
        """
        Claim a machine's rewards: 1/10 of the newly settled reward plus
        whatever has vested is paid (after any reserve top-up), the rest is
        locked.

        Raises:
            NotStakingError: if the machine has never been staked
            NotAuthorizedError: if the caller is not the holder
            InsufficientRewardLiquidityError: if escrow cannot cover the payout
        """
        now = self._now(now)
        with self._transaction("claim", machine_id):
            position = self._require_position(machine_id)
            self._require_holder(position, caller)
            transfers: List[Transfer] = []
            result = self._claim(position, now, transfers)
            self._execute_transfers(transfers)
        return result

    def slash(
        self,
        caller: str,
        machine_id: str,
        beneficiary: str,
        now: Optional[int] = None,
    ) -> ClaimResult:
        """
        Raise a slash against a machine and run its claim path.

        The slash is paid immediately when the collateral covers it (after
        topping up from the claim); otherwise it stays pending and is
        executed by a later claim.
        """
        now = self._now(now)
        self._require_admin(caller)
        if not beneficiary:
            raise ValueError("Slash beneficiary is required")

        with self._transaction("slash", machine_id):
            position = self._require_position(machine_id)
            if position.has_pending_slash:
                raise PendingSlashError(machine_id)
            position.slash_beneficiary = beneficiary

            transfers: List[Transfer] = []
            result = self._claim(position, now, transfers)
            if not result.slashed and self.escrow.can_slash(position):
                amount = self._execute_slash(
                    position, self._snapshots[machine_id], now, transfers,
                )
                result = replace(result, slashed=True, slash_amount=amount)
            self._execute_transfers(transfers)

        if not result.slashed:
            logger.warning(
                f"Slash pending machine={machine_id}: reserve "
                f"{position.reserved_amount} wei below slash amount"
            )
        return result

    # =========================================================================
    # REGISTRY NOTIFICATIONS
    # =========================================================================

    def on_machine_event(
        self,
        machine_id: str,
        event: MachineEvent,
        now: Optional[int] = None,
    ) -> bool:
        """
        Pause or resume a staked machine on a registry notification.

        Going offline or unregistering drops the machine's calc point (and
        weight) to zero while keeping its collateral; coming back restores
        the staked calc point once the registry reports it both online and
        registered.

        Returns:
            True if the machine's weight changed
        """
        now = self._now(now)
        position = self._positions.get(machine_id)
        if position is None or not position.is_staking:
            logger.debug(f"Ignoring {event.value} for unstaked machine={machine_id}")
            return False

        with self._transaction(f"on_machine_event:{event.value}", machine_id):
            snapshot = self._snapshots[machine_id]

            if event in (MachineEvent.WENT_OFFLINE, MachineEvent.UNREGISTERED):
                if position.paused:
                    return False
                self.accumulator.reweight(position, snapshot, 0, position.reserved_amount, now)
                position.paused = True
                self._events.append(PausedEvent(machine_id, event))
                logger.info(f"Paused machine={machine_id} ({event.value})")
                return True

            if not position.paused or not self._is_online(machine_id):
                return False
            self.accumulator.reweight(
                position, snapshot, position.staked_calc_point, position.reserved_amount, now,
            )
            position.paused = False
            self._events.append(ResumedEvent(machine_id, position.staked_calc_point))
            logger.info(f"Resumed machine={machine_id} ({event.value})")
            return True

    # =========================================================================
    # FUNDING
    # =========================================================================

    def fund_reward_pool(self, sender: str, amount: int) -> None:
        """Move reward tokens from *sender* into the escrow account."""
        if amount <= 0:
            raise InvalidAmountError("Funding amount must be positive")
        with self._transaction("fund_reward_pool"):
            self.token.transfer(sender, self.escrow_address, amount)
        logger.info(f"Reward pool funded by {sender}: {amount} wei")

    # =========================================================================
    # VIEWS
    # =========================================================================

    def get_position(self, machine_id: str) -> Optional[Position]:
        return self._positions.get(machine_id)

    def get_schedule(self, machine_id: str) -> Optional[VestingSchedule]:
        return self._schedules.get(machine_id)

    def get_snapshot(self, machine_id: str) -> Optional[RewardSnapshot]:
        return self._snapshots.get(machine_id)

    def is_staking(self, machine_id: str) -> bool:
        position = self._positions.get(machine_id)
        return position is not None and position.is_staking

    def machines_of(self, holder: str) -> List[str]:
        return [
            machine_id for machine_id, position in self._positions.items()
            if position.holder == holder and position.is_staking
        ]

    @property
    def events(self) -> List[Any]:
        return list(self._events)

    def get_pending_reward(self, machine_id: str, now: Optional[int] = None) -> int:
        """Reward earned by a machine and not yet claimed (excludes locked rewards)."""
        now = self._now(now)
        position = self._positions.get(machine_id)
        if position is None:
            return 0
        return self.accumulator.pending(position, self._snapshots[machine_id], now)

    def get_reward_breakdown(self, machine_id: str, now: Optional[int] = None) -> RewardBreakdown:
        """
        Reward view of one machine.

        ``claimable_now`` is what a claim at *now* would hand out before any
        reserve top-up, including the vested share of the reward that claim
        would lock; ``total == claimable_now + locked``.
        """
        now = self._now(now)
        position = self._positions.get(machine_id)
        if position is None:
            return RewardBreakdown()

        pending = self.accumulator.pending(position, self._snapshots[machine_id], now)
        schedule = self._schedules.get(machine_id)
        vesting_remaining = schedule.remaining if schedule is not None else 0
        total = pending + vesting_remaining

        if now < self.reward_state.rewards_start_at:
            return RewardBreakdown(total, 0, total, position.claimed_amount)

        immediate = pending // self.config.rewards.immediate_release_divisor
        projected = self.vesting.lock_more(
            copy.copy(schedule), pending - immediate, now,
        )
        claimable = immediate + self.vesting.releasable(projected, now)
        return RewardBreakdown(
            total=total,
            claimable_now=claimable,
            locked=total - claimable,
            claimed_lifetime=position.claimed_amount,
        )

    def get_aggregate_reward_breakdown(
        self,
        holder: str,
        now: Optional[int] = None,
    ) -> RewardBreakdown:
        """Sum of the reward views of every machine held by *holder*."""
        now = self._now(now)
        breakdown = RewardBreakdown()
        for machine_id, position in self._positions.items():
            if position.holder == holder:
                breakdown = breakdown + self.get_reward_breakdown(machine_id, now)
        return breakdown

    def preview_daily_reward(self, calc_point: int, nft_count: int, reserve: int) -> int:
        """
        Daily reward a new machine with these parameters would earn if it
        joined the current pool.
        """
        weight = self.weight_model.weight(
            self.weight_model.calc_point(calc_point, nft_count), reserve,
        )
        if weight == 0:
            return 0
        total_weight = self.reward_state.total_weight + weight
        return self.reward_state.daily_reward_amount * weight // total_weight

    # =========================================================================
    # INVARIANTS
    # =========================================================================

    def verify_invariants(self) -> bool:
        """
        Check the accounting invariants.

        Raises:
            InvariantViolationError: on the first violated invariant
        """
        weight_sum = sum(p.weight for p in self._positions.values())
        if weight_sum != self.reward_state.total_weight:
            raise InvariantViolationError(
                f"Sum of weights {weight_sum} != total weight {self.reward_state.total_weight}"
            )

        reserve_sum = sum(p.reserved_amount for p in self._positions.values())
        if reserve_sum != self.totals.total_reserved:
            raise InvariantViolationError(
                f"Sum of reserves {reserve_sum} != total reserved {self.totals.total_reserved}"
            )

        for machine_id, schedule in self._schedules.items():
            if not 0 <= schedule.released <= schedule.total_locked:
                raise InvariantViolationError(
                    f"Machine {machine_id} released {schedule.released} "
                    f"of {schedule.total_locked} locked"
                )

        acc = self.reward_state.accumulated_per_share
        for machine_id, snapshot in self._snapshots.items():
            if snapshot.accumulated_pending < 0 or snapshot.last_accumulated_per_share > acc:
                raise InvariantViolationError(f"Machine {machine_id} has a corrupt snapshot")

        return True
