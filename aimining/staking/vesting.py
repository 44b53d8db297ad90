"""
Linear vesting of locked rewards.

Each machine owns exactly one schedule, opened on its first stake. Later
lock-ups are added to the same schedule and inherit its window, so rewards
locked late in the window vest faster than a fresh window would allow.
"""

from typing import Optional

from ..constants import LOCK_PERIOD
from ..logger import get_logger
from .types import VestingSchedule

logger = get_logger(__name__)


class VestingLedger:
    """Creates schedules and computes / applies linear releases."""

    def __init__(self, lock_period: int = LOCK_PERIOD):
        if lock_period <= 0:
            raise ValueError("lock_period must be positive")
        self.lock_period = lock_period

    def create(self, now: int) -> VestingSchedule:
        return VestingSchedule(lock_start=now, lock_end=now + self.lock_period)

    def lock_more(
        self,
        schedule: Optional[VestingSchedule],
        amount: int,
        now: int,
    ) -> VestingSchedule:
        """Add *amount* to the schedule without touching its window."""
        if amount < 0:
            raise ValueError("Lock amount cannot be negative")
        if schedule is None:
            schedule = self.create(now)
        schedule.total_locked += amount
        return schedule

    def releasable(self, schedule: Optional[VestingSchedule], now: int) -> int:
        """
        Amount that would move from locked to claimable at *now* (view).

        Everything remaining is releasable once the window has ended;
        before that, the vested fraction is ``elapsed / window`` of
        ``total_locked``.
        """
        if schedule is None or schedule.total_locked == schedule.released:
            return 0
        if now >= schedule.lock_end:
            return schedule.total_locked - schedule.released
        if now <= schedule.lock_start:
            return 0

        window = schedule.lock_end - schedule.lock_start
        unlocked_to_date = (now - schedule.lock_start) * schedule.total_locked // window
        return max(unlocked_to_date - schedule.released, 0)

    def release(self, schedule: Optional[VestingSchedule], now: int) -> int:
        """Mark the releasable amount as released and return it."""
        amount = self.releasable(schedule, now)
        if amount:
            schedule.released += amount
        return amount

    def still_locked_after_release(self, schedule: Optional[VestingSchedule], now: int) -> int:
        """What stays locked once the releasable part has been taken (view)."""
        if schedule is None:
            return 0
        return schedule.remaining - self.releasable(schedule, now)
