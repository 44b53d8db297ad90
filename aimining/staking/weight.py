"""
Machine share weights.

A machine's share of the daily emission is proportional to

    calc_point * ln(max(reserved_amount, base_reserve))

Capacity scales the share linearly while collateral above the floor only adds
logarithmically, so spreading collateral over several machines earns more
than piling it onto one.
"""

from ..constants import BASE_RESERVE_AMOUNT, MAX_NFTS_PER_MACHINE
from .fixed_point import ln


class WeightModel:
    """Converts (calc_point, reserved_amount) into a share weight."""

    def __init__(
        self,
        base_reserve: int = BASE_RESERVE_AMOUNT,
        max_nfts_per_machine: int = MAX_NFTS_PER_MACHINE,
    ):
        self.base_reserve = base_reserve
        self.max_nfts_per_machine = max_nfts_per_machine

    def weight(self, calc_point: int, reserved_amount: int) -> int:
        if calc_point <= 0:
            return 0
        return calc_point * ln(max(reserved_amount, self.base_reserve))

    def calc_point(self, oracle_calc_point: int, nft_count: int) -> int:
        """Staked calc point of a machine backed by *nft_count* NFTs."""
        return oracle_calc_point * min(nft_count, self.max_nfts_per_machine)
