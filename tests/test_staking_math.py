"""
Fixed-point logarithm and share-weight tests.
"""

import math

import pytest

from aimining.constants import BASE_RESERVE_AMOUNT, MAX_NFTS_PER_MACHINE, SCALE
from aimining.staking.fixed_point import ln, log2
from aimining.staking.weight import WeightModel


# =============================================================================
# FIXED-POINT LOGARITHM
# =============================================================================

class TestFixedPointLog:
    """Test the integer log2 / ln implementation."""

    def test_log_of_one_is_zero(self):
        assert log2(SCALE) == 0
        assert ln(SCALE) == 0

    def test_exact_powers_of_two(self):
        assert log2(2 * SCALE) == SCALE
        assert log2(8 * SCALE) == 3 * SCALE
        assert log2(1024 * SCALE) == 10 * SCALE

    def test_ln_two(self):
        assert abs(ln(2 * SCALE) - 693147180559945309) <= 1

    @pytest.mark.parametrize("value", [3, 10, 1_000, 10_000, 123_456, 10 ** 9])
    def test_ln_matches_float_reference(self, value):
        expected = math.log(value) * SCALE
        assert abs(ln(value * SCALE) - expected) < 10 ** 9

    def test_fractional_inputs_above_one(self):
        # 1.5
        assert abs(ln(3 * SCALE // 2) - math.log(1.5) * SCALE) < 10 ** 9

    def test_monotonic(self):
        values = [SCALE + i * (SCALE // 7) for i in range(200)]
        values += [BASE_RESERVE_AMOUNT + i * SCALE for i in range(0, 5_000, 250)]
        values.sort()
        results = [ln(v) for v in values]
        assert results == sorted(results)
        assert ln(BASE_RESERVE_AMOUNT + SCALE) > ln(BASE_RESERVE_AMOUNT)

    def test_deterministic(self):
        assert ln(BASE_RESERVE_AMOUNT) == ln(BASE_RESERVE_AMOUNT)

    def test_below_one_rejected(self):
        with pytest.raises(ValueError):
            ln(SCALE - 1)
        with pytest.raises(ValueError):
            log2(0)


# =============================================================================
# WEIGHT MODEL
# =============================================================================

class TestWeightModel:
    """Test calc_point * ln(max(reserve, floor))."""

    @pytest.fixture
    def model(self):
        return WeightModel()

    def test_zero_calc_point_has_no_weight(self, model):
        assert model.weight(0, 50_000 * SCALE) == 0

    def test_reserve_clamped_to_floor(self, model):
        floor_weight = 100 * ln(BASE_RESERVE_AMOUNT)
        assert model.weight(100, 0) == floor_weight
        assert model.weight(100, BASE_RESERVE_AMOUNT // 2) == floor_weight
        assert model.weight(100, BASE_RESERVE_AMOUNT) == floor_weight

    def test_weight_linear_in_calc_point(self, model):
        assert model.weight(200, 0) == 2 * model.weight(100, 0)

    def test_extra_reserve_is_sublinear(self, model):
        base = model.weight(1, BASE_RESERVE_AMOUNT)
        doubled = model.weight(1, 2 * BASE_RESERVE_AMOUNT)
        assert doubled > base
        assert doubled < 2 * base
        assert abs((doubled - base) - ln(2 * SCALE)) < 10 ** 9

    def test_spreading_collateral_beats_concentration(self, model):
        # Same 4x floor of collateral over two machines
        concentrated = (
            model.weight(100, 3 * BASE_RESERVE_AMOUNT) + model.weight(100, BASE_RESERVE_AMOUNT)
        )
        spread = 2 * model.weight(100, 2 * BASE_RESERVE_AMOUNT)
        assert spread > concentrated
        heavy = model.weight(100, 100 * BASE_RESERVE_AMOUNT)
        assert heavy < 100 * model.weight(100, BASE_RESERVE_AMOUNT)

    def test_calc_point_scales_with_nft_count(self, model):
        assert model.calc_point(50, 1) == 50
        assert model.calc_point(50, 4) == 200

    def test_calc_point_nft_count_capped(self, model):
        assert model.calc_point(50, MAX_NFTS_PER_MACHINE + 5) == 50 * MAX_NFTS_PER_MACHINE
