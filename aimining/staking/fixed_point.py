"""
Fixed-point logarithms over unsigned 1e18-scaled integers.

Only integer arithmetic with truncating division is used, so results are
reproducible bit for bit on every platform.
"""

from ..constants import SCALE, LOG2_E

DOUBLE_SCALE = 2 * SCALE
HALF_SCALE = SCALE // 2


def log2(x: int) -> int:
    """
    Binary logarithm of a fixed-point value, in fixed point.

    The integer part comes from the bit length of ``x // SCALE``; the
    fractional bits are produced by repeatedly squaring the normalized
    remainder in [1, 2) and emitting a bit whenever it reaches 2.

    Raises:
        ValueError: if x is below 1.0 (the result would be negative)
    """
    if x < SCALE:
        raise ValueError(f"log2 is undefined below 1.0 for unsigned values: {x}")

    n = (x // SCALE).bit_length() - 1
    result = n * SCALE

    y = x >> n
    if y == SCALE:
        return result

    delta = HALF_SCALE
    while delta > 0:
        y = y * y // SCALE
        if y >= DOUBLE_SCALE:
            result += delta
            y >>= 1
        delta >>= 1

    return result


def ln(x: int) -> int:
    """Natural logarithm of a fixed-point value: ``log2(x) / log2(e)``."""
    return log2(x) * SCALE // LOG2_E
