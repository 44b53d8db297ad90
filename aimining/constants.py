"""
AI-Mining Constants

This module consolidates the protocol constants of the reward engine and the
environment configuration used by the logging layer. Constants are organized
by category for easy reference and maintenance.
"""
import ast
from dotenv import dotenv_values

# =============================================================================
# ENVIRONMENT CONFIGURATION
# =============================================================================
# Load environment variables once at module import
_config = dotenv_values(".env")

LOGGER_DEFAULTS = {
    'LOG_LEVEL':                       'INFO',
    'LOG_FORMAT':                      '%(asctime)s - %(levelname)s - %(name)s - %(message)s',
    'LOG_DATE_FORMAT':                 '%Y-%m-%dT%H:%M:%S',
    'LOG_CONSOLE_HIGHLIGHTING':        'True',
    'LOG_FILE_OUTPUT':                 'False',
}

LOG_MAX_FILE_SIZE = 10 * 1024 * 1024 # 10MB
LOG_BACKUP_COUNT = 5


# WARNING: CHANGING THE VALUES BELOW CHANGES HOW EVERY REWARD IS COMPUTED. ONLY CHANGE THEM
# FOR A NEW DEPLOYMENT OR FOR TESTING PURPOSES; EXISTING SNAPSHOTS ARE NOT RE-SCALED.

# ==================================================================================
# FIXED-POINT ARITHMETIC
# ==================================================================================
SCALE = 10 ** 18  # 1.0 in fixed point, also 1 token in smallest units
LOG2_E = 1_442695040888963407  # log2(e) scaled by 1e18


# ==================================================================================
# TIME
# ==================================================================================
SECONDS_PER_DAY = 86_400
LOCK_PERIOD = 180 * SECONDS_PER_DAY  # linear release window of locked rewards


# ==================================================================================
# REWARD POLICY
# ==================================================================================
DAILY_REWARD_AMOUNT = 6_000_000 * SCALE
IMMEDIATE_RELEASE_DIVISOR = 10  # 1/10 paid at claim time, the rest is locked


# ==================================================================================
# COLLATERAL AND SLASHING
# ==================================================================================
BASE_RESERVE_AMOUNT = 10_000 * SCALE  # reserve floor, also the floor of ln() inputs
SLASH_AMOUNT = 10_000 * SCALE
MAX_NFTS_PER_MACHINE = 20
MIN_CALC_POINT = 1
MIN_MEMORY = 0

ESCROW_ADDRESS = 'aimining-staking-escrow'
ADMIN_ADDRESS = 'aimining-admin'


# ==================================================================================
# CONFIGURATION WRAPPERS
# ==================================================================================
class ConfigString(str):
    """
    String subclass that stores a default value.
    """
    def __new__(cls, value, default):
        obj = str.__new__(cls, value)
        obj._default = default
        return obj

    def default(self):
        return self._default

class ConfigBool(int):
    """
    Int subclass acting as a boolean that stores a default value.
    """
    def __new__(cls, value, default):
        obj = int.__new__(cls, bool(value))
        obj._default = default
        return obj

    def default(self):
        return self._default

    def __repr__(self):
        return str(bool(self))

    def __str__(self):
        return str(bool(self))

    def __eq__(self, other):
        return bool(self) == other

    __hash__ = int.__hash__


# ==================================================================================
# DYNAMIC CONFIGURATION LOADING
# ==================================================================================
namespace = globals()

def parse_bool(v):
    """
    Convert "True"/"False" (any casing, with surrounding whitespace) into bool.
    Avoids exceptions by only calling ast.literal_eval for known literals.
    """
    if not isinstance(v, str):
        return v
    s = v.strip()
    if not s:
        return v
    if s.casefold() in {"true", "false"}:
        # ast.literal_eval expects "True"/"False"
        return ast.literal_eval(s.title())
    return v

for key, default_raw in LOGGER_DEFAULTS.items():
    # dotenv_values returns strings or None. None is treated as missing.
    raw = _config.get(key)
    value_raw = default_raw if raw is None else raw

    value = parse_bool(value_raw)
    default_val = parse_bool(default_raw)

    if isinstance(value, bool):
        namespace[key] = ConfigBool(value, default_val)
    else:
        namespace[key] = ConfigString(value_raw, default_val)
