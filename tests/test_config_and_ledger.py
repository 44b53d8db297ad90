"""
Configuration loader, token ledger and logging tests.
"""

import logging

import pytest

from aimining.config import (
    EngineConfig,
    RewardsConfig,
    StakingConfig,
    format_token_amount,
    load_config,
    parse_token_amount,
)
from aimining.constants import (
    BASE_RESERVE_AMOUNT,
    DAILY_REWARD_AMOUNT,
    LOCK_PERIOD,
    SCALE,
)
from aimining.exceptions import ConfigurationError
from aimining.logger import (
    LogManager,
    SanitizingFormatter,
    checked_date_format,
    checked_format,
    get_logger,
)
from aimining.staking import StakingManager, StaticCapacityOracle
from aimining.tokens import InsufficientBalanceError, TokenError, TokenLedger


ENV_VARS = (
    "AIMINING_CONFIG",
    "AIMINING_DAILY_REWARD_AMOUNT",
    "AIMINING_REWARDS_START_AT",
    "AIMINING_ESCROW_ADDRESS",
    "AIMINING_ADMIN_ADDRESS",
    "AIMINING_LOCK_PERIOD",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


# =============================================================================
# TOKEN AMOUNTS
# =============================================================================

class TestTokenAmounts:

    @pytest.mark.parametrize("value,expected", [
        ("10000", 10_000 * SCALE),
        (2.5, 5 * SCALE // 2),
        ("0.1", SCALE // 10),
        (0, 0),
    ])
    def test_parse(self, value, expected):
        assert parse_token_amount(value) == expected

    @pytest.mark.parametrize("value", ["abc", "-1", ""])
    def test_parse_rejects(self, value):
        with pytest.raises(ConfigurationError):
            parse_token_amount(value)

    def test_format(self):
        assert format_token_amount(DAILY_REWARD_AMOUNT) == "6000000"
        assert format_token_amount(SCALE // 4) == "0.25"


# =============================================================================
# CONFIG LOADER
# =============================================================================

class TestEngineConfig:

    def test_defaults(self):
        config = EngineConfig()
        assert config.validate()
        assert config.rewards.daily_reward_amount == DAILY_REWARD_AMOUNT
        assert config.staking.base_reserve_amount == BASE_RESERVE_AMOUNT
        assert config.staking.lock_period == LOCK_PERIOD

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text(
            "[rewards]\n"
            "daily_reward_amount = \"1000\"\n"
            "rewards_start_at = 1700000000\n"
            "\n"
            "[staking]\n"
            "base_reserve_amount = 500\n"
            "slash_amount = 500\n"
            "lock_period = 3600\n"
            "escrow_address = \"pool\"\n"
        )

        config = load_config(str(path))
        assert config.rewards.daily_reward_amount == 1_000 * SCALE
        assert config.rewards.rewards_start_at == 1_700_000_000
        assert config.staking.base_reserve_amount == 500 * SCALE
        assert config.staking.slash_amount == 500 * SCALE
        assert config.staking.lock_period == 3_600
        assert config.staking.escrow_address == "pool"
        # Untouched keys keep their defaults
        assert config.staking.max_nfts_per_machine == 20

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "absent.toml"))
        assert config.rewards.daily_reward_amount == DAILY_REWARD_AMOUNT

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "engine.toml"
        path.write_text("[staking]\nadmin_address = \"ops\"\n")
        monkeypatch.setenv("AIMINING_CONFIG", str(path))

        assert load_config().staking.admin_address == "ops"

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.toml"
        path.write_text("[rewards]\nrewards_start_at = 10\n")
        monkeypatch.setenv("AIMINING_REWARDS_START_AT", "99")
        monkeypatch.setenv("AIMINING_DAILY_REWARD_AMOUNT", "42")
        monkeypatch.setenv("AIMINING_LOCK_PERIOD", "60")

        config = load_config(str(path))
        assert config.rewards.rewards_start_at == 99
        assert config.rewards.daily_reward_amount == 42 * SCALE
        assert config.staking.lock_period == 60

    def test_invalid_toml(self, tmp_path):
        path = tmp_path / "config.toml"
        path.write_text("[rewards\n")
        with pytest.raises(ConfigurationError):
            load_config(str(path))

    @pytest.mark.parametrize("config", [
        EngineConfig(rewards=RewardsConfig(immediate_release_divisor=0)),
        EngineConfig(rewards=RewardsConfig(rewards_start_at=-1)),
        EngineConfig(staking=StakingConfig(base_reserve_amount=SCALE - 1)),
        EngineConfig(staking=StakingConfig(lock_period=0)),
        EngineConfig(staking=StakingConfig(max_nfts_per_machine=0)),
        EngineConfig(staking=StakingConfig(escrow_address="")),
        EngineConfig(staking=StakingConfig(slash_amount=0)),
        EngineConfig(staking=StakingConfig(slash_amount=BASE_RESERVE_AMOUNT + 1)),
    ])
    def test_validation(self, config):
        with pytest.raises(ConfigurationError):
            config.validate()

    def test_manager_rejects_invalid_config(self):
        with pytest.raises(ConfigurationError):
            StakingManager(
                StaticCapacityOracle(),
                config=EngineConfig(staking=StakingConfig(lock_period=0)),
            )

    def test_to_dict(self):
        data = EngineConfig().to_dict()
        assert data["rewards"]["daily_reward_amount"] == "6000000"
        assert data["staking"]["slash_amount"] == "10000"
        assert data["staking"]["escrow_address"] == "aimining-staking-escrow"


# =============================================================================
# TOKEN LEDGER
# =============================================================================

class TestTokenLedger:

    @pytest.fixture
    def ledger(self):
        token = TokenLedger()
        token.mint("alice", 1_000)
        return token

    def test_mint_and_transfer(self, ledger):
        ledger.transfer("alice", "bob", 400)
        assert ledger.balance_of("alice") == 600
        assert ledger.balance_of("bob") == 400
        assert ledger.total_supply == 1_000
        assert [e.to_dict()["to"] for e in ledger.events] == ["alice", "bob"]

    def test_insufficient_balance(self, ledger):
        with pytest.raises(InsufficientBalanceError) as exc_info:
            ledger.transfer("alice", "bob", 1_001)
        assert exc_info.value.balance == 1_000
        assert ledger.balance_of("bob") == 0

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amounts(self, ledger, amount):
        with pytest.raises(TokenError):
            ledger.transfer("alice", "bob", amount)
        with pytest.raises(TokenError):
            ledger.mint("bob", amount)

    def test_self_transfer(self, ledger):
        with pytest.raises(TokenError):
            ledger.transfer("alice", "alice", 1)

    def test_empty_symbol(self):
        with pytest.raises(TokenError):
            TokenLedger(symbol="")

    def test_snapshot_revert(self, ledger):
        snap = ledger.snapshot()
        ledger.transfer("alice", "bob", 100)
        ledger.mint("carol", 50)

        ledger.revert(snap)
        assert ledger.balance_of("alice") == 1_000
        assert ledger.balance_of("bob") == 0
        assert ledger.total_supply == 1_000
        assert len(ledger.events) == 1

    def test_nested_snapshots(self, ledger):
        outer = ledger.snapshot()
        ledger.transfer("alice", "bob", 100)
        inner = ledger.snapshot()
        ledger.transfer("alice", "bob", 100)

        ledger.discard(inner)
        assert ledger.balance_of("bob") == 200
        ledger.revert(outer)
        assert ledger.balance_of("bob") == 0

    def test_invalid_snapshot(self, ledger):
        with pytest.raises(ValueError):
            ledger.revert(3)
        with pytest.raises(ValueError):
            ledger.discard(0)


# =============================================================================
# LOGGING
# =============================================================================

class TestLogging:

    def test_singleton(self):
        assert LogManager() is LogManager()
        assert LogManager().is_configured

    def test_get_logger(self):
        logger = get_logger("aimining.test")
        assert isinstance(logger, logging.Logger)
        assert logger.name == "aimining.test"

    def test_formatter_strips_control_sequences(self):
        assert SanitizingFormatter.sanitize("machine=\x1b[31mm1\x1b[0m\r") == "machine=m1"
        assert SanitizingFormatter.sanitize("a\tb\nc\x07") == "a\tb\nc"

    def test_formatted_record_is_sanitized(self):
        formatter = SanitizingFormatter(fmt="%(levelname)s %(message)s")
        record = logging.LogRecord(
            "aimining", logging.INFO, "", 0, "holder=%s", ("\x1b[2Jevil",), None,
        )
        assert formatter.format(record) == "INFO holder=evil"

    @pytest.mark.parametrize("log_format", ["", "%(bogus)s", "no fields"])
    def test_bad_log_format_falls_back(self, log_format):
        assert "%(message)s" in checked_format(log_format)

    def test_good_formats_kept(self):
        assert checked_format("%(message)s") == "%(message)s"
        assert checked_date_format("%Y-%m-%d") == "%Y-%m-%d"

    @pytest.mark.parametrize("date_format", ["", "not a format"])
    def test_bad_date_format_falls_back(self, date_format):
        assert checked_date_format(date_format) == "%Y-%m-%dT%H:%M:%S"

    def test_claim_logged(self, caplog):
        oracle = StaticCapacityOracle()
        oracle.register_machine("m1", "owner", 100)
        token = TokenLedger()
        token.mint("treasury", 1_000_000 * SCALE)
        manager = StakingManager(oracle, token=token)
        manager.fund_reward_pool("treasury", 1_000_000 * SCALE)

        with caplog.at_level(logging.INFO, logger="aimining"):
            manager.stake("owner", "m1", 1, now=0)
            manager.claim("owner", "m1", now=3_600)

        assert "Staked machine=m1" in caplog.text
        assert "Claim machine=m1 holder=owner" in caplog.text
