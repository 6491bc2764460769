"""Tests for Settings schemas and SettingsManager"""

from decimal import Decimal
from pathlib import Path

import pytest
from pydantic import ValidationError

from volscan.config import ConfigError, SettingsManager, load_settings
from volscan.config.schemas import BacktestConfig, BoundsMode, GridConfig, Settings, StorageBackend

YAML = """
check_interval_hours: 4
market_data:
  api_key: ${CG_KEY:-fallback-key}
ranking:
  top_n: 5
backtest:
  windows_days: [10, 1, 3, 3]
  bounds_mode: fixed
storage:
  backend: redis
"""


@pytest.fixture
def config_file(tmp_path: Path) -> Path:
    path = tmp_path / "volscan.yaml"
    path.write_text(YAML)
    return path


class TestSchemas:

    def test_defaults(self):
        settings = Settings()
        assert settings.ranking.top_n == 10
        assert settings.ranking.volatility_lookback_days == 7
        assert settings.check_interval_seconds == 6 * 3600
        assert settings.backtest.windows_days == (1, 3, 5, 10)
        assert settings.backtest.bounds_mode == BoundsMode.PER_WINDOW
        assert settings.telegram.max_message_length == 4096

    def test_frozen(self):
        settings = Settings()
        with pytest.raises(ValidationError):
            settings.log_level = "DEBUG"

    def test_unknown_key_rejected(self):
        with pytest.raises(ValidationError):
            Settings(unknown=True)

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            Settings(log_level="LOUD")

    def test_windows_sorted_and_deduplicated(self):
        config = BacktestConfig(windows_days=(10, 1, 3, 1))
        assert config.windows_days == (1, 3, 10)
        assert config.candle_days == 10

    @pytest.mark.parametrize("windows", [(), (0, 3)])
    def test_bad_windows(self, windows):
        with pytest.raises(ValidationError):
            BacktestConfig(windows_days=windows)

    def test_half_cell_pair_rejected(self):
        with pytest.raises(ValidationError):
            GridConfig(min_cell_pct=Decimal("1"))

    def test_inverted_cell_pair_rejected(self):
        with pytest.raises(ValidationError):
            GridConfig(target_cell_pct=None, min_cell_pct=Decimal("3"), max_cell_pct=Decimal("1"))

    def test_target_wins_over_pair(self):
        config = GridConfig(
            target_cell_pct=Decimal("0.8"), min_cell_pct=Decimal("1"), max_cell_pct=Decimal("2")
        )
        assert config.effective_cell_pct == Decimal("0.8")

    def test_cell_size_defaults_to_one(self):
        assert GridConfig().effective_cell_pct == Decimal("1")

    def test_pair_alone_plans_with_midpoint(self):
        config = GridConfig(min_cell_pct=Decimal("1"), max_cell_pct=Decimal("2"))
        assert config.target_cell_pct is None
        assert config.effective_cell_pct == Decimal("1.5")

    def test_missing_credentials(self):
        assert Settings().missing_credentials() == [
            "COINGECKO_API_KEY",
            "TELEGRAM_BOT_TOKEN",
            "TELEGRAM_CHAT_ID",
        ]


class TestSettingsManager:

    def test_load_file(self, config_file: Path):
        settings = SettingsManager(config_file, env={}).load()

        assert settings.check_interval_hours == 4
        assert settings.market_data.api_key == "fallback-key"
        assert settings.ranking.top_n == 5
        assert settings.backtest.windows_days == (1, 3, 10)
        assert settings.backtest.bounds_mode == BoundsMode.FIXED
        assert settings.storage.backend == StorageBackend.REDIS

    def test_env_reference_substituted(self, config_file: Path):
        settings = SettingsManager(config_file, env={"CG_KEY": "from-env"}).load()
        assert settings.market_data.api_key == "from-env"

    def test_env_overrides_file(self, config_file: Path):
        env = {
            "COINGECKO_API_KEY": "override",
            "TELEGRAM_BOT_TOKEN": "1:x",
            "TELEGRAM_CHAT_ID": "-100",
            "STATE_FILE": "/tmp/state.json",
            "LOG_LEVEL": "DEBUG",
        }
        settings = SettingsManager(config_file, env=env).load()

        assert settings.market_data.api_key == "override"
        assert settings.telegram.bot_token == "1:x"
        assert settings.telegram.chat_id == "-100"
        assert settings.storage.state_path == "/tmp/state.json"
        assert settings.log_level == "DEBUG"
        assert settings.missing_credentials() == []

    def test_no_file_uses_defaults(self):
        settings = load_settings(None, env={})
        assert settings == Settings()

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError):
            SettingsManager(tmp_path / "nope.yaml", env={}).load()

    def test_invalid_yaml(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("{ invalid yaml content")
        with pytest.raises(ConfigError):
            SettingsManager(path, env={}).load()

    def test_invalid_values(self, tmp_path: Path):
        path = tmp_path / "bad.yaml"
        path.write_text("ranking:\n  top_n: 0\n")
        with pytest.raises(ConfigError):
            SettingsManager(path, env={}).load()

    def test_unset_variable_without_default(self, tmp_path: Path):
        path = tmp_path / "ref.yaml"
        path.write_text("market_data:\n  api_key: ${NOT_SET}\n")
        with pytest.raises(ConfigError):
            SettingsManager(path, env={}).load()

    def test_version_hash_stable(self, config_file: Path):
        first = SettingsManager(config_file, env={})
        first.load()
        second = SettingsManager(config_file, env={})
        second.load()

        assert first.version_hash is not None
        assert len(first.version_hash) == 16
        assert first.version_hash == second.version_hash

    def test_cell_pair_from_file_honored(self, tmp_path: Path):
        path = tmp_path / "pair.yaml"
        path.write_text("grid:\n  min_cell_pct: 1\n  max_cell_pct: 2\n")

        settings = SettingsManager(path, env={}).load()

        assert settings.grid.effective_cell_pct == Decimal("1.5")
