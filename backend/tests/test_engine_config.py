"""Tests for engine_config.py and settings."""

import textwrap

import pytest
import yaml

from app.config import Settings
from app.engine_config import EngineConfig, TimeframeEntry, load_engine_config
from core.models.config import DEFAULT_CADENCE, TIMEFRAMES


# ── EngineConfig model tests ──────────────────────────────────────────────


class TestEngineConfig:
    def test_defaults_cover_every_timeframe(self):
        schedules = EngineConfig().get_schedules()
        assert [s.timeframe for s in schedules] == list(TIMEFRAMES)
        assert all(s.every == DEFAULT_CADENCE[s.timeframe] for s in schedules)

    def test_default_symbols_exclude_stablecoins(self):
        symbols = EngineConfig().get_symbols()
        assert "BTC/USDT" in symbols
        assert "USDC/USD" not in symbols

    def test_include_stablecoins(self):
        assert "USDC/USD" in EngineConfig(include_stablecoins=True).get_symbols()

    def test_symbol_subset_keeps_order(self):
        config = EngineConfig(symbols=["SOL/USDT", "BTC/USDT"])
        assert config.get_symbols() == ["SOL/USDT", "BTC/USDT"]

    def test_unknown_symbol_rejected(self):
        with pytest.raises(ValueError, match="unsupported symbols"):
            EngineConfig(symbols=["BTC/USDT", "FOO/USDT"])

    def test_schedules_sorted_and_disabled_dropped(self):
        config = EngineConfig(
            timeframes=[
                TimeframeEntry(timeframe="1d"),
                TimeframeEntry(timeframe="1m", every=2),
                TimeframeEntry(timeframe="4h", enabled=False),
            ]
        )
        schedules = config.get_schedules()
        assert [(s.timeframe, s.every) for s in schedules] == [("1m", 2), ("1d", 60)]

    def test_unknown_timeframe_rejected(self):
        with pytest.raises(ValueError, match="unknown timeframe"):
            EngineConfig(timeframes=[TimeframeEntry(timeframe="2h")])

    def test_duplicate_timeframe_rejected(self):
        with pytest.raises(ValueError, match="duplicate timeframe"):
            EngineConfig(
                timeframes=[TimeframeEntry(timeframe="1h"), TimeframeEntry(timeframe="1h")]
            )

    def test_non_positive_cadence_rejected(self):
        with pytest.raises(ValueError, match="every must be"):
            EngineConfig(timeframes=[TimeframeEntry(timeframe="1h", every=0)])

    def test_confidence_band(self):
        config = EngineConfig(confidence_ceiling=70)
        signal_config = config.signal_config()
        assert signal_config.confidence_ceiling == 70
        assert signal_config.confidence_floor == 30

    def test_inverted_confidence_band_rejected(self):
        with pytest.raises(ValueError, match="confidence band"):
            EngineConfig(confidence_floor=80, confidence_ceiling=70)

    def test_api_key_from_env(self, monkeypatch):
        monkeypatch.setenv("MY_CMC_KEY", "secret")
        assert EngineConfig(api_key_env="MY_CMC_KEY").api_key == "secret"
        assert EngineConfig(api_key_env="").api_key == ""


# ── YAML loading tests ────────────────────────────────────────────────────


class TestLoadEngineConfig:
    def test_missing_file_returns_defaults(self, tmp_path):
        config = load_engine_config(tmp_path / "nonexistent.yaml")
        assert config == EngineConfig()

    def test_empty_yaml_returns_defaults(self, tmp_path):
        yaml_path = tmp_path / "signals.yaml"
        yaml_path.write_text("")
        assert load_engine_config(yaml_path) == EngineConfig()

    def test_load_custom_config(self, tmp_path):
        yaml_content = textwrap.dedent("""\
            base_interval: 30
            symbols: [BTC/USDT, ETH/USDT]
            confidence_ceiling: 70
            timeframes:
              - timeframe: 5m
                every: 1
              - timeframe: 1h
              - timeframe: 1M
                enabled: false
        """)
        yaml_path = tmp_path / "signals.yaml"
        yaml_path.write_text(yaml_content)

        config = load_engine_config(yaml_path)

        assert config.base_interval == 30
        assert config.get_symbols() == ["BTC/USDT", "ETH/USDT"]
        assert config.confidence_ceiling == 70
        assert [(s.timeframe, s.every) for s in config.get_schedules()] == [("5m", 1), ("1h", 10)]

    def test_invalid_yaml_values_raise(self, tmp_path):
        yaml_path = tmp_path / "signals.yaml"
        yaml_path.write_text(yaml.safe_dump({"timeframes": [{"timeframe": "7m"}]}))
        with pytest.raises(ValueError, match="unknown timeframe"):
            load_engine_config(yaml_path)

    def test_env_file_next_to_config_is_loaded(self, tmp_path, monkeypatch):
        monkeypatch.delenv("ENGINE_TEST_KEY", raising=False)
        (tmp_path / ".env").write_text("ENGINE_TEST_KEY=from-dotenv\n")
        yaml_path = tmp_path / "signals.yaml"
        yaml_path.write_text("api_key_env: ENGINE_TEST_KEY\n")

        config = load_engine_config(yaml_path)
        assert config.api_key == "from-dotenv"
        monkeypatch.delenv("ENGINE_TEST_KEY", raising=False)


# ── Settings tests ────────────────────────────────────────────────────────


class TestSettings:
    def test_rate_limit_config_from_env(self, monkeypatch):
        monkeypatch.setenv("MONTHLY_BUDGET", "5000")
        monkeypatch.setenv("PER_MINUTE_BUDGET", "12")
        monkeypatch.setenv("FAILURE_THRESHOLD", "3")

        rate_config = Settings(_env_file=None).rate_limit_config()

        assert rate_config.monthly_budget == 5000
        assert rate_config.per_minute_override == 12
        assert rate_config.failure_threshold == 3
        assert rate_config.throttle_threshold == 0.95

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("PER_MINUTE_BUDGET", raising=False)
        settings = Settings(_env_file=None)
        assert settings.rate_limit_config().per_minute_override is None
        assert settings.redis_enabled is False
