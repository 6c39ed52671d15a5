"""Signal engine configuration loaded from signals.yaml.

Supports:
- Per-timeframe cadence ("every N base ticks") and enable flags
- Optional subset of tracked symbols
- Confidence band override (e.g. a 70 ceiling for the conservative profile)
- No YAML file = every timeframe on its default cadence, all symbols
"""

import logging
import os
from pathlib import Path

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, model_validator

from core.models.config import (
    DEFAULT_CADENCE,
    TIMEFRAMES,
    SignalConfig,
    TimeframeSchedule,
)
from core.models.symbols import is_symbol_supported, tracked_symbols

logger = logging.getLogger(__name__)


class TimeframeEntry(BaseModel):
    """A single timeframe entry in the YAML config."""

    timeframe: str
    every: int | None = None  # None = default cadence for the timeframe
    enabled: bool = True

    def to_schedule(self) -> TimeframeSchedule:
        every = self.every if self.every is not None else DEFAULT_CADENCE.get(self.timeframe, 1)
        return TimeframeSchedule(timeframe=self.timeframe, every=every, enabled=self.enabled)


class EngineConfig(BaseModel):
    """Top-level signals.yaml configuration."""

    base_interval: float | None = None  # None = Settings.base_interval
    symbols: list[str] = []  # empty = all tracked symbols
    include_stablecoins: bool = False
    timeframes: list[TimeframeEntry] = []  # empty = all timeframes, default cadence
    confidence_floor: float = 30.0
    confidence_ceiling: float = 95.0
    api_key_env: str = "CMC_API_KEY"

    @model_validator(mode="after")
    def _validate(self):
        if self.base_interval is not None and self.base_interval <= 0:
            raise ValueError(f"base_interval must be positive, got {self.base_interval}")

        unknown = [s for s in self.symbols if not is_symbol_supported(s)]
        if unknown:
            raise ValueError(f"unsupported symbols: {unknown}")

        seen: set[str] = set()
        for entry in self.timeframes:
            if entry.timeframe not in TIMEFRAMES:
                raise ValueError(
                    f"unknown timeframe '{entry.timeframe}', expected one of {TIMEFRAMES}"
                )
            if entry.timeframe in seen:
                raise ValueError(f"duplicate timeframe '{entry.timeframe}'")
            if entry.every is not None and entry.every < 1:
                raise ValueError(f"{entry.timeframe}: every must be >= 1, got {entry.every}")
            seen.add(entry.timeframe)

        if not 0 <= self.confidence_floor <= self.confidence_ceiling <= 100:
            raise ValueError(
                "confidence band must satisfy 0 <= floor <= ceiling <= 100, "
                f"got [{self.confidence_floor}, {self.confidence_ceiling}]"
            )
        return self

    @property
    def api_key(self) -> str:
        if not self.api_key_env:
            return ""
        return os.environ.get(self.api_key_env, "")

    def get_symbols(self) -> list[str]:
        """Resolve the symbol subset, preserving declaration order."""
        if self.symbols:
            return list(self.symbols)
        return tracked_symbols(include_stablecoins=self.include_stablecoins)

    def get_schedules(self) -> list[TimeframeSchedule]:
        """Enabled timeframe schedules, shortest timeframe first."""
        if self.timeframes:
            schedules = [t.to_schedule() for t in self.timeframes]
        else:
            schedules = [
                TimeframeSchedule(timeframe=tf, every=DEFAULT_CADENCE[tf]) for tf in TIMEFRAMES
            ]
        enabled = [s for s in schedules if s.enabled]
        return sorted(enabled, key=lambda s: TIMEFRAMES.index(s.timeframe))

    def signal_config(self) -> SignalConfig:
        return SignalConfig(
            confidence_floor=self.confidence_floor,
            confidence_ceiling=self.confidence_ceiling,
        )


_DEFAULT_PATH = Path(__file__).parent.parent / "signals.yaml"


def load_engine_config(path: Path | None = None) -> EngineConfig:
    """Load engine config from YAML file.

    Falls back to defaults (all timeframes, all symbols) if the file doesn't exist.
    """
    config_path = path or _DEFAULT_PATH

    # Load .env into os.environ so EngineConfig.api_key can read it
    env_path = config_path.parent / ".env"
    load_dotenv(env_path, override=False)

    if not config_path.exists():
        logger.info("No signals.yaml found at %s, using defaults", config_path)
        return EngineConfig()

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    config = EngineConfig(**raw)
    logger.info(
        "Loaded engine config: %d symbols, %d timeframes, confidence band [%.0f, %.0f]",
        len(config.get_symbols()),
        len(config.get_schedules()),
        config.confidence_floor,
        config.confidence_ceiling,
    )
    return config
