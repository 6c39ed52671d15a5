"""Main application entry point.

Builds the composition root (one rate limiter, one market cache, one price
history, one signal store shared by every timeframe task) and runs the
scheduler until SIGINT/SIGTERM.
"""

import argparse
import asyncio
import logging
import signal
import sys
from dataclasses import dataclass
from pathlib import Path

from app.clients import CoinMarketCapClient
from app.config import Settings, get_settings
from app.engine_config import EngineConfig, load_engine_config
from app.services import MarketDataService, SignalScheduler
from app.storage import (
    InMemoryPriceHistory,
    MarketDataCache,
    SignalStore,
    cache,
    signal_cache,
)
from core.rate_limiter import AdaptiveRateLimiter
from core.signal_generator import SignalGenerator

logger = logging.getLogger(__name__)

# A signal older than this many cadence intervals is reported stale.
STALE_INTERVALS = 2


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


@dataclass
class Engine:
    """Every long-lived component, wired together."""

    settings: Settings
    config: EngineConfig
    client: CoinMarketCapClient
    limiter: AdaptiveRateLimiter
    market_cache: MarketDataCache
    history: InMemoryPriceHistory
    store: SignalStore
    market_data: MarketDataService
    scheduler: SignalScheduler
    mirror_enabled: bool = False

    async def close(self) -> None:
        await self.scheduler.stop()
        await self.client.close()
        if self.mirror_enabled:
            await cache.close_cache()


def build_engine(settings: Settings, config: EngineConfig) -> Engine:
    """Construct all components. No I/O happens here."""
    base_interval = config.base_interval or settings.base_interval
    schedules = config.get_schedules()
    if not schedules:
        raise ValueError("no timeframes enabled in engine config")

    client = CoinMarketCapClient(
        api_key=settings.cmc_api_key or config.api_key,
        base_url=settings.cmc_base_url,
        timeout=settings.upstream_timeout,
    )
    limiter = AdaptiveRateLimiter(settings.rate_limit_config())
    market_cache = MarketDataCache(ttl=settings.market_cache_ttl)
    history = InMemoryPriceHistory(max_points=settings.history_max_points)
    store = SignalStore(
        stale_after={
            s.timeframe: s.interval(base_interval) * STALE_INTERVALS for s in schedules
        }
    )
    market_data = MarketDataService(client, limiter, market_cache, history)
    scheduler = SignalScheduler(
        market_data=market_data,
        history=history,
        generator=SignalGenerator(config.signal_config()),
        store=store,
        symbols=config.get_symbols(),
        schedules=schedules,
        base_interval=base_interval,
        max_concurrency=settings.max_concurrency,
    )
    return Engine(
        settings=settings,
        config=config,
        client=client,
        limiter=limiter,
        market_cache=market_cache,
        history=history,
        store=store,
        market_data=market_data,
        scheduler=scheduler,
    )


async def enable_mirror(engine: Engine) -> None:
    """Connect Redis, restore mirrored signals and mirror future publications."""
    if not await cache.init_cache(engine.settings.redis_url):
        return
    engine.mirror_enabled = True

    restored = 0
    for schedule in engine.scheduler.schedules:
        for sig in await signal_cache.load_signals(schedule.timeframe):
            # Sequence 0 so the first live cycle always supersedes it.
            if engine.store.upsert(sig, 0):
                restored += 1
    logger.info("Restored %d signals from Redis", restored)

    engine.store.on_publish(signal_cache.save_signal)


async def _periodic_telemetry(engine: Engine, interval: float) -> None:
    """Log limiter, cache and resolution telemetry."""
    while True:
        await asyncio.sleep(interval)
        state = engine.limiter.snapshot()
        cache_stats = engine.market_cache.stats()
        logger.info(
            "Limiter: %s, %d/%d this minute, %d credits left this month, rejected %s | "
            "cache hit rate %.0f%% | resolution %s",
            state.breaker_state.value,
            state.requests_this_minute,
            state.per_minute_budget,
            state.remaining_monthly_budget,
            state.rejected,
            cache_stats.hit_rate * 100,
            engine.market_data.stats(),
        )


async def run(once: bool = False, config_path: Path | None = None) -> int:
    settings = get_settings()
    path = config_path or (Path(settings.engine_config_path) if settings.engine_config_path else None)
    config = load_engine_config(path)

    engine = build_engine(settings, config)
    telemetry_task: asyncio.Task | None = None
    try:
        if settings.redis_enabled:
            await enable_mirror(engine)

        if once:
            reports = await engine.scheduler.run_once()
            failed = sum(r.errors for r in reports)
            logger.info("Single pass finished: %d cycles, %d symbol errors", len(reports), failed)
            return 0

        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stop_event.set)

        engine.scheduler.start()
        telemetry_task = asyncio.create_task(
            _periodic_telemetry(engine, engine.scheduler.base_interval)
        )

        stop_waiter = asyncio.create_task(stop_event.wait())
        scheduler_waiter = asyncio.create_task(engine.scheduler.wait())
        done, pending = await asyncio.wait(
            {stop_waiter, scheduler_waiter}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
        if scheduler_waiter in done:
            # Re-raises the fatal cycle error, if any
            scheduler_waiter.result()
        logger.info("Shutdown requested")
        return 0

    except Exception as e:
        logger.error(f"Engine failed: {e}", exc_info=True)
        return 1

    finally:
        if telemetry_task is not None:
            telemetry_task.cancel()
            await asyncio.gather(telemetry_task, return_exceptions=True)
        await engine.close()


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Crypto market data signal engine")
    parser.add_argument("--once", action="store_true", help="run every timeframe once and exit")
    parser.add_argument("--config", type=Path, default=None, help="path to signals.yaml")
    args = parser.parse_args(argv)

    configure_logging(get_settings().log_level)
    return asyncio.run(run(once=args.once, config_path=args.config))


if __name__ == "__main__":
    sys.exit(main())
