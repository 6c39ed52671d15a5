"""Per-timeframe signal calculation scheduler.

One periodic task per timeframe. Each firing runs a full cycle over the
tracked symbols: batch prefetch, then per-symbol resolve -> indicators ->
signal -> publish on a bounded worker pool.

- Cycles of the same timeframe never overlap: a cycle that overruns its
  interval finishes, and the firings it overran are skipped and counted.
- A failure while processing one symbol is logged and counted; the cycle
  carries on with the other symbols.
- Anything escaping a cycle is a configuration or programming error and
  stops the scheduler.
"""

import asyncio
import itertools
import logging
import time
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Sequence

from app.services.market_data import MarketDataService
from app.storage import PriceHistoryStore, SignalStore
from core.models import Absent, ErrorKind, FetchFailed, Resolved, TimeframeSchedule
from core.signal_generator import InvalidSignalError, SignalGenerator

logger = logging.getLogger(__name__)


class SymbolOutcome(str, Enum):
    PUBLISHED = "published"
    SUPERSEDED = "superseded"  # a newer cycle already published this key
    SKIPPED = "skipped"        # no snapshot this cycle
    INVALID = "invalid"        # indicator/risk invariant violated
    ERROR = "error"


@dataclass
class CycleReport:
    """Outcome of one timeframe cycle."""

    timeframe: str
    sequence: int
    started_at: datetime
    duration: float = 0.0
    symbols: int = 0
    prefetched: int = 0
    published: int = 0
    superseded: int = 0
    skipped: int = 0
    invalid: int = 0
    errors: int = 0

    @property
    def processed(self) -> int:
        return self.published + self.superseded


@dataclass
class TimeframeStatus:
    """Running totals for one timeframe."""

    timeframe: str
    interval: float
    cycles: int = 0
    skipped_firings: int = 0
    last_report: CycleReport | None = None
    errors_by_symbol: Counter = field(default_factory=Counter)


class SignalScheduler:
    """Drive signal calculation for every enabled timeframe.

    Parameters
    ----------
    market_data : MarketDataService
        Snapshot resolution (cache, gated upstream, history).
    history : PriceHistoryStore
        Read side of the price history collaborator.
    generator : SignalGenerator
        Pure signal derivation.
    store : SignalStore
        Sequence-guarded latest-signal store.
    symbols : Sequence[str]
        Tracked pair symbols.
    schedules : Sequence[TimeframeSchedule]
        Enabled timeframes and their cadence in base ticks.
    base_interval : float
        Seconds per base tick.
    max_concurrency : int
        Symbol tasks in flight at once, across all timeframes.
    """

    def __init__(
        self,
        market_data: MarketDataService,
        history: PriceHistoryStore,
        generator: SignalGenerator,
        store: SignalStore,
        symbols: Sequence[str],
        schedules: Sequence[TimeframeSchedule],
        base_interval: float = 60.0,
        max_concurrency: int = 8,
    ):
        if base_interval <= 0:
            raise ValueError(f"base_interval must be positive, got {base_interval}")
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be >= 1, got {max_concurrency}")
        timeframes = [s.timeframe for s in schedules]
        if len(set(timeframes)) != len(timeframes):
            raise ValueError(f"duplicate timeframes in schedule: {timeframes}")

        self.market_data = market_data
        self.history = history
        self.generator = generator
        self.store = store
        self.symbols = list(symbols)
        self.schedules = [s for s in schedules if s.enabled]
        self.base_interval = base_interval

        self._semaphore = asyncio.Semaphore(max_concurrency)
        self._sequences = {s.timeframe: itertools.count(1) for s in self.schedules}
        self._status = {
            s.timeframe: TimeframeStatus(timeframe=s.timeframe, interval=s.interval(base_interval))
            for s in self.schedules
        }
        self._tasks: list[asyncio.Task] = []

    # ------------------------------------------------------------------
    # Symbol level
    # ------------------------------------------------------------------

    async def _process_symbol(
        self,
        symbol: str,
        timeframe: str,
        sequence: int,
        upstream_failure: ErrorKind | None = None,
    ) -> SymbolOutcome:
        async with self._semaphore:
            try:
                result = await self.market_data.resolve(symbol, upstream_failure)
                if isinstance(result, Absent):
                    logger.debug("%s %s skipped: %s", symbol, timeframe, result.reason.value)
                    return SymbolOutcome.SKIPPED
                elif isinstance(result, FetchFailed):
                    logger.debug("%s %s skipped: upstream %s", symbol, timeframe, result.kind.value)
                    return SymbolOutcome.SKIPPED
                elif not isinstance(result, Resolved):
                    raise TypeError(f"unexpected snapshot result {result!r}")

                window = await self.history.read(symbol)
                signal = self.generator.derive(result.snapshot, window, timeframe)
                if await self.store.publish(signal, sequence):
                    return SymbolOutcome.PUBLISHED
                return SymbolOutcome.SUPERSEDED

            except InvalidSignalError as e:
                logger.warning("%s %s: %s; keeping previous signal", symbol, timeframe, e)
                return SymbolOutcome.INVALID
            except Exception as e:
                logger.error(f"Error processing {symbol} {timeframe}: {e}", exc_info=True)
                return SymbolOutcome.ERROR

    # ------------------------------------------------------------------
    # Cycle level
    # ------------------------------------------------------------------

    async def run_cycle(self, timeframe: str) -> CycleReport:
        """Run one full cycle for ``timeframe`` and record its report."""
        status = self._status.get(timeframe)
        if status is None:
            raise ValueError(f"timeframe '{timeframe}' is not scheduled")

        sequence = next(self._sequences[timeframe])
        report = CycleReport(
            timeframe=timeframe,
            sequence=sequence,
            started_at=datetime.now(timezone.utc),
            symbols=len(self.symbols),
        )
        started = time.perf_counter()

        prefetch = await self.market_data.prefetch(self.symbols)
        report.prefetched = prefetch.fetched
        outcomes = await asyncio.gather(
            *(
                self._process_symbol(s, timeframe, sequence, prefetch.failed.get(s))
                for s in self.symbols
            )
        )

        for symbol, outcome in zip(self.symbols, outcomes):
            if outcome == SymbolOutcome.PUBLISHED:
                report.published += 1
            elif outcome == SymbolOutcome.SUPERSEDED:
                report.superseded += 1
            elif outcome == SymbolOutcome.SKIPPED:
                report.skipped += 1
            else:
                if outcome == SymbolOutcome.INVALID:
                    report.invalid += 1
                report.errors += 1
                status.errors_by_symbol[symbol] += 1

        report.duration = time.perf_counter() - started
        status.cycles += 1
        status.last_report = report

        logger.info(
            "Cycle %s #%d: %d published, %d skipped, %d errors in %.2fs (prefetched %d)",
            timeframe,
            sequence,
            report.published,
            report.skipped,
            report.errors,
            report.duration,
            report.prefetched,
        )
        return report

    async def run_once(self) -> list[CycleReport]:
        """Run one cycle of every enabled timeframe, shortest first."""
        return [await self.run_cycle(s.timeframe) for s in self.schedules]

    async def _run_timeframe(self, schedule: TimeframeSchedule) -> None:
        """Fire cycles on a fixed grid; overrun firings are skipped, not queued."""
        loop = asyncio.get_running_loop()
        status = self._status[schedule.timeframe]
        interval = status.interval
        next_fire = loop.time()

        while True:
            await self.run_cycle(schedule.timeframe)

            now = loop.time()
            next_fire += interval
            if now > next_fire:
                missed = int((now - next_fire) // interval) + 1
                next_fire += missed * interval
                status.skipped_firings += missed
                logger.warning(
                    "Cycle %s overran its %.0fs interval, skipped %d firing(s)",
                    schedule.timeframe,
                    interval,
                    missed,
                )
            await asyncio.sleep(next_fire - now)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Start one task per enabled timeframe. First cycles run immediately."""
        if self._tasks:
            return
        for schedule in self.schedules:
            task = asyncio.create_task(
                self._run_timeframe(schedule), name=f"signals-{schedule.timeframe}"
            )
            self._tasks.append(task)
        logger.info(
            "Scheduler started: %d timeframes x %d symbols (base tick %.0fs)",
            len(self.schedules),
            len(self.symbols),
            self.base_interval,
        )

    async def wait(self) -> None:
        """Block until a timeframe task fails; re-raise its error after stopping the rest."""
        if not self._tasks:
            return
        done, _ = await asyncio.wait(self._tasks, return_when=asyncio.FIRST_EXCEPTION)
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.error(
                    "Timeframe task %s failed, stopping scheduler", task.get_name()
                )
                await self.stop()
                raise task.exception()

    async def stop(self) -> None:
        """Cancel every timeframe task and wait for them to finish."""
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            logger.info("Scheduler stopped")

    @property
    def is_running(self) -> bool:
        return any(not t.done() for t in self._tasks)

    def status(self) -> dict[str, TimeframeStatus]:
        return dict(self._status)
