"""
EvaluationCycle — one scheduled pass of the scanner.

Steps:
1. Fetch the eligible universe (fatal on failure or when empty)
2. Score every instrument's volatility concurrently; failed instruments
   are excluded, never scored as zero
3. Rank and diff against the stored snapshot
4. On a bootstrap or membership change, backtest the top instruments over
   each lookback window and send the report
5. Overwrite the snapshot; a cycle that fails before this leaves it as is
"""

import asyncio
import time
import uuid
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, TypeVar

from volscan.api.exceptions import AuthenticationError, MarketDataError
from volscan.config.schemas import Settings
from volscan.core.backtester import BacktestSimulator
from volscan.core.grid_planner import GridPlanner
from volscan.core.models import BacktestResult, Instrument, InstrumentScore, RankingDelta
from volscan.core.ranking import RankingTracker, SnapshotStore
from volscan.core.volatility import calculate_volatility, valid_price_count
from volscan.telegram.formatter import ReportFormatter
from volscan.utils.logger import get_logger, log_context

logger = get_logger(__name__)

T = TypeVar("T")


class CycleError(Exception):
    """Whole-cycle failure; the next scheduled cycle still runs."""

    pass


async def _gather_or_cancel(coros: list[Coroutine[Any, Any, T]]) -> list[T]:
    """
    Run ``coros`` concurrently; on the first failure cancel the rest and
    wait for them before re-raising, so no fetch outlives the cycle.
    """
    tasks = [asyncio.ensure_future(c) for c in coros]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


@dataclass
class CycleReport:
    """What one cycle computed and sent."""

    cycle_id: str
    started_at: datetime
    delta: RankingDelta | None = None
    scores: list[InstrumentScore] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)
    backtests: dict[str, dict[int, BacktestResult]] = field(default_factory=dict)
    messages: list[str] = field(default_factory=list)
    delivered: int = 0
    duration_seconds: float = 0.0

    @property
    def notified(self) -> bool:
        return bool(self.messages)


class EvaluationCycle:
    """
    Composes the market-data client, the numeric core, the snapshot store
    and the notifier for one evaluation.

    Args:
        settings: Immutable application settings
        client: Market-data client (``fetch_instruments``,
            ``fetch_daily_closes``, ``fetch_candles``)
        store: Snapshot store
        notifier: Optional notifier with ``send_many``; reports are only
            composed when it is None
        clock: Returns the cycle timestamp (injectable for tests)
    """

    def __init__(
        self,
        settings: Settings,
        client,
        store: SnapshotStore,
        notifier=None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.settings = settings
        self.client = client
        self.store = store
        self.notifier = notifier
        self.clock = clock or (lambda: datetime.now(timezone.utc))

        self.tracker = RankingTracker(settings.ranking.top_n)
        self.planner = GridPlanner.from_config(settings.grid)
        self.simulator = BacktestSimulator.from_config(settings.backtest)
        self.formatter = ReportFormatter(
            top_n=settings.ranking.top_n,
            lookback_days=settings.ranking.volatility_lookback_days,
            check_interval_hours=settings.check_interval_hours,
            max_message_length=settings.telegram.max_message_length,
            tz=settings.telegram.locale_timezone,
        )
        self._semaphore = asyncio.Semaphore(settings.market_data.max_concurrency)

    async def run(self) -> CycleReport:
        """Run one cycle; raises CycleError on whole-cycle failure."""
        cycle_id = uuid.uuid4().hex[:8]
        started = time.perf_counter()
        now = self.clock()

        with log_context(cycle_id=cycle_id):
            logger.info("cycle_started")

            instruments = await self._fetch_universe()
            scores, skipped = await self._score_all(instruments)
            if not scores:
                raise CycleError("No volatility could be computed")

            report = CycleReport(
                cycle_id=cycle_id,
                started_at=now,
                scores=scores,
                skipped=skipped,
            )
            by_symbol = {i.symbol: i for i in instruments}

            async def publish(delta: RankingDelta) -> None:
                report.delta = delta
                if not delta.should_notify:
                    logger.info("ranking_unchanged", top=delta.current.symbols)
                    return
                if self.settings.backtest.enabled:
                    report.backtests = await self._run_backtests(delta, by_symbol)
                report.messages = self._compose(delta, report.backtests, now)
                if self.notifier is not None:
                    report.delivered = await self.notifier.send_many(report.messages)

            # the snapshot is only overwritten once publish() has finished
            await self.tracker.evaluate(scores, self.store, now, on_delta=publish)

            report.duration_seconds = time.perf_counter() - started
            logger.info(
                "cycle_completed",
                eligible=len(instruments),
                scored=len(scores),
                skipped=len(skipped),
                notified=report.notified,
                duration_s=round(report.duration_seconds, 2),
            )
            return report

    # =========================================================================
    # Steps
    # =========================================================================

    async def _fetch_universe(self) -> list[Instrument]:
        try:
            instruments = await self.client.fetch_instruments()
        except MarketDataError as e:
            raise CycleError(f"Symbol list unavailable: {e}") from e
        if not instruments:
            raise CycleError("Symbol list is empty")
        logger.info("universe_loaded", instruments=len(instruments))
        return instruments

    async def _score_all(
        self, instruments: list[Instrument]
    ) -> tuple[list[InstrumentScore], dict[str, str]]:
        outcomes = await _gather_or_cancel([self._score_one(i) for i in instruments])

        scores: list[InstrumentScore] = []
        skipped: dict[str, str] = {}
        for instrument, outcome in zip(instruments, outcomes):
            if isinstance(outcome, InstrumentScore):
                scores.append(outcome)
            else:
                skipped[instrument.symbol] = outcome

        logger.info("volatility_scored", scored=len(scores), skipped=len(skipped))
        return scores, skipped

    async def _score_one(self, instrument: Instrument) -> InstrumentScore | str:
        """Score, or the reason the instrument is excluded this cycle."""
        async with self._semaphore:
            try:
                closes = await self.client.fetch_daily_closes(
                    instrument.coin_id, self.settings.ranking.volatility_lookback_days
                )
            except AuthenticationError as e:
                raise CycleError(f"Market data authentication failed: {e}") from e
            except MarketDataError as e:
                logger.warning("instrument_skipped", symbol=instrument.symbol, reason="fetch_failed", error=str(e))
                return "fetch_failed"

        if valid_price_count(closes) < 2:
            logger.debug("instrument_skipped", symbol=instrument.symbol, reason="insufficient_data")
            return "insufficient_data"

        return InstrumentScore(
            symbol=instrument.symbol,
            volatility=calculate_volatility(closes),
            coin_id=instrument.coin_id,
        )

    async def _run_backtests(
        self, delta: RankingDelta, by_symbol: dict[str, Instrument]
    ) -> dict[str, dict[int, BacktestResult]]:
        config = self.settings.backtest
        targets = delta.current.symbols[: config.top_k]
        runs = await _gather_or_cancel([self._backtest_one(by_symbol[s]) for s in targets])
        return dict(zip(targets, runs))

    async def _backtest_one(self, instrument: Instrument) -> dict[int, BacktestResult]:
        config = self.settings.backtest
        async with self._semaphore:
            try:
                candles = await self.client.fetch_candles(instrument.coin_id, config.candle_days)
            except AuthenticationError as e:
                raise CycleError(f"Market data authentication failed: {e}") from e
            except MarketDataError as e:
                logger.warning("backtest_candles_unavailable", symbol=instrument.symbol, error=str(e))
                return {d: BacktestResult.unavailable("fetch_failed", d) for d in config.windows_days}

        results = self.simulator.run_windows(
            candles,
            config.windows_days,
            self.planner,
            bounds_mode=config.bounds_mode,
        )
        logger.info(
            "backtests_completed",
            symbol=instrument.symbol,
            windows={d: round(float(r.profit_pct), 2) for d, r in results.items() if r.available},
        )
        return results

    def _compose(
        self,
        delta: RankingDelta,
        backtests: dict[str, dict[int, BacktestResult]],
        now: datetime,
    ) -> list[str]:
        summary = self.formatter.summary(delta, now)
        blocks = [
            self.formatter.backtest_block(symbol, results, delta.current.volatility_of(symbol))
            for symbol, results in backtests.items()
        ]
        return self.formatter.compose(summary, blocks)
