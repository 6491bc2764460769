"""
BacktestSimulator — grid-trading backtest over a candle sequence.

One order slot per grid line, fixed capital split evenly across cells, and
the candle close as the only decision price. Every line is checked on every
candle, lowest first:

- BUY at line i when close < line[i], the slot is free and i is not the top line
- SELL the position of line i-1 when close > line[i] and i > 0

A move crossing several lines in one candle only fills what these per-line
checks allow; no cascading fills are modelled.
"""

from collections.abc import Iterable, Sequence
from datetime import timedelta
from decimal import MAX_EMAX, MAX_PREC, MIN_EMIN, Context, Decimal

import pandas as pd

from volscan.config.schemas import BacktestConfig, BoundsMode
from volscan.core.grid_planner import GridPlanner
from volscan.core.models import BacktestResult, Candle, GridLineState, GridSpec
from volscan.utils.logger import get_logger

logger = get_logger(__name__)

CandleInput = pd.DataFrame | Sequence[Candle]

# Exact addition for the final balance, so balance - capital gives back the pnl
_EXACT = Context(prec=MAX_PREC, Emax=MAX_EMAX, Emin=MIN_EMIN)


def candles_to_frame(candles: Iterable[Candle]) -> pd.DataFrame:
    """Candle records -> DataFrame indexed in chronological order."""
    rows = [
        {"timestamp": c.timestamp, "open": c.open, "high": c.high, "low": c.low, "close": c.close}
        for c in candles
    ]
    df = pd.DataFrame(rows, columns=["timestamp", "open", "high", "low", "close"])
    if not df.empty:
        df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
        df = df.sort_values("timestamp", kind="stable").reset_index(drop=True)
    return df


def trailing_window(candles: pd.DataFrame, days: int) -> pd.DataFrame:
    """Candles within ``days`` of the last candle (exclusive lower edge)."""
    if candles.empty:
        return candles
    end = candles["timestamp"].iloc[-1]
    return candles[candles["timestamp"] > end - timedelta(days=days)]


def _closes(candles: CandleInput) -> list[Decimal]:
    if isinstance(candles, pd.DataFrame):
        if candles.empty:
            return []
        if "close" not in candles.columns:
            raise ValueError("Missing columns: {'close'}")
        return [Decimal(str(x)) for x in candles["close"]]
    return [Decimal(str(c.close)) for c in candles]


class BacktestSimulator:
    """
    Runs grid backtests with a fixed capital and commission.

    Usage:
        simulator = BacktestSimulator(Decimal("1000"), Decimal("0.0005"))
        grid = GridPlanner(1).plan(90, 110)
        result = simulator.run(candles, grid)
    """

    def __init__(
        self,
        initial_capital: Decimal = Decimal("1000"),
        commission_rate: Decimal = Decimal("0.0005"),
    ) -> None:
        if initial_capital <= 0:
            raise ValueError("initial_capital must be positive")
        if commission_rate < 0:
            raise ValueError("commission_rate must be non-negative")
        self.initial_capital = Decimal(str(initial_capital))
        self.commission_rate = Decimal(str(commission_rate))

    @classmethod
    def from_config(cls, config: BacktestConfig) -> "BacktestSimulator":
        return cls(config.initial_capital, config.commission_rate)

    def run(
        self,
        candles: CandleInput,
        grid: GridSpec,
        window_days: int | None = None,
    ) -> BacktestResult:
        """Simulate one run; never raises for empty candles or a bad grid."""
        closes = _closes(candles)
        if not closes:
            return BacktestResult.unavailable("no_candles", window_days)
        if not grid.is_valid:
            return BacktestResult.unavailable("invalid_grid", window_days)

        capital = self.initial_capital
        rate = self.commission_rate
        lines = grid.grid_lines()
        top = grid.grid_count - 1
        capital_per_grid = capital / (grid.grid_count - 1)
        slots = [GridLineState() for _ in range(grid.grid_count)]

        realized = Decimal("0")
        total_fee = Decimal("0")
        trade_count = 0

        for close in closes:
            for i, line in enumerate(lines):
                slot = slots[i]
                if close < line and not slot.active and i != top:
                    quantity = capital_per_grid / close
                    slot.open(quantity, close)
                    # entry fee is booked, not deducted from the quantity
                    total_fee += quantity * close * rate

                if i != 0 and close > line:
                    held = slots[i - 1]
                    if held.active:
                        sell_fee = held.quantity * close * rate
                        buy_fee = held.quantity * held.entry_price * rate
                        realized += held.quantity * (close - held.entry_price) - sell_fee - buy_fee
                        total_fee += sell_fee
                        trade_count += 1
                        held.clear()

        last_close = closes[-1]
        unrealized = Decimal("0")
        open_positions = 0
        for slot in slots:
            if slot.active:
                unrealized += slot.quantity * (last_close - slot.entry_price)
                open_positions += 1

        total_pnl = realized + unrealized
        final_balance = _EXACT.add(capital, total_pnl)

        logger.debug(
            "backtest_completed",
            window_days=window_days,
            candles=len(closes),
            grid_count=grid.grid_count,
            trades=trade_count,
            open_positions=open_positions,
            total_pnl=round(float(total_pnl), 4),
        )

        return BacktestResult(
            window_days=window_days,
            grid=grid,
            initial_capital=capital,
            realized_pnl=realized,
            unrealized_pnl=unrealized,
            total_pnl=total_pnl,
            profit_pct=total_pnl / capital * 100,
            trade_count=trade_count,
            total_fee=total_fee,
            final_balance=final_balance,
            candles_processed=len(closes),
            open_positions=open_positions,
        )

    def run_windows(
        self,
        candles: pd.DataFrame,
        windows_days: Iterable[int],
        planner: GridPlanner,
        bounds_mode: BoundsMode = BoundsMode.PER_WINDOW,
        fixed_grid: GridSpec | None = None,
    ) -> dict[int, BacktestResult]:
        """
        One independent run per trailing window, keyed by window length.

        FIXED mode plans one grid from the widest window (or uses
        ``fixed_grid``) and reuses it; PER_WINDOW plans from each window's
        own high/low.
        """
        windows = sorted(set(windows_days))
        if not windows:
            return {}

        if bounds_mode == BoundsMode.FIXED and fixed_grid is None:
            fixed_grid = planner.plan_from_frame(trailing_window(candles, windows[-1]))

        results: dict[int, BacktestResult] = {}
        for days in windows:
            window = trailing_window(candles, days)
            if bounds_mode == BoundsMode.FIXED:
                grid = fixed_grid
            else:
                grid = planner.plan_from_frame(window)
            results[days] = self.run(window, grid, window_days=days)
        return results
