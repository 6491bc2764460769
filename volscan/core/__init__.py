"""Numeric core — volatility, grid planning, backtests, ranking."""

from volscan.core.backtester import BacktestSimulator, candles_to_frame, trailing_window
from volscan.core.grid_planner import GridPlanner
from volscan.core.models import (
    BacktestResult,
    Candle,
    GridLineState,
    GridSpec,
    Instrument,
    InstrumentScore,
    RankingDelta,
    RankingSnapshot,
)
from volscan.core.ranking import RankingTracker, SnapshotStore
from volscan.core.volatility import calculate_volatility, log_returns, valid_price_count

__all__ = [
    "BacktestResult",
    "BacktestSimulator",
    "Candle",
    "GridLineState",
    "GridPlanner",
    "GridSpec",
    "Instrument",
    "InstrumentScore",
    "RankingDelta",
    "RankingSnapshot",
    "RankingTracker",
    "SnapshotStore",
    "calculate_volatility",
    "candles_to_frame",
    "log_returns",
    "trailing_window",
    "valid_price_count",
]
