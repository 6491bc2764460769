"""
GridPlanner — derive grid line count and spacing from a price range.

The number of lines is chosen so each cell is roughly ``target_cell_pct``
percent of the lower bound. Planning never raises on a bad range; it
returns a GridSpec whose ``is_valid`` is False and callers skip the
backtest for that instrument/window.
"""

import math
from collections.abc import Iterable
from decimal import Decimal

import pandas as pd

from volscan.config.schemas import GridConfig
from volscan.core.models import Candle, GridSpec

_HUNDRED = Decimal("100")
_EMPTY = GridSpec(Decimal("0"), Decimal("0"), 0, Decimal("0"))


def _to_decimal(value: Decimal | float | int) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


class GridPlanner:
    """Plans arithmetic grids between two bounds."""

    def __init__(self, target_cell_pct: Decimal | float = Decimal("1")) -> None:
        target = _to_decimal(target_cell_pct)
        if target <= 0:
            raise ValueError("target_cell_pct must be positive")
        self.target_cell_pct = target

    @classmethod
    def from_config(cls, config: GridConfig) -> "GridPlanner":
        return cls(config.effective_cell_pct)

    @staticmethod
    def total_range_pct(lower_bound: Decimal, upper_bound: Decimal) -> Decimal:
        """(upper - lower) / lower * 100."""
        return (upper_bound - lower_bound) / lower_bound * _HUNDRED

    def plan(self, lower_bound: Decimal | float, upper_bound: Decimal | float) -> GridSpec:
        """Grid for ``[lower_bound, upper_bound]``; check ``is_valid`` before use."""
        lower = _to_decimal(lower_bound)
        upper = _to_decimal(upper_bound)

        if lower <= 0 or upper <= lower:
            return GridSpec(lower_bound=lower, upper_bound=upper, grid_count=0, grid_width=Decimal("0"))

        range_pct = self.total_range_pct(lower, upper)
        grid_count = math.ceil(range_pct / self.target_cell_pct)
        if grid_count < 2:
            return GridSpec(lower_bound=lower, upper_bound=upper, grid_count=grid_count, grid_width=Decimal("0"))

        return GridSpec(
            lower_bound=lower,
            upper_bound=upper,
            grid_count=grid_count,
            grid_width=(upper - lower) / (grid_count - 1),
        )

    def plan_from_candles(self, candles: Iterable[Candle]) -> GridSpec:
        """Grid spanning the lowest low and highest high of ``candles``."""
        lows, highs = [], []
        for candle in candles:
            lows.append(candle.low)
            highs.append(candle.high)
        if not lows:
            return _EMPTY
        return self.plan(min(lows), max(highs))

    def plan_from_frame(self, candles: pd.DataFrame) -> GridSpec:
        """Same as ``plan_from_candles`` for an OHLC DataFrame."""
        if candles.empty:
            return _EMPTY
        return self.plan(float(candles["low"].min()), float(candles["high"].max()))
