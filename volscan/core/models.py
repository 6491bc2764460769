"""
Scanner data models — candles, grid specs, backtest results, ranking snapshots.

Everything here is transient per cycle except RankingSnapshot, which is
carried between cycles by the snapshot store.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any


# =============================================================================
# Market data
# =============================================================================


@dataclass(frozen=True)
class Instrument:
    """One entry of the eligible universe."""

    symbol: str
    coin_id: str


@dataclass(frozen=True)
class Candle:
    """Single OHLC period. Only ``close`` drives volatility and fills."""

    timestamp: datetime
    open: float
    high: float
    low: float
    close: float

    @classmethod
    def from_ohlc_row(cls, row: list[float] | tuple[float, ...]) -> "Candle":
        """Build from a ``[timestamp_ms, open, high, low, close]`` row."""
        ts_ms, o, h, low, c = row[:5]
        return cls(
            timestamp=datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc),
            open=float(o),
            high=float(h),
            low=float(low),
            close=float(c),
        )


# =============================================================================
# Grid
# =============================================================================


@dataclass(frozen=True)
class GridSpec:
    """Evenly spaced grid between two bounds."""

    lower_bound: Decimal
    upper_bound: Decimal
    grid_count: int
    grid_width: Decimal

    @property
    def is_valid(self) -> bool:
        return (
            self.grid_count >= 2
            and self.lower_bound > 0
            and self.lower_bound < self.upper_bound
        )

    def grid_lines(self) -> list[Decimal]:
        """Prices of lines 0..grid_count-1, lowest first."""
        return [self.lower_bound + self.grid_width * i for i in range(self.grid_count)]


@dataclass
class GridLineState:
    """Order slot of one grid line; holds at most one open position."""

    active: bool = False
    quantity: Decimal = Decimal("0")
    entry_price: Decimal = Decimal("0")

    def open(self, quantity: Decimal, entry_price: Decimal) -> None:
        if self.active:
            raise RuntimeError("grid line already holds a position")
        self.active = True
        self.quantity = quantity
        self.entry_price = entry_price

    def clear(self) -> None:
        self.active = False
        self.quantity = Decimal("0")
        self.entry_price = Decimal("0")


# =============================================================================
# Backtest Result
# =============================================================================


@dataclass
class BacktestResult:
    """
    Outcome of one grid backtest run.

    ``available`` is False when the run could not be simulated at all
    (no candles, invalid grid); the numeric fields are then meaningless
    and ``reason`` says why. A run with zero trades is still available.
    """

    available: bool = True
    reason: str = ""

    window_days: int | None = None
    grid: GridSpec | None = None
    initial_capital: Decimal = Decimal("0")

    realized_pnl: Decimal = Decimal("0")
    unrealized_pnl: Decimal = Decimal("0")
    total_pnl: Decimal = Decimal("0")
    profit_pct: Decimal = Decimal("0")
    trade_count: int = 0
    total_fee: Decimal = Decimal("0")
    final_balance: Decimal = Decimal("0")

    candles_processed: int = 0
    open_positions: int = 0

    @classmethod
    def unavailable(cls, reason: str, window_days: int | None = None) -> "BacktestResult":
        return cls(available=False, reason=reason, window_days=window_days)

    def to_dict(self) -> dict[str, Any]:
        if not self.available:
            return {"available": False, "reason": self.reason, "window_days": self.window_days}
        return {
            "available": True,
            "window_days": self.window_days,
            "grid_count": self.grid.grid_count if self.grid else None,
            "lower_bound": float(self.grid.lower_bound) if self.grid else None,
            "upper_bound": float(self.grid.upper_bound) if self.grid else None,
            "realized_pnl": round(float(self.realized_pnl), 4),
            "unrealized_pnl": round(float(self.unrealized_pnl), 4),
            "total_pnl": round(float(self.total_pnl), 4),
            "profit_pct": round(float(self.profit_pct), 4),
            "trade_count": self.trade_count,
            "total_fee": round(float(self.total_fee), 4),
            "final_balance": round(float(self.final_balance), 4),
            "candles_processed": self.candles_processed,
            "open_positions": self.open_positions,
        }


# =============================================================================
# Ranking
# =============================================================================


@dataclass(frozen=True)
class InstrumentScore:
    """Volatility computed for one instrument this cycle."""

    symbol: str
    volatility: float
    coin_id: str = ""


@dataclass
class RankingSnapshot:
    """Newest top-N ordering; the persisted form keeps symbols and a timestamp."""

    entries: list[tuple[str, float]] = field(default_factory=list)
    last_check: datetime | None = None

    @property
    def symbols(self) -> list[str]:
        return [symbol for symbol, _ in self.entries]

    def volatility_of(self, symbol: str) -> float | None:
        for sym, vol in self.entries:
            if sym == symbol:
                return vol
        return None

    def to_state(self) -> dict[str, Any]:
        return {
            "top_list": self.symbols,
            "last_check": self.last_check.isoformat() if self.last_check else None,
        }

    @classmethod
    def from_state(cls, state: dict[str, Any] | None) -> "RankingSnapshot":
        """Restore from a persisted record; volatilities are not kept, so they read 0."""
        if not state:
            return cls()
        last_check = state.get("last_check") or state.get("lastCheck")
        return cls(
            entries=[(str(s), 0.0) for s in state.get("top_list") or state.get("topList") or []],
            last_check=datetime.fromisoformat(last_check) if last_check else None,
        )


@dataclass
class RankingDelta:
    """Membership change of the top-N between two cycles."""

    current: RankingSnapshot
    entries: set[str] = field(default_factory=set)
    exits: set[str] = field(default_factory=set)
    previous: list[str] = field(default_factory=list)
    is_initial: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.entries or self.exits)

    @property
    def should_notify(self) -> bool:
        return self.is_initial or self.changed

    def rank_of(self, symbol: str) -> int:
        """1-based position in the new top-N."""
        return self.current.symbols.index(symbol) + 1

    def ordered_entries(self) -> list[str]:
        """Entries in new-rank order."""
        return [s for s in self.current.symbols if s in self.entries]

    def ordered_exits(self) -> list[str]:
        """Exits in their previous-cycle order."""
        return [s for s in self.previous if s in self.exits]
