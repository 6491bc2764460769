"""Shared test fixtures and helpers for scanner tests."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import numpy as np
import pandas as pd
import pytest

from volscan.config.schemas import Settings
from volscan.core.models import RankingSnapshot

START = datetime(2025, 1, 1, tzinfo=timezone.utc)


def make_candles(
    n: int = 100,
    start_price: float = 100.0,
    volatility: float = 0.01,
    step: timedelta = timedelta(hours=4),
    seed: int = 42,
) -> pd.DataFrame:
    """Synthetic OHLC candles following a random walk."""
    rng = np.random.RandomState(seed)
    prices = [start_price]
    for _ in range(n - 1):
        prices.append(prices[-1] * (1 + rng.normal(0, volatility)))

    rows = []
    for i, close in enumerate(prices):
        open_price = prices[i - 1] if i > 0 else close
        high = close * (1 + abs(rng.normal(0, volatility / 2)))
        low = close * (1 - abs(rng.normal(0, volatility / 2)))
        rows.append({
            "timestamp": START + step * i,
            "open": open_price,
            "high": max(high, open_price, close),
            "low": min(low, open_price, close),
            "close": close,
        })

    df = pd.DataFrame(rows)
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    return df


def make_close_candles(closes: list[float], step: timedelta = timedelta(hours=4)) -> pd.DataFrame:
    """Candles whose open/high/low equal the close."""
    df = pd.DataFrame({
        "timestamp": [START + step * i for i in range(len(closes))],
        "open": closes,
        "high": closes,
        "low": closes,
        "close": closes,
    })
    df["timestamp"] = pd.to_datetime(df["timestamp"], utc=True)
    return df


def make_settings(**overrides) -> Settings:
    """Settings with test-friendly defaults merged with ``overrides``."""
    base = {
        "log_to_file": False,
        "market_data": {"api_key": "test-key", "max_retries": 1},
        "telegram": {"bot_token": "123:abc", "chat_id": "42", "locale_timezone": "UTC"},
        "backtest": {"initial_capital": Decimal("1000"), "commission_rate": Decimal("0.001")},
    }
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            base[key] = {**base[key], **value}
        else:
            base[key] = value
    return Settings(**base)


class MemorySnapshotStore:
    """In-memory snapshot store recording every save."""

    def __init__(self, symbols: list[str] | None = None) -> None:
        self.snapshot = RankingSnapshot(entries=[(s, 0.0) for s in symbols or []])
        self.saves: list[RankingSnapshot] = []

    async def load(self) -> RankingSnapshot:
        return self.snapshot

    async def save(self, snapshot: RankingSnapshot) -> None:
        self.snapshot = snapshot
        self.saves.append(snapshot)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def candles_60() -> pd.DataFrame:
    return make_candles(n=60)


@pytest.fixture
def memory_store() -> MemorySnapshotStore:
    return MemorySnapshotStore()
