"""
Realized volatility of a close-price series.

Population standard deviation of log returns, in percent, not annualized
(the figure TradingView shows for a daily lookback).
"""

import math
from collections.abc import Sequence


def log_returns(prices: Sequence[float]) -> list[float]:
    """
    ln(p[i] / p[i-1]) for each adjacent pair whose prior price is positive.

    A non-positive current price has no logarithm either; that pair is
    skipped the same way.
    """
    returns = []
    for prev, cur in zip(prices, prices[1:]):
        if prev > 0 and cur > 0:
            returns.append(math.log(cur / prev))
    return returns


def calculate_volatility(prices: Sequence[float]) -> float:
    """
    Volatility of ``prices`` as stdev(log returns) * 100.

    Returns 0.0 for fewer than two samples or when no valid pair exists.
    Scaling every price by the same positive constant leaves the result
    unchanged.
    """
    if len(prices) < 2:
        return 0.0

    returns = log_returns(prices)
    if not returns:
        return 0.0

    mean = math.fsum(returns) / len(returns)
    variance = math.fsum((r - mean) ** 2 for r in returns) / len(returns)
    return math.sqrt(variance) * 100


def valid_price_count(prices: Sequence[float]) -> int:
    """Number of strictly positive samples."""
    return sum(1 for p in prices if p > 0)
