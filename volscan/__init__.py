"""
volscan — volatility scanner with grid backtests.

Provides:
- Realized volatility ranking of a futures universe
- Top-N change detection against a persisted snapshot
- Grid-trading backtests over trailing windows
- Telegram reporting on a fixed schedule
"""

__version__ = "1.0.0"
