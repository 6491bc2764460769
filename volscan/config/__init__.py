"""Settings schemas and loader"""

from volscan.config.manager import ConfigError, SettingsManager, load_settings
from volscan.config.schemas import (
    BacktestConfig,
    BoundsMode,
    GridConfig,
    MarketDataConfig,
    RankingConfig,
    Settings,
    StorageBackend,
    StorageConfig,
    TelegramConfig,
)

__all__ = [
    "ConfigError",
    "SettingsManager",
    "load_settings",
    "Settings",
    "MarketDataConfig",
    "GridConfig",
    "BacktestConfig",
    "BoundsMode",
    "RankingConfig",
    "TelegramConfig",
    "StorageConfig",
    "StorageBackend",
]
