"""
Pydantic schemas for scanner settings.
One frozen Settings value is built at startup and handed to every component.
"""

from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

DEFAULT_CELL_PCT = Decimal("1")


class BoundsMode(str, Enum):
    """How grid bounds are chosen across backtest windows."""

    FIXED = "fixed"  # one GridSpec from the widest window, reused by all windows
    PER_WINDOW = "per_window"  # high/low recomputed for every window


class StorageBackend(str, Enum):
    """Where the ranking snapshot lives between cycles."""

    JSON = "json"
    REDIS = "redis"


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class MarketDataConfig(_Frozen):
    """CoinGecko market-data collaborator settings"""

    base_url: str = Field(
        default="https://api.coingecko.com/api/v3",
        description="CoinGecko REST base URL",
    )
    api_key: str | None = Field(default=None, description="CoinGecko demo API key")
    market_name: str = Field(
        default="Binance (Futures)",
        description="Derivatives market whose tickers form the universe",
    )
    quote_suffix: str = Field(default="USDT", min_length=1, description="Required symbol suffix")
    vs_currency: str = Field(default="usd", description="Quote currency for price history")
    rate_limit_per_minute: int = Field(
        default=30,
        ge=1,
        le=10_000,
        description="Request budget against the provider (demo tier: 30/min)",
    )
    max_retries: int = Field(default=3, ge=1, le=10, description="Attempts per request")
    request_timeout_seconds: float = Field(default=15.0, gt=0, description="HTTP timeout")
    max_concurrency: int = Field(
        default=4,
        ge=1,
        le=64,
        description="Instruments fetched concurrently (still gated by the rate limit)",
    )


class GridConfig(_Frozen):
    """Grid planning settings (cell size as % of the lower bound)"""

    target_cell_pct: Decimal | None = Field(
        default=None,
        gt=0,
        le=100,
        description="Target width of one grid cell in percent (1 when nothing is set)",
    )
    min_cell_pct: Decimal | None = Field(default=None, gt=0, le=100)
    max_cell_pct: Decimal | None = Field(default=None, gt=0, le=100)

    @model_validator(mode="after")
    def validate_cell_size(self) -> "GridConfig":
        """A min/max pair must be complete and ordered"""
        pair = (self.min_cell_pct, self.max_cell_pct)
        if any(v is not None for v in pair) and not all(v is not None for v in pair):
            raise ValueError("min_cell_pct and max_cell_pct must be set together")
        if self.min_cell_pct is not None and self.min_cell_pct > self.max_cell_pct:
            raise ValueError("min_cell_pct must not exceed max_cell_pct")
        return self

    @property
    def effective_cell_pct(self) -> Decimal:
        """Cell size fed to the planner; a single target wins over the pair."""
        if self.target_cell_pct is not None:
            return self.target_cell_pct
        if self.min_cell_pct is not None:
            return (self.min_cell_pct + self.max_cell_pct) / 2
        return DEFAULT_CELL_PCT


class BacktestConfig(_Frozen):
    """Grid backtest settings"""

    enabled: bool = Field(default=True, description="Run backtests for top instruments")
    initial_capital: Decimal = Field(default=Decimal("1000"), gt=0)
    commission_rate: Decimal = Field(
        default=Decimal("0.0005"),
        ge=0,
        lt=1,
        description="Fee per side as a fraction of notional (0.0005 = 0.05%)",
    )
    windows_days: tuple[int, ...] = Field(
        default=(1, 3, 5, 10),
        description="Trailing windows simulated per instrument",
    )
    bounds_mode: BoundsMode = Field(default=BoundsMode.PER_WINDOW)
    top_k: int = Field(
        default=3,
        ge=0,
        le=50,
        description="How many of the top-ranked instruments get backtests",
    )

    @field_validator("windows_days")
    @classmethod
    def validate_windows(cls, v: tuple[int, ...]) -> tuple[int, ...]:
        if not v:
            raise ValueError("windows_days must not be empty")
        if any(days <= 0 for days in v):
            raise ValueError("windows_days must be positive")
        return tuple(sorted(set(v)))

    @property
    def candle_days(self) -> int:
        """History needed to cover the widest window."""
        return max(self.windows_days)


class RankingConfig(_Frozen):
    """Top-N ranking settings"""

    top_n: int = Field(default=10, ge=1, le=250)
    volatility_lookback_days: int = Field(
        default=7,
        ge=2,
        le=365,
        description="Daily closes used for the volatility score",
    )


class TelegramConfig(_Frozen):
    """Notification channel settings"""

    bot_token: str | None = Field(default=None, description="Telegram bot token")
    chat_id: str | None = Field(default=None, description="Target chat ID")
    parse_mode: str = Field(default="HTML")
    max_message_length: int = Field(default=4096, ge=256, le=4096)
    locale_timezone: str = Field(
        default="Europe/Istanbul",
        description="Timezone used for the date line in messages",
    )


class StorageConfig(_Frozen):
    """Snapshot persistence settings"""

    backend: StorageBackend = Field(default=StorageBackend.JSON)
    state_path: str = Field(default="./state.json")
    redis_url: str = Field(default="redis://localhost:6379")
    redis_key: str = Field(default="volscan:snapshot")


class Settings(_Frozen):
    """Application-wide settings"""

    check_interval_hours: float = Field(default=6, gt=0, le=24 * 7)

    log_level: str = Field(
        default="INFO",
        description="Logging level",
        pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )
    log_to_file: bool = Field(default=True)
    log_to_console: bool = Field(default=True)
    json_logs: bool = Field(default=False)
    log_dir: str = Field(default="logs")

    market_data: MarketDataConfig = Field(default_factory=MarketDataConfig)
    grid: GridConfig = Field(default_factory=GridConfig)
    backtest: BacktestConfig = Field(default_factory=BacktestConfig)
    ranking: RankingConfig = Field(default_factory=RankingConfig)
    telegram: TelegramConfig = Field(default_factory=TelegramConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @property
    def check_interval_seconds(self) -> float:
        return self.check_interval_hours * 3600

    def missing_credentials(self) -> list[str]:
        """Names of the secrets the live service cannot run without."""
        missing = []
        if not self.market_data.api_key:
            missing.append("COINGECKO_API_KEY")
        if not self.telegram.bot_token:
            missing.append("TELEGRAM_BOT_TOKEN")
        if not self.telegram.chat_id:
            missing.append("TELEGRAM_CHAT_ID")
        return missing
