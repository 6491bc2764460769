"""
CoinGecko market-data client.

Supplies the scanner with:
- the eligible universe (USDT-quoted Binance Futures tickers from /derivatives)
- daily close series for the volatility lookback (/coins/{id}/market_chart)
- OHLC candles for backtests (/coins/{id}/ohlc)

Every HTTP attempt takes a token from the shared bucket, and transient
failures are retried with exponential backoff. Callers never retry.
"""

from typing import Any

import aiohttp
import pandas as pd
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from volscan.api.exceptions import (
    AuthenticationError,
    DataUnavailableError,
    MarketDataError,
    NetworkError,
    RateLimitError,
)
from volscan.api.rate_limiter import TokenBucket
from volscan.config.schemas import MarketDataConfig
from volscan.core.models import Instrument
from volscan.utils.logger import get_logger

logger = get_logger(__name__)

OHLC_COLUMNS = ["timestamp", "open", "high", "low", "close"]


class CoinGeckoClient:
    """
    Async CoinGecko v3 client with rate limiting and retries.

    Usage:
        async with CoinGeckoClient(settings.market_data) as client:
            instruments = await client.fetch_instruments()
            closes = await client.fetch_daily_closes("bitcoin", days=7)
    """

    def __init__(
        self,
        config: MarketDataConfig,
        rate_limiter: TokenBucket | None = None,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self.rate_limiter = rate_limiter or TokenBucket.per_minute(config.rate_limit_per_minute)
        self._session = session
        self._owns_session = session is None

        self._request_count = 0
        self._error_count = 0

    async def __aenter__(self) -> "CoinGeckoClient":
        await self.initialize()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def initialize(self) -> None:
        """Open the HTTP session."""
        if self._session is None:
            timeout = aiohttp.ClientTimeout(total=self.config.request_timeout_seconds)
            self._session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"Accept": "application/json"},
            )
            self._owns_session = True
        logger.info(
            "coingecko_client_initialized",
            base_url=self.base_url,
            rate_limit_per_minute=self.config.rate_limit_per_minute,
        )

    async def close(self) -> None:
        if self._session is not None and self._owns_session:
            await self._session.close()
        self._session = None

    def get_statistics(self) -> dict[str, Any]:
        return {
            "requests": self._request_count,
            "errors": self._error_count,
            "rate_limit_waits": self.rate_limiter.wait_count,
        }

    # =========================================================================
    # Endpoints
    # =========================================================================

    async def fetch_instruments(self) -> list[Instrument]:
        """
        Eligible instruments in discovery order.

        Keeps tickers of the configured market whose symbol ends with the
        quote suffix and that carry a coin_id; the first ticker per coin wins.
        """
        data = await self._request("/derivatives")
        if not isinstance(data, list):
            raise DataUnavailableError("Unexpected /derivatives payload")

        seen: set[str] = set()
        instruments: list[Instrument] = []
        for ticker in data:
            if not isinstance(ticker, dict):
                continue
            symbol = ticker.get("symbol") or ""
            coin_id = ticker.get("coin_id")
            if (
                ticker.get("market") == self.config.market_name
                and symbol.endswith(self.config.quote_suffix)
                and coin_id
                and coin_id not in seen
            ):
                seen.add(coin_id)
                instruments.append(Instrument(symbol=symbol, coin_id=coin_id))

        logger.info("instruments_fetched", total=len(data), eligible=len(instruments))
        return instruments

    async def fetch_daily_closes(self, coin_id: str, days: int) -> list[float]:
        """Daily closing prices over the last ``days`` days, oldest first."""
        data = await self._request(
            f"/coins/{coin_id}/market_chart",
            {"vs_currency": self.config.vs_currency, "days": str(days), "interval": "daily"},
        )
        prices = data.get("prices") if isinstance(data, dict) else None
        if prices is None:
            raise DataUnavailableError(f"No price history for {coin_id}")
        try:
            return [float(point[1]) for point in prices if point and point[1] is not None]
        except (TypeError, ValueError, IndexError) as e:
            raise DataUnavailableError(f"Malformed price history for {coin_id}: {e}") from e

    async def fetch_candles(self, coin_id: str, days: int) -> pd.DataFrame:
        """
        OHLC candles covering ``days`` days (30m granularity up to 2 days,
        4h beyond), as a DataFrame with a UTC ``timestamp`` column.
        """
        data = await self._request(
            f"/coins/{coin_id}/ohlc",
            {"vs_currency": self.config.vs_currency, "days": str(days)},
        )
        if not isinstance(data, list):
            raise DataUnavailableError(f"No OHLC data for {coin_id}")
        try:
            return self._ohlc_to_dataframe(data)
        except (TypeError, ValueError, IndexError) as e:
            raise DataUnavailableError(f"Malformed OHLC data for {coin_id}: {e}") from e

    @staticmethod
    def _ohlc_to_dataframe(rows: list[list[float]]) -> pd.DataFrame:
        if not rows:
            return pd.DataFrame(columns=OHLC_COLUMNS)
        df = pd.DataFrame([row[:5] for row in rows], columns=OHLC_COLUMNS)
        # unparsable prices become NaN and the row is dropped below
        df[OHLC_COLUMNS] = df[OHLC_COLUMNS].apply(pd.to_numeric, errors="coerce")
        df["timestamp"] = pd.to_datetime(df["timestamp"], unit="ms", utc=True)
        df = df.dropna().sort_values("timestamp", kind="stable").reset_index(drop=True)
        return df

    # =========================================================================
    # Transport
    # =========================================================================

    async def _request(self, path: str, params: dict[str, str] | None = None) -> Any:
        """GET ``path`` with retries on network errors and rate limiting."""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type((NetworkError, RateLimitError)),
            stop=stop_after_attempt(self.config.max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._get(path, params or {})

    async def _get(self, path: str, params: dict[str, str]) -> Any:
        if self._session is None:
            raise MarketDataError("Client not initialized")

        await self.rate_limiter.acquire()
        self._request_count += 1

        query = dict(params)
        if self.config.api_key:
            query["x_cg_demo_api_key"] = self.config.api_key

        url = f"{self.base_url}{path}"
        logger.debug("coingecko_request", path=path, params=params)

        try:
            async with self._session.get(url, params=query) as response:
                if response.status == 429:
                    raise RateLimitError(f"Rate limited on {path}")
                if response.status in (401, 403):
                    raise AuthenticationError(f"Rejected API key ({response.status})")
                if response.status == 404:
                    raise DataUnavailableError(f"Not found: {path}")
                if response.status >= 500:
                    raise NetworkError(f"Server error {response.status} on {path}")
                if response.status >= 400:
                    raise MarketDataError(f"HTTP {response.status} on {path}")
                try:
                    return await response.json()
                except (aiohttp.ContentTypeError, ValueError) as e:
                    raise DataUnavailableError(f"Invalid JSON body from {path}") from e
        except MarketDataError:
            self._error_count += 1
            raise
        except (aiohttp.ClientError, TimeoutError) as e:
            self._error_count += 1
            logger.warning("coingecko_network_error", path=path, error=str(e))
            raise NetworkError(f"Network error: {e}") from e
