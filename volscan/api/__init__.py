"""Market-data collaborator: CoinGecko client, rate limiting, errors"""

from volscan.api.coingecko_client import CoinGeckoClient
from volscan.api.exceptions import (
    AuthenticationError,
    DataUnavailableError,
    MarketDataError,
    NetworkError,
    RateLimitError,
)
from volscan.api.rate_limiter import TokenBucket

__all__ = [
    "CoinGeckoClient",
    "TokenBucket",
    "MarketDataError",
    "RateLimitError",
    "AuthenticationError",
    "NetworkError",
    "DataUnavailableError",
]
