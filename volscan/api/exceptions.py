"""Custom exceptions for market-data operations"""


class MarketDataError(Exception):
    """Base exception for all market-data errors"""

    pass


class RateLimitError(MarketDataError):
    """Raised when the provider rejects a request for exceeding its budget"""

    pass


class AuthenticationError(MarketDataError):
    """Raised when the API key is missing or rejected"""

    pass


class NetworkError(MarketDataError):
    """Raised when communication with the provider fails"""

    pass


class DataUnavailableError(MarketDataError):
    """Raised when the provider has no usable data for a request"""

    pass
