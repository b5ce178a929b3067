"""Exception hierarchy for TickerBasket."""

from __future__ import annotations


class TickerBasketError(Exception):
    """Base class for all application errors."""


class ConfigurationError(TickerBasketError, ValueError):
    """Raised when an environment setting is missing or malformed."""


class PriceUnavailableError(TickerBasketError):
    """Raised by a price oracle when no close can be resolved for a symbol."""

    def __init__(self, ticker: str, exchange: str, reason: str = "no price") -> None:
        super().__init__(f"{ticker}:{exchange}: {reason}")
        self.ticker = ticker
        self.exchange = exchange
        self.reason = reason


class RunFailedError(TickerBasketError):
    """Raised when a rebalance run could not be committed."""


__all__ = [
    "ConfigurationError",
    "PriceUnavailableError",
    "RunFailedError",
    "TickerBasketError",
]
