"""SQLModel table exports."""

from .portfolio import Portfolio, PortfolioValue, Position
from .symbol import PriceDaily, Symbol

__all__ = [
    "Portfolio",
    "PortfolioValue",
    "Position",
    "PriceDaily",
    "Symbol",
]
