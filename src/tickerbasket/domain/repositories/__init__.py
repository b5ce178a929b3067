"""Repository protocol definitions for domain layer."""

from .portfolio import PortfolioRepository
from .position import PositionStore
from .price import PriceRepository
from .symbol import SymbolRepository

__all__ = [
    "PortfolioRepository",
    "PositionStore",
    "PriceRepository",
    "SymbolRepository",
]
