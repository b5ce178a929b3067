"""Concrete repository implementations using SQLModel."""

from .portfolio import SQLModelPortfolioRepository, SQLModelPortfolioValueRepository
from .position import SQLModelPositionRepository
from .price import SQLModelPriceRepository
from .symbol import SQLModelSymbolRepository, normalize_key

__all__ = [
    "SQLModelPortfolioRepository",
    "SQLModelPortfolioValueRepository",
    "SQLModelPositionRepository",
    "SQLModelPriceRepository",
    "SQLModelSymbolRepository",
    "normalize_key",
]
