"""Application context for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import tzinfo
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.engine import Engine

from .config import BaseConfig
from .errors import ConfigurationError
from .infra.database import SessionFactory, bootstrap_database
from .infra.repositories import (
    SQLModelPortfolioRepository,
    SQLModelPortfolioValueRepository,
    SQLModelPositionRepository,
    SQLModelPriceRepository,
    SQLModelSymbolRepository,
)
from .services.sources import CsvPriceOracle, CsvTickerSource, PriceOracle, StaticTickerSource, TickerSource


@dataclass
class AppContext:
    """Centralized application context with repositories and collaborators."""

    # Configuration
    config: BaseConfig
    market_tz: tzinfo

    # Database
    engine: Engine
    session_factory: SessionFactory

    # Repositories
    symbol_repo: SQLModelSymbolRepository
    portfolio_repo: SQLModelPortfolioRepository
    value_repo: SQLModelPortfolioValueRepository
    position_repo: SQLModelPositionRepository
    price_repo: SQLModelPriceRepository

    # Collaborators
    ticker_source: TickerSource
    price_oracle: Optional[PriceOracle] = None

    def require_price_oracle(self) -> PriceOracle:
        """Return the configured oracle or raise if none is wired."""

        if self.price_oracle is None:
            raise ConfigurationError("No price source configured; set TICKERBASKET_PRICES_CSV.")
        return self.price_oracle


def _market_tz(name: str) -> tzinfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ConfigurationError(f"Unknown market timezone {name!r}") from exc


def create_app_context(
    config: Optional[BaseConfig] = None,
    *,
    ticker_source: Optional[TickerSource] = None,
    price_oracle: Optional[PriceOracle] = None,
) -> AppContext:
    """Create and initialize the application context.

    Collaborators default to the CSV adapters named in the configuration; an
    unset tickers file gives an empty basket.
    """

    if config is None:
        config = BaseConfig()

    market_tz = _market_tz(config.MARKET_TIMEZONE)
    engine, session_factory = bootstrap_database(config)

    if ticker_source is None:
        ticker_source = (
            CsvTickerSource(config.TICKERS_CSV) if config.TICKERS_CSV else StaticTickerSource([])
        )
    if price_oracle is None and config.PRICES_CSV:
        price_oracle = CsvPriceOracle(config.PRICES_CSV)

    return AppContext(
        config=config,
        market_tz=market_tz,
        engine=engine,
        session_factory=session_factory,
        symbol_repo=SQLModelSymbolRepository(session_factory),
        portfolio_repo=SQLModelPortfolioRepository(session_factory),
        value_repo=SQLModelPortfolioValueRepository(session_factory),
        position_repo=SQLModelPositionRepository(session_factory),
        price_repo=SQLModelPriceRepository(session_factory),
        ticker_source=ticker_source,
        price_oracle=price_oracle,
    )
