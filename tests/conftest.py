"""Pytest configuration and shared fixtures for TickerBasket tests.

This module provides database fixtures, test data factories and an app
context wired to in-memory collaborators, so tests never touch the real
data directory.
"""

from __future__ import annotations

import tempfile
from datetime import date, datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from sqlmodel import SQLModel, create_engine

# Import all models to ensure they're registered with SQLModel metadata
from tickerbasket.models import Portfolio, Position, PriceDaily, Symbol
from tickerbasket.infra.database import create_session_factory, enable_sqlite_pragmas

# =============================================================================
# Environment
# =============================================================================


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Point configuration at a throwaway data directory."""

    for name in (
        "TICKERBASKET_DATABASE_URL",
        "TICKERBASKET_TICKERS_CSV",
        "TICKERBASKET_PRICES_CSV",
        "TICKERBASKET_STARTING_CASH",
        "TICKERBASKET_STOP_LOSS_MULTIPLIER",
        "TICKERBASKET_REENTRY_COOLDOWN_DAYS",
        "TICKERBASKET_RUN_INTERVAL_MINUTES",
        "TICKERBASKET_MARKET_TIMEZONE",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TICKERBASKET_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("TICKERBASKET_DEV_MODE", "true")
    monkeypatch.setenv("TICKERBASKET_CRON_SECRET", "test-secret")


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture(scope="function")
def db_engine():
    """Create an isolated file-backed SQLite database for each test.

    Yields:
        Engine: SQLModel engine connected to test database
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    engine = create_engine(f"sqlite:///{db_path}", echo=False)
    enable_sqlite_pragmas(engine)

    SQLModel.metadata.create_all(engine)

    yield engine

    engine.dispose()
    db_path.unlink(missing_ok=True)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    """Transactional session scopes, the same kind repositories receive in production."""

    return create_session_factory(db_engine)


# =============================================================================
# Test Data Factories
# =============================================================================


@pytest.fixture
def symbol_factory(session_factory):
    """Factory for creating test symbols."""

    def _create_symbol(ticker: str = "AAPL", exchange: str = "NASDAQ", is_active: bool = True) -> Symbol:
        with session_factory() as session:
            symbol = Symbol(ticker=ticker, exchange=exchange, is_active=is_active)
            session.add(symbol)
            session.flush()
            session.refresh(symbol)
            return symbol

    return _create_symbol


@pytest.fixture
def portfolio_factory(session_factory):
    """Factory for creating test portfolios."""

    def _create_portfolio(cash: Decimal | str = "10000", initial_cash: Decimal | str | None = None) -> Portfolio:
        cash = Decimal(cash)
        with session_factory() as session:
            portfolio = Portfolio(
                name="Main",
                initial_cash=Decimal(initial_cash) if initial_cash is not None else cash,
                cash_current=cash,
            )
            session.add(portfolio)
            session.flush()
            session.refresh(portfolio)
            return portfolio

    return _create_portfolio


@pytest.fixture
def position_factory(session_factory):
    """Factory for creating open or closed positions."""

    def _create_position(
        portfolio: Portfolio,
        symbol: Symbol,
        qty: Decimal | str = "10",
        avg_cost: Decimal | str = "100",
        opened_at: datetime | None = None,
        closed_at: datetime | None = None,
        realized_pnl: Decimal | str = "0",
    ) -> Position:
        with session_factory() as session:
            position = Position(
                portfolio_id=portfolio.id,
                symbol_id=symbol.id,
                qty=Decimal(qty),
                avg_cost=Decimal(avg_cost),
                opened_at=opened_at or datetime(2024, 1, 2, 15, 0, tzinfo=timezone.utc),
                closed_at=closed_at,
                realized_pnl=Decimal(realized_pnl),
            )
            session.add(position)
            session.flush()
            session.refresh(position)
            return position

    return _create_position


@pytest.fixture
def price_factory(session_factory):
    """Factory for creating daily closes."""

    def _create_price(symbol: Symbol, close: Decimal | str, price_date: date = date(2024, 1, 2)) -> PriceDaily:
        with session_factory() as session:
            row = PriceDaily(symbol_id=symbol.id, price_date=price_date, close=Decimal(close))
            session.add(row)
            session.flush()
            session.refresh(row)
            return row

    return _create_price


# =============================================================================
# Application context
# =============================================================================


@pytest.fixture
def test_config():
    from tickerbasket.config import TestingConfig

    return TestingConfig()


@pytest.fixture
def app_context(test_config):
    """Context backed by a temporary database and in-memory collaborators."""

    from tickerbasket.context import create_app_context
    from tickerbasket.services.sources import MappingPriceOracle, StaticTickerSource

    ctx = create_app_context(
        test_config,
        ticker_source=StaticTickerSource([]),
        price_oracle=MappingPriceOracle({}),
    )
    yield ctx
    ctx.engine.dispose()
