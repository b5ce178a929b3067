"""SQLModel implementations of the portfolio and equity snapshot repositories."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlmodel import select

from ...domain.money import quantize
from ...models.portfolio import Portfolio, PortfolioValue
from ..database import SessionFactory


class SQLModelPortfolioRepository:
    """SQLModel-based portfolio repository implementation."""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def get(self, portfolio_id: int) -> Optional[Portfolio]:
        with self.session_factory() as session:
            return session.get(Portfolio, portfolio_id)

    def ensure_default(self, starting_cash: Decimal) -> Portfolio:
        """Return the first portfolio, creating a ``Main`` one funded with ``starting_cash``."""
        with self.session_factory() as session:
            existing = session.exec(select(Portfolio).order_by(Portfolio.id).limit(1)).first()  # type: ignore[arg-type]
            if existing is not None:
                return existing
            cash = quantize(starting_cash)
            portfolio = Portfolio(name="Main", initial_cash=cash, cash_current=cash)
            session.add(portfolio)
            session.commit()
            session.refresh(portfolio)
            return portfolio


class SQLModelPortfolioValueRepository:
    """Daily equity snapshots."""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def upsert(self, snapshot: PortfolioValue) -> PortfolioValue:
        """Insert or overwrite the snapshot for the portfolio and day."""
        with self.session_factory() as session:
            existing = session.exec(
                select(PortfolioValue).where(
                    PortfolioValue.portfolio_id == snapshot.portfolio_id,
                    PortfolioValue.value_date == snapshot.value_date,
                )
            ).first()
            if existing:
                existing.equity = snapshot.equity
                existing.cash = snapshot.cash
                existing.pnl_day = snapshot.pnl_day
                existing.pnl_total = snapshot.pnl_total
                session.add(existing)
                session.commit()
                session.refresh(existing)
                return existing
            session.add(snapshot)
            session.commit()
            session.refresh(snapshot)
            return snapshot

    def latest_before(self, portfolio_id: int, value_date: date) -> Optional[PortfolioValue]:
        """Most recent snapshot strictly before ``value_date``."""
        with self.session_factory() as session:
            statement = (
                select(PortfolioValue)
                .where(
                    PortfolioValue.portfolio_id == portfolio_id,
                    PortfolioValue.value_date < value_date,
                )
                .order_by(PortfolioValue.value_date.desc())  # type: ignore[attr-defined]
                .limit(1)
            )
            return session.exec(statement).first()

    def list_series(self, portfolio_id: int) -> list[PortfolioValue]:
        with self.session_factory() as session:
            statement = (
                select(PortfolioValue)
                .where(PortfolioValue.portfolio_id == portfolio_id)
                .order_by(PortfolioValue.value_date)  # type: ignore[arg-type]
            )
            return list(session.exec(statement).all())
