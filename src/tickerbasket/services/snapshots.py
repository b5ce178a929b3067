"""Equity snapshots and holdings summaries."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from typing import Optional

from ..domain.money import ZERO, as_str, quantize
from ..domain.planner import MARKET_TZ, market_date
from ..infra.repositories import (
    SQLModelPortfolioValueRepository,
    SQLModelPositionRepository,
    SQLModelPriceRepository,
)
from ..models.portfolio import Portfolio, PortfolioValue


@dataclass(slots=True)
class HoldingView:
    symbol_id: int
    ticker: str
    exchange: str
    qty: Decimal
    avg_cost: Decimal
    price: Decimal
    price_is_stale: bool
    opened_at: datetime

    @property
    def cost(self) -> Decimal:
        return self.qty * self.avg_cost

    @property
    def market_value(self) -> Decimal:
        return self.qty * self.price

    @property
    def unrealized_pnl(self) -> Decimal:
        return self.market_value - self.cost

    @property
    def unrealized_pnl_pct(self) -> Decimal:
        if self.cost == 0:
            return ZERO
        return self.unrealized_pnl / self.cost * 100

    def to_dict(self) -> dict[str, object]:
        return {
            "symbol_id": self.symbol_id,
            "ticker": self.ticker,
            "exchange": self.exchange,
            "qty": as_str(self.qty),
            "avg_cost": as_str(self.avg_cost),
            "price": as_str(self.price),
            "price_is_stale": self.price_is_stale,
            "market_value": as_str(quantize(self.market_value)),
            "unrealized_pnl": as_str(quantize(self.unrealized_pnl)),
            "unrealized_pnl_pct": as_str(self.unrealized_pnl_pct.quantize(Decimal("0.01"))),
            "opened_at": self.opened_at.isoformat(),
        }


@dataclass(slots=True)
class PortfolioSummary:
    portfolio_id: int
    cash: Decimal
    initial_cash: Decimal
    holdings: list[HoldingView] = field(default_factory=list)
    series: list[tuple[str, Decimal]] = field(default_factory=list)

    @property
    def market_value(self) -> Decimal:
        return sum((h.market_value for h in self.holdings), ZERO)

    @property
    def equity(self) -> Decimal:
        return self.cash + self.market_value

    def to_dict(self) -> dict[str, object]:
        return {
            "portfolio_id": self.portfolio_id,
            "cash": as_str(self.cash),
            "initial_cash": as_str(self.initial_cash),
            "market_value": as_str(quantize(self.market_value)),
            "equity": as_str(quantize(self.equity)),
            "holdings": [h.to_dict() for h in self.holdings],
            "series": [{"date": day, "equity": as_str(value)} for day, value in self.series],
        }


def build_portfolio_summary(
    portfolio: Portfolio,
    *,
    position_repo: SQLModelPositionRepository,
    price_repo: SQLModelPriceRepository,
    value_repo: SQLModelPortfolioValueRepository,
    now: Optional[datetime] = None,
    market_tz: tzinfo = MARKET_TZ,
) -> PortfolioSummary:
    """Holdings valued at the latest close (average cost when unknown) plus the equity series.

    When no snapshot exists yet the series holds a single point for today's equity.
    """
    portfolio_id = portfolio.require_id()
    rows = position_repo.list_open_rows(portfolio_id)
    closes = price_repo.latest_close_map(position.symbol_id for position, _ in rows)

    holdings: list[HoldingView] = []
    for position, symbol in rows:
        close = closes.get(position.symbol_id)
        holdings.append(
            HoldingView(
                symbol_id=position.symbol_id,
                ticker=symbol.ticker,
                exchange=symbol.exchange,
                qty=position.qty,
                avg_cost=position.avg_cost,
                price=close if close is not None else position.avg_cost,
                price_is_stale=close is None,
                opened_at=position.opened_at,
            )
        )

    summary = PortfolioSummary(
        portfolio_id=portfolio_id,
        cash=portfolio.cash_current,
        initial_cash=portfolio.initial_cash,
        holdings=holdings,
    )
    summary.series = [
        (value.value_date.isoformat(), value.equity) for value in value_repo.list_series(portfolio_id)
    ]
    if not summary.series:
        today = market_date(now or datetime.now(timezone.utc), market_tz)
        summary.series = [(today.isoformat(), quantize(summary.equity))]
    return summary


def record_portfolio_value(
    portfolio: Portfolio,
    *,
    equity: Decimal,
    value_repo: SQLModelPortfolioValueRepository,
    now: Optional[datetime] = None,
    market_tz: tzinfo = MARKET_TZ,
) -> PortfolioValue:
    """Store today's equity snapshot; day P&L is measured against the previous snapshot."""
    portfolio_id = portfolio.require_id()
    value_date = market_date(now or datetime.now(timezone.utc), market_tz)
    previous = value_repo.latest_before(portfolio_id, value_date)
    baseline = previous.equity if previous is not None else portfolio.initial_cash
    snapshot = PortfolioValue(
        portfolio_id=portfolio_id,
        value_date=value_date,
        equity=quantize(equity),
        cash=portfolio.cash_current,
        pnl_day=quantize(equity - baseline),
        pnl_total=quantize(equity - portfolio.initial_cash),
    )
    return value_repo.upsert(snapshot)
