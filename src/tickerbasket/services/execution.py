"""Transactional plan execution.

``execute_plan`` applies planner output to positions and cash using the
caller's session, so the whole plan commits or rolls back together with the
surrounding ``session_factory()`` scope. Database errors are not caught here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from typing import MutableMapping, Optional, Sequence

from sqlmodel import Session, select

from ..domain.events import NullObserver, RunObserver
from ..domain.money import EPSILON, ZERO, is_negligible, quantize
from ..domain.planner import OpenPosition, PlanAction, PlanItem
from ..errors import RunFailedError
from ..models.portfolio import Portfolio, Position


@dataclass(slots=True)
class ExecutionResult:
    """What was actually applied; sells carry their clamped quantity."""

    applied: list[PlanItem] = field(default_factory=list)
    skipped: list[PlanItem] = field(default_factory=list)
    realized_pnl: Decimal = ZERO
    cash: Decimal = ZERO

    @property
    def changes(self) -> int:
        return len(self.applied)


def weighted_average_cost(
    old_qty: Decimal, old_avg_cost: Decimal, add_qty: Decimal, price: Decimal
) -> Decimal:
    """Average cost after buying ``add_qty`` at ``price`` into ``(old_qty, old_avg_cost)``."""

    new_qty = old_qty + add_qty
    return (old_qty * old_avg_cost + add_qty * price) / new_qty


def _open_row(session: Session, portfolio_id: int, position: OpenPosition) -> Position:
    row: Optional[Position] = None
    if position.id is not None:
        row = session.get(Position, position.id)
    if row is None:
        row = session.exec(
            select(Position).where(
                Position.portfolio_id == portfolio_id,
                Position.symbol_id == position.symbol_id,
                Position.closed_at.is_(None),  # type: ignore[union-attr]
            )
        ).first()
    if row is None or row.closed_at is not None:
        raise RunFailedError(
            f"open position for symbol {position.symbol_id} missing from portfolio {portfolio_id}"
        )
    return row


def _buy(
    session: Session,
    *,
    portfolio_id: int,
    item: PlanItem,
    open_by_symbol: MutableMapping[int, OpenPosition],
    now: datetime,
) -> None:
    existing = open_by_symbol.get(item.symbol_id)
    if existing is None:
        row = Position(
            portfolio_id=portfolio_id,
            symbol_id=item.symbol_id,
            qty=quantize(item.qty_delta),
            avg_cost=quantize(item.price),
            opened_at=now,
            realized_pnl=ZERO,
        )
        session.add(row)
        session.flush()
        open_by_symbol[item.symbol_id] = OpenPosition(
            id=row.id,
            symbol_id=item.symbol_id,
            qty=row.qty,
            avg_cost=row.avg_cost,
            opened_at=now,
            ticker=item.ticker,
        )
        return

    row = _open_row(session, portfolio_id, existing)
    new_qty = existing.qty + item.qty_delta
    new_avg = weighted_average_cost(existing.qty, existing.avg_cost, item.qty_delta, item.price)
    row.qty = quantize(new_qty)
    row.avg_cost = quantize(new_avg)
    session.add(row)
    open_by_symbol[item.symbol_id] = replace(existing, id=row.id, qty=row.qty, avg_cost=row.avg_cost)


def execute_plan(
    session: Session,
    *,
    portfolio_id: int,
    plan: Sequence[PlanItem],
    cash_current: Decimal,
    open_by_symbol: MutableMapping[int, OpenPosition],
    now: Optional[datetime] = None,
    observer: Optional[RunObserver] = None,
) -> ExecutionResult:
    """Apply ``plan`` in order and write the resulting cash balance.

    ``open_by_symbol`` is updated in place after every mutation so a later
    item for the same symbol sees the new quantity and average cost.

    Raises:
        RunFailedError: the portfolio or a tracked open position is missing.
        sqlalchemy.exc.SQLAlchemyError: any database failure.
    """
    observer = observer or NullObserver()
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    result = ExecutionResult()
    cash = cash_current

    portfolio = session.get(Portfolio, portfolio_id)
    if portfolio is None:
        raise RunFailedError(f"portfolio {portfolio_id} not found")

    for item in plan:
        if is_negligible(item.qty_delta) or item.action is PlanAction.HOLD:
            observer.emit(logging.DEBUG, "execute.skip_hold", symbol_id=item.symbol_id, ticker=item.ticker)
            result.skipped.append(item)
            continue

        if item.qty_delta > 0:
            notional = item.qty_delta * item.price
            cash -= notional
            _buy(session, portfolio_id=portfolio_id, item=item, open_by_symbol=open_by_symbol, now=now)
            result.applied.append(item)
            observer.emit(
                logging.INFO,
                "execute.buy",
                symbol_id=item.symbol_id,
                ticker=item.ticker,
                qty=item.qty_delta,
                price=item.price,
                notional=notional,
                cash_after=cash,
            )
            continue

        existing = open_by_symbol.get(item.symbol_id)
        if existing is None:
            observer.emit(
                logging.WARNING,
                "execute.sell_missing",
                symbol_id=item.symbol_id,
                ticker=item.ticker,
                requested=item.qty_delta,
            )
            result.skipped.append(item)
            continue

        row = _open_row(session, portfolio_id, existing)
        sell_qty = min(existing.qty, abs(item.qty_delta))
        notional = sell_qty * item.price
        cash += notional
        realized = (item.price - existing.avg_cost) * sell_qty
        remaining = existing.qty - sell_qty
        closing = remaining <= EPSILON

        row.realized_pnl = quantize(row.realized_pnl + realized)
        if closing:
            row.closed_at = now
            del open_by_symbol[item.symbol_id]
        else:
            row.qty = quantize(remaining)
            open_by_symbol[item.symbol_id] = replace(existing, id=row.id, qty=row.qty)
        session.add(row)

        result.realized_pnl += realized
        result.applied.append(replace(item, qty_delta=-sell_qty))
        observer.emit(
            logging.INFO,
            "execute.sell",
            symbol_id=item.symbol_id,
            ticker=item.ticker,
            qty=-sell_qty,
            price=item.price,
            notional=notional,
            realized=realized,
            cash_after=cash,
            closing=closing,
        )

    portfolio.cash_current = quantize(cash)
    session.add(portfolio)
    session.flush()
    result.cash = portfolio.cash_current
    observer.emit(
        logging.INFO,
        "execute.cash",
        portfolio_id=portfolio_id,
        cash=portfolio.cash_current,
        applied=len(result.applied),
        skipped=len(result.skipped),
    )
    return result


__all__ = ["ExecutionResult", "execute_plan", "weighted_average_cost"]
