"""SQLModel implementation of the position store."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlmodel import select

from ...domain.cooldown import ClosedPositionRow
from ...domain.planner import OpenPosition
from ...models.portfolio import Position
from ...models.symbol import Symbol
from ..database import SessionFactory


def _utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class SQLModelPositionRepository:
    """SQLModel-based position store implementation."""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def list_open_rows(self, portfolio_id: int) -> list[tuple[Position, Symbol]]:
        """Open positions joined with their symbol, oldest first."""
        with self.session_factory() as session:
            statement = (
                select(Position, Symbol)
                .join(Symbol, Position.symbol_id == Symbol.id)  # type: ignore[arg-type]
                .where(Position.portfolio_id == portfolio_id)
                .where(Position.closed_at.is_(None))  # type: ignore[union-attr]
                .order_by(Position.opened_at, Position.id)  # type: ignore[arg-type]
            )
            return [(position, symbol) for position, symbol in session.exec(statement).all()]

    def load_open_positions(self, portfolio_id: int) -> list[OpenPosition]:
        return [
            OpenPosition(
                id=position.id,
                symbol_id=position.symbol_id,
                qty=position.qty,
                avg_cost=position.avg_cost,
                opened_at=_utc(position.opened_at),
                ticker=symbol.ticker,
            )
            for position, symbol in self.list_open_rows(portfolio_id)
        ]

    def list_recent_losing_closed(
        self, portfolio_id: int, cutoff: datetime
    ) -> list[ClosedPositionRow]:
        with self.session_factory() as session:
            statement = (
                select(Position)
                .where(Position.portfolio_id == portfolio_id)
                .where(Position.closed_at.is_not(None))  # type: ignore[union-attr]
                .where(Position.closed_at >= _utc(cutoff))  # type: ignore[operator]
                .where(Position.realized_pnl < 0)
                .order_by(Position.closed_at.desc())  # type: ignore[union-attr]
            )
            return [
                ClosedPositionRow(
                    symbol_id=row.symbol_id,
                    closed_at=_utc(row.closed_at),  # type: ignore[arg-type]
                    realized_pnl=row.realized_pnl,
                )
                for row in session.exec(statement).all()
            ]

    def list_closed(self, portfolio_id: int) -> list[Position]:
        with self.session_factory() as session:
            statement = (
                select(Position)
                .where(Position.portfolio_id == portfolio_id)
                .where(Position.closed_at.is_not(None))  # type: ignore[union-attr]
                .order_by(Position.closed_at.desc())  # type: ignore[union-attr]
            )
            return list(session.exec(statement).all())
