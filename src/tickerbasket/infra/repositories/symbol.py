"""SQLModel implementation of the symbol repository."""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import update
from sqlmodel import select

from ...models.symbol import Symbol
from ..database import SessionFactory


def normalize_key(ticker: str, exchange: str) -> tuple[str, str]:
    """Upper-case and strip a ``(ticker, exchange)`` pair; a leading ``$`` is dropped."""

    cleaned = ticker.strip().upper()
    if cleaned.startswith("$"):
        cleaned = cleaned[1:]
    return cleaned, exchange.strip().upper()


def _dedupe(keys: Iterable[tuple[str, str]]) -> list[tuple[str, str]]:
    seen: set[tuple[str, str]] = set()
    ordered: list[tuple[str, str]] = []
    for ticker, exchange in keys:
        key = normalize_key(ticker, exchange)
        if not key[0] or key in seen:
            continue
        seen.add(key)
        ordered.append(key)
    return ordered


class SQLModelSymbolRepository:
    """SQLModel-based symbol repository implementation."""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def list_active(self) -> list[Symbol]:
        with self.session_factory() as session:
            statement = (
                select(Symbol)
                .where(Symbol.is_active == True)  # noqa: E712
                .order_by(Symbol.ticker)  # type: ignore[arg-type]
            )
            return list(session.exec(statement).all())

    def list_by_keys(self, keys: Iterable[tuple[str, str]]) -> list[Symbol]:
        wanted = _dedupe(keys)
        if not wanted:
            return []
        with self.session_factory() as session:
            tickers = {ticker for ticker, _ in wanted}
            rows = session.exec(select(Symbol).where(Symbol.ticker.in_(sorted(tickers)))).all()  # type: ignore[attr-defined]
            by_key = {(row.ticker, row.exchange): row for row in rows}
            return [by_key[key] for key in wanted if key in by_key]

    def ensure_symbols(self, keys: Iterable[tuple[str, str]]) -> list[Symbol]:
        """Insert missing pairs and return all rows in input order.

        Newly seen symbols start active; existing rows are left untouched.
        """
        wanted = _dedupe(keys)
        if not wanted:
            return []
        with self.session_factory() as session:
            tickers = {ticker for ticker, _ in wanted}
            rows = session.exec(select(Symbol).where(Symbol.ticker.in_(sorted(tickers)))).all()  # type: ignore[attr-defined]
            by_key = {(row.ticker, row.exchange): row for row in rows}
            for ticker, exchange in wanted:
                if (ticker, exchange) not in by_key:
                    symbol = Symbol(ticker=ticker, exchange=exchange)
                    session.add(symbol)
                    by_key[(ticker, exchange)] = symbol
            session.commit()
            ordered = [by_key[key] for key in wanted]
            for symbol in ordered:
                session.refresh(symbol)
            return ordered

    def mark_active(self, symbol_ids: Iterable[int]) -> None:
        ids = set(symbol_ids)
        with self.session_factory() as session:
            session.exec(update(Symbol).values(is_active=False))  # type: ignore[call-overload]
            if ids:
                session.exec(
                    update(Symbol).where(Symbol.id.in_(sorted(ids))).values(is_active=True)  # type: ignore[union-attr, call-overload]
                )
            session.commit()
