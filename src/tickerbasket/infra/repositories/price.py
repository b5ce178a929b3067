"""SQLModel implementation of the daily price repository."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable

from sqlmodel import select

from ...domain.money import quantize
from ...models.symbol import PriceDaily
from ..database import SessionFactory


class SQLModelPriceRepository:
    """SQLModel-based daily close repository."""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def upsert_close(
        self, symbol_id: int, price_date: date, close: Decimal, source: str = "scraper"
    ) -> PriceDaily:
        with self.session_factory() as session:
            existing = session.exec(
                select(PriceDaily).where(
                    PriceDaily.symbol_id == symbol_id,
                    PriceDaily.price_date == price_date,
                )
            ).first()
            if existing:
                existing.close = quantize(close)
                existing.source = source
                session.add(existing)
                session.commit()
                session.refresh(existing)
                return existing
            row = PriceDaily(
                symbol_id=symbol_id,
                price_date=price_date,
                close=quantize(close),
                source=source,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return row

    def latest_close_map(self, symbol_ids: Iterable[int]) -> dict[int, Decimal]:
        ids = set(symbol_ids)
        if not ids:
            return {}
        with self.session_factory() as session:
            statement = (
                select(PriceDaily)
                .where(PriceDaily.symbol_id.in_(sorted(ids)))  # type: ignore[attr-defined]
                .where(PriceDaily.close.is_not(None))  # type: ignore[union-attr]
                .order_by(PriceDaily.symbol_id, PriceDaily.price_date.desc())  # type: ignore[arg-type, attr-defined]
            )
            closes: dict[int, Decimal] = {}
            for row in session.exec(statement).all():
                if row.symbol_id in closes or row.close is None:
                    continue
                closes[row.symbol_id] = row.close
            return closes
