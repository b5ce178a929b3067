"""Symbol and daily price models."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import ClassVar, Optional

from sqlalchemy import Column, DateTime, UniqueConstraint
from sqlmodel import Field, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Symbol(SQLModel, table=True):
    """A listed instrument identified by ticker and exchange."""

    __tablename__: ClassVar[str] = "symbol"
    __table_args__ = (UniqueConstraint("ticker", "exchange", name="uq_symbol_ticker_exchange"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    ticker: str = Field(index=True, nullable=False, max_length=16)
    exchange: str = Field(default="", nullable=False, max_length=32)
    # Whether the ticker appeared on the source page during the latest run
    is_active: bool = Field(default=True, nullable=False)
    first_seen: date = Field(default_factory=date.today, nullable=False)


class PriceDaily(SQLModel, table=True):
    """Daily close for a symbol, keyed by market-calendar date."""

    __tablename__: ClassVar[str] = "price_daily"
    __table_args__ = (UniqueConstraint("symbol_id", "price_date", name="uq_price_daily_symbol_date"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    symbol_id: int = Field(foreign_key="symbol.id", ondelete="CASCADE", nullable=False, index=True)
    price_date: date = Field(nullable=False, index=True)
    close: Optional[Decimal] = Field(default=None, max_digits=20, decimal_places=8)
    source: str = Field(default="scraper", nullable=False, max_length=32)
    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
