"""Portfolio, position and equity snapshot models."""

from __future__ import annotations

from datetime import date, datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, ClassVar, Optional

from sqlalchemy import Column, DateTime, Index, UniqueConstraint, text
from sqlalchemy.orm import relationship
from sqlmodel import Field, Relationship, SQLModel

from ..errors import RunFailedError

if TYPE_CHECKING:  # pragma: no cover
    from .symbol import Symbol


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Portfolio(SQLModel, table=True):
    """Cash account that owns a set of positions."""

    __tablename__: ClassVar[str] = "portfolio"

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(default="Main", nullable=False, max_length=64)
    base_currency: str = Field(default="USD", max_length=3)
    initial_cash: Decimal = Field(default=Decimal("0"), max_digits=20, decimal_places=8)
    cash_current: Decimal = Field(default=Decimal("0"), max_digits=20, decimal_places=8)
    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    positions: list["Position"] = Relationship(
        back_populates="portfolio",
        sa_relationship=relationship(
            "Position",
            back_populates="portfolio",
            cascade="all, delete-orphan",
            passive_deletes=True,
        ),
    )
    snapshots: list["PortfolioValue"] = Relationship(
        back_populates="portfolio",
        sa_relationship=relationship(
            "PortfolioValue",
            back_populates="portfolio",
            cascade="all, delete-orphan",
            passive_deletes=True,
        ),
    )

    def require_id(self) -> int:
        """Return the primary key or raise if the row was never persisted."""

        if self.id is None:
            raise RunFailedError(f"portfolio {self.name!r} has not been saved")
        return self.id


class Position(SQLModel, table=True):
    """A holding in one symbol; open while ``closed_at`` is NULL."""

    __tablename__: ClassVar[str] = "position"
    __table_args__ = (
        # At most one open position per (portfolio, symbol)
        Index(
            "uq_position_open",
            "portfolio_id",
            "symbol_id",
            unique=True,
            sqlite_where=text("closed_at IS NULL"),
            postgresql_where=text("closed_at IS NULL"),
        ),
        Index("ix_position_portfolio_closed", "portfolio_id", "closed_at"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    portfolio_id: int = Field(foreign_key="portfolio.id", ondelete="CASCADE", nullable=False)
    symbol_id: int = Field(foreign_key="symbol.id", ondelete="RESTRICT", nullable=False, index=True)
    qty: Decimal = Field(max_digits=20, decimal_places=8)
    avg_cost: Decimal = Field(max_digits=20, decimal_places=8)
    opened_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )
    closed_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True),
    )
    realized_pnl: Decimal = Field(default=Decimal("0"), max_digits=20, decimal_places=8)

    portfolio: "Portfolio" = Relationship(
        back_populates="positions",
        sa_relationship=relationship("Portfolio", back_populates="positions"),
    )
    symbol: "Symbol" = Relationship(sa_relationship=relationship("Symbol"))


class PortfolioValue(SQLModel, table=True):
    """End-of-run equity snapshot, one row per portfolio and market day."""

    __tablename__: ClassVar[str] = "portfolio_value"
    __table_args__ = (
        UniqueConstraint("portfolio_id", "value_date", name="uq_portfolio_value_day"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    portfolio_id: int = Field(foreign_key="portfolio.id", ondelete="CASCADE", nullable=False, index=True)
    value_date: date = Field(nullable=False)
    equity: Decimal = Field(max_digits=20, decimal_places=8)
    cash: Decimal = Field(max_digits=20, decimal_places=8)
    pnl_day: Decimal = Field(default=Decimal("0"), max_digits=20, decimal_places=8)
    pnl_total: Decimal = Field(default=Decimal("0"), max_digits=20, decimal_places=8)
    created_at: datetime = Field(
        default_factory=_utcnow,
        sa_column=Column(DateTime(timezone=True), nullable=False),
    )

    portfolio: "Portfolio" = Relationship(
        back_populates="snapshots",
        sa_relationship=relationship("Portfolio", back_populates="snapshots"),
    )
