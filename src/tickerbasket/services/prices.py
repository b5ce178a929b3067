"""Daily close refresh."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from decimal import Decimal
from typing import Iterable, Optional

from ..domain.money import to_decimal
from ..domain.planner import MARKET_TZ, market_date
from ..domain.repositories import PriceRepository, SymbolRepository
from ..logging_config import get_logger
from .sources import PriceOracle

logger = get_logger("prices")


@dataclass(frozen=True, slots=True)
class PriceUpdate:
    ticker: str
    exchange: str
    symbol_id: int
    price: Decimal
    price_date: date


def update_prices_for_symbols(
    keys: Iterable[tuple[str, str]],
    *,
    oracle: PriceOracle,
    symbol_repo: SymbolRepository,
    price_repo: PriceRepository,
    now: Optional[datetime] = None,
    market_tz: tzinfo = MARKET_TZ,
    source: str = "scraper",
) -> list[PriceUpdate]:
    """Fetch and store today's close for each ``(ticker, exchange)``.

    Symbols are created when missing. A failing or non-positive quote is
    logged and left out of the result; it never aborts the batch.
    """
    symbols = symbol_repo.ensure_symbols(keys)
    if not symbols:
        return []

    price_date = market_date(now or datetime.now(timezone.utc), market_tz)
    results: list[PriceUpdate] = []
    for symbol in symbols:
        try:
            price = to_decimal(oracle.get_latest_price(symbol.ticker, symbol.exchange))
        except Exception:
            logger.warning(
                "Price update failed for %s %s",
                symbol.ticker,
                symbol.exchange,
                exc_info=True,
                extra={"ticker": symbol.ticker, "exchange": symbol.exchange},
            )
            continue
        if not price.is_finite() or price <= 0:
            logger.warning(
                "Ignoring non-positive price for %s %s",
                symbol.ticker,
                symbol.exchange,
                extra={"ticker": symbol.ticker, "exchange": symbol.exchange, "price": str(price)},
            )
            continue

        price_repo.upsert_close(symbol.id, price_date, price, source=source)  # type: ignore[arg-type]
        results.append(
            PriceUpdate(
                ticker=symbol.ticker,
                exchange=symbol.exchange,
                symbol_id=symbol.id,  # type: ignore[arg-type]
                price=price,
                price_date=price_date,
            )
        )

    logger.info(
        "Prices updated",
        extra={"requested": len(symbols), "updated": len(results), "price_date": price_date.isoformat()},
    )
    return results
