"""Collaborator interfaces for the scraped basket and the price oracle.

Scraping the blog and quote pages happens outside this package. Anything
that satisfies ``TickerSource``/``PriceOracle`` can be plugged into a run;
the CSV adapters below let the CLI and the scheduled job run from exported
files.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterable, Mapping, Protocol

import pandas as pd

from ..domain.money import to_decimal
from ..errors import PriceUnavailableError
from ..logging_config import get_logger
from ..infra.repositories.symbol import normalize_key

logger = get_logger("sources")


@dataclass(frozen=True, slots=True)
class ScrapedTicker:
    ticker: str
    exchange: str

    @property
    def key(self) -> tuple[str, str]:
        return (self.ticker, self.exchange)


class TickerSource(Protocol):
    """Returns the current basket; an empty list on fetch failure."""

    def fetch_tickers(self) -> list[ScrapedTicker]:  # pragma: no cover - interface
        ...


class PriceOracle(Protocol):
    """Resolves the latest close; raises per symbol when unavailable."""

    def get_latest_price(self, ticker: str, exchange: str) -> Decimal:  # pragma: no cover - interface
        ...


def _normalized(ticker: str, exchange: str) -> ScrapedTicker:
    clean_ticker, clean_exchange = normalize_key(ticker, exchange)
    return ScrapedTicker(ticker=clean_ticker, exchange=clean_exchange)


class StaticTickerSource:
    """Fixed basket, e.g. from CLI arguments."""

    def __init__(self, tickers: Iterable[tuple[str, str]]):
        self._tickers = [_normalized(ticker, exchange) for ticker, exchange in tickers]

    def fetch_tickers(self) -> list[ScrapedTicker]:
        return list(self._tickers)


class MappingPriceOracle:
    """Prices looked up from an in-memory ``{(ticker, exchange): price}`` mapping."""

    def __init__(self, prices: Mapping[tuple[str, str], object]):
        self._prices = {
            normalize_key(ticker, exchange): to_decimal(price)
            for (ticker, exchange), price in prices.items()
        }

    def get_latest_price(self, ticker: str, exchange: str) -> Decimal:
        key = normalize_key(ticker, exchange)
        try:
            return self._prices[key]
        except KeyError:
            raise PriceUnavailableError(key[0], key[1]) from None


def load_frame(file_path: Path, *, encoding: str = "utf-8") -> pd.DataFrame:
    """Load a CSV file into a DataFrame with lower-case, stripped headers."""

    frame = pd.read_csv(file_path, encoding=encoding, dtype=str, keep_default_na=False)
    frame.columns = [c.strip().lower() for c in frame.columns]
    return frame


class CsvTickerSource:
    """Basket read from a CSV with ``ticker`` and ``exchange`` columns.

    A missing or unreadable file yields an empty basket, matching the
    behaviour expected from a failed page fetch.
    """

    def __init__(self, csv_path: Path | str):
        self.csv_path = Path(csv_path)

    def fetch_tickers(self) -> list[ScrapedTicker]:
        try:
            frame = load_frame(self.csv_path)
        except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
            logger.warning(
                "Ticker source unavailable",
                extra={"path": str(self.csv_path), "error": str(exc)},
            )
            return []
        if "ticker" not in frame.columns:
            logger.warning("Ticker CSV has no 'ticker' column", extra={"path": str(self.csv_path)})
            return []

        tickers: list[ScrapedTicker] = []
        seen: set[tuple[str, str]] = set()
        for _, row in frame.iterrows():
            raw_ticker = str(row.get("ticker", "")).strip()
            if not raw_ticker:
                continue
            item = _normalized(raw_ticker, str(row.get("exchange", "")))
            if item.key in seen:
                continue
            seen.add(item.key)
            tickers.append(item)
        return tickers


class CsvPriceOracle:
    """Latest closes read from a CSV with ``ticker``, ``exchange`` and ``close`` columns.

    The file is read once; later lines override earlier ones for the same key.
    """

    def __init__(self, csv_path: Path | str):
        self.csv_path = Path(csv_path)
        self._prices: dict[tuple[str, str], Decimal] | None = None

    def _load(self) -> dict[tuple[str, str], Decimal]:
        if self._prices is not None:
            return self._prices
        prices: dict[tuple[str, str], Decimal] = {}
        frame = load_frame(self.csv_path)
        for _, row in frame.iterrows():
            raw_close = str(row.get("close", "")).strip()
            if not raw_close:
                continue
            try:
                close = Decimal(raw_close.replace(",", ""))
            except InvalidOperation:
                logger.warning("Skipping unparsable close", extra={"raw_close": raw_close})
                continue
            prices[normalize_key(str(row.get("ticker", "")), str(row.get("exchange", "")))] = close
        self._prices = prices
        return prices

    def get_latest_price(self, ticker: str, exchange: str) -> Decimal:
        key = normalize_key(ticker, exchange)
        price = self._load().get(key)
        if price is None:
            raise PriceUnavailableError(key[0], key[1], reason="not in price file")
        return price


__all__ = [
    "CsvPriceOracle",
    "CsvTickerSource",
    "MappingPriceOracle",
    "PriceOracle",
    "ScrapedTicker",
    "StaticTickerSource",
    "TickerSource",
    "load_frame",
]
