"""Tests for the CSV and in-memory collaborator adapters."""

from __future__ import annotations

from decimal import Decimal

import pytest

from tickerbasket.errors import PriceUnavailableError
from tickerbasket.services.sources import CsvPriceOracle, CsvTickerSource, ScrapedTicker, StaticTickerSource


def test_csv_ticker_source_normalizes_and_dedupes(tmp_path):
    path = tmp_path / "tickers.csv"
    path.write_text("Ticker,Exchange\n$nvda,nasdaq\nNVDA,NASDAQ\n,\nshop,tsx\n", encoding="utf-8")

    tickers = CsvTickerSource(path).fetch_tickers()

    assert tickers == [ScrapedTicker("NVDA", "NASDAQ"), ScrapedTicker("SHOP", "TSX")]


def test_csv_ticker_source_without_exchange_column(tmp_path):
    path = tmp_path / "tickers.csv"
    path.write_text("ticker\nmsft\n", encoding="utf-8")

    assert CsvTickerSource(path).fetch_tickers() == [ScrapedTicker("MSFT", "")]


def test_missing_or_malformed_file_gives_empty_basket(tmp_path):
    assert CsvTickerSource(tmp_path / "absent.csv").fetch_tickers() == []

    empty = tmp_path / "empty.csv"
    empty.write_text("", encoding="utf-8")
    assert CsvTickerSource(empty).fetch_tickers() == []

    wrong = tmp_path / "wrong.csv"
    wrong.write_text("symbol\nAAPL\n", encoding="utf-8")
    assert CsvTickerSource(wrong).fetch_tickers() == []


def test_csv_price_oracle(tmp_path):
    path = tmp_path / "prices.csv"
    path.write_text(
        "ticker,exchange,close\nAAPL,NASDAQ,\"1,190.50\"\nAAPL,NASDAQ,191.25\nIBM,NYSE,n/a\n",
        encoding="utf-8",
    )
    oracle = CsvPriceOracle(path)

    assert oracle.get_latest_price("aapl", "nasdaq") == Decimal("191.25")
    with pytest.raises(PriceUnavailableError):
        oracle.get_latest_price("IBM", "NYSE")


def test_static_source_returns_copy():
    source = StaticTickerSource([("a", "x")])

    first = source.fetch_tickers()
    first.clear()

    assert source.fetch_tickers() == [ScrapedTicker("A", "X")]
