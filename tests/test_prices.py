"""Tests for the daily close refresh."""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal

from sqlmodel import select

from tickerbasket.errors import PriceUnavailableError
from tickerbasket.infra.repositories import SQLModelPriceRepository, SQLModelSymbolRepository
from tickerbasket.models import Symbol
from tickerbasket.services.prices import update_prices_for_symbols
from tickerbasket.services.sources import MappingPriceOracle

# 01:30 UTC on the 6th is the evening of the 5th in New York
NOW = datetime(2024, 3, 6, 1, 30, tzinfo=timezone.utc)


class ExplodingOracle:
    def __init__(self, prices):
        self.prices = prices

    def get_latest_price(self, ticker, exchange):
        if ticker == "BOOM":
            raise RuntimeError("quote page changed")
        return self.prices[ticker]


def test_updates_are_keyed_by_market_date(session_factory):
    symbols = SQLModelSymbolRepository(session_factory)
    prices = SQLModelPriceRepository(session_factory)

    updates = update_prices_for_symbols(
        [("aapl", "nasdaq")],
        oracle=MappingPriceOracle({("AAPL", "NASDAQ"): "190.5"}),
        symbol_repo=symbols,
        price_repo=prices,
        now=NOW,
    )

    [update] = updates
    assert update.ticker == "AAPL"
    assert update.price == Decimal("190.5")
    assert update.price_date == date(2024, 3, 5)
    assert prices.latest_close_map([update.symbol_id]) == {update.symbol_id: Decimal("190.5")}


def test_failures_are_logged_and_skipped(session_factory, caplog):
    symbols = SQLModelSymbolRepository(session_factory)
    prices = SQLModelPriceRepository(session_factory)
    oracle = ExplodingOracle({"OK": Decimal("10"), "ZERO": Decimal("0")})

    with caplog.at_level(logging.WARNING, logger="tickerbasket.prices"):
        updates = update_prices_for_symbols(
            [("OK", ""), ("BOOM", ""), ("ZERO", "")],
            oracle=oracle,
            symbol_repo=symbols,
            price_repo=prices,
            now=NOW,
        )

    assert [u.ticker for u in updates] == ["OK"]
    assert any(record.exc_info for record in caplog.records)
    with session_factory() as session:
        assert len(session.exec(select(Symbol)).all()) == 3


def test_unknown_symbol_in_mapping_oracle_raises():
    oracle = MappingPriceOracle({("A", "X"): 1.25})

    assert oracle.get_latest_price("a", "x") == Decimal("1.25")
    try:
        oracle.get_latest_price("B", "X")
    except PriceUnavailableError as exc:
        assert exc.ticker == "B"
    else:  # pragma: no cover
        raise AssertionError("expected PriceUnavailableError")


def test_empty_keys_do_nothing(session_factory):
    updates = update_prices_for_symbols(
        [],
        oracle=MappingPriceOracle({}),
        symbol_repo=SQLModelSymbolRepository(session_factory),
        price_repo=SQLModelPriceRepository(session_factory),
        now=NOW,
    )

    assert updates == []
