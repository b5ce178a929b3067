"""Tests for the equal-weight planner."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from tickerbasket.domain.events import RecordingObserver
from tickerbasket.domain.planner import (
    OpenPosition,
    PlanAction,
    PlanReason,
    SymbolRow,
    compute_equity,
    make_plan,
    market_date,
    opened_same_market_day,
)

NOW = datetime(2024, 3, 5, 15, 0, tzinfo=timezone.utc)  # 10:00 in New York
YESTERDAY = NOW - timedelta(days=1)

ROWS = [SymbolRow(1, "A", "NYSE"), SymbolRow(2, "B", "NYSE"), SymbolRow(3, "C", "NYSE")]


def _position(symbol_id, qty, avg_cost, opened_at=YESTERDAY, ticker=""):
    return OpenPosition(
        id=symbol_id * 10,
        symbol_id=symbol_id,
        qty=Decimal(qty),
        avg_cost=Decimal(avg_cost),
        opened_at=opened_at,
        ticker=ticker or f"S{symbol_id}",
    )


def test_empty_portfolio_buys_equal_weight():
    result = make_plan(
        tickers=["A", "B"],
        symbol_rows=ROWS,
        open_positions=[],
        latest_close_by_symbol={1: Decimal("100"), 2: Decimal("50")},
        cash_current=Decimal("10000"),
        now=NOW,
    )

    assert result.equity == Decimal("10000")
    assert result.target_per_symbol == Decimal("5000")
    assert [(i.ticker, i.action, i.qty_delta) for i in result.plan] == [
        ("A", PlanAction.BUY, Decimal("50")),
        ("B", PlanAction.BUY, Decimal("100")),
    ]
    assert all(i.reason is PlanReason.NEW_ENTRY for i in result.plan)


def test_stop_loss_sells_position_opened_yesterday():
    observer = RecordingObserver()
    result = make_plan(
        tickers=["A"],
        symbol_rows=ROWS,
        open_positions=[_position(1, "10", "100", ticker="A")],
        latest_close_by_symbol={1: Decimal("94")},
        cash_current=Decimal("0"),
        now=NOW,
        observer=observer,
    )

    assert len(result.sells) == 1
    sell = result.sells[0]
    assert sell.qty_delta == Decimal("-10")
    assert sell.price == Decimal("94")
    assert sell.reason is PlanReason.STOP_LOSS
    assert "plan.stop_loss" in observer.names()


def test_stop_loss_not_triggered_at_threshold():
    result = make_plan(
        tickers=["A"],
        symbol_rows=ROWS,
        open_positions=[_position(1, "10", "100", ticker="A")],
        latest_close_by_symbol={1: Decimal("95")},
        cash_current=Decimal("0"),
        now=NOW,
    )

    assert result.sells == []


def test_same_day_position_is_never_sold():
    observer = RecordingObserver()
    opened = NOW - timedelta(hours=1)
    result = make_plan(
        tickers=[],
        symbol_rows=ROWS,
        open_positions=[_position(1, "10", "100", opened_at=opened, ticker="A")],
        latest_close_by_symbol={1: Decimal("50")},
        cash_current=Decimal("0"),
        now=NOW,
        observer=observer,
    )

    assert result.plan == []
    triggers = [fields["trigger"] for _, name, fields in observer.events if name == "plan.skip_same_day"]
    assert triggers == ["stop_loss", "dropped"]


def test_same_day_uses_market_calendar_not_utc():
    # 03:00 UTC on the 6th is still the 5th in New York
    late_evening = datetime(2024, 3, 6, 3, 0, tzinfo=timezone.utc)
    assert market_date(late_evening).isoformat() == "2024-03-05"
    assert opened_same_market_day(NOW, late_evening)
    assert not opened_same_market_day(NOW - timedelta(days=1), late_evening)


def test_naive_opened_at_is_treated_as_utc():
    naive = NOW.replace(tzinfo=None)
    assert opened_same_market_day(naive, NOW)


def test_dropped_symbol_is_sold_and_cash_goes_to_new_entries():
    result = make_plan(
        tickers=["B"],
        symbol_rows=ROWS,
        open_positions=[_position(1, "10", "100", ticker="A")],
        latest_close_by_symbol={1: Decimal("110"), 2: Decimal("50")},
        cash_current=Decimal("0"),
        now=NOW,
    )

    assert [i.action for i in result.plan] == [PlanAction.SELL, PlanAction.BUY]
    assert result.plan[0].reason is PlanReason.DROPPED
    assert result.cash_after_sells == Decimal("1100")
    assert result.plan[1].qty_delta == Decimal("22")


def test_dropped_symbol_without_close_sells_at_average_cost():
    result = make_plan(
        tickers=[],
        symbol_rows=ROWS,
        open_positions=[_position(1, "4", "25", ticker="A")],
        latest_close_by_symbol={},
        cash_current=Decimal("0"),
        now=NOW,
    )

    assert result.plan[0].price == Decimal("25")
    assert result.cash_after_sells == Decimal("100")


def test_stop_loss_and_dropped_are_not_both_emitted():
    result = make_plan(
        tickers=[],
        symbol_rows=ROWS,
        open_positions=[_position(1, "10", "100", ticker="A")],
        latest_close_by_symbol={1: Decimal("80")},
        cash_current=Decimal("0"),
        now=NOW,
    )

    assert len(result.plan) == 1
    assert result.plan[0].reason is PlanReason.STOP_LOSS


def test_stop_loss_precedes_dropped_sells():
    result = make_plan(
        tickers=["B"],
        symbol_rows=ROWS,
        open_positions=[
            _position(3, "1", "10", ticker="C"),
            _position(2, "1", "100", ticker="B"),
        ],
        latest_close_by_symbol={2: Decimal("50"), 3: Decimal("10")},
        cash_current=Decimal("0"),
        now=NOW,
    )

    assert [i.reason for i in result.sells] == [PlanReason.STOP_LOSS, PlanReason.DROPPED]


def test_blocked_symbols_are_not_bought():
    observer = RecordingObserver()
    result = make_plan(
        tickers=["A", "B"],
        symbol_rows=ROWS,
        open_positions=[],
        latest_close_by_symbol={1: Decimal("100"), 2: Decimal("50")},
        cash_current=Decimal("1000"),
        blocked_symbol_ids={1},
        now=NOW,
        observer=observer,
    )

    assert [i.symbol_id for i in result.buys] == [2]
    assert result.buys[0].qty_delta == Decimal("20")


def test_blocked_held_symbol_is_still_stopped_out():
    result = make_plan(
        tickers=["A"],
        symbol_rows=ROWS,
        open_positions=[_position(1, "10", "100", ticker="A")],
        latest_close_by_symbol={1: Decimal("90")},
        cash_current=Decimal("0"),
        blocked_symbol_ids={1},
        now=NOW,
    )

    assert [(i.symbol_id, i.qty_delta, i.reason) for i in result.sells] == [
        (1, Decimal("-10"), PlanReason.STOP_LOSS)
    ]
    assert result.buys == []


def test_blocked_held_symbol_is_still_sold_when_dropped():
    result = make_plan(
        tickers=["B"],
        symbol_rows=ROWS,
        open_positions=[_position(1, "10", "100", ticker="A")],
        latest_close_by_symbol={1: Decimal("105"), 2: Decimal("50")},
        cash_current=Decimal("0"),
        blocked_symbol_ids={1},
        now=NOW,
    )

    assert [(i.symbol_id, i.reason) for i in result.sells] == [(1, PlanReason.DROPPED)]
    assert [i.symbol_id for i in result.buys] == [2]


def test_missing_price_skips_candidate_with_warning():
    observer = RecordingObserver()
    result = make_plan(
        tickers=["A", "B"],
        symbol_rows=ROWS,
        open_positions=[],
        latest_close_by_symbol={2: Decimal("50")},
        cash_current=Decimal("1000"),
        now=NOW,
        observer=observer,
    )

    assert [i.symbol_id for i in result.buys] == [2]
    assert result.buys[0].qty_delta == Decimal("20")
    assert "plan.skip_no_price" in observer.names()


def test_leftover_cash_is_reinvested_in_retained_positions():
    result = make_plan(
        tickers=["A", "B"],
        symbol_rows=ROWS,
        open_positions=[_position(1, "10", "100", ticker="A"), _position(2, "10", "50", ticker="B")],
        latest_close_by_symbol={1: Decimal("100"), 2: Decimal("50")},
        cash_current=Decimal("300"),
        now=NOW,
    )

    assert [i.reason for i in result.plan] == [PlanReason.REINVEST, PlanReason.REINVEST]
    assert [i.qty_delta for i in result.plan] == [Decimal("1.5"), Decimal("3")]


def test_no_hold_items_are_emitted():
    result = make_plan(
        tickers=["A"],
        symbol_rows=ROWS,
        open_positions=[_position(1, "10", "100", ticker="A")],
        latest_close_by_symbol={1: Decimal("100")},
        cash_current=Decimal("0"),
        now=NOW,
    )

    assert result.plan == []


def test_unknown_ticker_is_ignored_and_duplicates_collapse():
    observer = RecordingObserver()
    result = make_plan(
        tickers=["A", "A", "ZZZ"],
        symbol_rows=ROWS,
        open_positions=[],
        latest_close_by_symbol={1: Decimal("100")},
        cash_current=Decimal("1000"),
        now=NOW,
        observer=observer,
    )

    assert result.target_per_symbol == Decimal("1000")
    assert [i.qty_delta for i in result.buys] == [Decimal("10")]
    assert "plan.skip_unknown_symbol" in observer.names()


def test_same_ticker_on_two_exchanges_gets_two_targets():
    rows = [SymbolRow(1, "SHOP", "NYSE"), SymbolRow(2, "SHOP", "TSX")]
    result = make_plan(
        tickers=["SHOP"],
        symbol_rows=rows,
        open_positions=[],
        latest_close_by_symbol={1: Decimal("100"), 2: Decimal("50")},
        cash_current=Decimal("1000"),
        now=NOW,
    )

    assert result.target_per_symbol == Decimal("500")
    assert [(i.symbol_id, i.qty_delta) for i in result.buys] == [(1, Decimal("5")), (2, Decimal("10"))]


def test_empty_basket_keeps_target_finite():
    result = make_plan(
        tickers=[],
        symbol_rows=[],
        open_positions=[],
        latest_close_by_symbol={},
        cash_current=Decimal("500"),
        now=NOW,
    )

    assert result.target_per_symbol == Decimal("500")
    assert result.plan == []


def test_equity_falls_back_to_average_cost():
    positions = [_position(1, "2", "10"), _position(2, "3", "20")]
    assert compute_equity(Decimal("5"), positions, {1: Decimal("12")}) == Decimal("89")


def test_plan_events_cover_target_and_built():
    observer = RecordingObserver()
    make_plan(
        tickers=["A"],
        symbol_rows=ROWS,
        open_positions=[],
        latest_close_by_symbol={1: Decimal("10")},
        cash_current=Decimal("100"),
        now=NOW,
        observer=observer,
    )

    names = observer.names()
    assert names[0] == "plan.target"
    assert names[-1] == "plan.built"
    assert "plan.buy_new" in names


@pytest.mark.parametrize("seed", range(25))
def test_random_plans_never_overspend_and_split_equally(seed):
    rng = random.Random(seed)
    rows = [SymbolRow(i, f"T{i}") for i in range(1, 9)]
    tickers = [row.ticker for row in rows if rng.random() < 0.6]
    closes = {row.id: Decimal(rng.randint(1, 50000)) / 100 for row in rows}
    cash = Decimal(rng.randint(0, 5_000_000)) / 100
    held = [
        _position(row.id, Decimal(rng.randint(1, 1000)) / 10, Decimal(rng.randint(100, 50000)) / 100)
        for row in rows
        if rng.random() < 0.3
    ]

    result = make_plan(
        tickers=tickers,
        symbol_rows=rows,
        open_positions=held,
        latest_close_by_symbol=closes,
        cash_current=cash,
        now=NOW,
    )

    assert sum((i.notional for i in result.buys), Decimal("0")) <= result.cash_after_sells
    assert all(i.action is not PlanAction.HOLD for i in result.plan)

    sold = [i.symbol_id for i in result.sells]
    assert len(sold) == len(set(sold))
    held_qty = {p.symbol_id: p.qty for p in held}
    for item in result.sells:
        assert -item.qty_delta == held_qty[item.symbol_id]

    allocations = {i.notional for i in result.buys}
    if allocations:
        step = max(i.price for i in result.buys) * Decimal("1e-8")
        assert max(allocations) - min(allocations) <= step


@pytest.mark.parametrize("seed", range(10))
def test_plan_is_deterministic(seed):
    rng = random.Random(seed)
    rows = [SymbolRow(i, f"T{i}") for i in range(1, 6)]
    closes = {row.id: Decimal(rng.randint(100, 9000)) / 10 for row in rows}
    kwargs = dict(
        tickers=[row.ticker for row in rows],
        symbol_rows=rows,
        open_positions=[_position(1, "3", "50")],
        latest_close_by_symbol=closes,
        cash_current=Decimal(rng.randint(0, 100000)),
        now=NOW,
    )

    assert make_plan(**kwargs).plan == make_plan(**kwargs).plan
