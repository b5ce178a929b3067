"""Equal-weight rebalance planner.

``make_plan`` is a pure function: given the scraped basket, the open
positions, the latest closes, current cash and the cooldown-blocked symbols it
returns the portfolio equity, the equal-weight target per symbol, and an
ordered list of BUY/SELL items.

Ordering rules:

1. stop-loss exits (price below ``avg_cost * stop_loss_multiplier``),
2. exits for symbols that dropped off the page,
3. buys for new basket symbols, splitting the post-sell cash equally,
4. otherwise, leftover cash split equally across retained positions.

Positions opened on the current market-calendar day are never sold. Held
positions are not trimmed back to target; only leftover cash is redistributed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from decimal import Decimal
from enum import Enum
from typing import Iterable, Mapping, Optional, Sequence
from zoneinfo import ZoneInfo

from .events import NullObserver, RunObserver
from .money import EPSILON, ZERO, as_str, quantize_down

MARKET_TZ = ZoneInfo("America/New_York")


class PlanAction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class PlanReason(str, Enum):
    STOP_LOSS = "stop_loss"
    DROPPED = "dropped"
    NEW_ENTRY = "new_entry"
    REINVEST = "reinvest"


@dataclass(frozen=True, slots=True)
class SymbolRow:
    """A basket symbol resolved to its surrogate id."""

    id: int
    ticker: str
    exchange: str = ""


@dataclass(slots=True)
class OpenPosition:
    """Mutable view of an open position used by the planner and executor."""

    id: Optional[int]
    symbol_id: int
    qty: Decimal
    avg_cost: Decimal
    opened_at: Optional[datetime] = None
    ticker: str = ""


@dataclass(frozen=True, slots=True)
class PlanItem:
    symbol_id: int
    ticker: str
    action: PlanAction
    qty_delta: Decimal
    price: Decimal
    reason: Optional[PlanReason] = None

    @property
    def notional(self) -> Decimal:
        return abs(self.qty_delta) * self.price

    def to_dict(self) -> dict[str, object]:
        return {
            "symbol_id": self.symbol_id,
            "ticker": self.ticker,
            "action": self.action.value,
            "qty_delta": as_str(self.qty_delta),
            "price": as_str(self.price),
            "reason": self.reason.value if self.reason else None,
        }


@dataclass(slots=True)
class PlanResult:
    equity: Decimal
    target_per_symbol: Decimal
    cash_after_sells: Decimal
    plan: list[PlanItem] = field(default_factory=list)

    @property
    def buys(self) -> list[PlanItem]:
        return [item for item in self.plan if item.action is PlanAction.BUY]

    @property
    def sells(self) -> list[PlanItem]:
        return [item for item in self.plan if item.action is PlanAction.SELL]


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def market_date(value: datetime, tz: tzinfo = MARKET_TZ):
    """Return the calendar date of ``value`` in the market timezone."""

    return _as_utc(value).astimezone(tz).date()


def opened_same_market_day(
    opened_at: Optional[datetime], now: datetime, tz: tzinfo = MARKET_TZ
) -> bool:
    """True when a position was opened on the same market-calendar day as ``now``."""

    if opened_at is None:
        return False
    return market_date(opened_at, tz) == market_date(now, tz)


def compute_equity(
    cash: Decimal,
    open_positions: Iterable[OpenPosition],
    latest_close_by_symbol: Mapping[int, Decimal],
) -> Decimal:
    """Cash plus market value; positions without a close are valued at average cost."""

    market_value = sum(
        (p.qty * latest_close_by_symbol.get(p.symbol_id, p.avg_cost) for p in open_positions),
        ZERO,
    )
    return cash + market_value


def is_stop_loss_triggered(
    position: OpenPosition, price: Decimal, stop_loss_multiplier: Decimal
) -> bool:
    return price + EPSILON < position.avg_cost * stop_loss_multiplier


def _known_price(prices: Mapping[int, Decimal], symbol_id: int) -> Optional[Decimal]:
    price = prices.get(symbol_id)
    if price is None or price <= 0:
        return None
    return price


def _split_buys(
    *,
    candidates: Sequence[tuple[int, str, Decimal]],
    cash: Decimal,
    reason: PlanReason,
    observer: RunObserver,
) -> list[PlanItem]:
    """Split ``cash`` equally across ``candidates`` and emit one BUY each."""

    allocation = cash / len(candidates)
    items: list[PlanItem] = []
    for symbol_id, ticker, price in candidates:
        qty = quantize_down(allocation / price)
        if qty <= EPSILON:
            observer.emit(
                logging.DEBUG,
                "plan.skip_dust",
                symbol_id=symbol_id,
                ticker=ticker,
                allocation=allocation,
                price=price,
            )
            continue
        items.append(
            PlanItem(
                symbol_id=symbol_id,
                ticker=ticker,
                action=PlanAction.BUY,
                qty_delta=qty,
                price=price,
                reason=reason,
            )
        )
        observer.emit(
            logging.INFO,
            "plan.buy_new" if reason is PlanReason.NEW_ENTRY else "plan.reinvest",
            symbol_id=symbol_id,
            ticker=ticker,
            qty=qty,
            price=price,
            allocation=allocation,
        )
    return items


def make_plan(
    *,
    tickers: Sequence[str],
    symbol_rows: Sequence[SymbolRow],
    open_positions: Sequence[OpenPosition],
    latest_close_by_symbol: Mapping[int, Decimal],
    cash_current: Decimal,
    blocked_symbol_ids: Iterable[int] = (),
    stop_loss_multiplier: Decimal = Decimal("0.95"),
    now: Optional[datetime] = None,
    market_tz: tzinfo = MARKET_TZ,
    observer: Optional[RunObserver] = None,
) -> PlanResult:
    """Build the ordered trade plan for one run.

    Args:
        tickers: Basket tickers in page order.
        symbol_rows: Symbol rows for the basket tickers.
        open_positions: Currently open positions.
        latest_close_by_symbol: Latest close per symbol id; missing means unknown.
        cash_current: Portfolio cash before the run.
        blocked_symbol_ids: Symbols in re-entry cooldown.
        stop_loss_multiplier: Exit when price falls below this multiple of average cost.
        now: Reference time for the same-day guard (defaults to current UTC time).
        market_tz: Timezone defining the market-calendar day.
        observer: Receives structured planning events.

    Returns:
        PlanResult with equity, target per symbol, post-sell cash and the plan.
    """
    observer = observer or NullObserver()
    now = now or datetime.now(timezone.utc)
    blocked = set(blocked_symbol_ids)

    # one ticker may be listed on several exchanges; each listing is its own target
    rows_by_ticker: dict[str, list[SymbolRow]] = {}
    for row in symbol_rows:
        rows_by_ticker.setdefault(row.ticker, []).append(row)
    target_rows: list[SymbolRow] = []
    seen: set[int] = set()
    for ticker in tickers:
        rows = rows_by_ticker.get(ticker)
        if not rows:
            observer.emit(logging.WARNING, "plan.skip_unknown_symbol", ticker=ticker)
            continue
        for row in rows:
            if row.id in seen:
                continue
            seen.add(row.id)
            target_rows.append(row)
    target_ids = {row.id for row in target_rows}

    equity = compute_equity(cash_current, open_positions, latest_close_by_symbol)
    target_per_symbol = equity / max(1, len(target_rows))
    observer.emit(
        logging.INFO,
        "plan.target",
        equity=equity,
        target_per_symbol=target_per_symbol,
        basket_size=len(target_rows),
        open_positions=len(open_positions),
    )

    plan: list[PlanItem] = []
    exiting: set[int] = set()

    for position in open_positions:
        price = _known_price(latest_close_by_symbol, position.symbol_id)
        if price is None:
            continue
        if not is_stop_loss_triggered(position, price, stop_loss_multiplier):
            continue
        if opened_same_market_day(position.opened_at, now, market_tz):
            observer.emit(
                logging.INFO,
                "plan.skip_same_day",
                symbol_id=position.symbol_id,
                ticker=position.ticker,
                trigger="stop_loss",
            )
            continue
        exiting.add(position.symbol_id)
        plan.append(
            PlanItem(
                symbol_id=position.symbol_id,
                ticker=position.ticker,
                action=PlanAction.SELL,
                qty_delta=-position.qty,
                price=price,
                reason=PlanReason.STOP_LOSS,
            )
        )
        observer.emit(
            logging.INFO,
            "plan.stop_loss",
            symbol_id=position.symbol_id,
            ticker=position.ticker,
            qty=position.qty,
            price=price,
            avg_cost=position.avg_cost,
            threshold=position.avg_cost * stop_loss_multiplier,
        )

    for position in open_positions:
        if position.symbol_id in target_ids or position.symbol_id in exiting:
            continue
        if opened_same_market_day(position.opened_at, now, market_tz):
            observer.emit(
                logging.INFO,
                "plan.skip_same_day",
                symbol_id=position.symbol_id,
                ticker=position.ticker,
                trigger="dropped",
            )
            continue
        price = _known_price(latest_close_by_symbol, position.symbol_id) or position.avg_cost
        exiting.add(position.symbol_id)
        plan.append(
            PlanItem(
                symbol_id=position.symbol_id,
                ticker=position.ticker,
                action=PlanAction.SELL,
                qty_delta=-position.qty,
                price=price,
                reason=PlanReason.DROPPED,
            )
        )
        observer.emit(
            logging.INFO,
            "plan.dropped",
            symbol_id=position.symbol_id,
            ticker=position.ticker,
            qty=position.qty,
            price=price,
        )

    cash_after_sells = cash_current + sum((item.notional for item in plan), ZERO)

    held_ids = {p.symbol_id for p in open_positions}
    new_candidates: list[tuple[int, str, Decimal]] = []
    for row in target_rows:
        if row.id in held_ids or row.id in blocked:
            continue
        price = _known_price(latest_close_by_symbol, row.id)
        if price is None:
            observer.emit(
                logging.WARNING, "plan.skip_no_price", symbol_id=row.id, ticker=row.ticker
            )
            continue
        new_candidates.append((row.id, row.ticker, price))

    if new_candidates:
        if cash_after_sells > 0:
            plan.extend(
                _split_buys(
                    candidates=new_candidates,
                    cash=cash_after_sells,
                    reason=PlanReason.NEW_ENTRY,
                    observer=observer,
                )
            )
    elif cash_after_sells > 0:
        retained: list[tuple[int, str, Decimal]] = []
        for position in open_positions:
            if position.symbol_id in exiting or position.symbol_id not in target_ids:
                continue
            price = _known_price(latest_close_by_symbol, position.symbol_id)
            if price is None:
                continue
            retained.append((position.symbol_id, position.ticker, price))
        if retained:
            plan.extend(
                _split_buys(
                    candidates=retained,
                    cash=cash_after_sells,
                    reason=PlanReason.REINVEST,
                    observer=observer,
                )
            )

    observer.emit(
        logging.INFO,
        "plan.built",
        items=len(plan),
        cash_after_sells=cash_after_sells,
        blocked=len(blocked),
    )
    return PlanResult(
        equity=equity,
        target_per_symbol=target_per_symbol,
        cash_after_sells=cash_after_sells,
        plan=plan,
    )


__all__ = [
    "MARKET_TZ",
    "OpenPosition",
    "PlanAction",
    "PlanItem",
    "PlanReason",
    "PlanResult",
    "SymbolRow",
    "compute_equity",
    "is_stop_loss_triggered",
    "make_plan",
    "market_date",
    "opened_same_market_day",
]
