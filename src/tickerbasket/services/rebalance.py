"""One rebalance run: collaborators, planner and executor wired together."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from ..domain.cooldown import compute_blocked_symbols
from ..domain.events import LoggingObserver, RunObserver
from ..domain.money import as_str, quantize
from ..domain.planner import SymbolRow, compute_equity, make_plan
from ..errors import RunFailedError
from ..logging_config import get_logger
from .execution import execute_plan
from .prices import PriceUpdate, update_prices_for_symbols
from .snapshots import record_portfolio_value
from .sources import PriceOracle

if TYPE_CHECKING:
    from ..context import AppContext

logger = get_logger("rebalance")


@dataclass(slots=True)
class RunSummary:
    """What a run did, returned to whichever trigger started it."""

    portfolio_id: int
    tickers: list[str]
    applied: int
    skipped: int
    equity: Decimal
    cash: Decimal
    realized_pnl: Decimal
    prices_updated: int
    plan: list[dict[str, object]] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "portfolio_id": self.portfolio_id,
            "tickers": list(self.tickers),
            "applied": self.applied,
            "skipped": self.skipped,
            "equity": as_str(self.equity),
            "cash": as_str(self.cash),
            "realized_pnl": as_str(self.realized_pnl),
            "prices_updated": self.prices_updated,
            "plan": list(self.plan),
        }


def _refresh(
    ctx: AppContext,
    keys: list[tuple[str, str]],
    oracle: Optional[PriceOracle],
    now: datetime,
) -> list[PriceUpdate]:
    if oracle is None:
        logger.warning("No price source configured; planning with stored closes")
        return []
    return update_prices_for_symbols(
        keys,
        oracle=oracle,
        symbol_repo=ctx.symbol_repo,
        price_repo=ctx.price_repo,
        now=now,
        market_tz=ctx.market_tz,
    )


def refresh_open_position_prices(
    ctx: AppContext, *, now: Optional[datetime] = None
) -> list[PriceUpdate]:
    """Refresh closes for the default portfolio's open positions only."""

    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    portfolio = ctx.portfolio_repo.ensure_default(ctx.config.STARTING_CASH)
    portfolio_id = portfolio.require_id()
    keys = [(symbol.ticker, symbol.exchange) for _, symbol in ctx.position_repo.list_open_rows(portfolio_id)]
    return update_prices_for_symbols(
        keys,
        oracle=ctx.require_price_oracle(),
        symbol_repo=ctx.symbol_repo,
        price_repo=ctx.price_repo,
        now=now,
        market_tz=ctx.market_tz,
    )


def run_rebalance(
    ctx: AppContext,
    *,
    now: Optional[datetime] = None,
    observer: Optional[RunObserver] = None,
) -> RunSummary:
    """Run one rebalance against the default portfolio.

    Raises:
        RunFailedError: the plan could not be committed; nothing was written.
    """
    now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    config = ctx.config

    scraped = ctx.ticker_source.fetch_tickers()
    symbols = ctx.symbol_repo.ensure_symbols(ticker.key for ticker in scraped)
    ctx.symbol_repo.mark_active(symbol.id for symbol in symbols if symbol.id is not None)

    portfolio = ctx.portfolio_repo.ensure_default(config.STARTING_CASH)
    portfolio_id = portfolio.require_id()
    observer = observer or LoggingObserver(portfolio_id=portfolio_id)

    held_rows = ctx.position_repo.list_open_rows(portfolio_id)
    refresh_keys = [(symbol.ticker, symbol.exchange) for _, symbol in held_rows]
    refresh_keys += [(symbol.ticker, symbol.exchange) for symbol in symbols]
    updates = _refresh(ctx, refresh_keys, ctx.price_oracle, now)

    open_positions = ctx.position_repo.load_open_positions(portfolio_id)
    symbol_rows = [
        SymbolRow(id=symbol.id, ticker=symbol.ticker, exchange=symbol.exchange)  # type: ignore[arg-type]
        for symbol in symbols
    ]
    price_ids = {row.id for row in symbol_rows} | {p.symbol_id for p in open_positions}
    closes = ctx.price_repo.latest_close_map(price_ids)

    current = ctx.portfolio_repo.get(portfolio_id) or portfolio
    cash = current.cash_current

    try:
        blocked = compute_blocked_symbols(
            ctx.position_repo,
            portfolio_id=portfolio_id,
            now=now,
            cooldown_days=config.REENTRY_COOLDOWN_DAYS,
            observer=observer,
        )
    except Exception:
        logger.warning("Cooldown lookup failed; no symbols blocked", exc_info=True)
        blocked = set()

    result = make_plan(
        tickers=[symbol.ticker for symbol in symbols],
        symbol_rows=symbol_rows,
        open_positions=open_positions,
        latest_close_by_symbol=closes,
        cash_current=cash,
        blocked_symbol_ids=blocked,
        stop_loss_multiplier=config.STOP_LOSS_MULTIPLIER,
        now=now,
        market_tz=ctx.market_tz,
        observer=observer,
    )

    open_by_symbol = {position.symbol_id: position for position in open_positions}
    try:
        with ctx.session_factory() as session:
            executed = execute_plan(
                session,
                portfolio_id=portfolio_id,
                plan=result.plan,
                cash_current=cash,
                open_by_symbol=open_by_symbol,
                now=now,
                observer=observer,
            )
    except RunFailedError:
        logger.exception("Rebalance run failed", extra={"portfolio_id": portfolio_id})
        raise
    except Exception as exc:
        logger.exception("Rebalance run failed", extra={"portfolio_id": portfolio_id})
        raise RunFailedError(f"rebalance of portfolio {portfolio_id} failed") from exc

    equity = quantize(compute_equity(executed.cash, open_by_symbol.values(), closes))
    current.cash_current = executed.cash
    record_portfolio_value(
        current,
        equity=equity,
        value_repo=ctx.value_repo,
        now=now,
        market_tz=ctx.market_tz,
    )

    summary = RunSummary(
        portfolio_id=portfolio_id,
        tickers=[symbol.ticker for symbol in symbols],
        applied=executed.changes,
        skipped=len(executed.skipped),
        equity=equity,
        cash=executed.cash,
        realized_pnl=quantize(executed.realized_pnl),
        prices_updated=len(updates),
        plan=[item.to_dict() for item in executed.applied],
    )
    logger.info(
        "Rebalance completed",
        extra={
            "portfolio_id": portfolio_id,
            "applied": summary.applied,
            "equity": as_str(summary.equity),
            "cash": as_str(summary.cash),
        },
    )
    return summary


__all__ = ["RunSummary", "refresh_open_position_prices", "run_rebalance"]
