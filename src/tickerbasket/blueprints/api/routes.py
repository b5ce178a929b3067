"""Trigger and read-only portfolio routes."""

from __future__ import annotations

import hmac
from functools import wraps
from typing import Callable

from flask import current_app, jsonify, request

from ...context import AppContext
from ...domain.money import as_str
from ...errors import ConfigurationError, RunFailedError
from ...logging_config import get_logger
from ...services.rebalance import refresh_open_position_prices, run_rebalance
from ...services.snapshots import build_portfolio_summary
from . import bp

logger = get_logger("api")


def _context() -> AppContext:
    return current_app.extensions["tickerbasket"]


def _authorized() -> bool:
    secret = _context().config.CRON_SECRET
    if not secret:
        return False
    header = request.headers.get("Authorization", "")
    return hmac.compare_digest(header.encode(), f"Bearer {secret}".encode())


def require_cron_secret(view: Callable) -> Callable:
    """Reject requests without ``Authorization: Bearer <CRON_SECRET>``."""

    @wraps(view)
    def wrapper(*args, **kwargs):
        if not _authorized():
            logger.warning("Unauthorized API call", extra={"path": request.path})
            return jsonify({"ok": False, "error": "unauthorized"}), 401
        return view(*args, **kwargs)

    return wrapper


@bp.route("/cron", methods=["GET", "POST"])
@require_cron_secret
def cron():
    """Run one rebalance and report what changed."""

    try:
        summary = run_rebalance(_context())
    except RunFailedError:
        return jsonify({"ok": False, "error": "run_failed"}), 500
    return jsonify(
        {
            "ok": True,
            "tickers": summary.tickers,
            "applied": summary.applied,
            "equity": as_str(summary.equity),
            "cash": as_str(summary.cash),
        }
    )


@bp.post("/prices/refresh")
@require_cron_secret
def refresh_prices():
    """Refresh closes for open positions only."""

    try:
        updates = refresh_open_position_prices(_context())
    except ConfigurationError as exc:
        return jsonify({"ok": False, "error": str(exc)}), 400
    return jsonify({"ok": True, "updated": len(updates)})


@bp.get("/portfolio")
@require_cron_secret
def portfolio():
    """Cash, equity, holdings with unrealized P&L and the equity series."""

    ctx = _context()
    current = ctx.portfolio_repo.ensure_default(ctx.config.STARTING_CASH)
    summary = build_portfolio_summary(
        current,
        position_repo=ctx.position_repo,
        price_repo=ctx.price_repo,
        value_repo=ctx.value_repo,
        market_tz=ctx.market_tz,
    )
    return jsonify({"ok": True, **summary.to_dict()})
