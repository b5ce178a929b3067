"""Re-entry cooldown after losing exits."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Iterable, Optional

from .events import NullObserver, RunObserver
from .repositories.position import PositionStore


@dataclass(frozen=True, slots=True)
class ClosedPositionRow:
    symbol_id: int
    closed_at: datetime
    realized_pnl: Decimal


def cooldown_cutoff(now: datetime, days: int) -> datetime:
    """Return ``now - days`` in UTC."""

    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc) - timedelta(days=days)


def blocked_symbol_ids(rows: Iterable[ClosedPositionRow], cutoff: datetime) -> set[int]:
    """Symbols with a losing exit at or after ``cutoff``."""

    if cutoff.tzinfo is None:
        cutoff = cutoff.replace(tzinfo=timezone.utc)
    blocked: set[int] = set()
    for row in rows:
        closed_at = row.closed_at
        if closed_at.tzinfo is None:
            closed_at = closed_at.replace(tzinfo=timezone.utc)
        if row.realized_pnl < 0 and closed_at >= cutoff:
            blocked.add(row.symbol_id)
    return blocked


def compute_blocked_symbols(
    store: PositionStore,
    *,
    portfolio_id: int,
    now: datetime,
    cooldown_days: int,
    observer: Optional[RunObserver] = None,
) -> set[int]:
    """Query the store for recent losing exits and return the blocked symbol ids.

    A zero-day cooldown disables the filter. Exits are never affected by this
    set; it only removes candidates from new-entry buys.
    """
    observer = observer or NullObserver()
    if cooldown_days <= 0:
        return set()
    cutoff = cooldown_cutoff(now, cooldown_days)
    rows = store.list_recent_losing_closed(portfolio_id, cutoff)
    blocked = blocked_symbol_ids(rows, cutoff)
    observer.emit(
        logging.INFO,
        "cooldown.blocked",
        count=len(blocked),
        cutoff=cutoff.isoformat(),
        symbol_ids=sorted(blocked),
    )
    return blocked


__all__ = [
    "ClosedPositionRow",
    "blocked_symbol_ids",
    "compute_blocked_symbols",
    "cooldown_cutoff",
]
