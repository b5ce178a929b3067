"""Position store protocol."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:  # pragma: no cover
    from ...models.portfolio import Position
    from ..cooldown import ClosedPositionRow
    from ..planner import OpenPosition


class PositionStore(Protocol):
    """Durable record of open and closed positions."""

    def load_open_positions(self, portfolio_id: int) -> list["OpenPosition"]:
        """Open positions with their ticker, oldest first."""
        ...

    def list_recent_losing_closed(
        self, portfolio_id: int, cutoff: datetime
    ) -> list["ClosedPositionRow"]:
        """Closed positions with negative realized P&L closed at or after ``cutoff``."""
        ...

    def list_closed(self, portfolio_id: int) -> list["Position"]:
        """All closed positions, most recently closed first."""
        ...
