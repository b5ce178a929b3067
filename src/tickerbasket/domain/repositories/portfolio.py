"""Portfolio repository protocol."""

from __future__ import annotations

from decimal import Decimal
from typing import Optional, Protocol

from ...models.portfolio import Portfolio


class PortfolioRepository(Protocol):
    """Repository for the cash-owning portfolio."""

    def get(self, portfolio_id: int) -> Optional[Portfolio]:
        """Retrieve a portfolio by ID."""
        ...

    def ensure_default(self, starting_cash: Decimal) -> Portfolio:
        """Return the first portfolio, creating it with ``starting_cash`` when none exists."""
        ...
