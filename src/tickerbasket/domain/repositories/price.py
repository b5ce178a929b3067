"""Daily price repository protocol."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Iterable, Protocol

from ...models.symbol import PriceDaily


class PriceRepository(Protocol):
    """Repository for daily closes."""

    def upsert_close(
        self, symbol_id: int, price_date: date, close: Decimal, source: str = "scraper"
    ) -> PriceDaily:
        """Insert or overwrite the close for a symbol and day."""
        ...

    def latest_close_map(self, symbol_ids: Iterable[int]) -> dict[int, Decimal]:
        """Latest known close per symbol id; symbols without prices are omitted."""
        ...
