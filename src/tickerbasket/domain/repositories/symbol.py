"""Symbol repository protocol."""

from __future__ import annotations

from typing import Iterable, Protocol

from ...models.symbol import Symbol


class SymbolRepository(Protocol):
    """Repository for basket symbols."""

    def ensure_symbols(self, keys: Iterable[tuple[str, str]]) -> list[Symbol]:
        """Insert missing ``(ticker, exchange)`` pairs and return rows in input order."""
        ...

    def mark_active(self, symbol_ids: Iterable[int]) -> None:
        """Flag the given symbols as on-page and every other symbol as off-page."""
        ...

    def list_by_keys(self, keys: Iterable[tuple[str, str]]) -> list[Symbol]:
        """Return existing symbols matching the keys, in input order."""
        ...

    def list_active(self) -> list[Symbol]:
        """Return symbols seen on the page during the latest run."""
        ...
