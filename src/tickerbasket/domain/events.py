"""Structured event emission for the planner and executor.

The trading core reports what it decides through a single ``RunObserver``
instead of logging directly. The run orchestration wires a
``LoggingObserver``; tests can pass any object with a matching ``emit``.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

EVENT_LOGGER_NAME = "tickerbasket.events"


class RunObserver(Protocol):
    """Receives leveled, named events with structured fields."""

    def emit(self, level: int, event: str, **fields: Any) -> None:  # pragma: no cover - interface
        ...


class NullObserver:
    """Observer that discards every event."""

    def emit(self, level: int, event: str, **fields: Any) -> None:
        return None


class LoggingObserver:
    """Forward events to the standard logging tree.

    The event name becomes the log message and the fields are attached via
    ``extra`` so ``JSONFormatter`` writes them under ``"extra"``.
    """

    def __init__(self, logger: logging.Logger | None = None, **context: Any) -> None:
        self.logger = logger or logging.getLogger(EVENT_LOGGER_NAME)
        self.context = context

    def emit(self, level: int, event: str, **fields: Any) -> None:
        if not self.logger.isEnabledFor(level):
            return
        payload = {"event": event, **self.context, **fields}
        self.logger.log(level, event, extra=payload)


class RecordingObserver:
    """Keep events in memory for later inspection."""

    def __init__(self) -> None:
        self.events: list[tuple[int, str, dict[str, Any]]] = []

    def emit(self, level: int, event: str, **fields: Any) -> None:
        self.events.append((level, event, fields))

    def names(self) -> list[str]:
        return [name for _, name, _ in self.events]


__all__ = ["LoggingObserver", "NullObserver", "RecordingObserver", "RunObserver"]
