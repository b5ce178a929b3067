"""Application configuration objects and helpers."""

from __future__ import annotations

import os
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from .errors import ConfigurationError

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    """Interpret environment variable values as booleans."""

    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name, default)
    try:
        return Decimal(raw.strip())
    except (InvalidOperation, AttributeError) as exc:
        raise ConfigurationError(f"{name} must be a decimal number, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from exc


class BaseConfig:
    """Base configuration shared across environments."""

    APP_NAME = "TickerBasket"
    DB_FILENAME = "tickerbasket.db"
    SQLITE_PRAGMAS = {"journal_mode": "wal", "foreign_keys": "on"}
    DEFAULT_SOURCE_URL = "https://www.wishingwealthblog.com/"

    def __init__(self) -> None:
        self.DATA_DIR = self._resolve_data_dir()
        self.DEV_MODE = _env_bool("TICKERBASKET_DEV_MODE", default=True)
        self.DATABASE_URL = os.getenv("TICKERBASKET_DATABASE_URL", self._build_sqlite_url())
        self.CRON_SECRET = os.getenv("TICKERBASKET_CRON_SECRET")
        self.SOURCE_URL = os.getenv("TICKERBASKET_SOURCE_URL", self.DEFAULT_SOURCE_URL)
        self.TICKERS_CSV = os.getenv("TICKERBASKET_TICKERS_CSV")
        self.PRICES_CSV = os.getenv("TICKERBASKET_PRICES_CSV")
        self.MARKET_TIMEZONE = os.getenv("TICKERBASKET_MARKET_TIMEZONE", "America/New_York")

        # Trading rules
        self.STARTING_CASH = _env_decimal("TICKERBASKET_STARTING_CASH", "10000")
        self.STOP_LOSS_MULTIPLIER = _env_decimal("TICKERBASKET_STOP_LOSS_MULTIPLIER", "0.95")
        self.REENTRY_COOLDOWN_DAYS = _env_int("TICKERBASKET_REENTRY_COOLDOWN_DAYS", 10)
        self.RUN_INTERVAL_MINUTES = _env_int("TICKERBASKET_RUN_INTERVAL_MINUTES", 60)

        self.validate()

    def validate(self) -> None:
        """Reject settings the trading rules cannot work with."""

        if not (Decimal("0") < self.STOP_LOSS_MULTIPLIER <= Decimal("1")):
            raise ConfigurationError("TICKERBASKET_STOP_LOSS_MULTIPLIER must be in (0, 1]")
        if self.REENTRY_COOLDOWN_DAYS < 0:
            raise ConfigurationError("TICKERBASKET_REENTRY_COOLDOWN_DAYS must be >= 0")
        if self.STARTING_CASH < 0:
            raise ConfigurationError("TICKERBASKET_STARTING_CASH must be >= 0")
        if self.RUN_INTERVAL_MINUTES <= 0:
            raise ConfigurationError("TICKERBASKET_RUN_INTERVAL_MINUTES must be positive")
        if not self.DEV_MODE and not self.CRON_SECRET:
            raise ConfigurationError("TICKERBASKET_CRON_SECRET must be set in non-dev mode.")

    def _resolve_data_dir(self) -> Path:
        """Return the directory where the SQLite file and logs live."""

        data_root = os.getenv("TICKERBASKET_DATA_DIR", "instance")
        path = Path(data_root).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _build_sqlite_url(self) -> str:
        db_path = self.DATA_DIR / self.DB_FILENAME
        return f"sqlite:///{db_path}"

    def sqlalchemy_engine_options(self) -> dict[str, Any]:
        """Expose engine kwargs for SQLModel to consume."""

        if self.DATABASE_URL.startswith("sqlite"):
            return {"connect_args": {"check_same_thread": False}}
        return {"pool_pre_ping": True}


class DevConfig(BaseConfig):
    """Development configuration using local SQLite."""

    DEBUG = True
    TESTING = False


class TestingConfig(BaseConfig):
    """Configuration used by the test-suite and the Flask test client."""

    DEBUG = False
    TESTING = True
