"""Database infrastructure: engine, schema and transactional sessions."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Callable, ContextManager, Iterator, Mapping, Tuple

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from ..config import BaseConfig

SessionFactory = Callable[[], ContextManager[Session]]


def enable_sqlite_pragmas(engine: Engine, pragmas: Mapping[str, str] | None = None) -> None:
    """Apply PRAGMAs on every new SQLite connection.

    ``foreign_keys`` is always switched on so cascade/restrict rules hold.
    """
    if engine.dialect.name != "sqlite":
        return
    settings = {"foreign_keys": "on", **(pragmas or {})}

    @event.listens_for(engine, "connect")
    def _set_pragmas(dbapi_connection, connection_record) -> None:  # pragma: no cover - driver hook
        cursor = dbapi_connection.cursor()
        try:
            for key, value in settings.items():
                cursor.execute(f"PRAGMA {key}={value}")
        finally:
            cursor.close()


def create_db_engine(config: BaseConfig) -> Engine:
    """Create SQLModel engine from configuration."""
    engine = create_engine(config.DATABASE_URL, **config.sqlalchemy_engine_options())
    enable_sqlite_pragmas(engine, config.SQLITE_PRAGMAS)
    return engine


def init_database(engine: Engine) -> None:
    """Create the symbol, price, portfolio, position and snapshot tables if missing."""
    # table classes must be imported before create_all sees them
    from .. import models  # noqa: F401

    SQLModel.metadata.create_all(engine)


def create_session_factory(engine: Engine) -> SessionFactory:
    """Create a factory of transactional session scopes.

    Each scope commits on success and rolls back (then re-raises) on error.
    """

    @contextmanager
    def factory() -> Iterator[Session]:
        session = Session(engine, expire_on_commit=False)
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return factory


def bootstrap_database(config: BaseConfig | None = None) -> Tuple[Engine, SessionFactory]:
    """Build the engine, create the schema and return (engine, session_factory)."""

    engine = create_db_engine(config or BaseConfig())
    init_database(engine)
    return engine, create_session_factory(engine)
