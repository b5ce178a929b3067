"""TickerBasket application factory."""

from __future__ import annotations

import os
from importlib import import_module
from typing import Iterable, Optional

from flask import Flask

from . import cli as _cli
from .config import BaseConfig, DevConfig, TestingConfig
from .context import AppContext, create_app_context
from .logging_config import setup_logging

EXTENSION_KEY = "tickerbasket"

_CONFIG_MAP = {
    "development": DevConfig,
    "testing": TestingConfig,
    "default": BaseConfig,
}


def _resolve_config(name: str | None) -> type[BaseConfig]:
    """Return the config class for the provided environment name."""

    if not name:
        return BaseConfig
    return _CONFIG_MAP.get(name.lower(), BaseConfig)


def _blueprint_paths() -> Iterable[str]:
    """Yield blueprint import paths registered on every app."""

    yield "tickerbasket.blueprints.api"


def create_app(config_name: str | None = None, *, context: Optional[AppContext] = None) -> Flask:
    """Create and configure the Flask application instance.

    ``context`` lets callers supply pre-wired repositories and collaborators;
    otherwise one is built from the resolved configuration.
    """

    app = Flask(__name__, instance_relative_config=True)
    if context is None:
        config_cls = _resolve_config(config_name or os.getenv("TICKERBASKET_ENV"))
        context = create_app_context(config_cls())
    config_obj = context.config
    app.config.from_object(config_obj)
    app.config["TICKERBASKET_CONFIG"] = config_obj
    app.extensions[EXTENSION_KEY] = context

    setup_logging(config_obj)
    _register_blueprints(app)
    _cli.init_app(app)
    return app


def _register_blueprints(app: Flask) -> None:
    """Import and register all blueprints declared in `_blueprint_paths`."""

    for dotted_path in _blueprint_paths():
        module = import_module(dotted_path)
        blueprint = getattr(module, "bp")
        app.register_blueprint(blueprint)


__all__ = ["BaseConfig", "DevConfig", "TestingConfig", "create_app", "create_app_context"]
