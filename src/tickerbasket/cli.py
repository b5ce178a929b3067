"""Flask CLI commands for TickerBasket."""

from __future__ import annotations

import json

import click
from flask import current_app
from flask.cli import FlaskGroup


def _context():
    return current_app.extensions["tickerbasket"]


def init_app(app) -> None:
    """Register CLI commands on the Flask app."""

    @app.cli.command("run")
    def run_command() -> None:
        """Run one rebalance now."""

        from .errors import RunFailedError
        from .services.rebalance import run_rebalance

        try:
            summary = run_rebalance(_context())
        except RunFailedError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(json.dumps(summary.to_dict(), indent=2))

    @app.cli.command("refresh-prices")
    def refresh_prices_command() -> None:
        """Refresh closes for open positions."""

        from .errors import ConfigurationError
        from .services.rebalance import refresh_open_position_prices

        try:
            updates = refresh_open_position_prices(_context())
        except ConfigurationError as exc:
            raise click.ClickException(str(exc)) from exc
        for update in updates:
            click.echo(f"{update.ticker:<8} {update.exchange:<8} {update.price} ({update.price_date})")
        click.echo(f"Updated {len(updates)} price(s).")

    @app.cli.command("status")
    @click.option("--json", "as_json", is_flag=True, default=False, help="Print raw JSON")
    def status_command(as_json: bool) -> None:
        """Show cash, equity and open positions."""

        from .services.snapshots import build_portfolio_summary

        ctx = _context()
        portfolio = ctx.portfolio_repo.ensure_default(ctx.config.STARTING_CASH)
        summary = build_portfolio_summary(
            portfolio,
            position_repo=ctx.position_repo,
            price_repo=ctx.price_repo,
            value_repo=ctx.value_repo,
            market_tz=ctx.market_tz,
        )
        if as_json:
            click.echo(json.dumps(summary.to_dict(), indent=2))
            return
        click.echo(f"Cash:   {summary.cash:.2f}")
        click.echo(f"Equity: {summary.equity:.2f}")
        for holding in summary.holdings:
            click.echo(
                f"{holding.ticker:<8} qty={holding.qty} avg={holding.avg_cost} "
                f"px={holding.price} pnl={holding.unrealized_pnl:.2f} "
                f"({holding.unrealized_pnl_pct:.2f}%)"
            )

    @app.cli.command("schedule")
    def schedule_command() -> None:
        """Run the rebalance job on an interval until interrupted."""

        from apscheduler.schedulers.blocking import BlockingScheduler

        from .scheduler import RebalanceScheduler

        blocking = BlockingScheduler()
        RebalanceScheduler(_context()).register(blocking)
        click.echo(f"Rebalancing every {_context().config.RUN_INTERVAL_MINUTES} minutes; Ctrl+C to stop.")
        try:
            blocking.start()
        except (KeyboardInterrupt, SystemExit):
            click.echo("Scheduler stopped.")


def _create_app():
    from . import create_app

    return create_app()


main = FlaskGroup(
    name="tickerbasket",
    create_app=_create_app,
    add_default_commands=False,
    help="TickerBasket paper-trading rebalancer.",
)
