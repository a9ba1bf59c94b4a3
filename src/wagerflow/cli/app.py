"""Root CLI app - entry point and command registration."""

from pathlib import Path

import typer

from wagerflow.config import get_settings
from wagerflow.config.settings import configure_logging
from wagerflow.errors import ConfigError

app = typer.Typer(
    name="wagerflow",
    help="wagerflow - Wager placement, settlement tracking and balance ledger.",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config_dir: Path | None = typer.Option(
        None, "--config-dir", "-C", help="Config directory (default: ./config or package config)"
    ),
    profile: str | None = typer.Option(
        None, "--profile", "-p", help="Config profile (e.g. dev) to overlay on default.toml"
    ),
) -> None:
    """Configure logging and store options in context."""
    try:
        settings = get_settings(profile, config_dir)
    except ConfigError as e:
        typer.echo(str(e))
        raise typer.Exit(1)
    configure_logging(settings)
    ctx.obj = {"settings": settings, "config_dir": config_dir, "profile": profile}


# Subcommands registered from other modules
from wagerflow.cli import audit, balance, cycles, run as run_cmd  # noqa: E402

app.command("run")(run_cmd.run)
app.add_typer(balance.app, name="balance")
app.add_typer(audit.app, name="audit")
app.add_typer(cycles.app, name="cycles")


def run() -> None:
    app()


if __name__ == "__main__":
    run()
