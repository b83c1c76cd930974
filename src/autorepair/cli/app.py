"""
Root Typer application for the autorepair CLI.
"""

from __future__ import annotations

import typer
from typer import Typer

app = Typer(
    name="autorepair",
    help="autorepair - automated anti-entropy repair scheduling.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from autorepair import __version__

        typer.echo(f"autorepair {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """autorepair CLI - inspect configuration and simulate repair cycles."""
    from autorepair.core.logging import configure_logging
    from autorepair.core.settings import get_settings

    settings = get_settings()
    configure_logging(level=settings.log_level, json_format=settings.log_format == "json")


# ── Sub-command registration ─────────────────────────────────────────────

from autorepair.cli.config import app as config_app  # noqa: E402
from autorepair.cli.simulate import simulate  # noqa: E402

app.add_typer(config_app, name="config", help="Configuration inspection.")
app.command("simulate")(simulate)
