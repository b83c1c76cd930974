"""
CLI: ``autorepair config`` - settings and repair configuration inspection.
"""

from __future__ import annotations

import typer

from autorepair.cli.utils import console, err_console, key_value_table, print_json

app = typer.Typer(no_args_is_help=True)


@app.command("show")
def show_config(
    format: str = typer.Option("table", "--format", "-f", help="Output format: table, json"),
) -> None:
    """Show process settings and the default per-category repair config."""
    from autorepair.config.models import RepairConfig
    from autorepair.core.settings import get_settings

    settings = get_settings()
    repair_config = RepairConfig()

    if format == "json":
        print_json(
            {
                "settings": settings.model_dump(mode="json"),
                "repair": repair_config.model_dump(mode="json"),
            }
        )
        return

    if format != "table":
        err_console.print(f"[red]Unknown format:[/red] {format}")
        raise typer.Exit(1)

    console.print(key_value_table(settings.model_dump(), title="Settings"))
    console.print(
        key_value_table(
            {
                "check_interval_seconds": repair_config.check_interval_seconds,
                "history_clear_delete_hosts_buffer_seconds": (
                    repair_config.history_clear_delete_hosts_buffer_seconds
                ),
            },
            title="Repair",
        )
    )
    for category, options in repair_config.categories.items():
        console.print(key_value_table(options.model_dump(), title=f"Repair: {category.value}"))


@app.command("validate")
def validate_config(
    incremental: bool = typer.Option(
        False, "--incremental", help="Check as if incremental repair were enabled"
    ),
) -> None:
    """Validate settings and the incremental-repair safety check."""
    from autorepair.core.errors import ConfigurationError
    from autorepair.core.settings import get_settings
    from autorepair.scheduling.scheduler import check_incremental_repair_allowed

    try:
        settings = get_settings(_force_reload=True)
    except ValueError as e:
        err_console.print(f"[red]Configuration Error:[/red] {e}")
        raise typer.Exit(1) from e

    try:
        check_incremental_repair_allowed(settings, incremental)
    except ConfigurationError as e:
        err_console.print(f"[red]Configuration Error:[/red] {e.message}")
        raise typer.Exit(1) from e

    console.print("[green]✓ Configuration is valid[/green]")
