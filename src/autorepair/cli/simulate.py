"""
CLI: ``autorepair simulate`` - run one repair cycle against in-memory collaborators.

Useful to see how a configuration turns into dispatched task groups
without a cluster::

    autorepair simulate --keyspace ks --table users --table events \\
        --sub-ranges 4 --threads 2
"""

from __future__ import annotations

import typer

from autorepair.cli.utils import console, err_console, key_value_table, print_json
from autorepair.config.models import RepairCategory
from autorepair.core.errors import InvalidConfigError


def simulate(
    keyspace: str = typer.Option("ks", "--keyspace", "-k", help="Keyspace to create"),
    tables: list[str] = typer.Option(..., "--table", "-t", help="Table to create (repeatable)"),
    category: RepairCategory = typer.Option(
        RepairCategory.FULL, "--category", "-c", case_sensitive=False, help="Repair category"
    ),
    sub_ranges: int = typer.Option(16, "--sub-ranges", help="Sub-ranges per token range"),
    threads: int = typer.Option(1, "--threads", help="Sub-ranges per task group"),
    by_keyspace: bool = typer.Option(False, "--by-keyspace", help="Repair the keyspace as one unit"),
    as_json: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Run one cycle on a single in-memory node and print the resulting state."""
    from autorepair.config.service import RepairConfigService
    from autorepair.core.settings import get_settings
    from autorepair.scheduling.memory import (
        InMemoryCluster,
        InMemoryTurnCoordinator,
        RecordingDispatcher,
    )
    from autorepair.scheduling.scheduler import RepairScheduler

    config = RepairConfigService()
    try:
        config.set_auto_repair_enabled(category, True)
        config.set_repair_sub_range_count(category, sub_ranges)
        config.set_repair_threads(category, threads)
        config.set_repair_by_keyspace(category, by_keyspace)
    except InvalidConfigError as e:
        err_console.print(f"[red]Invalid option:[/red] {e.message}")
        raise typer.Exit(1) from e

    cluster = InMemoryCluster()
    for table in tables:
        cluster.add_table(keyspace, table)
    coordinator = InMemoryTurnCoordinator(config, local_host_id=cluster.host_id)
    dispatcher = RecordingDispatcher()

    scheduler = RepairScheduler(config, cluster, coordinator, dispatcher, settings=get_settings())
    try:
        scheduler.repair(category, 0)
    finally:
        scheduler.shutdown(wait=False)

    snapshot = scheduler.get_repair_state(category).snapshot()

    if as_json:
        print_json({"state": snapshot.to_dict(), "dispatch_count": dispatcher.dispatch_count})
        return

    console.print(key_value_table(snapshot.to_dict(), title=f"Repair state: {category.value}"))
    console.print(f"[bold]Task groups dispatched:[/bold] {dispatcher.dispatch_count}")
