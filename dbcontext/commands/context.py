"""Context generation commands: databases, schemas, tables and columns."""

import typer
from rich.table import Table

from ..config import settings
from ..context import resolve_generation_database
from ..database import new_database_lister, new_table_detail_discoverer
from .. import runner
from .common import (
    Schemas,
    Tables,
    announce_sso,
    connect_timeout_for,
    connection_context,
    console,
    handle_errors,
    print_tick,
)


def test_connection(ctx: typer.Context):
    """Check that the connection opens and the catalog can be queried."""
    with handle_errors():
        config, options = connection_context(ctx).require()
        announce_sso(config)
        lister = new_database_lister(config, connect_timeout=connect_timeout_for(config))
        runner.check_connection(lister, timeout=settings.connect_timeout)
    console.print(f"[green]Connection ok: {options.connection_name}[/green]")


def databases(ctx: typer.Context):
    """List databases on the connection and merge them into _databases.yml."""
    with handle_errors():
        config, options = connection_context(ctx).require()
        console.print(f"Discovering databases for connection {options.connection_name!r} ({config.type})...")
        announce_sso(config)
        lister = new_database_lister(config, connect_timeout=connect_timeout_for(config))
        added = runner.update_databases(lister, options, timeout=settings.discovery_timeout)

    if added:
        console.print(f"[green]Added {len(added)} database(s):[/green] {', '.join(added)}")
    else:
        console.print("No new databases found.")


def schemas(ctx: typer.Context):
    """Discover schemas and write _schemas.yml and per-schema _tables.yml."""
    with handle_errors():
        config, options = connection_context(ctx).require()
        console.print(f"Discovering schemas for connection {options.connection_name!r} ({config.type})...")
        announce_sso(config)
        with new_table_detail_discoverer(config, connect_timeout=connect_timeout_for(config)) as disc:
            written = runner.generate_schema_context(
                disc, options, timeout=settings.discovery_timeout,
                interval=settings.progress_interval, on_tick=print_tick,
            )

    for path in written:
        console.print(f"  Wrote {path}")
    console.print(f"[green]Generated {len(written)} context file(s)[/green]")


def tables(ctx: typer.Context, schema: Schemas = None, table: Tables = None):
    """Write columns and sample files for the selected tables."""
    with handle_errors():
        config, options = connection_context(ctx).require()
        resolve_generation_database(options)
        selection = runner.parse_table_selection(table)
        announce_sso(config)
        with new_table_detail_discoverer(config, connect_timeout=connect_timeout_for(config)) as disc:
            discovered = runner.discover_schemas_with_progress(
                disc, timeout=settings.table_detail_timeout,
                interval=settings.progress_interval, on_tick=print_tick,
            )
            if not discovered:
                console.print("No schemas found.")
                return
            console.print(f"Found {len(discovered)} schema(s)")

            selected = runner.select_run_tables(discovered, schema, selection)
            if not selected:
                console.print("No tables to process.")
                return

            summary = runner.generate_table_context(
                disc, selected, options,
                sample_limit=settings.sample_row_limit,
                timeout=settings.table_detail_timeout,
                report=console.print,
            )

    console.print(
        f"\nProcessed {summary.tables_processed} table(s) across {len(selected)} schema(s), "
        f"wrote {len(summary.written)} file(s)"
    )
    _print_skipped(summary.skipped)


def columns(ctx: typer.Context, schema: Schemas = None, table: Tables = None):
    """Profile columns of the selected tables and write enriched __columns.yml files."""
    with handle_errors():
        config, options = connection_context(ctx).require()
        database = resolve_generation_database(options)
        selection = runner.parse_table_selection(table)
        announce_sso(config)
        with new_table_detail_discoverer(config, connect_timeout=connect_timeout_for(config)) as disc:
            discovered = runner.discover_schemas_with_progress(
                disc, timeout=settings.table_detail_timeout,
                interval=settings.progress_interval, on_tick=print_tick,
            )
            if not discovered:
                console.print("No schemas found.")
                return

            selected = runner.select_run_tables(discovered, schema, selection)
            if not selected:
                console.print("No tables selected.")
                return

            targets, skipped_targets = runner.build_column_targets(
                disc, selected, timeout=settings.table_detail_timeout, report=console.print
            )
            if not targets:
                console.print("No tables with accessible columns to process.")
                _print_skipped(skipped_targets)
                return

            total_columns = sum(len(t.columns) for t in targets)
            low, high = runner.estimate_run_time(total_columns)
            console.print(
                f"Selected {len(targets)} table(s) across {len(selected)} schema(s) "
                f"with {total_columns} total column(s)."
            )
            console.print(f"Estimated runtime: {low}s to {high}s")

            summary = runner.enrich_tables(
                disc, targets, options, column_timeout=settings.column_timeout, report=console.print
            )
            summary.skipped = skipped_targets + summary.skipped

    console.print(
        f"\nFinished enriched columns for database {database!r}: "
        f"wrote {summary.tables_written} table file(s), skipped {summary.tables_skipped}, "
        f"processed {summary.processed_columns}/{summary.total_columns} columns in {summary.elapsed:.0f}s."
    )
    _print_skipped(summary.skipped)


def _print_skipped(skipped):
    if not skipped:
        return
    table = Table(title="Skipped")
    table.add_column("Unit", style="yellow")
    table.add_column("Reason")
    for unit in skipped:
        table.add_row(unit.label, unit.reason)
    console.print(table)
