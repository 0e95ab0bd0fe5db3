"""Run orchestration for the context commands.

These functions take already-constructed adapters and drive discovery,
table detail collection and column enrichment with the isolation rules
of a run: one table's column fetch or one column's profile failing is
recorded and skipped, never fatal to the rest of the run. Configuration
errors (unknown type, missing default database) are raised up front,
before any query is issued.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .context import (
    EnrichedColumnsInput,
    Options,
    TableDetailInput,
    generate,
    generate_table_details,
    resolve_generation_database,
    update_databases_file,
    write_enriched_columns_file,
)
from .database.base import DatabaseLister, Discoverer, TableDetailDiscoverer
from .database.models import ColumnInfo, EnrichedColumnInfo, SchemaInfo, schema_names
from .errors import ConfigurationError, DBContextError
from .progress import ProgressTicker

logger = logging.getLogger(__name__)

MIN_SECONDS_PER_COLUMN_ESTIMATE = 5
MAX_SECONDS_PER_COLUMN_ESTIMATE = 10

Reporter = Callable[[str], None]


def _log_report(message: str):
    logger.info(message)


@dataclass
class SkippedUnit:
    """A table or column left out of a run, and why."""
    schema: str
    table: str
    column: str = ""
    reason: str = ""

    @property
    def label(self) -> str:
        parts = [self.schema, self.table] + ([self.column] if self.column else [])
        return ".".join(parts)


@dataclass
class ColumnTarget:
    """A table whose columns will be profiled."""
    schema: str
    table: str
    columns: List[ColumnInfo] = field(default_factory=list)


@dataclass
class TablesRunSummary:
    tables_processed: int = 0
    written: List[str] = field(default_factory=list)
    skipped: List[SkippedUnit] = field(default_factory=list)


@dataclass
class ColumnsRunSummary:
    total_columns: int = 0
    processed_columns: int = 0
    tables_written: int = 0
    written: List[str] = field(default_factory=list)
    skipped: List[SkippedUnit] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def tables_skipped(self) -> int:
        return len({(s.schema, s.table) for s in self.skipped})


def discover_schemas_with_progress(
    discoverer: Discoverer,
    timeout: Optional[float] = None,
    interval: float = 3,
    on_tick: Optional[Callable[[float], None]] = None,
) -> List[SchemaInfo]:
    """Run discover() while a ticker reports elapsed time.

    The ticker is always stopped before this returns or raises.
    """
    on_tick = on_tick or (lambda elapsed: logger.info("Still discovering schemas... (%.0fs elapsed)", elapsed))
    started_at = time.monotonic()
    with ProgressTicker(interval, on_tick, timeout=timeout):
        try:
            schemas = discoverer.discover(timeout=timeout)
        except DBContextError:
            logger.warning("Schema discovery failed after %.3fs", time.monotonic() - started_at)
            raise
    logger.info("Schema discovery completed in %.3fs", time.monotonic() - started_at)
    return schemas


def check_connection(lister: DatabaseLister, timeout: Optional[float] = None) -> List[str]:
    """Open the connection and run the cheapest catalog query the backend has."""
    with lister:
        return lister.list_databases(timeout=timeout)


def update_databases(lister: DatabaseLister, options: Options, timeout: Optional[float] = None) -> List[str]:
    """List databases through `lister` and merge them into _databases.yml.

    Returns:
        Names newly added to the file
    """
    with lister:
        databases = lister.list_databases(timeout=timeout)
    logger.info("Discovered %d databases for %s", len(databases), options.connection_name)
    return update_databases_file(databases, options)


def generate_schema_context(
    discoverer: Discoverer,
    options: Options,
    timeout: Optional[float] = None,
    interval: float = 3,
    on_tick: Optional[Callable[[float], None]] = None,
) -> List[str]:
    """Discover schemas and write the schema and table indexes."""
    resolve_generation_database(options)
    schemas = discover_schemas_with_progress(discoverer, timeout, interval, on_tick)
    return generate(schemas, options)


def select_schemas(schemas: List[SchemaInfo], names: Optional[Iterable[str]] = None) -> List[SchemaInfo]:
    """Schemas matching `names`, sorted by name; all schemas when no names are given.

    Raises:
        ConfigurationError: if a requested schema was not discovered
    """
    wanted = [n for n in (names or []) if n]
    by_name = {s.name: s for s in schemas}
    if not wanted:
        return [by_name[n] for n in schema_names(schemas)]

    missing = [n for n in wanted if n not in by_name]
    if missing:
        raise ConfigurationError(
            f"unknown schema(s): {', '.join(missing)}",
            details={"missing": missing, "available": schema_names(schemas)},
        )
    return [by_name[n] for n in sorted(set(wanted))]


def parse_table_selection(values: Optional[Iterable[str]]) -> Dict[str, List[str]]:
    """Parse `schema.table` strings into a schema -> tables mapping.

    The first dot separates schema from table, so table names may contain dots.
    """
    selection: Dict[str, List[str]] = {}
    for value in values or []:
        schema, sep, table = value.partition(".")
        if not sep or not schema or not table:
            raise ConfigurationError(
                f"table selection {value!r} must be in schema.table form", details={"value": value}
            )
        selection.setdefault(schema, [])
        if table not in selection[schema]:
            selection[schema].append(table)
    return selection


def select_tables(
    schemas: List[SchemaInfo], selection: Optional[Dict[str, List[str]]] = None
) -> Dict[str, List[str]]:
    """Tables to process per schema, sorted.

    Schemas absent from a non-empty `selection` are left out; a schema with
    an empty table list in it keeps all of its tables.

    Raises:
        ConfigurationError: if a selected table does not exist in its schema
    """
    result: Dict[str, List[str]] = {}
    for schema in schemas:
        available = sorted(t.name for t in schema.tables)
        if selection:
            if schema.name not in selection:
                continue
            wanted = selection[schema.name]
            missing = [t for t in wanted if t not in available]
            if missing:
                raise ConfigurationError(
                    f"unknown table(s) in schema {schema.name}: {', '.join(missing)}",
                    details={"schema": schema.name, "missing": missing},
                )
            tables = sorted(wanted) if wanted else available
        else:
            tables = available
        if not tables:
            logger.info("Schema %s has no tables", schema.name)
            continue
        result[schema.name] = tables

    if selection:
        unknown = sorted(set(selection) - {s.name for s in schemas})
        if unknown:
            raise ConfigurationError(
                f"unknown schema(s): {', '.join(unknown)}", details={"missing": unknown}
            )
    return result


def select_run_tables(
    discovered: List[SchemaInfo],
    schema_filter: Optional[Iterable[str]] = None,
    selection: Optional[Dict[str, List[str]]] = None,
) -> Dict[str, List[str]]:
    """Combine a schema filter and a parsed table selection into the tables to process.

    Raises:
        ConfigurationError: if a schema is not discovered, or a selected
            table lies in a schema the filter leaves out
    """
    schemas = select_schemas(discovered, schema_filter)
    if selection:
        discovered_names = {s.name for s in discovered}
        unknown = sorted(set(selection) - discovered_names)
        if unknown:
            raise ConfigurationError(
                f"unknown schema(s): {', '.join(unknown)}",
                details={"missing": unknown, "available": schema_names(discovered)},
            )
        kept = {s.name for s in schemas}
        outside = sorted(set(selection) - kept)
        if outside:
            raise ConfigurationError(
                f"selected table(s) in schema(s) {', '.join(outside)} are outside the schema filter "
                f"({', '.join(sorted(kept))})",
                details={"schemas": outside, "filter": sorted(kept)},
            )
    return select_tables(schemas, selection)


def generate_table_context(
    discoverer: TableDetailDiscoverer,
    selected: Dict[str, List[str]],
    options: Options,
    sample_limit: int = 10,
    timeout: Optional[float] = None,
    report: Reporter = _log_report,
) -> TablesRunSummary:
    """Fetch columns and sample rows per table and write each table's files at once.

    A failed column fetch or sample query is recorded and the table's other
    file is still written.
    """
    resolve_generation_database(options)
    summary = TablesRunSummary()
    total = sum(len(tables) for tables in selected.values())

    for schema in sorted(selected):
        report(f"Processing schema {schema!r} ({len(selected[schema])} tables)...")
        for table in selected[schema]:
            summary.tables_processed += 1
            started_at = time.monotonic()
            report(f"  [{summary.tables_processed}/{total}] Processing {schema}.{table}...")
            detail = TableDetailInput(schema=schema, table=table)

            try:
                detail.columns = discoverer.get_columns(schema, table, timeout=timeout)
            except DBContextError as e:
                summary.skipped.append(SkippedUnit(schema, table, reason=f"columns: {e.message}"))
                report(f"    Skipping columns for {schema}.{table}: {e.message}")

            try:
                detail.sample = discoverer.get_sample_rows(schema, table, sample_limit, timeout=timeout)
            except DBContextError as e:
                summary.skipped.append(SkippedUnit(schema, table, reason=f"sample: {e.message}"))
                report(f"    Skipping sample for {schema}.{table}: {e.message}")

            try:
                paths = generate_table_details([detail], options)
            except DBContextError as e:
                summary.skipped.append(SkippedUnit(schema, table, reason=f"write: {e.message}"))
                report(f"    Error generating files for {schema}.{table}: {e.message}")
                continue

            summary.written.extend(paths)
            report(f"    Done {schema}.{table} ({time.monotonic() - started_at:.3f}s)")

    return summary


def build_column_targets(
    discoverer: TableDetailDiscoverer,
    selected: Dict[str, List[str]],
    timeout: Optional[float] = None,
    report: Reporter = _log_report,
) -> Tuple[List[ColumnTarget], List[SkippedUnit]]:
    """Read column metadata for every selected table.

    Tables whose columns cannot be read, or that have none, are skipped.
    """
    targets: List[ColumnTarget] = []
    skipped: List[SkippedUnit] = []

    for schema in sorted(selected):
        for table in sorted(selected[schema]):
            try:
                columns = discoverer.get_columns(schema, table, timeout=timeout)
            except DBContextError as e:
                skipped.append(SkippedUnit(schema, table, reason=f"could not read columns: {e.message}"))
                report(f"Skipping {schema}.{table}: could not read columns: {e.message}")
                continue
            if not columns:
                skipped.append(SkippedUnit(schema, table, reason="no columns found"))
                report(f"Skipping {schema}.{table}: no columns found.")
                continue
            targets.append(ColumnTarget(schema=schema, table=table, columns=columns))

    return targets, skipped


def estimate_run_time(total_columns: int) -> Tuple[int, int]:
    """Rough (min, max) seconds for profiling `total_columns` columns."""
    return (
        total_columns * MIN_SECONDS_PER_COLUMN_ESTIMATE,
        total_columns * MAX_SECONDS_PER_COLUMN_ESTIMATE,
    )


def estimate_remaining(elapsed: float, processed: int, remaining: int) -> float:
    """Seconds left at the average pace so far, rounded to whole seconds."""
    if processed <= 0 or remaining <= 0:
        return 0.0
    per_column = elapsed / processed
    if per_column <= 0:
        return 0.0
    return float(round(per_column * remaining))


def enrich_tables(
    discoverer: TableDetailDiscoverer,
    targets: List[ColumnTarget],
    options: Options,
    column_timeout: Optional[float] = None,
    report: Reporter = _log_report,
) -> ColumnsRunSummary:
    """Profile every target column and write one enriched file per table.

    Columns are profiled one at a time, each under its own deadline. A table
    is written only if all of its columns profiled; the first failure skips
    the rest of that table and leaves any previous file untouched.
    """
    resolve_generation_database(options)
    summary = ColumnsRunSummary(total_columns=sum(len(t.columns) for t in targets))
    started_at = time.monotonic()

    for target in targets:
        table_started = time.monotonic()
        report(f"Processing table {target.schema}.{target.table} ({len(target.columns)} column(s))...")
        profiles: List[EnrichedColumnInfo] = []
        failure: Optional[SkippedUnit] = None

        for column in target.columns:
            column_started = time.monotonic()
            try:
                profile = discoverer.get_column_enrichment(
                    target.schema, target.table, column, timeout=column_timeout
                )
            except DBContextError as e:
                failure = SkippedUnit(target.schema, target.table, column.name, e.message)
                report(f"  Failed profiling {failure.label}: {e.message}")
                break

            profiles.append(profile)
            summary.processed_columns += 1
            eta = estimate_remaining(
                time.monotonic() - started_at,
                summary.processed_columns,
                summary.total_columns - summary.processed_columns,
            )
            report(
                f"  [{summary.processed_columns}/{summary.total_columns}] "
                f"{target.schema}.{target.table}.{column.name} profiled "
                f"({time.monotonic() - column_started:.3f}s, est. remaining {eta:.0f}s)"
            )

        if failure is not None or len(profiles) != len(target.columns):
            summary.skipped.append(failure or SkippedUnit(target.schema, target.table, reason="incomplete"))
            report(
                f"  Skipping file write for {target.schema}.{target.table} "
                "because not all columns were processed."
            )
            continue

        try:
            path = write_enriched_columns_file(
                EnrichedColumnsInput(schema=target.schema, table=target.table, columns=profiles), options
            )
        except DBContextError as e:
            summary.skipped.append(SkippedUnit(target.schema, target.table, reason=f"write: {e.message}"))
            report(f"  Failed writing enriched columns file for {target.schema}.{target.table}: {e.message}")
            continue

        summary.tables_written += 1
        summary.written.append(path)
        report(f"  Wrote {path} ({time.monotonic() - table_started:.3f}s)")

    summary.elapsed = time.monotonic() - started_at
    return summary
