"""SQLite discovery adapter.

Each attached database (`main` plus any ATTACHed files) is treated as a
schema. The database file is opened read-write but never created: pointing
the adapter at a missing path is a connection error, not a new empty file.
"""

import logging
import sqlite3
import time
from pathlib import Path
from typing import Any, List, Optional, Sequence

from ..errors import DatabaseConnectionError, IntrospectionError
from .base import DatabaseLister, TableDetailDiscoverer
from .enrichment import ProfileQueries, SAMPLE_QUERY_LIMIT, SAMPLE_QUERY_VALUE_LENGTH, profile_column
from .formatting import quote_sqlite_identifier, quote_sqlite_string_literal
from .models import ColumnInfo, DatabaseConfig, EnrichedColumnInfo, SampleResult, SchemaInfo, TableInfo
from .querying import Deadline, effective_sample_limit, sample_result_from_rows

logger = logging.getLogger(__name__)

DEFAULT_SQLITE_SCHEMA = "main"

# SQLite VM instructions between deadline checks.
PROGRESS_HANDLER_STEPS = 1000


def normalize_sqlite_schema_name(schema: str) -> str:
    return schema.strip() or DEFAULT_SQLITE_SCHEMA


def normalize_sqlite_table_type(raw: str) -> str:
    value = (raw or "").strip()
    if value.lower() == "table":
        return "BASE TABLE"
    if value.lower() == "view":
        return "VIEW"
    return value.upper() or "BASE TABLE"


def sqlite_uri(path: str) -> str:
    """A file URI for `path` that opens read-write without creating it."""
    return Path(path).expanduser().absolute().as_uri() + "?mode=rw"


def open_sqlite_connection(path: str, connect_timeout: Optional[float] = None) -> sqlite3.Connection:
    path = path.strip()
    try:
        connection = sqlite3.connect(sqlite_uri(path), uri=True, timeout=connect_timeout or 5.0)
    except sqlite3.Error as e:
        raise DatabaseConnectionError(
            f"open sqlite database {path!r}: {e}", details={"backend": "sqlite", "database": path}
        ) from e
    connection.text_factory = lambda data: data.decode("utf-8", errors="replace")
    return connection


def run_sqlite_query(connection: sqlite3.Connection, sql: str, params: Sequence[Any] = (), deadline: Optional[Deadline] = None):
    """Execute a query, interrupting it from the progress handler once the deadline passes."""
    deadline = deadline or Deadline()
    deadline.remaining()
    expires_at = deadline.expires_at
    if expires_at is not None:
        connection.set_progress_handler(lambda: 1 if time.monotonic() >= expires_at else 0, PROGRESS_HANDLER_STEPS)
    try:
        cursor = connection.execute(sql, tuple(params))
        try:
            return cursor.description, cursor.fetchall()
        finally:
            cursor.close()
    finally:
        if expires_at is not None:
            connection.set_progress_handler(None, PROGRESS_HANDLER_STEPS)


def list_sqlite_databases(connection: sqlite3.Connection, deadline: Optional[Deadline] = None) -> List[str]:
    """Attached database names without `temp`; `main` when none are reported."""
    try:
        _, rows = run_sqlite_query(connection, "PRAGMA database_list", deadline=deadline)
    except (sqlite3.Error, TimeoutError) as e:
        raise IntrospectionError(f"query sqlite databases: {e}", details={"backend": "sqlite"}) from e

    databases: List[str] = []
    for row in rows:
        name = (row[1] or "").strip()
        if not name or name.lower() == "temp" or name in databases:
            continue
        databases.append(name)
    return databases or [DEFAULT_SQLITE_SCHEMA]


class SQLiteDiscoverer(TableDetailDiscoverer):
    """Discovers attached databases, tables, columns and profiles in a SQLite file."""

    BACKEND = "sqlite"

    def __init__(self, config: DatabaseConfig, connect_timeout: Optional[float] = None):
        self.config = config
        self.path = config.database.strip()
        self.connect_timeout = connect_timeout
        self._connection: Optional[sqlite3.Connection] = None

    def connect(self) -> sqlite3.Connection:
        if self._connection is None:
            self._connection = open_sqlite_connection(self.path, self.connect_timeout)
        return self._connection

    def close(self):
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _query(self, sql: str, params: Sequence[Any] = (), deadline: Optional[Deadline] = None, action: str = "query"):
        connection = self.connect()
        logger.debug("sqlite %s", action)
        try:
            return run_sqlite_query(connection, sql, params, deadline)
        except (sqlite3.Error, TimeoutError) as e:
            raise IntrospectionError(
                f"query sqlite {action}: {e}", details={"backend": self.BACKEND, "database": self.path}
            ) from e

    def discover(self, timeout: Optional[float] = None) -> List[SchemaInfo]:
        deadline = Deadline(timeout)
        schemas = []
        for name in list_sqlite_databases(self.connect(), deadline):
            try:
                tables = self._get_tables(name, deadline)
            except IntrospectionError as e:
                raise IntrospectionError(
                    f"get tables for sqlite database {name!r}: {e.message}",
                    details={**e.details, "schema": name},
                ) from e
            schemas.append(SchemaInfo(name=name, tables=tables))
        return schemas

    def _get_tables(self, schema: str, deadline: Deadline) -> List[TableInfo]:
        sql = """
            SELECT name, type
            FROM {}.sqlite_master
            WHERE type IN ('table', 'view')
              AND name NOT LIKE 'sqlite_%'
            ORDER BY name
        """.format(quote_sqlite_identifier(normalize_sqlite_schema_name(schema)))
        _, rows = self._query(sql, deadline=deadline, action="tables")
        return [TableInfo(name=row[0], table_type=normalize_sqlite_table_type(row[1])) for row in rows]

    def get_columns(self, schema: str, table: str, timeout: Optional[float] = None) -> List[ColumnInfo]:
        sql = "PRAGMA {}.table_info({})".format(
            quote_sqlite_identifier(normalize_sqlite_schema_name(schema)),
            quote_sqlite_string_literal(table),
        )
        _, rows = self._query(sql, deadline=Deadline(timeout), action="columns")
        # cid, name, type, notnull, dflt_value, pk
        return [
            ColumnInfo(
                name=row[1],
                data_type=(row[2] or "").strip(),
                is_nullable="NO" if row[3] or row[5] else "YES",
                ordinal_position=int(row[0]) + 1,
                column_default="" if row[4] is None else str(row[4]),
            )
            for row in rows
        ]

    def get_sample_rows(self, schema: str, table: str, limit: int, timeout: Optional[float] = None) -> SampleResult:
        sql = "SELECT * FROM {}.{} ORDER BY RANDOM() LIMIT {:d}".format(
            quote_sqlite_identifier(normalize_sqlite_schema_name(schema)),
            quote_sqlite_identifier(table),
            effective_sample_limit(limit),
        )
        description, rows = self._query(sql, deadline=Deadline(timeout), action="sample rows")
        return sample_result_from_rows(description, rows)

    def get_column_enrichment(
        self, schema: str, table: str, column: ColumnInfo, timeout: Optional[float] = None
    ) -> EnrichedColumnInfo:
        deadline = Deadline(timeout)
        schema_name = normalize_sqlite_schema_name(schema)
        queries = sqlite_profile_queries(schema_name, table, column.name)

        def run(sql):
            return self._query(sql, deadline=deadline, action="column profile")[1]

        return profile_column(run, column, queries, self.BACKEND, schema_name, table)


def sqlite_profile_queries(schema: str, table: str, column: str) -> ProfileQueries:
    quoted_table = f"{quote_sqlite_identifier(schema)}.{quote_sqlite_identifier(table)}"
    # Fully qualified: SQLite reads an unknown double-quoted name as a string literal.
    col = f"{quoted_table}.{quote_sqlite_identifier(column)}"
    stats_sql = f"""
        SELECT
            COUNT(*) AS total_rows,
            SUM(CASE WHEN {col} IS NULL THEN 1 ELSE 0 END) AS null_count,
            COUNT({col}) AS non_null_count,
            COUNT(DISTINCT CASE WHEN {col} IS NULL THEN NULL ELSE CAST({col} AS TEXT) END) AS distinct_non_null_count
        FROM {quoted_table}
    """
    samples_sql = f"""
        SELECT DISTINCT SUBSTR(CAST({col} AS TEXT), 1, {SAMPLE_QUERY_VALUE_LENGTH})
        FROM {quoted_table}
        WHERE {col} IS NOT NULL
        LIMIT {SAMPLE_QUERY_LIMIT}
    """
    return ProfileQueries(stats_sql=stats_sql, samples_sql=samples_sql)


class SQLiteDatabaseLister(DatabaseLister):
    """Lists the databases attached to a SQLite connection."""

    BACKEND = "sqlite"

    def __init__(self, config: DatabaseConfig, connect_timeout: Optional[float] = None):
        self.config = config
        self.path = config.database.strip()
        self.connect_timeout = connect_timeout
        self._connection: Optional[sqlite3.Connection] = None

    def connect(self) -> sqlite3.Connection:
        if self._connection is None:
            self._connection = open_sqlite_connection(self.path, self.connect_timeout)
        return self._connection

    def close(self):
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def list_databases(self, timeout: Optional[float] = None) -> List[str]:
        return list_sqlite_databases(self.connect(), Deadline(timeout))
