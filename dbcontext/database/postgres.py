"""PostgreSQL discovery adapter."""

import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ..errors import DatabaseConnectionError, IntrospectionError
from .base import DatabaseLister, TableDetailDiscoverer
from .enrichment import (
    ProfileQueries,
    SAMPLE_QUERY_LIMIT,
    SAMPLE_QUERY_VALUE_LENGTH,
    profile_column,
)
from .formatting import quote_postgres_identifier
from .models import ColumnInfo, DatabaseConfig, EnrichedColumnInfo, SampleResult, SchemaInfo, TableInfo
from .querying import Deadline, effective_sample_limit, sample_result_from_rows

logger = logging.getLogger(__name__)

DEFAULT_POSTGRES_PORT = 5432
DEFAULT_POSTGRES_SSL_MODE = "disable"
LISTER_FALLBACK_DATABASE = "postgres"

SCHEMAS_SQL = """
    SELECT schema_name
    FROM information_schema.schemata
    WHERE schema_name NOT IN ('information_schema', 'pg_catalog', 'pg_toast')
      AND schema_name NOT LIKE 'pg_temp_%'
      AND schema_name NOT LIKE 'pg_toast_temp_%'
    ORDER BY schema_name
"""

TABLES_SQL = """
    SELECT table_name, table_type
    FROM information_schema.tables
    WHERE table_schema = %s
    ORDER BY table_name
"""

COLUMNS_SQL = """
    SELECT column_name, data_type, is_nullable, ordinal_position, COALESCE(column_default, '')
    FROM information_schema.columns
    WHERE table_schema = %s AND table_name = %s
    ORDER BY ordinal_position
"""

DATABASES_SQL = """
    SELECT datname
    FROM pg_database
    WHERE datistemplate = false
    ORDER BY datname
"""


def build_postgres_connect_args(config: DatabaseConfig, database: str) -> Dict[str, Any]:
    """Keyword arguments for psycopg2.connect with Postgres defaults applied."""
    return {
        "host": config.host.strip(),
        "port": config.port if config.port > 0 else DEFAULT_POSTGRES_PORT,
        "user": config.user.strip(),
        "password": config.password,
        "dbname": database.strip(),
        "sslmode": config.ssl_mode.strip() or DEFAULT_POSTGRES_SSL_MODE,
    }


def _connect(**kwargs):
    try:
        import psycopg2
    except ImportError:
        raise ImportError(
            "psycopg2 is required for Postgres and Redshift connections. "
            "Install it with: pip install psycopg2-binary"
        )
    return psycopg2.connect(**kwargs)


def open_psycopg2_connection(backend: str, connect_args: Dict[str, Any], connect_timeout: Optional[float]):
    """Open an autocommit psycopg2 connection, wrapping driver failures."""
    kwargs = dict(connect_args)
    if connect_timeout:
        # libpq accepts whole seconds only and treats values below 2 as 2.
        kwargs["connect_timeout"] = max(2, int(math.ceil(connect_timeout)))
    try:
        connection = _connect(**kwargs)
        connection.autocommit = True
    except ImportError:
        raise
    except Exception as e:
        raise DatabaseConnectionError(
            f"open {backend} connection: {e}",
            details={"backend": backend, "host": connect_args.get("host"), "database": connect_args.get("dbname")},
        ) from e
    return connection


def run_psycopg2_query(
    connection, sql: str, params: Sequence[Any] = (), deadline: Optional[Deadline] = None
) -> Tuple[Optional[Sequence[Sequence[Any]]], List[Sequence[Any]]]:
    """Execute a query under the deadline and return (description, rows)."""
    deadline = deadline or Deadline()
    with connection.cursor() as cursor:
        cursor.execute("SET statement_timeout = %s", (deadline.remaining_ms(),))
        cursor.execute(sql, tuple(params) or None)
        return cursor.description, cursor.fetchall()


class PostgresDiscoverer(TableDetailDiscoverer):
    """Discovers schemas, tables, columns and profiles in one Postgres database."""

    BACKEND = "postgres"

    def __init__(self, config: DatabaseConfig, connect_timeout: Optional[float] = None):
        self.config = config
        self.connect_timeout = connect_timeout
        self._connection = None

    def connect(self):
        if self._connection is None:
            self._connection = open_psycopg2_connection(
                self.BACKEND,
                build_postgres_connect_args(self.config, self.config.database),
                self.connect_timeout,
            )
        return self._connection

    def close(self):
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _query(self, sql: str, params: Sequence[Any] = (), deadline: Optional[Deadline] = None, action: str = "query"):
        connection = self.connect()
        logger.debug("postgres %s", action)
        try:
            return run_psycopg2_query(connection, sql, params, deadline)
        except Exception as e:
            raise IntrospectionError(
                f"query postgres {action}: {e}", details={"backend": self.BACKEND}
            ) from e

    def discover(self, timeout: Optional[float] = None) -> List[SchemaInfo]:
        deadline = Deadline(timeout)
        _, rows = self._query(SCHEMAS_SQL, deadline=deadline, action="schemas")
        schemas = [SchemaInfo(name=row[0]) for row in rows]

        for schema in schemas:
            try:
                schema.tables = self._get_tables(schema.name, deadline)
            except IntrospectionError as e:
                raise IntrospectionError(
                    f"get tables for schema {schema.name!r}: {e.message}",
                    details={**e.details, "schema": schema.name},
                ) from e
        return schemas

    def _get_tables(self, schema: str, deadline: Deadline) -> List[TableInfo]:
        _, rows = self._query(TABLES_SQL, (schema,), deadline, action="tables")
        return [TableInfo(name=row[0], table_type=row[1]) for row in rows]

    def get_columns(self, schema: str, table: str, timeout: Optional[float] = None) -> List[ColumnInfo]:
        _, rows = self._query(COLUMNS_SQL, (schema, table), Deadline(timeout), action="columns")
        return [
            ColumnInfo(
                name=row[0],
                data_type=row[1],
                is_nullable=row[2],
                ordinal_position=int(row[3]),
                column_default=row[4] or "",
            )
            for row in rows
        ]

    def get_sample_rows(self, schema: str, table: str, limit: int, timeout: Optional[float] = None) -> SampleResult:
        sql = "SELECT * FROM {}.{} ORDER BY RANDOM() LIMIT {:d}".format(
            quote_postgres_identifier(schema),
            quote_postgres_identifier(table),
            effective_sample_limit(limit),
        )
        description, rows = self._query(sql, deadline=Deadline(timeout), action="sample rows")
        return sample_result_from_rows(description, rows)

    def get_column_enrichment(
        self, schema: str, table: str, column: ColumnInfo, timeout: Optional[float] = None
    ) -> EnrichedColumnInfo:
        deadline = Deadline(timeout)
        queries = postgres_profile_queries(schema, table, column.name, cast_type="TEXT")

        def run(sql):
            return self._query(sql, deadline=deadline, action="column profile")[1]

        return profile_column(run, column, queries, self.BACKEND, schema, table)


def postgres_profile_queries(schema: str, table: str, column: str, cast_type: str) -> ProfileQueries:
    """Profile SQL for Postgres-dialect engines; `cast_type` is the text type distinct values are compared as."""
    quoted_table = f"{quote_postgres_identifier(schema)}.{quote_postgres_identifier(table)}"
    col = quote_postgres_identifier(column)
    stats_sql = f"""
        SELECT
            COUNT(*)::bigint AS total_rows,
            SUM(CASE WHEN {col} IS NULL THEN 1 ELSE 0 END)::bigint AS null_count,
            COUNT({col})::bigint AS non_null_count,
            COUNT(DISTINCT CASE WHEN {col} IS NULL THEN NULL ELSE CAST({col} AS {cast_type}) END)::bigint AS distinct_non_null_count
        FROM {quoted_table}
    """
    samples_sql = f"""
        SELECT DISTINCT LEFT(CAST({col} AS {cast_type}), {SAMPLE_QUERY_VALUE_LENGTH})
        FROM {quoted_table}
        WHERE {col} IS NOT NULL
        LIMIT {SAMPLE_QUERY_LIMIT}
    """
    return ProfileQueries(stats_sql=stats_sql, samples_sql=samples_sql)


class PostgresDatabaseLister(DatabaseLister):
    """Lists non-template databases on a Postgres server."""

    BACKEND = "postgres"

    def __init__(self, config: DatabaseConfig, connect_timeout: Optional[float] = None):
        self.config = config
        self.connect_timeout = connect_timeout
        self._connection = None

    def connect(self):
        if self._connection is None:
            database = self.config.database.strip() or LISTER_FALLBACK_DATABASE
            self._connection = open_psycopg2_connection(
                self.BACKEND,
                build_postgres_connect_args(self.config, database),
                self.connect_timeout,
            )
        return self._connection

    def close(self):
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def list_databases(self, timeout: Optional[float] = None) -> List[str]:
        connection = self.connect()
        try:
            _, rows = run_psycopg2_query(connection, DATABASES_SQL, deadline=Deadline(timeout))
        except Exception as e:
            raise IntrospectionError(
                f"query postgres databases: {e}", details={"backend": self.BACKEND}
            ) from e
        return [row[0] for row in rows]
