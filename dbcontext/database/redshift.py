"""Amazon Redshift discovery adapter.

Redshift speaks the Postgres wire protocol, so it shares the psycopg2
connection helpers, but it has its own port and SSL defaults, its own
system schemas and a wider text cast for profiling.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from ..errors import IntrospectionError
from .base import DatabaseLister, TableDetailDiscoverer
from .enrichment import profile_column
from .formatting import quote_redshift_identifier
from .models import ColumnInfo, DatabaseConfig, EnrichedColumnInfo, SampleResult, SchemaInfo, TableInfo
from .postgres import open_psycopg2_connection, postgres_profile_queries, run_psycopg2_query
from .querying import Deadline, effective_sample_limit, sample_result_from_rows

logger = logging.getLogger(__name__)

DEFAULT_REDSHIFT_PORT = 5439
DEFAULT_REDSHIFT_SSL_MODE = "require"
LISTER_FALLBACK_DATABASE = "dev"
REDSHIFT_TEXT_CAST = "VARCHAR(65535)"

SCHEMAS_SQL = """
    SELECT schema_name
    FROM information_schema.schemata
    WHERE schema_name NOT IN ('information_schema', 'pg_catalog', 'pg_internal')
      AND schema_name NOT LIKE 'pg_temp_%'
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
    WHERE datallowconn = true
      AND datistemplate = false
    ORDER BY datname
"""


def build_redshift_connect_args(config: DatabaseConfig, database: str) -> Dict[str, Any]:
    """Keyword arguments for psycopg2.connect with Redshift defaults applied."""
    return {
        "host": config.host.strip(),
        "port": config.port if config.port > 0 else DEFAULT_REDSHIFT_PORT,
        "user": config.user.strip(),
        "password": config.password,
        "dbname": database.strip(),
        "sslmode": config.ssl_mode.strip() or DEFAULT_REDSHIFT_SSL_MODE,
    }


class RedshiftDiscoverer(TableDetailDiscoverer):
    """Discovers schemas, tables, columns and profiles in one Redshift database."""

    BACKEND = "redshift"

    def __init__(self, config: DatabaseConfig, connect_timeout: Optional[float] = None):
        self.config = config
        self.connect_timeout = connect_timeout
        self._connection = None

    def connect(self):
        if self._connection is None:
            self._connection = open_psycopg2_connection(
                self.BACKEND,
                build_redshift_connect_args(self.config, self.config.database),
                self.connect_timeout,
            )
        return self._connection

    def close(self):
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _query(self, sql: str, params: Sequence[Any] = (), deadline: Optional[Deadline] = None, action: str = "query"):
        connection = self.connect()
        logger.debug("redshift %s", action)
        try:
            return run_psycopg2_query(connection, sql, params, deadline)
        except Exception as e:
            raise IntrospectionError(
                f"query redshift {action}: {e}", details={"backend": self.BACKEND}
            ) from e

    def discover(self, timeout: Optional[float] = None) -> List[SchemaInfo]:
        deadline = Deadline(timeout)
        _, rows = self._query(SCHEMAS_SQL, deadline=deadline, action="schemas")
        schemas = [SchemaInfo(name=row[0]) for row in rows]

        for schema in schemas:
            try:
                _, table_rows = self._query(TABLES_SQL, (schema.name,), deadline, action="tables")
            except IntrospectionError as e:
                raise IntrospectionError(
                    f"get tables for schema {schema.name!r}: {e.message}",
                    details={**e.details, "schema": schema.name},
                ) from e
            schema.tables = [TableInfo(name=row[0], table_type=row[1]) for row in table_rows]
        return schemas

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
            quote_redshift_identifier(schema),
            quote_redshift_identifier(table),
            effective_sample_limit(limit),
        )
        description, rows = self._query(sql, deadline=Deadline(timeout), action="sample rows")
        return sample_result_from_rows(description, rows)

    def get_column_enrichment(
        self, schema: str, table: str, column: ColumnInfo, timeout: Optional[float] = None
    ) -> EnrichedColumnInfo:
        deadline = Deadline(timeout)
        queries = postgres_profile_queries(schema, table, column.name, cast_type=REDSHIFT_TEXT_CAST)

        def run(sql):
            return self._query(sql, deadline=deadline, action="column profile")[1]

        return profile_column(run, column, queries, self.BACKEND, schema, table)


class RedshiftDatabaseLister(DatabaseLister):
    """Lists connectable databases in a Redshift cluster.

    Redshift always needs a database in the connection, so `dev` is used
    when none is configured yet.
    """

    BACKEND = "redshift"

    def __init__(self, config: DatabaseConfig, connect_timeout: Optional[float] = None):
        self.config = config
        self.connect_timeout = connect_timeout
        self._connection = None

    def connect(self):
        if self._connection is None:
            database = self.config.database.strip() or LISTER_FALLBACK_DATABASE
            self._connection = open_psycopg2_connection(
                self.BACKEND,
                build_redshift_connect_args(self.config, database),
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
                f"query redshift databases: {e}", details={"backend": self.BACKEND}
            ) from e
        return [row[0] for row in rows]
