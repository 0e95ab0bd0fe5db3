"""Snowflake discovery adapter."""

import logging
import math
from typing import Any, Dict, List, Optional, Sequence

from ..errors import DatabaseConnectionError, IntrospectionError
from .base import DatabaseLister, TableDetailDiscoverer
from .enrichment import ProfileQueries, SAMPLE_QUERY_LIMIT, SAMPLE_QUERY_VALUE_LENGTH, profile_column
from .formatting import quote_snowflake_identifier
from .models import ColumnInfo, DatabaseConfig, EnrichedColumnInfo, SampleResult, SchemaInfo, TableInfo
from .querying import Deadline, effective_sample_limit, sample_result_from_rows

logger = logging.getLogger(__name__)

AUTHENTICATOR_EXTERNAL_BROWSER = "externalbrowser"
AUTHENTICATOR_PASSWORD = "snowflake"

SCHEMAS_SQL = """
    SELECT SCHEMA_NAME
    FROM INFORMATION_SCHEMA.SCHEMATA
    WHERE SCHEMA_NAME != 'INFORMATION_SCHEMA'
    ORDER BY SCHEMA_NAME
"""

TABLES_SQL = """
    SELECT TABLE_NAME, TABLE_TYPE
    FROM INFORMATION_SCHEMA.TABLES
    WHERE TABLE_SCHEMA = %s
    ORDER BY TABLE_NAME
"""

COLUMNS_SQL = """
    SELECT COLUMN_NAME, DATA_TYPE, IS_NULLABLE, ORDINAL_POSITION, COALESCE(COLUMN_DEFAULT, '')
    FROM INFORMATION_SCHEMA.COLUMNS
    WHERE TABLE_SCHEMA = %s AND TABLE_NAME = %s
    ORDER BY ORDINAL_POSITION
"""


def normalize_table_type(raw: str) -> str:
    return (raw or "").strip().upper()


def build_snowflake_connect_args(config: DatabaseConfig, include_namespace: bool = True) -> Dict[str, Any]:
    """Keyword arguments for snowflake.connector.connect.

    The lister connects at account level, so database and schema are left
    out when `include_namespace` is False.
    """
    kwargs: Dict[str, Any] = {
        "account": config.account.strip(),
        "user": config.user.strip(),
        "authenticator": (
            AUTHENTICATOR_EXTERNAL_BROWSER if config.uses_external_browser else AUTHENTICATOR_PASSWORD
        ),
    }
    if not config.uses_external_browser:
        kwargs["password"] = config.password
    if config.role.strip():
        kwargs["role"] = config.role.strip()
    if config.warehouse.strip():
        kwargs["warehouse"] = config.warehouse.strip()
    if include_namespace:
        if config.database.strip():
            kwargs["database"] = config.database.strip()
        if config.schema.strip():
            kwargs["schema"] = config.schema.strip()
    return kwargs


def _connect(**kwargs):
    try:
        import snowflake.connector
    except ImportError:
        raise ImportError(
            "snowflake-connector-python is required. "
            "Install it with: pip install snowflake-connector-python"
        )
    return snowflake.connector.connect(**kwargs)


def open_snowflake_connection(connect_args: Dict[str, Any], connect_timeout: Optional[float]):
    kwargs = dict(connect_args)
    if connect_timeout:
        kwargs["login_timeout"] = int(math.ceil(connect_timeout))
    try:
        return _connect(**kwargs)
    except ImportError:
        raise
    except Exception as e:
        raise DatabaseConnectionError(
            f"open snowflake connection: {e}",
            details={"backend": "snowflake", "account": connect_args.get("account"),
                     "database": connect_args.get("database")},
        ) from e


def run_snowflake_query(connection, sql: str, params: Sequence[Any] = (), deadline: Optional[Deadline] = None):
    """Execute a query with the remaining deadline as the per-statement timeout."""
    deadline = deadline or Deadline()
    remaining = deadline.remaining()
    timeout = None if remaining is None else max(1, int(math.ceil(remaining)))
    cursor = connection.cursor()
    try:
        cursor.execute(sql, tuple(params) or None, timeout=timeout)
        return cursor.description, cursor.fetchall()
    finally:
        cursor.close()


class SnowflakeDiscoverer(TableDetailDiscoverer):
    """Discovers schemas, tables, columns and profiles in one Snowflake database."""

    BACKEND = "snowflake"

    def __init__(self, config: DatabaseConfig, connect_timeout: Optional[float] = None):
        self.config = config
        self.connect_timeout = connect_timeout
        self._connection = None

    def connect(self):
        if self._connection is None:
            self._connection = open_snowflake_connection(
                build_snowflake_connect_args(self.config), self.connect_timeout
            )
        return self._connection

    def close(self):
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _query(self, sql: str, params: Sequence[Any] = (), deadline: Optional[Deadline] = None, action: str = "query"):
        connection = self.connect()
        logger.debug("snowflake %s", action)
        try:
            return run_snowflake_query(connection, sql, params, deadline)
        except Exception as e:
            raise IntrospectionError(
                f"query snowflake {action}: {e}", details={"backend": self.BACKEND}
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
            schema.tables = [
                TableInfo(name=row[0], table_type=normalize_table_type(row[1])) for row in table_rows
            ]
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
            quote_snowflake_identifier(schema),
            quote_snowflake_identifier(table),
            effective_sample_limit(limit),
        )
        description, rows = self._query(sql, deadline=Deadline(timeout), action="sample rows")
        return sample_result_from_rows(description, rows)

    def get_column_enrichment(
        self, schema: str, table: str, column: ColumnInfo, timeout: Optional[float] = None
    ) -> EnrichedColumnInfo:
        deadline = Deadline(timeout)
        queries = snowflake_profile_queries(schema, table, column.name)

        def run(sql):
            return self._query(sql, deadline=deadline, action="column profile")[1]

        return profile_column(run, column, queries, self.BACKEND, schema, table)


def snowflake_profile_queries(schema: str, table: str, column: str) -> ProfileQueries:
    quoted_table = f"{quote_snowflake_identifier(schema)}.{quote_snowflake_identifier(table)}"
    col = quote_snowflake_identifier(column)
    stats_sql = f"""
        SELECT
            COUNT(*) AS TOTAL_ROWS,
            COUNT_IF({col} IS NULL) AS NULL_COUNT,
            COUNT({col}) AS NON_NULL_COUNT,
            COUNT(DISTINCT TO_VARCHAR({col})) AS DISTINCT_NON_NULL_COUNT
        FROM {quoted_table}
    """
    samples_sql = f"""
        SELECT DISTINCT LEFT(TO_VARCHAR({col}), {SAMPLE_QUERY_VALUE_LENGTH})
        FROM {quoted_table}
        WHERE {col} IS NOT NULL
        LIMIT {SAMPLE_QUERY_LIMIT}
    """
    return ProfileQueries(stats_sql=stats_sql, samples_sql=samples_sql)


class SnowflakeDatabaseLister(DatabaseLister):
    """Lists databases visible to the role, connecting at account level."""

    BACKEND = "snowflake"

    def __init__(self, config: DatabaseConfig, connect_timeout: Optional[float] = None):
        self.config = config
        self.connect_timeout = connect_timeout
        self._connection = None

    def connect(self):
        if self._connection is None:
            self._connection = open_snowflake_connection(
                build_snowflake_connect_args(self.config, include_namespace=False), self.connect_timeout
            )
        return self._connection

    def close(self):
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def list_databases(self, timeout: Optional[float] = None) -> List[str]:
        connection = self.connect()
        try:
            description, rows = run_snowflake_query(connection, "SHOW DATABASES", deadline=Deadline(timeout))
        except Exception as e:
            raise IntrospectionError(
                f"query snowflake databases: {e}", details={"backend": self.BACKEND}
            ) from e

        columns = [str(col[0]) for col in (description or [])]
        name_index = next((i for i, col in enumerate(columns) if col.lower() == "name"), None)
        if name_index is None:
            raise IntrospectionError(
                "SHOW DATABASES result has no 'name' column",
                details={"backend": self.BACKEND, "columns": columns},
            )

        databases = []
        for row in rows:
            name = row[name_index]
            if not isinstance(name, str):
                raise IntrospectionError(
                    f"unexpected type for database name column: {type(name).__name__}",
                    details={"backend": self.BACKEND},
                )
            databases.append(name)
        return databases
