"""MySQL discovery adapter.

Schemas in MySQL are databases; when a database is configured, discovery
is restricted to it.
"""

import logging
import math
import ssl
from typing import Any, Dict, List, Optional, Sequence

from ..errors import ConfigurationError, DatabaseConnectionError, IntrospectionError
from .base import DatabaseLister, TableDetailDiscoverer
from .enrichment import ProfileQueries, SAMPLE_QUERY_LIMIT, SAMPLE_QUERY_VALUE_LENGTH, profile_column
from .formatting import format_value, quote_mysql_identifier
from .models import ColumnInfo, DatabaseConfig, EnrichedColumnInfo, SampleResult, SchemaInfo, TableInfo
from .querying import Deadline, effective_sample_limit, sample_result_from_rows

logger = logging.getLogger(__name__)

DEFAULT_MYSQL_PORT = 3306

SYSTEM_SCHEMAS_FILTER = "schema_name NOT IN ('information_schema', 'mysql', 'performance_schema', 'sys')"

DATABASES_SQL = f"""
    SELECT schema_name
    FROM information_schema.schemata
    WHERE {SYSTEM_SCHEMAS_FILTER}
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


def build_mysql_ssl(tls: str) -> Optional[ssl.SSLContext]:
    """Map the tls setting (true, false, skip-verify, preferred) to an SSL context."""
    mode = (tls or "").strip().lower()
    if mode in ("", "false", "disabled"):
        return None
    context = ssl.create_default_context()
    if mode in ("skip-verify", "preferred"):
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    elif mode != "true":
        raise ConfigurationError(f"unsupported mysql tls mode {tls!r}", details={"backend": "mysql", "tls": tls})
    return context


def build_mysql_connect_args(config: DatabaseConfig, database: str) -> Dict[str, Any]:
    """Keyword arguments for pymysql.connect; an empty database selects none."""
    kwargs: Dict[str, Any] = {
        "host": config.host.strip(),
        "port": config.port if config.port > 0 else DEFAULT_MYSQL_PORT,
        "user": config.user,
        "password": config.password,
        "charset": "utf8mb4",
        "autocommit": True,
    }
    if database.strip():
        kwargs["database"] = database.strip()
    context = build_mysql_ssl(config.tls)
    if context is not None:
        kwargs["ssl"] = context
    return kwargs


def _connect(**kwargs):
    try:
        import pymysql
    except ImportError:
        raise ImportError(
            "PyMySQL is required for MySQL connections. "
            "Install it with: pip install PyMySQL"
        )
    return pymysql.connect(**kwargs)


def open_mysql_connection(connect_args: Dict[str, Any], connect_timeout: Optional[float]):
    kwargs = dict(connect_args)
    if connect_timeout:
        kwargs["connect_timeout"] = max(1, int(math.ceil(connect_timeout)))
    try:
        return _connect(**kwargs)
    except ImportError:
        raise
    except Exception as e:
        raise DatabaseConnectionError(
            f"open mysql connection: {e}",
            details={"backend": "mysql", "host": connect_args.get("host"),
                     "database": connect_args.get("database", "")},
        ) from e


def run_mysql_query(connection, sql: str, params: Sequence[Any] = (), deadline: Optional[Deadline] = None):
    """Execute a query with MAX_EXECUTION_TIME set to the remaining deadline."""
    deadline = deadline or Deadline()
    with connection.cursor() as cursor:
        cursor.execute("SET SESSION MAX_EXECUTION_TIME = %s", (deadline.remaining_ms(),))
        cursor.execute(sql, tuple(params) or None)
        return cursor.description, cursor.fetchall()


def _text(value: Any) -> str:
    # information_schema columns come back as bytes on some server versions
    return value if isinstance(value, str) else format_value(value)


class MySQLDiscoverer(TableDetailDiscoverer):
    """Discovers schemas, tables, columns and profiles on a MySQL server."""

    BACKEND = "mysql"

    def __init__(self, config: DatabaseConfig, connect_timeout: Optional[float] = None):
        self.config = config
        self.database = config.database.strip()
        self.connect_timeout = connect_timeout
        self._connection = None

    def connect(self):
        if self._connection is None:
            self._connection = open_mysql_connection(
                build_mysql_connect_args(self.config, self.database), self.connect_timeout
            )
        return self._connection

    def close(self):
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def _query(self, sql: str, params: Sequence[Any] = (), deadline: Optional[Deadline] = None, action: str = "query"):
        connection = self.connect()
        logger.debug("mysql %s", action)
        try:
            return run_mysql_query(connection, sql, params, deadline)
        except Exception as e:
            raise IntrospectionError(
                f"query mysql {action}: {e}", details={"backend": self.BACKEND}
            ) from e

    def _schemas_query(self):
        sql = f"SELECT schema_name FROM information_schema.schemata WHERE {SYSTEM_SCHEMAS_FILTER}"
        params: List[Any] = []
        if self.database:
            sql += " AND schema_name = %s"
            params.append(self.database)
        return sql + " ORDER BY schema_name", params

    def discover(self, timeout: Optional[float] = None) -> List[SchemaInfo]:
        deadline = Deadline(timeout)
        sql, params = self._schemas_query()
        _, rows = self._query(sql, params, deadline, action="schemas")
        schemas = [SchemaInfo(name=_text(row[0])) for row in rows]

        for schema in schemas:
            try:
                _, table_rows = self._query(TABLES_SQL, (schema.name,), deadline, action="tables")
            except IntrospectionError as e:
                raise IntrospectionError(
                    f"get tables for schema {schema.name!r}: {e.message}",
                    details={**e.details, "schema": schema.name},
                ) from e
            schema.tables = [TableInfo(name=_text(row[0]), table_type=_text(row[1])) for row in table_rows]
        return schemas

    def get_columns(self, schema: str, table: str, timeout: Optional[float] = None) -> List[ColumnInfo]:
        _, rows = self._query(COLUMNS_SQL, (schema, table), Deadline(timeout), action="columns")
        return [
            ColumnInfo(
                name=_text(row[0]),
                data_type=_text(row[1]),
                is_nullable=_text(row[2]),
                ordinal_position=int(row[3]),
                column_default=_text(row[4]),
            )
            for row in rows
        ]

    def get_sample_rows(self, schema: str, table: str, limit: int, timeout: Optional[float] = None) -> SampleResult:
        sql = "SELECT * FROM {}.{} ORDER BY RAND() LIMIT {:d}".format(
            quote_mysql_identifier(schema),
            quote_mysql_identifier(table),
            effective_sample_limit(limit),
        )
        description, rows = self._query(sql, deadline=Deadline(timeout), action="sample rows")
        return sample_result_from_rows(description, rows)

    def get_column_enrichment(
        self, schema: str, table: str, column: ColumnInfo, timeout: Optional[float] = None
    ) -> EnrichedColumnInfo:
        deadline = Deadline(timeout)
        queries = mysql_profile_queries(schema, table, column.name)

        def run(sql):
            return self._query(sql, deadline=deadline, action="column profile")[1]

        return profile_column(run, column, queries, self.BACKEND, schema, table)


def mysql_profile_queries(schema: str, table: str, column: str) -> ProfileQueries:
    quoted_table = f"{quote_mysql_identifier(schema)}.{quote_mysql_identifier(table)}"
    col = quote_mysql_identifier(column)
    stats_sql = f"""
        SELECT
            COUNT(*) AS total_rows,
            SUM(CASE WHEN {col} IS NULL THEN 1 ELSE 0 END) AS null_count,
            COUNT({col}) AS non_null_count,
            COUNT(DISTINCT CAST({col} AS CHAR)) AS distinct_non_null_count
        FROM {quoted_table}
    """
    samples_sql = f"""
        SELECT DISTINCT LEFT(CAST({col} AS CHAR), {SAMPLE_QUERY_VALUE_LENGTH})
        FROM {quoted_table}
        WHERE {col} IS NOT NULL
        LIMIT {SAMPLE_QUERY_LIMIT}
    """
    return ProfileQueries(stats_sql=stats_sql, samples_sql=samples_sql)


class MySQLDatabaseLister(DatabaseLister):
    """Lists user databases, connecting without selecting one."""

    BACKEND = "mysql"

    def __init__(self, config: DatabaseConfig, connect_timeout: Optional[float] = None):
        self.config = config
        self.connect_timeout = connect_timeout
        self._connection = None

    def connect(self):
        if self._connection is None:
            self._connection = open_mysql_connection(
                build_mysql_connect_args(self.config, ""), self.connect_timeout
            )
        return self._connection

    def close(self):
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def list_databases(self, timeout: Optional[float] = None) -> List[str]:
        connection = self.connect()
        try:
            _, rows = run_mysql_query(connection, DATABASES_SQL, deadline=Deadline(timeout))
        except Exception as e:
            raise IntrospectionError(
                f"query mysql databases: {e}", details={"backend": self.BACKEND}
            ) from e
        return [_text(row[0]) for row in rows]
