"""Tests for the Postgres and Redshift adapters with a mocked psycopg2 driver."""

from unittest.mock import MagicMock, patch

import pytest

from dbcontext.database.models import ColumnInfo, DatabaseConfig
from dbcontext.database.postgres import (
    PostgresDatabaseLister,
    PostgresDiscoverer,
    build_postgres_connect_args,
    postgres_profile_queries,
)
from dbcontext.database.redshift import (
    REDSHIFT_TEXT_CAST,
    RedshiftDatabaseLister,
    RedshiftDiscoverer,
    build_redshift_connect_args,
)
from dbcontext.errors import DatabaseConnectionError, EnrichmentError, IntrospectionError


def mock_connection(results, description=None):
    """psycopg2-style connection whose cursor returns `results` for each non-SET query in order."""
    conn = MagicMock()
    cursor = MagicMock()
    conn.cursor.return_value.__enter__.return_value = cursor
    queue = list(results)
    executed = []

    def execute(sql, params=None):
        executed.append((sql, params))
        if sql.startswith("SET "):
            return
        result = queue.pop(0)
        if isinstance(result, Exception):
            raise result
        cursor.fetchall.return_value = result

    cursor.execute.side_effect = execute
    cursor.description = description
    conn.executed = executed
    return conn


class TestConnectArgs:
    """Tests for building psycopg2 connection arguments."""

    def test_postgres_defaults(self):
        """Test Postgres defaults to port 5432 and sslmode disable."""
        args = build_postgres_connect_args(DatabaseConfig(type="postgres", host=" db ", user="me"), "app")
        assert args["port"] == 5432
        assert args["sslmode"] == "disable"
        assert args["host"] == "db"
        assert args["dbname"] == "app"

    def test_postgres_explicit_values(self):
        """Test configured port and sslmode win over defaults."""
        config = DatabaseConfig(type="postgres", port=6543, ssl_mode="verify-full")
        args = build_postgres_connect_args(config, "app")
        assert args["port"] == 6543
        assert args["sslmode"] == "verify-full"

    def test_redshift_defaults(self):
        """Test Redshift defaults to port 5439 and sslmode require."""
        args = build_redshift_connect_args(DatabaseConfig(type="redshift"), "dev")
        assert args["port"] == 5439
        assert args["sslmode"] == "require"


class TestPostgresDiscoverer:
    """Tests for Postgres discovery."""

    @patch("dbcontext.database.postgres._connect")
    def test_discover(self, mock_connect):
        """Test schemas and their tables are read with the statement timeout set."""
        conn = mock_connection([
            [("public",), ("sales",)],
            [("users", "BASE TABLE")],
            [("orders", "BASE TABLE"), ("totals", "VIEW")],
        ])
        mock_connect.return_value = conn

        disc = PostgresDiscoverer(DatabaseConfig(type="postgres", database="app"), connect_timeout=1)
        schemas = disc.discover(timeout=30)

        assert [s.name for s in schemas] == ["public", "sales"]
        assert [t.name for t in schemas[1].tables] == ["orders", "totals"]
        assert schemas[1].tables[1].is_view
        assert mock_connect.call_args.kwargs["connect_timeout"] == 2
        assert conn.autocommit is True
        set_calls = [c for c in conn.executed if c[0].startswith("SET statement_timeout")]
        assert set_calls and all(c[1][0] > 0 for c in set_calls)
        assert ("sales",) in [c[1] for c in conn.executed]

    @patch("dbcontext.database.postgres._connect")
    def test_discover_fails_whole_call_on_table_error(self, mock_connect):
        """Test one schema's table query failure fails discovery with the schema named."""
        mock_connect.return_value = mock_connection([
            [("public",), ("locked",)],
            [("users", "BASE TABLE")],
            RuntimeError("permission denied"),
        ])

        with pytest.raises(IntrospectionError) as exc_info:
            PostgresDiscoverer(DatabaseConfig(type="postgres", database="app")).discover()

        assert "locked" in exc_info.value.message
        assert "permission denied" in exc_info.value.message
        assert exc_info.value.details["schema"] == "locked"

    @patch("dbcontext.database.postgres._connect")
    def test_connect_failure(self, mock_connect):
        """Test driver connection errors become DatabaseConnectionError."""
        mock_connect.side_effect = RuntimeError("could not connect to server")
        with pytest.raises(DatabaseConnectionError) as exc_info:
            PostgresDiscoverer(DatabaseConfig(type="postgres", database="app")).discover()
        assert "could not connect" in exc_info.value.message

    @patch("dbcontext.database.postgres._connect")
    def test_get_columns(self, mock_connect):
        """Test columns are returned in ordinal order with blank defaults."""
        mock_connect.return_value = mock_connection([
            [("id", "integer", "NO", 1, "nextval('s')"), ("name", "text", "YES", 2, None)],
        ])
        columns = PostgresDiscoverer(DatabaseConfig(type="postgres", database="app")).get_columns("public", "users")
        assert [c.name for c in columns] == ["id", "name"]
        assert columns[0].column_default == "nextval('s')"
        assert columns[1].column_default == ""

    @patch("dbcontext.database.postgres._connect")
    def test_sample_rows(self, mock_connect):
        """Test sample SQL is quoted and values are stringified."""
        conn = mock_connection([[(1, None, True)]], description=[("id",), ("note",), ("active",)])
        mock_connect.return_value = conn

        sample = PostgresDiscoverer(DatabaseConfig(type="postgres", database="app")).get_sample_rows(
            "public", "users", limit=-3
        )

        assert sample.columns == ["id", "note", "active"]
        assert sample.rows == [["1", "", "true"]]
        sql = [c[0] for c in conn.executed if not c[0].startswith("SET")][0]
        assert 'FROM "public"."users" ORDER BY RANDOM() LIMIT 10' in sql

    @patch("dbcontext.database.postgres._connect")
    def test_column_enrichment(self, mock_connect):
        """Test stats and samples are profiled through the shared policy."""
        mock_connect.return_value = mock_connection([
            [(4, 1, 3, 2)],
            [("x",), ("y",)],
        ])
        profile = PostgresDiscoverer(DatabaseConfig(type="postgres", database="app")).get_column_enrichment(
            "public", "users", ColumnInfo(name="code", data_type="text")
        )
        assert profile.total_rows == 4
        assert profile.null_of_total_rows_pct == 25.0
        assert profile.distinct_of_non_null_pct == 66.6667
        assert profile.sample_values == ["x", "y"]

    @patch("dbcontext.database.postgres._connect")
    def test_column_enrichment_failure(self, mock_connect):
        """Test query failures during profiling raise EnrichmentError."""
        mock_connect.return_value = mock_connection([RuntimeError("canceling statement due to statement timeout")])
        with pytest.raises(EnrichmentError) as exc_info:
            PostgresDiscoverer(DatabaseConfig(type="postgres", database="app")).get_column_enrichment(
                "public", "users", ColumnInfo(name="code", data_type="text")
            )
        assert exc_info.value.details["backend"] == "postgres"
        assert "statement timeout" in exc_info.value.message

    def test_profile_queries_cast(self):
        """Test the text cast type is used for distinct counting and samples."""
        queries = postgres_profile_queries("s", "t", "c", cast_type="TEXT")
        assert 'CAST("c" AS TEXT)' in queries.stats_sql
        assert 'LEFT(CAST("c" AS TEXT), 181)' in queries.samples_sql

    @patch("dbcontext.database.postgres._connect")
    def test_lister_falls_back_to_postgres_database(self, mock_connect):
        """Test the lister connects to `postgres` when no database is configured."""
        mock_connect.return_value = mock_connection([[("analytics",), ("app",)]])
        with PostgresDatabaseLister(DatabaseConfig(type="postgres")) as lister:
            assert lister.list_databases(timeout=5) == ["analytics", "app"]
        assert mock_connect.call_args.kwargs["dbname"] == "postgres"
        mock_connect.return_value.close.assert_called_once()


class TestRedshift:
    """Tests for the Redshift adapter."""

    @patch("dbcontext.database.postgres._connect")
    def test_enrichment_uses_wide_varchar(self, mock_connect):
        """Test Redshift profiles compare values as VARCHAR(65535)."""
        conn = mock_connection([[(1, 0, 1, 1)], [("v",)]])
        mock_connect.return_value = conn

        RedshiftDiscoverer(DatabaseConfig(type="redshift", database="dev")).get_column_enrichment(
            "public", "t", ColumnInfo(name="c", data_type="character varying")
        )

        statements = [c[0] for c in conn.executed if not c[0].startswith("SET")]
        assert all(REDSHIFT_TEXT_CAST in sql for sql in statements)

    @patch("dbcontext.database.postgres._connect")
    def test_discover_errors_name_redshift(self, mock_connect):
        """Test catalog failures are reported as redshift queries."""
        mock_connect.return_value = mock_connection([RuntimeError("boom")])
        with pytest.raises(IntrospectionError) as exc_info:
            RedshiftDiscoverer(DatabaseConfig(type="redshift", database="dev")).discover()
        assert "query redshift schemas" in exc_info.value.message

    @patch("dbcontext.database.postgres._connect")
    def test_lister_defaults_to_dev(self, mock_connect):
        """Test the lister connects to `dev` with Redshift defaults."""
        mock_connect.return_value = mock_connection([[("dev",), ("prod",)]])
        with RedshiftDatabaseLister(DatabaseConfig(type="redshift", host="cluster")) as lister:
            assert lister.list_databases() == ["dev", "prod"]
        kwargs = mock_connect.call_args.kwargs
        assert kwargs["dbname"] == "dev"
        assert kwargs["port"] == 5439
        assert kwargs["sslmode"] == "require"
