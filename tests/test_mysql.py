"""Tests for the MySQL adapter with a mocked PyMySQL driver."""

import ssl
from unittest.mock import MagicMock, patch

import pytest

from dbcontext.database.models import ColumnInfo, DatabaseConfig
from dbcontext.database.mysql import (
    MySQLDatabaseLister,
    MySQLDiscoverer,
    build_mysql_connect_args,
    build_mysql_ssl,
    mysql_profile_queries,
)
from dbcontext.errors import ConfigurationError, IntrospectionError


def mock_connection(results, description=None):
    """PyMySQL-style connection answering non-SET queries from `results` in order."""
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


class TestMySQLConnectArgs:
    """Tests for MySQL connection argument building."""

    def test_defaults(self):
        """Test default port, charset and no database when blank."""
        args = build_mysql_connect_args(DatabaseConfig(type="mysql", host="db", user="u"), "")
        assert args["port"] == 3306
        assert args["charset"] == "utf8mb4"
        assert "database" not in args
        assert "ssl" not in args

    def test_database_selected(self):
        """Test a configured database is passed through."""
        args = build_mysql_connect_args(DatabaseConfig(type="mysql"), " shop ")
        assert args["database"] == "shop"

    def test_tls_modes(self):
        """Test each tls setting maps to the expected SSL context."""
        assert build_mysql_ssl("") is None
        assert build_mysql_ssl("false") is None
        assert build_mysql_ssl("true").verify_mode == ssl.CERT_REQUIRED
        skip = build_mysql_ssl("skip-verify")
        assert skip.verify_mode == ssl.CERT_NONE
        assert skip.check_hostname is False
        assert build_mysql_ssl("preferred").verify_mode == ssl.CERT_NONE

    def test_unknown_tls_mode(self):
        """Test an unsupported tls value is a configuration error."""
        with pytest.raises(ConfigurationError):
            build_mysql_ssl("sometimes")


class TestMySQLDiscoverer:
    """Tests for MySQL discovery and profiling."""

    @patch("dbcontext.database.mysql._connect")
    def test_discover_restricted_to_configured_database(self, mock_connect):
        """Test discovery filters to the configured database and decodes bytes."""
        conn = mock_connection([
            [(b"shop",)],
            [(b"orders", b"BASE TABLE"), ("v_orders", "VIEW")],
        ])
        mock_connect.return_value = conn

        schemas = MySQLDiscoverer(DatabaseConfig(type="mysql", database="shop")).discover(timeout=20)

        assert [s.name for s in schemas] == ["shop"]
        assert [(t.name, t.table_type) for t in schemas[0].tables] == [
            ("orders", "BASE TABLE"), ("v_orders", "VIEW"),
        ]
        schemas_sql, schemas_params = [c for c in conn.executed if not c[0].startswith("SET")][0]
        assert "schema_name = %s" in schemas_sql
        assert schemas_params == ("shop",)
        assert any(c[0].startswith("SET SESSION MAX_EXECUTION_TIME") for c in conn.executed)

    @patch("dbcontext.database.mysql._connect")
    def test_discover_all_databases(self, mock_connect):
        """Test system schemas are excluded and no filter applies without a database."""
        conn = mock_connection([[("a",), ("b",)], [], []])
        mock_connect.return_value = conn

        schemas = MySQLDiscoverer(DatabaseConfig(type="mysql")).discover()

        assert [s.name for s in schemas] == ["a", "b"]
        schemas_sql = [c[0] for c in conn.executed if not c[0].startswith("SET")][0]
        assert "'performance_schema'" in schemas_sql
        assert "schema_name = %s" not in schemas_sql

    @patch("dbcontext.database.mysql._connect")
    def test_sample_rows_use_rand(self, mock_connect):
        """Test MySQL samples are ordered by RAND() with backtick quoting."""
        conn = mock_connection([[(1, b"x")]], description=[("id",), ("blob",)])
        mock_connect.return_value = conn

        sample = MySQLDiscoverer(DatabaseConfig(type="mysql", database="shop")).get_sample_rows("shop", "t", 3)

        assert sample.rows == [["1", "x"]]
        sql = [c[0] for c in conn.executed if not c[0].startswith("SET")][0]
        assert "FROM `shop`.`t` ORDER BY RAND() LIMIT 3" in sql

    @patch("dbcontext.database.mysql._connect")
    def test_column_enrichment(self, mock_connect):
        """Test Decimal sums from the driver are coerced to ints."""
        from decimal import Decimal

        mock_connect.return_value = mock_connection([[(2, Decimal("0"), 2, 1)], [("same",)]])
        profile = MySQLDiscoverer(DatabaseConfig(type="mysql", database="shop")).get_column_enrichment(
            "shop", "t", ColumnInfo(name="c", data_type="varchar")
        )
        assert profile.null_count == 0
        assert profile.distinct_of_non_null_pct == 50.0
        assert profile.sample_values == ["same"]

    def test_profile_queries_cast_to_char(self):
        """Test MySQL profile SQL casts values to CHAR."""
        queries = mysql_profile_queries("shop", "t", "c")
        assert "CAST(`c` AS CHAR)" in queries.stats_sql
        assert "LEFT(CAST(`c` AS CHAR), 181)" in queries.samples_sql

    @patch("dbcontext.database.mysql._connect")
    def test_columns_error(self, mock_connect):
        """Test column query failures become IntrospectionError."""
        mock_connect.return_value = mock_connection([RuntimeError("table missing")])
        with pytest.raises(IntrospectionError) as exc_info:
            MySQLDiscoverer(DatabaseConfig(type="mysql", database="shop")).get_columns("shop", "gone")
        assert "query mysql columns" in exc_info.value.message


class TestMySQLDatabaseLister:
    """Tests for listing MySQL databases."""

    @patch("dbcontext.database.mysql._connect")
    def test_lists_without_selecting_database(self, mock_connect):
        """Test the lister connects without a database and returns names."""
        mock_connect.return_value = mock_connection([[("app",), ("shop",)]])
        with MySQLDatabaseLister(DatabaseConfig(type="mysql", database="shop")) as lister:
            assert lister.list_databases() == ["app", "shop"]
        assert "database" not in mock_connect.call_args.kwargs
