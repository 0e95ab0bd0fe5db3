"""Tests for the SQLite adapter against real database files."""

import sqlite3

import pytest

from dbcontext.database.models import ColumnInfo, DatabaseConfig
from dbcontext.database.querying import Deadline
from dbcontext.database.sqlite import (
    SQLiteDatabaseLister,
    SQLiteDiscoverer,
    normalize_sqlite_table_type,
    run_sqlite_query,
    sqlite_profile_queries,
)
from dbcontext.errors import DatabaseConnectionError, EnrichmentError, IntrospectionError


class TestSQLiteHelpers:
    """Tests for SQLite name and type normalization."""

    def test_table_types(self):
        """Test sqlite_master types map onto catalog-style names."""
        assert normalize_sqlite_table_type("table") == "BASE TABLE"
        assert normalize_sqlite_table_type("view") == "VIEW"
        assert normalize_sqlite_table_type("") == "BASE TABLE"

    def test_profile_queries_quote_identifiers(self):
        """Test profile SQL quotes schema, table and column."""
        queries = sqlite_profile_queries("main", "my table", 'odd"col')
        assert '"main"."my table"' in queries.stats_sql
        assert '"main"."my table"."odd""col"' in queries.samples_sql
        assert 'COUNT("main"."my table"."odd""col")' in queries.stats_sql
        assert "SUBSTR" in queries.samples_sql
        assert "LIMIT 25" in queries.samples_sql


class TestSQLiteDiscoverer:
    """Tests for discovery, columns, samples and enrichment on SQLite."""

    def test_discover_lists_tables_and_views(self, sqlite_config):
        """Test the main database is the only schema with sorted tables and views."""
        with SQLiteDiscoverer(sqlite_config) as disc:
            schemas = disc.discover(timeout=10)

        assert [s.name for s in schemas] == ["main"]
        tables = {t.name: t.table_type for t in schemas[0].tables}
        assert tables == {"user_emails": "VIEW", "users": "BASE TABLE"}
        assert [t.name for t in schemas[0].tables] == ["user_emails", "users"]

    def test_attached_database_is_a_schema(self, sqlite_path, tmp_path):
        """Test an ATTACHed database shows up alongside main."""
        other = tmp_path / "other.db"
        conn = sqlite3.connect(str(other))
        conn.execute("CREATE TABLE events (id INTEGER)")
        conn.commit()
        conn.close()

        disc = SQLiteDiscoverer(DatabaseConfig(type="sqlite", database=sqlite_path))
        try:
            disc.connect().execute(f"ATTACH DATABASE '{other}' AS archive")
            schemas = disc.discover()
        finally:
            disc.close()

        by_name = {s.name: s for s in schemas}
        assert set(by_name) == {"main", "archive"}
        assert [t.name for t in by_name["archive"].tables] == ["events"]

    def test_get_columns(self, sqlite_config):
        """Test column metadata, including NOT NULL and primary key nullability."""
        with SQLiteDiscoverer(sqlite_config) as disc:
            columns = disc.get_columns("main", "users")

        assert [c.name for c in columns] == ["id", "name", "email"]
        assert [c.ordinal_position for c in columns] == [1, 2, 3]
        assert [c.is_nullable for c in columns] == ["NO", "NO", "YES"]
        assert columns[0].data_type == "INTEGER"

    def test_blank_schema_means_main(self, sqlite_config):
        """Test a blank schema name reads the main database."""
        with SQLiteDiscoverer(sqlite_config) as disc:
            assert len(disc.get_columns("", "users")) == 3

    def test_sample_rows(self, sqlite_config):
        """Test samples are bounded by the limit and NULL becomes an empty string."""
        with SQLiteDiscoverer(sqlite_config) as disc:
            sample = disc.get_sample_rows("main", "users", limit=2)
            full = disc.get_sample_rows("main", "users", limit=0)

        assert sample.columns == ["id", "name", "email"]
        assert len(sample.rows) == 2
        assert len(full.rows) == 3
        bob = [row for row in full.rows if row[1] == "Bob"][0]
        assert bob == ["2", "Bob", ""]

    def test_email_enrichment(self, sqlite_config):
        """Test profiling the email column end to end."""
        with SQLiteDiscoverer(sqlite_config) as disc:
            columns = disc.get_columns("main", "users")
            profile = disc.get_column_enrichment("main", "users", columns[2], timeout=10)

        assert profile.total_rows == 3
        assert profile.null_count == 1
        assert profile.non_null_count == 2
        assert profile.distinct_non_null_count == 2
        assert profile.null_of_total_rows_pct == 33.3333
        assert profile.non_null_of_total_rows_pct == 66.6667
        assert profile.distinct_of_non_null_pct == 100.0
        assert sorted(profile.sample_values) == ["a@x.com", "c@x.com"]

    def test_enrichment_of_missing_column_fails(self, sqlite_config):
        """Test a bad column fails with EnrichmentError for that column only."""
        with SQLiteDiscoverer(sqlite_config) as disc:
            with pytest.raises(EnrichmentError) as exc_info:
                disc.get_column_enrichment("main", "users", ColumnInfo(name="nope", data_type="TEXT"))
        assert exc_info.value.column == "nope"

    def test_missing_table_raises_introspection_error(self, sqlite_config):
        """Test querying an unknown table is an IntrospectionError."""
        with SQLiteDiscoverer(sqlite_config) as disc:
            with pytest.raises(IntrospectionError):
                disc.get_sample_rows("main", "missing", limit=5)

    def test_missing_file_is_not_created(self, tmp_path):
        """Test pointing at a missing path fails without creating the file."""
        path = tmp_path / "missing.db"
        disc = SQLiteDiscoverer(DatabaseConfig(type="sqlite", database=str(path)))
        with pytest.raises(DatabaseConnectionError):
            disc.discover()
        assert not path.exists()

    def test_expired_deadline(self, sqlite_config):
        """Test a query under an expired deadline raises TimeoutError."""
        disc = SQLiteDiscoverer(sqlite_config)
        try:
            deadline = Deadline(0)
            with pytest.raises(TimeoutError):
                run_sqlite_query(disc.connect(), "SELECT 1", deadline=deadline)
        finally:
            disc.close()


class TestSQLiteDatabaseLister:
    """Tests for listing attached SQLite databases."""

    def test_lists_main(self, sqlite_config):
        """Test a plain file lists only main."""
        with SQLiteDatabaseLister(sqlite_config) as lister:
            assert lister.list_databases(timeout=5) == ["main"]
