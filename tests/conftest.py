"""Shared pytest fixtures for dbcontext tests."""

import sqlite3

import pytest

from dbcontext.context import Options
from dbcontext.database.models import (
    ColumnInfo,
    DatabaseConfig,
    EnrichedColumnInfo,
    SampleResult,
    SchemaInfo,
    TableInfo,
)


@pytest.fixture
def sqlite_path(tmp_path):
    """SQLite file with a users table, a view and three rows (one NULL email)."""
    path = tmp_path / "app.db"
    conn = sqlite3.connect(str(path))
    conn.executescript(
        """
        CREATE TABLE users (id INTEGER PRIMARY KEY, name TEXT NOT NULL, email TEXT);
        INSERT INTO users (id, name, email) VALUES (1, 'Alice', 'a@x.com');
        INSERT INTO users (id, name, email) VALUES (2, 'Bob', NULL);
        INSERT INTO users (id, name, email) VALUES (3, 'Cara', 'c@x.com');
        CREATE VIEW user_emails AS SELECT id, email FROM users WHERE email IS NOT NULL;
        """
    )
    conn.commit()
    conn.close()
    return str(path)


@pytest.fixture
def sqlite_config(sqlite_path):
    return DatabaseConfig(type="sqlite", database=sqlite_path)


@pytest.fixture
def base_dir(tmp_path):
    return str(tmp_path / "ctx")


@pytest.fixture
def sqlite_options(base_dir):
    """Generator options for a SQLite connection (sentinel database)."""
    return Options(connection_name="local", database_type="sqlite", base_dir=base_dir)


@pytest.fixture
def postgres_options(base_dir):
    return Options(connection_name="warehouse", database_name="analytics", database_type="postgres", base_dir=base_dir)


@pytest.fixture
def sample_schemas():
    """Unsorted schemas with one table and one view each."""
    return [
        SchemaInfo(
            name="sales",
            tables=[
                TableInfo(name="orders", table_type="BASE TABLE"),
                TableInfo(name="order_totals", table_type="VIEW"),
            ],
        ),
        SchemaInfo(
            name="public",
            tables=[
                TableInfo(name="users", table_type="BASE TABLE"),
                TableInfo(name="accounts", table_type="BASE TABLE"),
            ],
        ),
    ]


@pytest.fixture
def users_columns():
    return [
        ColumnInfo(name="id", data_type="integer", is_nullable="NO", ordinal_position=1,
                   column_default="nextval('users_id_seq'::regclass)"),
        ColumnInfo(name="name", data_type="text", is_nullable="NO", ordinal_position=2),
        ColumnInfo(name="email", data_type="text", is_nullable="YES", ordinal_position=3),
    ]


@pytest.fixture
def users_sample():
    return SampleResult(
        columns=["id", "name", "email"],
        rows=[["1", "Alice", "a@x.com"], ["2", "Bob", ""]],
    )


@pytest.fixture
def email_profile():
    return EnrichedColumnInfo(
        name="email",
        data_type="text",
        is_nullable="YES",
        ordinal_position=3,
        total_rows=3,
        null_count=1,
        non_null_count=2,
        distinct_non_null_count=2,
        distinct_of_non_null_pct=100.0,
        null_of_total_rows_pct=33.3333,
        non_null_of_total_rows_pct=66.6667,
        sample_values=["a@x.com", "c@x.com"],
    )
