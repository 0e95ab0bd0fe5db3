"""Tests for adapter selection and configuration validation."""

import pytest

from dbcontext.database import (
    new_database_lister,
    new_discoverer,
    new_table_detail_discoverer,
    supported_database_types,
)
from dbcontext.database.bigquery import BigQueryDatabaseLister, BigQueryDiscoverer
from dbcontext.database.models import DatabaseConfig
from dbcontext.database.mysql import MySQLDiscoverer
from dbcontext.database.postgres import PostgresDiscoverer
from dbcontext.database.redshift import RedshiftDatabaseLister
from dbcontext.database.snowflake import SnowflakeDiscoverer
from dbcontext.database.sqlite import SQLiteDiscoverer
from dbcontext.errors import ConfigurationError


class TestFactory:
    """Tests for the discovery facade."""

    def test_supported_types(self):
        """Test all six backends are registered."""
        assert supported_database_types() == ["bigquery", "mysql", "postgres", "redshift", "snowflake", "sqlite"]

    @pytest.mark.parametrize(
        "config,expected",
        [
            (DatabaseConfig(type="postgres"), PostgresDiscoverer),
            (DatabaseConfig(type=" MySQL "), MySQLDiscoverer),
            (DatabaseConfig(type="snowflake", account="acme"), SnowflakeDiscoverer),
            (DatabaseConfig(type="bigquery", project_id="p"), BigQueryDiscoverer),
            (DatabaseConfig(type="sqlite", database="/tmp/x.db"), SQLiteDiscoverer),
        ],
    )
    def test_selects_adapter_by_type(self, config, expected):
        """Test the type tag picks the adapter, case and whitespace insensitive."""
        assert isinstance(new_table_detail_discoverer(config), expected)

    def test_new_discoverer_uses_same_adapters(self):
        """Test the discovery-only constructor returns the same adapter type."""
        assert isinstance(new_discoverer(DatabaseConfig(type="postgres")), PostgresDiscoverer)

    def test_listers(self):
        """Test lister selection, including BigQuery's seed project rule."""
        assert isinstance(new_database_lister(DatabaseConfig(type="redshift")), RedshiftDatabaseLister)
        lister = new_database_lister(DatabaseConfig(type="bigquery", database="p"))
        assert isinstance(lister, BigQueryDatabaseLister)
        assert lister.seed_project_id == "p"

    def test_unknown_type_fails_before_io(self):
        """Test an unknown type raises ConfigurationError listing supported types."""
        with pytest.raises(ConfigurationError) as exc_info:
            new_table_detail_discoverer(DatabaseConfig(type="oracle"))
        assert "oracle" in exc_info.value.message
        assert "sqlite" in exc_info.value.details["supported"]

    @pytest.mark.parametrize(
        "config,message",
        [
            (DatabaseConfig(type="sqlite"), "file path"),
            (DatabaseConfig(type="bigquery"), "project"),
            (DatabaseConfig(type="snowflake"), "account"),
            (DatabaseConfig(type="mysql", tls="maybe"), "tls"),
        ],
    )
    def test_missing_required_fields(self, config, message):
        """Test each backend's required fields are checked up front."""
        with pytest.raises(ConfigurationError) as exc_info:
            new_table_detail_discoverer(config)
        assert message in exc_info.value.message

    def test_constructors_do_not_connect(self, tmp_path):
        """Test building an adapter opens no connection or file."""
        path = tmp_path / "later.db"
        disc = new_table_detail_discoverer(DatabaseConfig(type="sqlite", database=str(path)))
        disc.close()
        assert not path.exists()
