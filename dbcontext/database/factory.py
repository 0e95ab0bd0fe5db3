"""Discovery facade: builds the right adapter for a connection's type tag.

Validation of required fields happens here, before any network or file
I/O, so misconfiguration surfaces as a ConfigurationError rather than a
driver failure.
"""

from typing import Callable, Dict, List, Optional

from ..errors import ConfigurationError
from .base import DatabaseLister, Discoverer, TableDetailDiscoverer
from .bigquery import BigQueryDatabaseLister, BigQueryDiscoverer, resolve_bigquery_project_id, resolve_bigquery_seed_project_id
from .models import DatabaseConfig
from .mysql import MySQLDatabaseLister, MySQLDiscoverer, build_mysql_ssl
from .postgres import PostgresDatabaseLister, PostgresDiscoverer
from .redshift import RedshiftDatabaseLister, RedshiftDiscoverer
from .snowflake import SnowflakeDatabaseLister, SnowflakeDiscoverer
from .sqlite import SQLiteDatabaseLister, SQLiteDiscoverer

DISCOVERERS: Dict[str, Callable[..., TableDetailDiscoverer]] = {
    "postgres": PostgresDiscoverer,
    "redshift": RedshiftDiscoverer,
    "snowflake": SnowflakeDiscoverer,
    "mysql": MySQLDiscoverer,
    "bigquery": BigQueryDiscoverer,
    "sqlite": SQLiteDiscoverer,
}

DATABASE_LISTERS: Dict[str, Callable[..., DatabaseLister]] = {
    "postgres": PostgresDatabaseLister,
    "redshift": RedshiftDatabaseLister,
    "snowflake": SnowflakeDatabaseLister,
    "mysql": MySQLDatabaseLister,
    "bigquery": BigQueryDatabaseLister,
    "sqlite": SQLiteDatabaseLister,
}


def supported_database_types() -> List[str]:
    return sorted(DISCOVERERS)


def normalize_database_type(database_type: str) -> str:
    """Trimmed, lower-cased type tag.

    Raises:
        ConfigurationError: if the tag names no supported backend
    """
    normalized = (database_type or "").strip().lower()
    if normalized not in DISCOVERERS:
        raise ConfigurationError(
            f"unsupported database type: {database_type!r}",
            details={"database_type": database_type, "supported": supported_database_types()},
        )
    return normalized


def validate_config(config: DatabaseConfig, for_lister: bool = False) -> str:
    """Check the fields a backend cannot work without and return the normalized type."""
    database_type = normalize_database_type(config.type)

    if database_type == "sqlite" and not config.database.strip():
        raise ConfigurationError("sqlite requires database file path", details={"database_type": database_type})
    if database_type == "bigquery":
        project = resolve_bigquery_seed_project_id(config) if for_lister else resolve_bigquery_project_id(config)
        if not project:
            raise ConfigurationError(
                "bigquery requires project_id or database (project)", details={"database_type": database_type}
            )
    if database_type == "snowflake" and not config.account.strip():
        raise ConfigurationError("snowflake requires account", details={"database_type": database_type})
    if database_type == "mysql":
        build_mysql_ssl(config.tls)
    return database_type


def new_table_detail_discoverer(
    config: DatabaseConfig, connect_timeout: Optional[float] = None
) -> TableDetailDiscoverer:
    """Create an adapter supporting discovery, columns, samples and enrichment.

    Args:
        config: Connection parameters; `type` selects the backend
        connect_timeout: Seconds allowed for opening the connection

    Raises:
        ConfigurationError: for unknown types or missing required fields
    """
    database_type = validate_config(config)
    return DISCOVERERS[database_type](config, connect_timeout=connect_timeout)


def new_discoverer(config: DatabaseConfig, connect_timeout: Optional[float] = None) -> Discoverer:
    """Create an adapter for schema and table discovery."""
    return new_table_detail_discoverer(config, connect_timeout=connect_timeout)


def new_database_lister(config: DatabaseConfig, connect_timeout: Optional[float] = None) -> DatabaseLister:
    """Create an adapter that lists databases reachable through the connection."""
    database_type = validate_config(config, for_lister=True)
    return DATABASE_LISTERS[database_type](config, connect_timeout=connect_timeout)
