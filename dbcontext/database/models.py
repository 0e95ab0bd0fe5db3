"""Database data models for schema discovery and column profiling."""

from typing import List
from dataclasses import dataclass, field


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection parameters for one database connection.

    Fields are a superset across backends; each adapter reads only the
    fields relevant to its type and applies its own defaults.
    """
    type: str
    database: str = ""

    # Postgres / Redshift / MySQL
    host: str = ""
    port: int = 0
    user: str = ""
    password: str = ""
    ssl_mode: str = ""
    tls: str = ""

    # Snowflake
    account: str = ""
    role: str = ""
    warehouse: str = ""
    schema: str = ""
    authenticator: str = ""

    # BigQuery
    project_id: str = ""
    credentials_file: str = ""

    # SQLite uses `database` as the file path.

    @property
    def uses_external_browser(self) -> bool:
        """Whether authentication goes through an interactive SSO flow."""
        return self.authenticator.strip().lower() == "externalbrowser"


@dataclass
class TableInfo:
    """A table or view within a schema."""
    name: str
    table_type: str  # BASE TABLE, VIEW, MATERIALIZED VIEW, ...

    @property
    def is_view(self) -> bool:
        return "VIEW" in self.table_type.upper()


@dataclass
class SchemaInfo:
    """A non-system schema and its tables."""
    name: str
    tables: List[TableInfo] = field(default_factory=list)


@dataclass
class ColumnInfo:
    """Catalog metadata for one column."""
    name: str
    data_type: str
    is_nullable: str = "YES"  # "YES" or "NO"
    ordinal_position: int = 0
    column_default: str = ""


@dataclass
class EnrichedColumnInfo:
    """Column metadata plus table-level statistics and sample values."""
    name: str
    data_type: str
    is_nullable: str = "YES"
    ordinal_position: int = 0
    column_default: str = ""
    ai_description: str = ""
    db_description: str = ""

    total_rows: int = 0
    null_count: int = 0
    non_null_count: int = 0
    distinct_non_null_count: int = 0
    distinct_of_non_null_pct: float = 0.0
    null_of_total_rows_pct: float = 0.0
    non_null_of_total_rows_pct: float = 0.0
    sample_values: List[str] = field(default_factory=list)

    @classmethod
    def from_column(cls, column: ColumnInfo) -> "EnrichedColumnInfo":
        """Start a profile from catalog metadata with blank descriptions."""
        return cls(
            name=column.name,
            data_type=column.data_type,
            is_nullable=column.is_nullable,
            ordinal_position=column.ordinal_position,
            column_default=column.column_default,
        )


@dataclass
class SampleResult:
    """Column headers and stringified rows from a sample query."""
    columns: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)


def schema_names(schemas: List[SchemaInfo]) -> List[str]:
    """Sorted schema names."""
    return sorted(s.name for s in schemas)

