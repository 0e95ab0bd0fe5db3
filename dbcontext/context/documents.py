"""Context document types.

Each dataclass maps one-to-one onto a generated file; `to_dict()` keeps
field order so the YAML output is stable and diff-friendly.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional, Tuple

from ..database.models import ColumnInfo, EnrichedColumnInfo, SampleResult


class _Document:
    # Fields dropped from the output when empty.
    OMIT_EMPTY: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in self.OMIT_EMPTY and not value:
                continue
            out[f.name] = _plain(value)
        return out


def _plain(value: Any) -> Any:
    if isinstance(value, _Document):
        return value.to_dict()
    if isinstance(value, list):
        return [_plain(v) for v in value]
    return value


@dataclass
class DatabaseItem(_Document):
    name: str


@dataclass
class DatabasesFile(_Document):
    """_databases.yml: databases available under a connection."""
    connection: str
    database_type: str
    default_database: str
    generated_at: str
    databases: List[DatabaseItem] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DatabasesFile":
        """Parse a loaded YAML mapping; entries without a name are dropped."""
        items = []
        for entry in data.get("databases") or []:
            if isinstance(entry, dict) and entry.get("name") is not None:
                items.append(DatabaseItem(name=str(entry["name"])))
        return cls(
            connection=str(data.get("connection") or ""),
            database_type=str(data.get("database_type") or ""),
            default_database=str(data.get("default_database") or ""),
            generated_at=str(data.get("generated_at") or ""),
            databases=items,
        )

    def names(self) -> List[str]:
        return [item.name for item in self.databases]


@dataclass
class TableEntry(_Document):
    """One table or view in a schema or tables listing."""
    name: str
    type: str
    ai_description: str = ""
    db_description: str = ""


@dataclass
class SchemaItem(_Document):
    name: str
    table_count: int = 0
    view_count: int = 0
    ai_description: str = ""
    db_description: str = ""
    tables: List[TableEntry] = field(default_factory=list)


@dataclass
class SchemasFile(_Document):
    """_schemas.yml: overview of every schema in a database."""
    connection: str
    database: str
    database_type: str
    generated_at: str
    schemas: List[SchemaItem] = field(default_factory=list)


@dataclass
class TablesFile(_Document):
    """<schema>/_tables.yml: every table or view in one schema."""
    schema: str
    connection: str
    database: str
    database_type: str
    generated_at: str
    tables: List[TableEntry] = field(default_factory=list)


@dataclass
class ColumnsFileItem(_Document):
    OMIT_EMPTY = ("column_default",)

    name: str
    data_type: str
    is_nullable: str
    ordinal_position: int
    column_default: str = ""

    @classmethod
    def from_column(cls, column: ColumnInfo) -> "ColumnsFileItem":
        return cls(
            name=column.name,
            data_type=column.data_type,
            is_nullable=column.is_nullable,
            ordinal_position=column.ordinal_position,
            column_default=column.column_default,
        )


@dataclass
class ColumnsFile(_Document):
    """<table>__columns.yml written by table detail discovery."""
    schema: str
    table: str
    connection: str
    database: str
    database_type: str
    generated_at: str
    columns: List[ColumnsFileItem] = field(default_factory=list)


@dataclass
class EnrichedColumnsFileItem(_Document):
    OMIT_EMPTY = ("column_default", "sample_values")

    name: str
    data_type: str
    is_nullable: str
    ordinal_position: int
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
    def from_profile(cls, column: EnrichedColumnInfo) -> "EnrichedColumnsFileItem":
        return cls(
            name=column.name,
            data_type=column.data_type,
            is_nullable=column.is_nullable,
            ordinal_position=column.ordinal_position,
            column_default=column.column_default,
            ai_description=column.ai_description,
            db_description=column.db_description,
            total_rows=column.total_rows,
            null_count=column.null_count,
            non_null_count=column.non_null_count,
            distinct_non_null_count=column.distinct_non_null_count,
            distinct_of_non_null_pct=float(column.distinct_of_non_null_pct),
            null_of_total_rows_pct=float(column.null_of_total_rows_pct),
            non_null_of_total_rows_pct=float(column.non_null_of_total_rows_pct),
            sample_values=list(column.sample_values),
        )


@dataclass
class EnrichedColumnsFile(_Document):
    """<table>__columns.yml written by column profiling."""
    schema: str
    table: str
    connection: str
    database: str
    database_type: str
    generated_at: str
    columns: List[EnrichedColumnsFileItem] = field(default_factory=list)


@dataclass
class TableDetailInput:
    """Columns and sample rows for one table.

    `columns=None` skips the columns file; a sample without rows skips the
    sample file.
    """
    schema: str
    table: str
    columns: Optional[List[ColumnInfo]] = None
    sample: Optional[SampleResult] = None


@dataclass
class EnrichedColumnsInput:
    """All profiled columns of one table."""
    schema: str
    table: str
    columns: List[EnrichedColumnInfo] = field(default_factory=list)
