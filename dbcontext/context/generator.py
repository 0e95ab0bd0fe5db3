"""Context document generator.

Writes the navigable YAML/XML tree for one connection:

    <base>/context/connections/<connection>/databases/_databases.yml
    <base>/.../databases/<database>/schemas/_schemas.yml
    <base>/.../databases/<database>/schemas/<schema>/_tables.yml
    <base>/.../schemas/<schema>/<table>/<table>__columns.yml
    <base>/.../schemas/<schema>/<table>/<table>__sample.xml

Schema and table indexes are caches that are fully replaced on every run.
The databases index is merged so user-curated entries and the chosen
default survive re-discovery.
"""

import logging
import os
import re
import tempfile
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

import yaml

from ..database.models import SchemaInfo
from ..errors import DefaultDatabaseError, GenerationError
from .documents import (
    ColumnsFile,
    ColumnsFileItem,
    DatabaseItem,
    DatabasesFile,
    EnrichedColumnsFile,
    EnrichedColumnsFileItem,
    EnrichedColumnsInput,
    SchemaItem,
    SchemasFile,
    TableDetailInput,
    TableEntry,
    TablesFile,
)
from .headers import (
    columns_header,
    databases_header,
    enriched_columns_header,
    schemas_header,
    tables_header,
)

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_SENTINEL = "_default"

# Backends whose context would be meaningless without a chosen database.
EXPLICIT_DEFAULT_DATABASE_TYPES = {"postgres", "snowflake", "mysql", "bigquery"}

XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n'

_XML_INVALID_CHARS = re.compile("[^\u0009\u000a\u000d\u0020-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")
_NAME_REPLACEMENTS = str.maketrans({"/": "_", "\\": "_", " ": "_", ".": "_"})


@dataclass
class Options:
    """Where and for which connection context documents are written."""
    connection_name: str
    database_name: str = ""
    database_type: str = ""
    base_dir: str = ".dbcontext"

    @property
    def databases_dir(self) -> Path:
        return Path(self.base_dir) / "context" / "connections" / self.connection_name / "databases"

    def schemas_dir(self, database: str) -> Path:
        return self.databases_dir / sanitize_name(database) / "schemas"

    def table_dir(self, database: str, schema: str, table: str) -> Path:
        return self.schemas_dir(database) / sanitize_name(schema) / sanitize_name(table)


def sanitize_name(name: str) -> str:
    """Lower-case a catalog name and make it safe as a path segment."""
    return name.translate(_NAME_REPLACEMENTS).lower()


def is_sentinel_database(name: str) -> bool:
    return name.strip().lower() == DEFAULT_DATABASE_SENTINEL


def resolve_default_database(
    configured: str, databases: Iterable[str] = (), previous: Optional[str] = None
) -> str:
    """Pick the default database recorded in _databases.yml.

    The configured name always wins. Otherwise a single known database is
    used, then a previously recorded non-sentinel default, then the sentinel.
    """
    name = (configured or "").strip()
    if name:
        return name
    names = [d.strip() for d in databases]
    if len(names) == 1 and names[0]:
        return names[0]
    previous = (previous or "").strip()
    if previous and not is_sentinel_database(previous):
        return previous
    return DEFAULT_DATABASE_SENTINEL


def requires_explicit_default_database(database_type: str) -> bool:
    return (database_type or "").strip().lower() in EXPLICIT_DEFAULT_DATABASE_TYPES


def resolve_generation_database(options: Options) -> str:
    """Database that schema, table and column files are written under.

    Raises:
        DefaultDatabaseError: if the backend needs an explicit database and
            none (or only the sentinel) is configured
    """
    configured = (options.database_name or "").strip()
    if configured and not is_sentinel_database(configured):
        return configured
    if requires_explicit_default_database(options.database_type):
        raise DefaultDatabaseError(options.connection_name, options.database_type)
    return DEFAULT_DATABASE_SENTINEL


def generated_at() -> str:
    """Current UTC time as RFC3339 with second precision."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def generate(schemas: List[SchemaInfo], options: Options) -> List[str]:
    """Write the databases, schemas and per-schema tables indexes.

    The target database is resolved before anything is written, so a
    missing default leaves the tree untouched.

    Returns:
        Paths of the files written, in write order
    """
    database = resolve_generation_database(options)
    now = generated_at()
    sorted_schemas = _sorted_schemas(schemas)
    written: List[str] = []

    # The sentinel is a directory name only; it never overrides a recorded default.
    if is_sentinel_database(database):
        _merge_databases_file([], options, now, configured="")
    else:
        _merge_databases_file([database], options, now, configured=database)
    written.append(str(options.databases_dir / "_databases.yml"))

    schemas_dir = options.schemas_dir(database)
    _make_dirs(schemas_dir)

    schemas_file = SchemasFile(
        connection=options.connection_name,
        database=database,
        database_type=options.database_type,
        generated_at=now,
    )
    for schema in sorted_schemas:
        item = SchemaItem(name=schema.name)
        for table in schema.tables:
            item.tables.append(TableEntry(name=table.name, type=table.table_type))
            if table.is_view:
                item.view_count += 1
            else:
                item.table_count += 1
        schemas_file.schemas.append(item)

    schemas_path = schemas_dir / "_schemas.yml"
    header = schemas_header(options.connection_name, database, options.database_type)
    write_yaml_with_header(schemas_path, schemas_file.to_dict(), header)
    written.append(str(schemas_path))

    for schema in sorted_schemas:
        schema_dir = schemas_dir / sanitize_name(schema.name)
        _make_dirs(schema_dir)
        tables_file = TablesFile(
            schema=schema.name,
            connection=options.connection_name,
            database=database,
            database_type=options.database_type,
            generated_at=now,
            tables=[TableEntry(name=t.name, type=t.table_type) for t in schema.tables],
        )
        tables_path = schema_dir / "_tables.yml"
        header = tables_header(options.connection_name, database, options.database_type, schema.name)
        write_yaml_with_header(tables_path, tables_file.to_dict(), header)
        written.append(str(tables_path))

    logger.info("Generated context for %d schemas under %s", len(sorted_schemas), schemas_dir)
    return written


def update_databases_file(discovered: Iterable[str], options: Options) -> List[str]:
    """Merge discovered database names into _databases.yml.

    Existing entries keep their order; names not yet listed are appended
    sorted. Blank and duplicate names are ignored.

    Returns:
        The names that were newly added

    Raises:
        GenerationError: if the existing file cannot be read, parsed or rewritten
    """
    return _merge_databases_file(discovered, options, generated_at(), configured=options.database_name)


def _merge_databases_file(discovered: Iterable[str], options: Options, now: str, configured: str) -> List[str]:
    databases_dir = options.databases_dir
    _make_dirs(databases_dir)
    path = databases_dir / "_databases.yml"

    existing = read_databases_file(path)
    existing_names = existing.names() if existing else []
    previous_default = existing.default_database if existing else None

    known = set(existing_names)
    added = []
    for name in discovered:
        name = (name or "").strip()
        if not name or name in known:
            continue
        known.add(name)
        added.append(name)
    added.sort()

    merged = existing_names + added
    databases_file = DatabasesFile(
        connection=options.connection_name,
        database_type=options.database_type,
        default_database=resolve_default_database(configured, merged, previous_default),
        generated_at=now,
        databases=[DatabaseItem(name=n) for n in merged],
    )
    header = databases_header(options.connection_name, options.database_type)
    write_yaml_with_header(path, databases_file.to_dict(), header, atomic=True)

    if added:
        logger.info("Added %d databases to %s", len(added), path)
    return added


def read_databases_file(path: Path) -> Optional[DatabasesFile]:
    """Load an existing _databases.yml, or None when it does not exist."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as e:
        raise GenerationError(f"read {path.name}: {e}", details={"path": str(path)}) from e

    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise GenerationError(f"parse existing {path.name}: {e}", details={"path": str(path)}) from e

    if data is None:
        return None
    if not isinstance(data, dict):
        raise GenerationError(
            f"parse existing {path.name}: expected a mapping, got {type(data).__name__}",
            details={"path": str(path)},
        )
    return DatabasesFile.from_dict(data)


def generate_table_details(tables: List[TableDetailInput], options: Options) -> List[str]:
    """Write per-table columns files and sample documents.

    A columns file is written only when columns were fetched; a sample
    document only when the sample has rows.

    Returns:
        Paths of the files written
    """
    database = resolve_generation_database(options)
    now = generated_at()
    written: List[str] = []

    for detail in tables:
        table_dir = options.table_dir(database, detail.schema, detail.table)
        _make_dirs(table_dir)
        file_stem = sanitize_name(detail.table)

        if detail.columns is not None:
            columns_file = ColumnsFile(
                schema=detail.schema,
                table=detail.table,
                connection=options.connection_name,
                database=database,
                database_type=options.database_type,
                generated_at=now,
                columns=[ColumnsFileItem.from_column(c) for c in detail.columns],
            )
            path = table_dir / f"{file_stem}__columns.yml"
            header = columns_header(
                options.connection_name, database, options.database_type, detail.schema, detail.table
            )
            write_yaml_with_header(path, columns_file.to_dict(), header)
            written.append(str(path))

        if detail.sample is not None and detail.sample.rows:
            path = table_dir / f"{file_stem}__sample.xml"
            root = build_sample_xml(detail, options, database, now)
            write_xml(path, root)
            written.append(str(path))

    return written


def build_sample_xml(detail: TableDetailInput, options: Options, database: str, now: str) -> ET.Element:
    sample = detail.sample
    root = ET.Element("table_sample")
    root.set("schema", xml_safe(detail.schema))
    root.set("table", xml_safe(detail.table))
    root.set("connection", xml_safe(options.connection_name))
    root.set("database", xml_safe(database))
    root.set("row_count", str(len(sample.rows)))
    root.set("generated_at", now)

    for row in sample.rows:
        row_el = ET.SubElement(root, "row")
        for i, column in enumerate(sample.columns):
            field_el = ET.SubElement(row_el, "field", {"name": xml_safe(column)})
            field_el.text = xml_safe(row[i] if i < len(row) else "")
    return root


def write_enriched_columns_file(columns_input: EnrichedColumnsInput, options: Options) -> str:
    """Atomically write one table's enriched __columns.yml.

    Returns:
        The path written

    Raises:
        GenerationError: if schema, table or columns are missing, or the write fails
        DefaultDatabaseError: if the backend needs an explicit database
    """
    if not columns_input.schema.strip():
        raise GenerationError("schema is required for enriched columns")
    if not columns_input.table.strip():
        raise GenerationError("table is required for enriched columns")
    if not columns_input.columns:
        raise GenerationError(
            f"no columns provided for {columns_input.schema}.{columns_input.table}",
            details={"schema": columns_input.schema, "table": columns_input.table},
        )

    database = resolve_generation_database(options)
    table_dir = options.table_dir(database, columns_input.schema, columns_input.table)
    _make_dirs(table_dir)

    enriched_file = EnrichedColumnsFile(
        schema=columns_input.schema,
        table=columns_input.table,
        connection=options.connection_name,
        database=database,
        database_type=options.database_type,
        generated_at=generated_at(),
        columns=[EnrichedColumnsFileItem.from_profile(c) for c in columns_input.columns],
    )
    path = table_dir / f"{sanitize_name(columns_input.table)}__columns.yml"
    header = enriched_columns_header(
        options.connection_name, database, options.database_type, columns_input.schema, columns_input.table
    )
    write_yaml_with_header(path, enriched_file.to_dict(), header, atomic=True)
    return str(path)


def xml_safe(value: str) -> str:
    """Replace characters XML 1.0 cannot represent with U+FFFD."""
    return _XML_INVALID_CHARS.sub("\ufffd", value or "")


def write_yaml_with_header(path: Path, data: dict, header: str, atomic: bool = False):
    try:
        body = yaml.safe_dump(data, sort_keys=False, allow_unicode=True, default_flow_style=False, width=1000)
    except yaml.YAMLError as e:
        raise GenerationError(f"marshal yaml for {path.name}: {e}", details={"path": str(path)}) from e
    _write_text(path, header + body, atomic)


def write_xml(path: Path, root: ET.Element):
    ET.indent(root, space="  ")
    body = ET.tostring(root, encoding="unicode", short_empty_elements=False)
    _write_text(path, XML_HEADER + body + "\n", atomic=False)


def _write_text(path: Path, content: str, atomic: bool):
    if atomic:
        atomic_write_text(path, content)
        return
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as e:
        raise GenerationError(f"write {path.name}: {e}", details={"path": str(path)}) from e


def atomic_write_text(path: Path, content: str):
    """Write via a temporary file in the same directory and rename it into place.

    Readers see either the previous file or the complete new one. The
    temporary file is removed if anything fails.
    """
    path = Path(path)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, 0o644)
        os.replace(tmp_name, path)
    except OSError as e:
        _remove_quietly(tmp_name)
        raise GenerationError(f"write {path.name}: {e}", details={"path": str(path)}) from e
    except BaseException:
        _remove_quietly(tmp_name)
        raise


def _remove_quietly(path: str):
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


def _make_dirs(directory: Path):
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise GenerationError(f"create directory {directory}: {e}", details={"path": str(directory)}) from e


def _sorted_schemas(schemas: List[SchemaInfo]) -> List[SchemaInfo]:
    return sorted(
        (SchemaInfo(name=s.name, tables=sorted(s.tables, key=lambda t: t.name)) for s in schemas),
        key=lambda s: s.name,
    )
