"""BigQuery discovery adapter.

The project plays the role of the database and datasets play the role of
schemas. Catalog reads go through the client's REST metadata calls; stats,
samples and sample rows run as query jobs in the dataset's location.
"""

import logging
from typing import Any, Dict, List, Optional

from ..errors import DatabaseConnectionError, IntrospectionError
from .base import DatabaseLister, TableDetailDiscoverer
from .enrichment import ProfileQueries, SAMPLE_QUERY_LIMIT, SAMPLE_QUERY_VALUE_LENGTH, profile_column
from .formatting import format_value, quote_bigquery_identifier
from .models import ColumnInfo, DatabaseConfig, EnrichedColumnInfo, SampleResult, SchemaInfo, TableInfo
from .querying import Deadline, effective_sample_limit

logger = logging.getLogger(__name__)

SYSTEM_DATASETS = {"INFORMATION_SCHEMA", "_SESSION", "_SCRIPT"}

TABLE_TYPES = {
    "TABLE": "BASE TABLE",
    "VIEW": "VIEW",
    "MATERIALIZED_VIEW": "MATERIALIZED VIEW",
    "EXTERNAL": "EXTERNAL TABLE",
    "SNAPSHOT": "SNAPSHOT",
}

PROJECT_LIST_PAGE_SIZE = 1000


def resolve_bigquery_project_id(config: DatabaseConfig) -> str:
    """Project used for discovery: the configured database, else project_id."""
    return config.database.strip() or config.project_id.strip()


def resolve_bigquery_seed_project_id(config: DatabaseConfig) -> str:
    """Project used for listing: project_id, else the configured database."""
    return config.project_id.strip() or config.database.strip()


def is_bigquery_system_dataset(name: str) -> bool:
    return name.strip().upper() in SYSTEM_DATASETS


def normalize_bigquery_table_type(table_type: Optional[str]) -> str:
    raw = (table_type or "").strip().upper()
    if not raw:
        return "BASE TABLE"
    return TABLE_TYPES.get(raw, raw.replace("_", " "))


def bigquery_field_data_type(field) -> str:
    """Render a schema field's type; repeated fields become ARRAY<...>, records STRUCT<...>."""
    base_type = (field.field_type or "").strip().upper()
    if base_type in ("RECORD", "STRUCT"):
        base_type = bigquery_struct_type(field.fields)
    if (field.mode or "").upper() == "REPEATED":
        return f"ARRAY<{base_type}>"
    return base_type


def bigquery_struct_type(fields) -> str:
    parts = [f"{f.name} {bigquery_field_data_type(f) or 'STRING'}" for f in (fields or []) if f is not None]
    if not parts:
        return "STRUCT"
    return "STRUCT<{}>".format(", ".join(parts))


def bigquery_column_info(field, ordinal: int) -> ColumnInfo:
    mode = (field.mode or "NULLABLE").upper()
    return ColumnInfo(
        name=field.name,
        data_type=bigquery_field_data_type(field),
        is_nullable="NO" if mode == "REQUIRED" else "YES",
        ordinal_position=ordinal,
        column_default=(getattr(field, "default_value_expression", None) or "").strip(),
    )


def quote_bigquery_table_reference(project_id: str, dataset: str, table: str) -> str:
    return quote_bigquery_identifier(".".join([project_id.strip(), dataset.strip(), table.strip()]))


def quote_bigquery_column_path(column_path: str) -> str:
    """Quote each part of a dotted column path separately."""
    parts = [part.strip() for part in column_path.strip().split(".") if part.strip()]
    if not parts:
        return quote_bigquery_identifier(column_path)
    return ".".join(quote_bigquery_identifier(part) for part in parts)


def bigquery_profile_queries(project_id: str, dataset: str, table: str, column: str) -> ProfileQueries:
    quoted_table = quote_bigquery_table_reference(project_id, dataset, table)
    col = quote_bigquery_column_path(column)
    stats_sql = f"""
        SELECT
            COUNT(1) AS total_rows,
            COUNTIF({col} IS NULL) AS null_count,
            COUNTIF({col} IS NOT NULL) AS non_null_count,
            COUNT(DISTINCT IF({col} IS NULL, NULL, TO_JSON_STRING({col}))) AS distinct_non_null_count
        FROM {quoted_table}
    """
    samples_sql = f"""
        SELECT DISTINCT LEFT(TO_JSON_STRING({col}), {SAMPLE_QUERY_VALUE_LENGTH})
        FROM {quoted_table}
        WHERE {col} IS NOT NULL
        LIMIT {SAMPLE_QUERY_LIMIT}
    """
    return ProfileQueries(stats_sql=stats_sql, samples_sql=samples_sql)


def bigquery_column_names(schema, fallback_count: int = 0) -> List[str]:
    if schema:
        return [(field.name or "").strip() or f"column_{i + 1}" for i, field in enumerate(schema)]
    return [f"column_{i + 1}" for i in range(fallback_count)]


def _new_client(project_id: str, credentials_file: str = ""):
    try:
        from google.cloud import bigquery
    except ImportError:
        raise ImportError(
            "google-cloud-bigquery is required for BigQuery connections. "
            "Install it with: pip install google-cloud-bigquery"
        )
    if credentials_file:
        return bigquery.Client.from_service_account_json(credentials_file, project=project_id)
    return bigquery.Client(project=project_id)


def open_bigquery_client(config: DatabaseConfig, project_id: str):
    if not project_id:
        raise DatabaseConnectionError(
            "bigquery requires project_id or database (project)", details={"backend": "bigquery"}
        )
    try:
        return _new_client(project_id, config.credentials_file.strip())
    except ImportError:
        raise
    except Exception as e:
        raise DatabaseConnectionError(
            f"open bigquery client: {e}", details={"backend": "bigquery", "project": project_id}
        ) from e


class BigQueryDiscoverer(TableDetailDiscoverer):
    """Discovers datasets, tables, columns and profiles in one BigQuery project."""

    BACKEND = "bigquery"

    def __init__(self, config: DatabaseConfig, connect_timeout: Optional[float] = None):
        self.config = config
        self.project_id = resolve_bigquery_project_id(config)
        self.connect_timeout = connect_timeout
        self._client = None
        self._dataset_locations: Dict[str, str] = {}

    def connect(self):
        if self._client is None:
            self._client = open_bigquery_client(self.config, self.project_id)
        return self._client

    def close(self):
        if self._client is not None:
            self._client.close()
            self._client = None

    def discover(self, timeout: Optional[float] = None) -> List[SchemaInfo]:
        client = self.connect()
        deadline = Deadline(timeout)
        try:
            datasets = sorted(
                item.dataset_id.strip()
                for item in client.list_datasets(project=self.project_id, timeout=deadline.remaining())
                if item.dataset_id and item.dataset_id.strip()
                and not is_bigquery_system_dataset(item.dataset_id)
            )
        except Exception as e:
            raise IntrospectionError(
                f"query bigquery datasets: {e}", details={"backend": self.BACKEND, "project": self.project_id}
            ) from e

        schemas = []
        for dataset in datasets:
            try:
                tables = self._get_tables(client, dataset, deadline)
            except Exception as e:
                raise IntrospectionError(
                    f"get tables for dataset {dataset!r}: {e}",
                    details={"backend": self.BACKEND, "project": self.project_id, "schema": dataset},
                ) from e
            schemas.append(SchemaInfo(name=dataset, tables=tables))
        return schemas

    def _get_tables(self, client, dataset: str, deadline: Deadline) -> List[TableInfo]:
        tables = [
            TableInfo(name=item.table_id, table_type=normalize_bigquery_table_type(item.table_type))
            for item in client.list_tables(f"{self.project_id}.{dataset}", timeout=deadline.remaining())
        ]
        return sorted(tables, key=lambda t: t.name)

    def get_columns(self, schema: str, table: str, timeout: Optional[float] = None) -> List[ColumnInfo]:
        client = self.connect()
        deadline = Deadline(timeout)
        try:
            metadata = client.get_table(f"{self.project_id}.{schema}.{table}", timeout=deadline.remaining())
        except Exception as e:
            raise IntrospectionError(
                f"query bigquery columns metadata: {e}",
                details={"backend": self.BACKEND, "schema": schema, "table": table},
            ) from e
        return [bigquery_column_info(field, idx + 1) for idx, field in enumerate(metadata.schema or [])]

    def get_sample_rows(self, schema: str, table: str, limit: int, timeout: Optional[float] = None) -> SampleResult:
        sql = "SELECT * FROM {} ORDER BY RAND() LIMIT {:d}".format(
            quote_bigquery_table_reference(self.project_id, schema, table),
            effective_sample_limit(limit),
        )
        try:
            rows = self._run_query(schema, sql, Deadline(timeout))
            result = SampleResult()
            for row in rows:
                values = list(row.values())
                if not result.columns:
                    result.columns = bigquery_column_names(rows.schema, len(values))
                result.rows.append([format_value(value) for value in values])
            if not result.columns:
                result.columns = bigquery_column_names(rows.schema)
        except Exception as e:
            raise IntrospectionError(
                f"query bigquery sample rows: {e}",
                details={"backend": self.BACKEND, "schema": schema, "table": table},
            ) from e
        return result

    def get_column_enrichment(
        self, schema: str, table: str, column: ColumnInfo, timeout: Optional[float] = None
    ) -> EnrichedColumnInfo:
        deadline = Deadline(timeout)
        queries = bigquery_profile_queries(self.project_id, schema, table, column.name)

        def run(sql):
            return [list(row.values()) for row in self._run_query(schema, sql, deadline)]

        return profile_column(run, column, queries, self.BACKEND, schema, table)

    def _run_query(self, dataset: str, sql: str, deadline: Deadline):
        client = self.connect()
        location = self.dataset_location(dataset, deadline)
        logger.debug("bigquery query in %s (location %s)", dataset, location or "default")
        job = client.query(sql, location=location or None, timeout=deadline.remaining())
        return job.result(timeout=deadline.remaining())

    def dataset_location(self, dataset: str, deadline: Optional[Deadline] = None) -> str:
        """Location of a dataset, cached per discoverer; blank when unknown."""
        from google.api_core.exceptions import GoogleAPIError

        dataset = dataset.strip()
        if not dataset:
            return ""
        if dataset in self._dataset_locations:
            return self._dataset_locations[dataset]

        deadline = deadline or Deadline()
        try:
            metadata = self.connect().get_dataset(f"{self.project_id}.{dataset}", timeout=deadline.remaining())
        except GoogleAPIError as e:
            logger.warning("Could not read location of dataset %s: %s", dataset, e)
            return ""
        location = (metadata.location or "").strip()
        self._dataset_locations[dataset] = location
        return location


class BigQueryDatabaseLister(DatabaseLister):
    """Lists projects visible to the credentials.

    Falls back to the seed project when listing fails or returns nothing,
    since many service accounts cannot list projects at all.
    """

    BACKEND = "bigquery"

    def __init__(self, config: DatabaseConfig, connect_timeout: Optional[float] = None):
        self.config = config
        self.seed_project_id = resolve_bigquery_seed_project_id(config)
        self.connect_timeout = connect_timeout
        self._client = None

    def connect(self):
        if self._client is None:
            self._client = open_bigquery_client(self.config, self.seed_project_id)
        return self._client

    def close(self):
        if self._client is not None:
            self._client.close()
            self._client = None

    def list_databases(self, timeout: Optional[float] = None) -> List[str]:
        from google.api_core.exceptions import GoogleAPIError

        client = self.connect()
        deadline = Deadline(timeout)
        projects: List[str] = []
        try:
            for item in client.list_projects(max_results=PROJECT_LIST_PAGE_SIZE, timeout=deadline.remaining()):
                project_id = (getattr(item, "project_id", None) or "").strip()
                if project_id and project_id not in projects:
                    projects.append(project_id)
        except GoogleAPIError as e:
            if self.seed_project_id:
                logger.warning("Listing bigquery projects failed, using %s: %s", self.seed_project_id, e)
                return [self.seed_project_id]
            raise IntrospectionError(
                f"query bigquery projects: {e}", details={"backend": self.BACKEND}
            ) from e

        if not projects and self.seed_project_id:
            projects.append(self.seed_project_id)
        return sorted(projects)
