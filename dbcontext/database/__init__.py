"""Database discovery module for dbcontext.

This module provides backend-agnostic schema discovery, column metadata,
sampling and column profiling, with adapters for Postgres, Redshift,
Snowflake, MySQL, BigQuery and SQLite.
"""

from .models import (
    DatabaseConfig,
    SchemaInfo,
    TableInfo,
    ColumnInfo,
    EnrichedColumnInfo,
    SampleResult,
)
from .base import Discoverer, TableDetailDiscoverer, DatabaseLister
from .factory import (
    new_discoverer,
    new_table_detail_discoverer,
    new_database_lister,
    supported_database_types,
)
from .enrichment import (
    percent_of_total,
    normalize_column_sample_values,
    should_skip_column_samples,
)

__all__ = [
    # Data models
    "DatabaseConfig",
    "SchemaInfo",
    "TableInfo",
    "ColumnInfo",
    "EnrichedColumnInfo",
    "SampleResult",
    # Interfaces
    "Discoverer",
    "TableDetailDiscoverer",
    "DatabaseLister",
    # Factory
    "new_discoverer",
    "new_table_detail_discoverer",
    "new_database_lister",
    "supported_database_types",
    # Enrichment policy
    "percent_of_total",
    "normalize_column_sample_values",
    "should_skip_column_samples",
]
