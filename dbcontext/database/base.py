"""Capability interfaces implemented by every backend adapter.

There is no shared implementation here: each backend is a standalone
strategy that satisfies these contracts against its own catalog views and
quoting rules.
"""

from abc import ABC, abstractmethod
from typing import Optional, List

from .models import ColumnInfo, EnrichedColumnInfo, SampleResult, SchemaInfo


class Discoverer(ABC):
    """Lists schemas and their tables for one database connection."""

    @abstractmethod
    def discover(self, timeout: Optional[float] = None) -> List[SchemaInfo]:
        """Return every non-system schema together with its tables.

        The call is all-or-nothing: a failure while reading any schema's
        tables fails the whole call.

        Args:
            timeout: Deadline in seconds for the catalog queries

        Raises:
            DatabaseConnectionError: if the connection cannot be opened
            IntrospectionError: if a catalog query fails or times out
        """

    @abstractmethod
    def close(self):
        """Release the underlying connection. Safe to call more than once."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


class TableDetailDiscoverer(Discoverer):
    """Adds column metadata, sample rows and column profiling."""

    @abstractmethod
    def get_columns(self, schema: str, table: str, timeout: Optional[float] = None) -> List[ColumnInfo]:
        """Return column metadata in catalog ordinal order."""

    @abstractmethod
    def get_sample_rows(
        self, schema: str, table: str, limit: int, timeout: Optional[float] = None
    ) -> SampleResult:
        """Return a random sample of at most `limit` rows, stringified."""

    @abstractmethod
    def get_column_enrichment(
        self, schema: str, table: str, column: ColumnInfo, timeout: Optional[float] = None
    ) -> EnrichedColumnInfo:
        """Return the statistical profile of a single column.

        Raises:
            EnrichmentError: if profiling this column fails
        """


class DatabaseLister(ABC):
    """Lists the databases reachable through one connection."""

    @abstractmethod
    def list_databases(self, timeout: Optional[float] = None) -> List[str]:
        """Return the names of databases accessible to the current role."""

    @abstractmethod
    def close(self):
        """Release the underlying connection. Safe to call more than once."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
