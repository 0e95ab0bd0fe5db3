"""Error types for dbcontext."""

from typing import Optional, Dict, Any


class DBContextError(Exception):
    """Base exception for dbcontext errors."""

    def __init__(self, message: str, code: str = "DBCONTEXT_ERROR", details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to a dictionary for summaries and logs."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ConfigurationError(DBContextError):
    """Invalid or incomplete configuration, detected before any I/O."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONFIGURATION_ERROR", details=details)


class DefaultDatabaseError(ConfigurationError):
    """No explicit default database for a backend that requires one."""

    def __init__(self, connection: str, database_type: str):
        super().__init__(
            f"no default database configured for connection {connection!r} ({database_type}): "
            "select a database from this connection and set it as the default",
            details={"connection": connection, "database_type": database_type},
        )
        self.code = "DEFAULT_DATABASE_REQUIRED"


class DatabaseConnectionError(DBContextError):
    """Error opening or authenticating a database connection."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="CONNECTION_ERROR", details=details)


class IntrospectionError(DBContextError):
    """Error during catalog, column or sample discovery."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="INTROSPECTION_ERROR", details=details)


class EnrichmentError(DBContextError):
    """Error while profiling a single column.

    Details always identify the column, schema and table so the caller can
    skip just that unit.
    """

    def __init__(
        self,
        message: str,
        column: str,
        schema: str,
        table: str,
        details: Optional[Dict[str, Any]] = None,
    ):
        error_details = details or {}
        error_details.update({"column": column, "schema": schema, "table": table})
        super().__init__(message, code="ENRICHMENT_ERROR", details=error_details)
        self.column = column
        self.schema = schema
        self.table = table


class ValueParseError(DBContextError):
    """A driver value could not be coerced to a number."""

    def __init__(self, value: Any, details: Optional[Dict[str, Any]] = None):
        error_details = details or {}
        error_details["value"] = repr(value)
        super().__init__(f"parse integer from {value!r}", code="VALUE_PARSE_ERROR", details=error_details)
        self.value = value


class GenerationError(DBContextError):
    """Error reading, parsing or writing context documents."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="GENERATION_ERROR", details=details)
