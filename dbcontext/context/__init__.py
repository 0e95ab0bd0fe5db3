"""Context document generation for dbcontext.

Turns discovery results into the YAML/XML tree under
`<base>/context/connections/<connection>/`.
"""

from .documents import EnrichedColumnsInput, TableDetailInput
from .generator import (
    DEFAULT_DATABASE_SENTINEL,
    Options,
    generate,
    generate_table_details,
    resolve_default_database,
    resolve_generation_database,
    sanitize_name,
    update_databases_file,
    write_enriched_columns_file,
)

__all__ = [
    "Options",
    "TableDetailInput",
    "EnrichedColumnsInput",
    "DEFAULT_DATABASE_SENTINEL",
    "generate",
    "update_databases_file",
    "generate_table_details",
    "write_enriched_columns_file",
    "resolve_default_database",
    "resolve_generation_database",
    "sanitize_name",
]
