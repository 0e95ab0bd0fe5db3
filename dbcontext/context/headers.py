"""Header comments embedded at the top of every generated YAML file.

The documents are read directly by agents with no other context, so each
header explains where the file sits in the tree and what its fields mean.
"""

RULE = "# " + "=" * 77

DESCRIPTION_FIELDS = """#
# Description fields:
#   ai_description - Intended for AI-authored descriptions.
#   db_description - Intended for database-native descriptions/comments.
# Both are empty when no description data is available."""


def databases_header(connection: str, database_type: str) -> str:
    return f"""{RULE}
# Databases for connection: {connection}
# Connection: {connection} | Type: {database_type}
{RULE}
#
# This file was generated by dbcontext to provide LLM-friendly database context.
#
# Structure:
#   _databases.yml (this file)               - List of databases in this connection
#   <database>/schemas/_schemas.yml           - Schemas within each database
#   <database>/schemas/<schema>/_tables.yml   - Tables within each schema
#
# To explore a database, navigate into its directory.
{RULE}

"""


def schemas_header(connection: str, database: str, database_type: str) -> str:
    return f"""{RULE}
# Database Schema Context
# Connection: {connection} | Database: {database} | Type: {database_type}
{RULE}
#
# This file was generated by dbcontext to provide LLM-friendly database context.
#
# Structure:
#   _schemas.yml (this file)                 - Overview of all schemas
#   <schema_name>/_tables.yml                - Tables within each schema
#
# To explore a specific schema, navigate into the schema subdirectory.
# Each schema directory contains a _tables.yml with its table listing.
{DESCRIPTION_FIELDS}
{RULE}

"""


def tables_header(connection: str, database: str, database_type: str, schema: str) -> str:
    return f"""{RULE}
# Tables in schema: {schema}
# Connection: {connection} | Database: {database} | Type: {database_type}
{RULE}
#
# This file lists all tables and views in the "{schema}" schema.
{DESCRIPTION_FIELDS}
{RULE}

"""


def columns_header(connection: str, database: str, database_type: str, schema: str, table: str) -> str:
    return f"""{RULE}
# Columns for table: {schema}.{table}
# Connection: {connection} | Database: {database} | Type: {database_type}
{RULE}
#
# This file was generated by dbcontext to provide LLM-friendly table column context.
#
# Column fields:
#   name             - Column name
#   data_type        - Database data type
#   is_nullable      - Whether the column allows NULL values (YES/NO)
#   ordinal_position - Column position in the table
#   column_default   - Default value expression (if any)
{RULE}

"""


def enriched_columns_header(connection: str, database: str, database_type: str, schema: str, table: str) -> str:
    return f"""{RULE}
# Enriched columns for table: {schema}.{table}
# Connection: {connection} | Database: {database} | Type: {database_type}
{RULE}
#
# This file was generated by dbcontext columns to provide enriched per-column context.
#
# Column fields:
#   name                       - Column name
#   data_type                  - Database data type
#   is_nullable                - Whether NULL is allowed (YES/NO)
#   ordinal_position           - Column position in the table
#   column_default             - Default expression (if any)
#   ai_description             - Blank placeholder for future AI descriptions
#   db_description             - Database-native description/comment (if available)
#   total_rows                 - Total rows in table at profiling time
#   null_count                 - Rows where this column is NULL
#   non_null_count             - Rows where this column is NOT NULL
#   distinct_non_null_count    - Distinct non-NULL values
#   distinct_of_non_null_pct   - distinct_non_null_count / non_null_count * 100
#   null_of_total_rows_pct     - null_count / total_rows * 100
#   non_null_of_total_rows_pct - non_null_count / total_rows * 100
#   sample_values              - Up to 5 truncated example values
{RULE}

"""
