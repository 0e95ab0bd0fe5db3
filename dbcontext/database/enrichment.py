"""Column enrichment engine.

Profiles a single column with one aggregate query (total rows, NULLs,
non-NULLs, distinct non-NULLs) and one sample query (distinct non-NULL
values). The SQL is supplied by each backend adapter; the policy for
rounding, truncation, deduplication and vector exemption lives here so
every backend produces identical profiles.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional, Sequence

from ..errors import DBContextError, EnrichmentError, ValueParseError
from .formatting import format_value, int_from_db_value
from .models import ColumnInfo, EnrichedColumnInfo

logger = logging.getLogger(__name__)

COLUMN_PROFILE_SAMPLE_VALUE_LIMIT = 5
MAX_COLUMN_SAMPLE_VALUE_LENGTH = 180
TRUNCATION_MARKER = "..."

# Distinct values fetched before dedup/trim; some collapse after truncation.
SAMPLE_QUERY_LIMIT = 25

# Server-side cut keeps one extra character so truncation stays detectable.
SAMPLE_QUERY_VALUE_LENGTH = MAX_COLUMN_SAMPLE_VALUE_LENGTH + 1

STAT_FIELDS = ("total_rows", "null_count", "non_null_count", "distinct_non_null_count")

QueryRunner = Callable[[str], Sequence[Sequence[Any]]]


@dataclass(frozen=True)
class ProfileQueries:
    """Backend-specific SQL for profiling one column."""
    stats_sql: str
    samples_sql: str


def percent_of_total(numerator: int, denominator: int) -> float:
    """Percentage of numerator over denominator, rounded to 4 decimals.

    Returns 0 when the denominator is zero or negative; the result is
    always within [0, 100].
    """
    if denominator <= 0:
        return 0.0
    value = (float(numerator) / float(denominator)) * 100
    value = min(max(value, 0.0), 100.0)
    return math.floor(value * 10000 + 0.5) / 10000


def should_skip_column_samples(data_type: str) -> bool:
    """Vector columns are never sampled."""
    return "vector" in (data_type or "").strip().lower()


def truncate_column_sample_value(value: str) -> str:
    if len(value) <= MAX_COLUMN_SAMPLE_VALUE_LENGTH:
        return value
    return value[: MAX_COLUMN_SAMPLE_VALUE_LENGTH - len(TRUNCATION_MARKER)] + TRUNCATION_MARKER


def normalize_column_sample_values(values: Optional[Iterable[str]]) -> List[str]:
    """Trim, truncate, deduplicate and cap sample values.

    First-seen order is preserved. Blank values are dropped. Deduplication
    happens after truncation so two long values sharing a prefix collapse
    into one entry.
    """
    out: List[str] = []
    if not values:
        return out

    seen = set()
    for raw in values:
        value = (raw or "").strip()
        if not value:
            continue
        value = truncate_column_sample_value(value)
        if value in seen:
            continue
        seen.add(value)
        out.append(value)
        if len(out) >= COLUMN_PROFILE_SAMPLE_VALUE_LIMIT:
            break
    return out


def apply_stats(profile: EnrichedColumnInfo, stats_row: Sequence[Any]) -> EnrichedColumnInfo:
    """Fill counts and derived percentages from a raw stats row.

    Raises:
        ValueError: if the row has fewer than four values
        ValueParseError: if a value cannot be coerced to an integer
    """
    if stats_row is None or len(stats_row) < len(STAT_FIELDS):
        got = 0 if stats_row is None else len(stats_row)
        raise ValueError(f"expected {len(STAT_FIELDS)} stats values, got {got}")

    for field_name, raw in zip(STAT_FIELDS, stats_row):
        try:
            setattr(profile, field_name, int_from_db_value(raw))
        except ValueParseError as e:
            e.details["field"] = field_name
            raise

    profile.distinct_of_non_null_pct = percent_of_total(profile.distinct_non_null_count, profile.non_null_count)
    profile.null_of_total_rows_pct = percent_of_total(profile.null_count, profile.total_rows)
    profile.non_null_of_total_rows_pct = percent_of_total(profile.non_null_count, profile.total_rows)
    return profile


def profile_column(
    run_query: QueryRunner,
    column: ColumnInfo,
    queries: ProfileQueries,
    backend: str,
    schema: str,
    table: str,
    format_sample: Callable[[Any], str] = format_value,
) -> EnrichedColumnInfo:
    """Run the stats and sample queries for one column and build its profile.

    Args:
        run_query: Executes SQL and returns all rows as sequences
        column: Catalog metadata of the column to profile
        queries: Backend-specific stats and sample SQL
        backend: Backend name used in error messages
        schema: Schema (or dataset/attached database) name
        table: Table name
        format_sample: Stringifies one sample cell

    Returns:
        EnrichedColumnInfo with counts, percentages and sample values

    Raises:
        EnrichmentError: if any query fails or a value cannot be parsed;
            only this column is affected
    """
    profile = EnrichedColumnInfo.from_column(column)
    context = {"backend": backend}

    try:
        rows = run_query(queries.stats_sql)
    except Exception as e:
        raise EnrichmentError(
            f"profile {backend} column {column.name!r} on {schema}.{table}: {_describe(e)}",
            column=column.name, schema=schema, table=table, details=context,
        ) from e

    try:
        apply_stats(profile, rows[0] if rows else None)
    except (ValueError, ValueParseError) as e:
        raise EnrichmentError(
            f"parse stats for {column.name!r} on {schema}.{table}: {_describe(e)}",
            column=column.name, schema=schema, table=table, details=context,
        ) from e

    if should_skip_column_samples(column.data_type):
        logger.debug("Skipping sample values for vector column %s.%s.%s", schema, table, column.name)
        return profile

    try:
        sample_rows = run_query(queries.samples_sql)
    except Exception as e:
        raise EnrichmentError(
            f"query {backend} sample values for {column.name!r} on {schema}.{table}: {_describe(e)}",
            column=column.name, schema=schema, table=table, details=context,
        ) from e

    samples = [format_sample(row[0]) for row in sample_rows if row]
    profile.sample_values = normalize_column_sample_values(samples)
    return profile


def _describe(error: Exception) -> str:
    if isinstance(error, DBContextError):
        return error.message
    return str(error) or type(error).__name__
