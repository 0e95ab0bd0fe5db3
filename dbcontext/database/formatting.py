"""Identifier quoting, value stringification and numeric coercion.

Every backend adapter routes driver values through these helpers so that
sample rows, sample values and profile counts look the same no matter
which driver produced them.
"""

import datetime
import json
import math
import uuid
from decimal import Decimal, InvalidOperation
from typing import Any

from ..errors import ValueParseError


def quote_postgres_identifier(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def quote_redshift_identifier(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def quote_snowflake_identifier(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def quote_sqlite_identifier(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def quote_mysql_identifier(identifier: str) -> str:
    return "`" + identifier.replace("`", "``") + "`"


def quote_bigquery_identifier(identifier: str) -> str:
    return "`" + identifier.replace("`", "``") + "`"


def quote_sqlite_string_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def format_value(value: Any) -> str:
    """Convert any driver value to its string representation.

    NULL becomes an empty string. Dates and timestamps at exact midnight are
    rendered as plain dates, other timestamps as RFC3339. Nested values
    (dicts, lists) are rendered as compact JSON.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return _format_float(value)
    if isinstance(value, Decimal):
        return _format_decimal(value)
    if isinstance(value, datetime.datetime):
        return _format_datetime(value)
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        return str(value)
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (dict, list, tuple)):
        return json.dumps(_jsonable(value), separators=(",", ":"), sort_keys=True, ensure_ascii=False)
    return str(value)


def _format_float(value: float) -> str:
    if math.isnan(value) or math.isinf(value):
        return str(value)
    if value.is_integer() and abs(value) < 1e21:
        return str(int(value))
    text = repr(value)
    if "e" in text or "E" in text:
        return _format_decimal(Decimal(text))
    return text


def _format_decimal(value: Decimal) -> str:
    if not value.is_finite():
        return str(value)
    return format(value, "f")


def _format_datetime(value: datetime.datetime) -> str:
    if value.hour == 0 and value.minute == 0 and value.second == 0 and value.microsecond == 0:
        return value.date().isoformat()
    text = value.isoformat()
    offset = value.utcoffset()
    if offset is not None and offset == datetime.timedelta(0):
        text = text[: -len("+00:00")] + "Z"
    return text


def _jsonable(value: Any) -> Any:
    """Recursively convert a nested value into JSON-serializable primitives."""
    if value is None or isinstance(value, (str, bool, int)):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return str(value)
        return value
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return format_value(value)


def int_from_db_value(value: Any) -> int:
    """Coerce a raw aggregate value returned by a driver into an int.

    Accepts native integers, floats, Decimals, byte strings and
    string-encoded numbers. NULL and blank strings count as 0. Anything
    that cannot be parsed raises ValueParseError rather than guessing.
    """
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            raise ValueParseError(value)
        return int(value)
    if isinstance(value, Decimal):
        if not value.is_finite():
            raise ValueParseError(value)
        return int(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return _parse_int_string(bytes(value).decode("utf-8", errors="replace"))
    if isinstance(value, str):
        return _parse_int_string(value)
    return _parse_int_string(format_value(value))


def _parse_int_string(raw: str) -> int:
    text = raw.strip()
    if text == "":
        return 0
    try:
        return int(text)
    except ValueError:
        pass
    try:
        parsed = Decimal(text)
    except InvalidOperation:
        raise ValueParseError(raw) from None
    if not parsed.is_finite():
        raise ValueParseError(raw)
    return int(parsed)
