"""SQL text builders shared by the manager and the load tool."""

from __future__ import annotations

import math
import re
from datetime import date, datetime
from typing import Any, Iterable, Sequence

from hps_conditions.core.schema import is_identifier

_INT_TOKEN_RE = re.compile(r"^[+-]?[0-9]+\Z")
_FLOAT_TOKEN_RE = re.compile(r"^[+-]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?\Z")


def sql_literal(value: Any) -> str:
    """Render a Python value as a SQL literal."""
    if value is None:
        return "NULL"
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return "NULL"
        return repr(value)
    if isinstance(value, datetime):
        return "'" + value.strftime("%Y-%m-%d %H:%M:%S") + "'"
    if isinstance(value, date):
        return "'" + value.isoformat() + "'"
    return "'" + str(value).replace("'", "''") + "'"


def text_literal(token: str) -> str:
    """
    Render a token read from a text file.

    Plain ASCII integers and decimal floats are written unquoted, everything
    else as a string. A float that overflows raises ``ValueError``.
    """
    if _INT_TOKEN_RE.match(token):
        return str(int(token))
    if not _FLOAT_TOKEN_RE.match(token):
        return sql_literal(token)
    if math.isinf(float(token)):
        raise ValueError(f"Numeric value out of range: {token}")
    return token


def build_insert(
    table_name: str, columns: Sequence[str], rows: Iterable[Sequence[str]]
) -> str:
    """
    Build one multi-row ``INSERT`` statement.

    ``rows`` hold already rendered literals, one per column.
    """
    for identifier in (table_name, *columns):
        if not is_identifier(identifier):
            raise ValueError(f"Invalid SQL identifier: {identifier!r}")
    value_groups = []
    for row in rows:
        if len(row) != len(columns):
            raise ValueError(
                f"Row has {len(row)} values but {len(columns)} columns were given."
            )
        value_groups.append("(" + ", ".join(row) + ")")
    if not value_groups:
        raise ValueError("No rows to insert.")
    return (
        f"INSERT INTO {table_name} ({', '.join(columns)}) VALUES "
        + ", ".join(value_groups)
    )
