"""Compiler utility functions.

Provides helpers for quoting identifiers and splitting attribute paths.
"""

import re
from typing import List, Tuple

from crossbench.exceptions import InvalidConfigError, QueryError

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

RANGE_OPS = {
    "gt": ">",
    "gte": ">=",
    "lt": "<",
    "lte": "<=",
}


def quote_identifier(name: str) -> str:
    """Quote SQL identifier with double quotes.

    Only plain identifiers are accepted since table names come from configuration.

    Raises:
        InvalidConfigError: If the name is not a plain identifier
    """
    if not _IDENTIFIER.match(name or ""):
        raise InvalidConfigError("Invalid identifier", value=name, expected="[A-Za-z_][A-Za-z0-9_]*")
    return f'"{name}"'


def split_field_path(field: str) -> Tuple[str, List[str]]:
    """Split `attributes.metrics.score` into ("attributes", ["metrics", "score"]).

    Raises:
        QueryError: If the path is empty or has more than two levels below the column
    """
    column, _, rest = (field or "").partition(".")
    path = [p for p in rest.split(".") if p] if rest else []
    if not column or not path:
        raise QueryError("Attribute path must name a column and a key", field=field)
    if len(path) > 2:
        raise QueryError("Attribute path nests deeper than two levels", field=field)
    return column, path


def range_bounds(params: dict) -> List[Tuple[str, float]]:
    """Return (op, value) pairs for every range bound present in params.

    Raises:
        QueryError: If no bound is given
    """
    bounds = [(op, params[op]) for op in RANGE_OPS if op in params]
    if not bounds:
        raise QueryError("Range query needs at least one bound", field=params.get("field"))
    return bounds
