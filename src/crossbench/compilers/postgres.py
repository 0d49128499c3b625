"""PostgreSQL where compiler.

Renders benchmark queries into parameterized SQL WHERE clauses over the
documents table.

PostgreSQL features used:
- Full text: search_vector @@ plainto_tsquery('english', ...)
- JSONB containment: tags @> '["python"]'
- JSONB key existence: attributes ? 'key', nested via #>
- JSONB extraction with numeric cast for ranges: (attributes #>> '{metrics,score}')::numeric

Limitations:
- Keyword matches rely on search_vector, which is populated by the post-load
  finalize step; rows not yet finalized never match
"""

import json
from typing import Any, Dict, List, Tuple

from crossbench.constants import QueryShape
from crossbench.queries import BenchmarkQuery, QueryKind

from .base import BaseWhere
from .utils import RANGE_OPS, quote_identifier, range_bounds, split_field_path

__all__ = (
    "PostgresWhereCompiler",
    "postgres_where",
)

SqlFragment = Tuple[str, List[Any]]

TEXT_SEARCH_CONFIG = "english"


class PostgresWhereCompiler(BaseWhere):
    """Compile benchmark queries into (sql, params) WHERE fragments."""

    def keyword_match(self, params: Dict[str, Any]) -> SqlFragment:
        return f"search_vector @@ plainto_tsquery('{TEXT_SEARCH_CONFIG}', %s)", [params["term"]]

    def tag_contains(self, params: Dict[str, Any]) -> SqlFragment:
        return "tags @> %s::jsonb", [json.dumps([params["tag"]])]

    def attribute_exists(self, params: Dict[str, Any]) -> SqlFragment:
        return self._exists_expr(params["field"])

    def attribute_absent(self, params: Dict[str, Any]) -> SqlFragment:
        column, _ = split_field_path(params["field"])
        expr, values = self._exists_expr(params["field"])
        # NULL documents (flat variant) lack the key as well.
        return f"({quote_identifier(column)} IS NULL OR NOT COALESCE({expr}, false))", values

    def attribute_range(self, params: Dict[str, Any]) -> SqlFragment:
        column, path = split_field_path(params["field"])
        lhs = f"({quote_identifier(column)} #>> %s::text[])::numeric"
        parts: List[str] = []
        values: List[Any] = []
        for op, bound in range_bounds(params):
            parts.append(f"{lhs} {RANGE_OPS[op]} %s")
            values.extend([path, bound])
        return " AND ".join(parts), values

    def _exists_expr(self, field: str) -> SqlFragment:
        column, path = split_field_path(field)
        ident = quote_identifier(column)
        if len(path) == 1:
            return f"({ident} ? %s)", [path[0]]
        return f"(({ident} #> %s::text[]) ? %s)", [path[:-1], path[-1]]

    def to_order(self, query: BenchmarkQuery) -> SqlFragment:
        """ORDER BY fragment for result-set queries: rank for keyword matches, id otherwise."""
        if query.kind == QueryKind.KEYWORD_MATCH:
            return (
                f"ts_rank(search_vector, plainto_tsquery('{TEXT_SEARCH_CONFIG}', %s)) DESC, id",
                [query.params["term"]],
            )
        return "id", []

    def to_statement(self, table: str, query: BenchmarkQuery) -> SqlFragment:
        """Full SELECT for a query: count(*) for COUNT shape, top-N rows for RESULTS."""
        where, values = self.to_where(query)
        table_ident = quote_identifier(table)
        if query.shape == QueryShape.COUNT:
            return f"SELECT count(*) FROM {table_ident} WHERE {where}", values
        order, order_values = self.to_order(query)
        sql = (
            f"SELECT id, title, content, created_at, tags, attributes FROM {table_ident} "
            f"WHERE {where} ORDER BY {order} LIMIT %s"
        )
        return sql, [*values, *order_values, query.limit]


postgres_where = PostgresWhereCompiler()
