"""Elasticsearch query compiler.

Renders benchmark queries into Elasticsearch query DSL dicts.

Elasticsearch features used:
- Full text: multi_match over title and content (english analyzer)
- Keyword terms: term on the `tags` keyword field
- Field presence: exists, negated with bool.must_not
- Numeric ranges: range on dotted object paths
"""

from typing import Any, Dict

from crossbench.constants import QueryShape
from crossbench.queries import BenchmarkQuery

from .base import BaseWhere
from .utils import range_bounds, split_field_path

__all__ = (
    "ElasticsearchWhereCompiler",
    "elasticsearch_where",
)

TEXT_FIELDS = ["title", "content"]


class ElasticsearchWhereCompiler(BaseWhere):
    """Compile benchmark queries into query DSL dicts."""

    def keyword_match(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"multi_match": {"query": params["term"], "fields": TEXT_FIELDS}}

    def tag_contains(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"term": {"tags": params["tag"]}}

    def attribute_exists(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"exists": {"field": self._field(params["field"])}}

    def attribute_absent(self, params: Dict[str, Any]) -> Dict[str, Any]:
        return {"bool": {"must_not": [self.attribute_exists(params)]}}

    def attribute_range(self, params: Dict[str, Any]) -> Dict[str, Any]:
        bounds = {op: value for op, value in range_bounds(params)}
        return {"range": {self._field(params["field"]): bounds}}

    def _field(self, field: str) -> str:
        column, path = split_field_path(field)
        return ".".join([column, *path])

    def to_body(self, query: BenchmarkQuery, request_cache: bool = True) -> Dict[str, Any]:
        """Keyword arguments for `count()` (COUNT shape) or `search()` (RESULTS shape)."""
        body: Dict[str, Any] = {"query": self.to_where(query)}
        if query.shape == QueryShape.RESULTS:
            body["size"] = query.limit
            body["track_total_hits"] = False
            body["request_cache"] = request_cache
        return body


elasticsearch_where = ElasticsearchWhereCompiler()
