"""Fixed benchmark query set.

Each query is a tagged variant: a predicate kind plus its parameters. The
backend-native rendering lives in `crossbench.compilers`; nothing here is
backend-specific.
"""

from enum import Enum
from typing import Any, Dict, List, Tuple

from pydantic import BaseModel, ConfigDict, Field

from crossbench.constants import QueryShape

__all__ = (
    "QueryKind",
    "BenchmarkQuery",
    "DEFAULT_QUERIES",
    "default_queries",
)


class QueryKind(str, Enum):
    KEYWORD_MATCH = "keyword_match"
    TAG_CONTAINS = "tag_contains"
    ATTRIBUTE_EXISTS = "attribute_exists"
    ATTRIBUTE_ABSENT = "attribute_absent"
    ATTRIBUTE_RANGE = "attribute_range"


class BenchmarkQuery(BaseModel):
    """One entry of the fixed query set.

    Attributes:
        label: Stable name used to pair results across backends
        kind: Predicate kind, selects the compiler method
        shape: COUNT for count-only, RESULTS for a materialized top-N result set
        params: Predicate parameters (term, tag, field, bounds, limit)
    """

    model_config = ConfigDict(frozen=True)

    label: str
    kind: QueryKind
    shape: QueryShape = QueryShape.COUNT
    params: Dict[str, Any] = Field(default_factory=dict)

    @property
    def limit(self) -> int | None:
        return self.params.get("limit") if self.shape == QueryShape.RESULTS else None


def default_queries(result_limit: int = 10) -> Tuple[BenchmarkQuery, ...]:
    """Build the eight benchmark queries.

    Covers full-text count and top-N, tag hit and guaranteed miss, existence of
    an always-present and a sometimes-absent attribute, the absent complement,
    and a numeric range over a nested attribute.
    """
    queries: List[BenchmarkQuery] = [
        BenchmarkQuery(label="keyword_match", kind=QueryKind.KEYWORD_MATCH, params={"term": "database"}),
        BenchmarkQuery(
            label="keyword_top_results",
            kind=QueryKind.KEYWORD_MATCH,
            shape=QueryShape.RESULTS,
            params={"term": "search", "limit": result_limit},
        ),
        BenchmarkQuery(label="tag_contains", kind=QueryKind.TAG_CONTAINS, params={"tag": "python"}),
        BenchmarkQuery(label="tag_missing", kind=QueryKind.TAG_CONTAINS, params={"tag": "nonexistent"}),
        BenchmarkQuery(
            label="required_attribute_exists",
            kind=QueryKind.ATTRIBUTE_EXISTS,
            params={"field": "attributes.category"},
        ),
        BenchmarkQuery(
            label="optional_attribute_exists",
            kind=QueryKind.ATTRIBUTE_EXISTS,
            params={"field": "attributes.discount"},
        ),
        BenchmarkQuery(
            label="optional_attribute_absent",
            kind=QueryKind.ATTRIBUTE_ABSENT,
            params={"field": "attributes.discount"},
        ),
        BenchmarkQuery(
            label="nested_range",
            kind=QueryKind.ATTRIBUTE_RANGE,
            params={"field": "attributes.metrics.score", "gt": 500},
        ),
    ]
    return tuple(queries)


DEFAULT_QUERIES = default_queries()
