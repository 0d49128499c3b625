"""Base compiler interface.

Defines the abstract contract all backend-specific query compilers must follow.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict

from crossbench.exceptions import QueryError
from crossbench.queries import BenchmarkQuery, QueryKind

__all__ = ("BaseWhere",)


class BaseWhere(ABC):
    """Abstract base class for benchmark query compilers.

    Subclasses implement one method per `QueryKind`; `to_where` dispatches on
    the query's kind and returns the backend-native filter:
    - (sql, params) tuple for PostgreSQL
    - query DSL dict for Elasticsearch
    """

    def to_where(self, query: BenchmarkQuery) -> Any:
        """Convert a benchmark query into its backend-native filter representation.

        Raises:
            QueryError: If the query kind has no rendering on this backend
        """
        handlers: Dict[QueryKind, Callable[[Dict[str, Any]], Any]] = {
            QueryKind.KEYWORD_MATCH: self.keyword_match,
            QueryKind.TAG_CONTAINS: self.tag_contains,
            QueryKind.ATTRIBUTE_EXISTS: self.attribute_exists,
            QueryKind.ATTRIBUTE_ABSENT: self.attribute_absent,
            QueryKind.ATTRIBUTE_RANGE: self.attribute_range,
        }
        handler = handlers.get(query.kind)
        if handler is None:
            raise QueryError("Unsupported query kind", query=query.label, kind=query.kind)
        try:
            return handler(query.params)
        except KeyError as e:
            raise QueryError("Missing query parameter", query=query.label, parameter=str(e)) from e

    @abstractmethod
    def keyword_match(self, params: Dict[str, Any]) -> Any:
        """Full-text match of `params['term']` over title and content."""
        raise NotImplementedError

    @abstractmethod
    def tag_contains(self, params: Dict[str, Any]) -> Any:
        raise NotImplementedError

    @abstractmethod
    def attribute_exists(self, params: Dict[str, Any]) -> Any:
        raise NotImplementedError

    @abstractmethod
    def attribute_absent(self, params: Dict[str, Any]) -> Any:
        """Complement of `attribute_exists`, including documents with no attributes at all."""
        raise NotImplementedError

    @abstractmethod
    def attribute_range(self, params: Dict[str, Any]) -> Any:
        """Numeric bounds (`gt`, `gte`, `lt`, `lte`) on an attribute path."""
        raise NotImplementedError
