"""Pytest configuration and fixtures for pipeline tests."""

import asyncio
import re
from typing import Any, Dict, List, Optional, Sequence, Set

import pytest

from crossbench.abc import BackendAdapter, QueryOutcome
from crossbench.constants import BackendKind, CacheMode, QueryShape, SchemaStatus, SchemaVariant
from crossbench.queries import BenchmarkQuery, QueryKind
from crossbench.schema import SyntheticDocument

_TOKEN = re.compile(r"[a-z]+")


def _lookup(doc: SyntheticDocument, field: str) -> Any:
    """Resolve a dotted path like `attributes.metrics.score`; None when any segment is missing."""
    column, *path = field.split(".")
    value: Any = getattr(doc, column, None)
    for part in path:
        if not isinstance(value, dict) or part not in value:
            return None
        value = value[part]
    return value


class InMemoryBackend(BackendAdapter):
    """In-memory backend to exercise the pipeline without external services.

    - Stores documents in a dict keyed by id (writes are idempotent)
    - Mirrors the visibility rule of the real backends: keyword matches only
      see documents that went through `finalize`
    - Failure injection for writes, finalize, queries and health checks
    - Optional write latency to model a backend that falls behind
    """

    def __init__(
        self,
        kind: BackendKind,
        variant: SchemaVariant | str = SchemaVariant.FLAT,
        batch_size: int = 10,
        workers: int = 2,
        fail_writes: int = 0,
        fail_finalize: bool = False,
        fail_queries: Optional[Set[str]] = None,
        fail_schema: bool = False,
        healthy: bool = True,
        write_delay: float = 0.0,
        **kwargs: Any,
    ) -> None:
        self.kind = kind
        super().__init__(variant=variant, batch_size=batch_size, workers=workers, **kwargs)
        self.docs: Dict[int, SyntheticDocument] = {}
        self.indexed: Set[int] = set()
        self.schema_objects: List[str] = []
        self.fail_writes = fail_writes
        self.fail_finalize = fail_finalize
        self.fail_queries = fail_queries or set()
        self.fail_schema = fail_schema
        self.healthy = healthy
        self.write_delay = write_delay
        self.write_calls = 0
        self.query_calls: List[str] = []
        self.cache_drops = 0
        self.flushed = 0
        self.connected = False
        self.max_batch_seen = 0

    def expected_fields(self) -> Dict[str, str]:
        return {"id": "int", "title": "text", "content": "text"}

    async def connect(self) -> None:
        self.connected = True

    async def health_check(self) -> None:
        if not self.healthy:
            raise OSError(f"{self.name} unreachable")

    async def close(self) -> None:
        self.connected = False

    async def ensure_schema(self) -> SchemaStatus:
        if self.fail_schema:
            raise RuntimeError("permission denied")
        if self.target_name in self.schema_objects:
            return SchemaStatus.EXISTS
        self.schema_objects.append(self.target_name)
        return SchemaStatus.CREATED

    async def clear(self) -> int:
        removed = len(self.docs)
        self.docs.clear()
        self.indexed.clear()
        return removed

    async def write_batch(self, batch: Sequence[SyntheticDocument]) -> int:
        self.write_calls += 1
        self.max_batch_seen = max(self.max_batch_seen, len(batch))
        if self.write_delay:
            await asyncio.sleep(self.write_delay)
        if self.fail_writes == -1:
            raise RuntimeError("write rejected")
        if self.fail_writes > 0:
            self.fail_writes -= 1
            raise RuntimeError("transient write failure")
        for doc in batch:
            self.docs[doc.id] = doc
        return len(batch)

    async def flush(self) -> None:
        self.flushed += 1

    async def finalize(self) -> None:
        if self.fail_finalize:
            raise RuntimeError("refresh failed")
        self.indexed = set(self.docs)

    async def prepare_cache(self, mode: CacheMode) -> None:
        if mode == CacheMode.COLD:
            self.cache_drops += 1

    async def query(self, query: BenchmarkQuery, cache_mode: CacheMode = CacheMode.WARM) -> QueryOutcome:
        self.query_calls.append(query.label)
        if query.label in self.fail_queries:
            raise RuntimeError(f"malformed query {query.label}")
        matches = [doc for doc in sorted(self.docs.values(), key=lambda d: d.id) if self._match(doc, query)]
        if query.shape == QueryShape.RESULTS:
            rows = [doc.model_dump() for doc in matches[: query.limit]]
            return QueryOutcome(count=len(rows), rows=rows)
        return QueryOutcome(count=len(matches), rows=[])

    async def count(self) -> int:
        return len(self.docs)

    def _match(self, doc: SyntheticDocument, query: BenchmarkQuery) -> bool:
        params = query.params
        if query.kind == QueryKind.KEYWORD_MATCH:
            return doc.id in self.indexed and params["term"] in _TOKEN.findall(doc.text.lower())
        if query.kind == QueryKind.TAG_CONTAINS:
            return bool(doc.tags) and params["tag"] in doc.tags
        if query.kind == QueryKind.ATTRIBUTE_EXISTS:
            return _lookup(doc, params["field"]) is not None
        if query.kind == QueryKind.ATTRIBUTE_ABSENT:
            return _lookup(doc, params["field"]) is None
        if query.kind == QueryKind.ATTRIBUTE_RANGE:
            value = _lookup(doc, params["field"])
            return value is not None and value > params["gt"]
        raise ValueError(query.kind)


@pytest.fixture
def make_backend():
    """Factory for in-memory backends of a given kind."""

    def _make(kind: BackendKind = BackendKind.POSTGRES, **kwargs: Any) -> InMemoryBackend:
        return InMemoryBackend(kind, **kwargs)

    return _make


@pytest.fixture
def pg_backend(make_backend) -> InMemoryBackend:
    return make_backend(BackendKind.POSTGRES, batch_size=7, workers=3)


@pytest.fixture
def es_backend(make_backend) -> InMemoryBackend:
    return make_backend(BackendKind.ELASTICSEARCH, batch_size=20, workers=2)


@pytest.fixture
def sample_document() -> SyntheticDocument:
    return SyntheticDocument(
        id=1,
        title="Database search engine.",
        content="Cluster shard replica. Vector token query.",
        tags=("python", "rust"),
        attributes={"category": "news", "priority": 7, "active": True, "metrics": {"score": 640, "region": "emea"}},
    )
