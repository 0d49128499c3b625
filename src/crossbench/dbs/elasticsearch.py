"""Concrete adapter for Elasticsearch.

This module provides the Elasticsearch implementation of the BackendAdapter
interface using the official async client.

Key Features:
    - Explicit index mapping with english-analyzed text fields
    - _bulk index actions keyed by document id (idempotent rewrites)
    - Mapping drift detection against the expected field types
    - Explicit refresh so benchmark reads observe every written document
"""

from typing import Any, Dict, Sequence

from elasticsearch import ApiError, AsyncElasticsearch, TransportError
from elasticsearch.helpers import BulkIndexError

from crossbench.abc import BackendAdapter, QueryOutcome
from crossbench.compilers.elasticsearch import ElasticsearchWhereCompiler, elasticsearch_where
from crossbench.constants import BackendKind, CacheMode, QueryShape, SchemaStatus
from crossbench.exceptions import ConnectionError, FinalizeError, ProvisioningError, QueryError
from crossbench.queries import BenchmarkQuery
from crossbench.schema import SyntheticDocument
from crossbench.settings import settings as api_settings

ENGLISH_TEXT = {"type": "text", "analyzer": "english"}

MAPPING_PROPERTIES: Dict[str, Any] = {
    "title": ENGLISH_TEXT,
    "content": ENGLISH_TEXT,
    "created_at": {"type": "date"},
    "tags": {"type": "keyword"},
    "attributes": {
        "properties": {
            "category": {"type": "keyword"},
            "priority": {"type": "integer"},
            "active": {"type": "boolean"},
            "discount": {"type": "float"},
            "metrics": {
                "properties": {
                    "score": {"type": "integer"},
                    "region": {"type": "keyword"},
                }
            },
        }
    },
}

ElasticErrors = (ApiError, TransportError, BulkIndexError)


def flatten_properties(properties: Dict[str, Any], prefix: str = "") -> Dict[str, str]:
    """Flatten a mapping's `properties` tree into dotted path -> field type."""
    flat: Dict[str, str] = {}
    for name, spec in properties.items():
        path = f"{prefix}{name}"
        if "properties" in spec:
            flat.update(flatten_properties(spec["properties"], prefix=f"{path}."))
        else:
            flat[path] = spec.get("type", "object")
    return flat


class ElasticsearchAdapter(BackendAdapter):
    """Benchmark backend for Elasticsearch.

    Attributes:
        target_name: Index holding the documents
        client: AsyncElasticsearch instance, created by `connect`
    """

    kind = BackendKind.ELASTICSEARCH
    where_compiler: ElasticsearchWhereCompiler = elasticsearch_where
    default_batch_size = 2000

    def __init__(self, *args: Any, url: str | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("batch_size", api_settings.ES_BATCH_SIZE)
        kwargs.setdefault("workers", api_settings.ES_WORKERS)
        kwargs.setdefault("target_name", api_settings.INDEX_NAME)
        super().__init__(*args, **kwargs)
        self.url = url or api_settings.ELASTICSEARCH_URL

    @property
    def client(self) -> AsyncElasticsearch:
        if self._client is None:
            raise ConnectionError("Elasticsearch client is not connected", backend=self.kind, operation="client")
        return self._client

    def expected_fields(self) -> Dict[str, str]:
        return flatten_properties(MAPPING_PROPERTIES)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        if self._client is not None:
            return
        auth: Dict[str, Any] = {}
        if api_settings.ELASTICSEARCH_API_KEY:
            auth["api_key"] = api_settings.ELASTICSEARCH_API_KEY
        elif api_settings.ELASTICSEARCH_USERNAME:
            auth["basic_auth"] = (api_settings.ELASTICSEARCH_USERNAME, api_settings.ELASTICSEARCH_PASSWORD or "")
        self._client = AsyncElasticsearch(
            self.url,
            request_timeout=api_settings.CONNECT_TIMEOUT,
            connections_per_node=self.workers + 1,
            **auth,
        )
        self.logger.message("Elasticsearch client created for %s.", self.url)

    async def health_check(self) -> None:
        try:
            alive = await self.client.ping()
        except ElasticErrors as e:
            raise ConnectionError(
                "Elasticsearch ping failed", backend=self.kind, phase="connect", url=self.url, original_error=str(e)
            ) from e
        if not alive:
            raise ConnectionError("Elasticsearch ping failed", backend=self.kind, phase="connect", url=self.url)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            self.logger.debug("Elasticsearch client closed.")

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    async def ensure_schema(self) -> SchemaStatus:
        try:
            if await self.client.indices.exists(index=self.target_name):
                return await self._check_mapping()
            await self.client.indices.create(index=self.target_name, mappings={"properties": MAPPING_PROPERTIES})
        except ElasticErrors as e:
            raise ProvisioningError(
                "Could not provision index",
                backend=self.kind,
                phase="provision",
                index=self.target_name,
                original_error=str(e),
            ) from e
        self.logger.message("Elasticsearch index '%s' created.", self.target_name)
        return SchemaStatus.CREATED

    async def _check_mapping(self) -> SchemaStatus:
        response = await self.client.indices.get_mapping(index=self.target_name)
        # Keyed by concrete index name, which differs from target_name behind an alias.
        mapping = next(iter(response.body.values()), {}).get("mappings", {})
        existing = flatten_properties(mapping.get("properties", {}))
        drift = sorted(path for path, kind in self.expected_fields().items() if existing.get(path) != kind)
        if drift:
            self.logger.debug("Index '%s' mapping differs for %s; leaving it untouched.", self.target_name, drift)
            return SchemaStatus.DRIFT
        self.logger.message("Elasticsearch index '%s' already exists.", self.target_name)
        return SchemaStatus.EXISTS

    async def clear(self) -> int:
        response = await self.client.delete_by_query(
            index=self.target_name,
            query={"match_all": {}},
            refresh=True,
            conflicts="proceed",
        )
        deleted = int(response["deleted"])
        if deleted:
            self.logger.message("Cleared %d documents from '%s'.", deleted, self.target_name)
        return deleted

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def write_batch(self, batch: Sequence[SyntheticDocument]) -> int:
        if not batch:
            return 0
        operations = []
        for doc in batch:
            operations.append({"index": {"_index": self.target_name, "_id": str(doc.id)}})
            operations.append(doc.to_source())
        response = await self.client.bulk(operations=operations)
        if response["errors"]:
            failed = [item["index"] for item in response["items"] if item.get("index", {}).get("error")]
            raise BulkIndexError(f"{len(failed)} document(s) failed to index.", failed)
        return len(batch)

    async def flush(self) -> None:
        await self.client.indices.refresh(index=self.target_name)

    async def finalize(self) -> None:
        try:
            await self.client.indices.refresh(index=self.target_name)
        except ElasticErrors as e:
            raise FinalizeError(
                "Refresh failed", backend=self.kind, phase="finalize", index=self.target_name, original_error=str(e)
            ) from e
        self.logger.message("Refreshed index '%s'.", self.target_name)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def prepare_cache(self, mode: CacheMode) -> None:
        if mode != CacheMode.COLD:
            return
        await self.client.indices.clear_cache(index=self.target_name, query=True, request=True, fielddata=True)

    async def query(self, query: BenchmarkQuery, cache_mode: CacheMode = CacheMode.WARM) -> QueryOutcome:
        body = self.where_compiler.to_body(query, request_cache=cache_mode == CacheMode.WARM)
        try:
            if query.shape == QueryShape.COUNT:
                response = await self.client.count(index=self.target_name, **body)
                return QueryOutcome(count=int(response["count"]), rows=[])
            response = await self.client.search(index=self.target_name, **body)
        except ElasticErrors as e:
            raise QueryError(
                "Elasticsearch query failed", backend=self.kind, query=query.label, original_error=str(e)
            ) from e
        rows = [{"id": int(hit["_id"]), **hit["_source"]} for hit in response["hits"]["hits"]]
        return QueryOutcome(count=len(rows), rows=rows)

    async def count(self) -> int:
        response = await self.client.count(index=self.target_name)
        return int(response["count"])
