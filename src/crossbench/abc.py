"""Abstract base class for benchmark backends.

The loader, indexer and runner depend only on `BackendAdapter`; each concrete
backend lives in `crossbench.dbs`.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, NamedTuple, Optional, Sequence

from crossbench.compilers.base import BaseWhere
from crossbench.constants import BackendKind, CacheMode, SchemaStatus, SchemaVariant
from crossbench.logger import Logger
from crossbench.queries import BenchmarkQuery
from crossbench.schema import SchemaDescriptor, SyntheticDocument
from crossbench.settings import settings as api_settings
from crossbench.utils import default_target_name


class QueryOutcome(NamedTuple):
    """Materialized answer of one benchmark query."""

    count: int
    rows: List[Dict[str, Any]]


class BackendAdapter(ABC):
    """Abstract base class for the capability interface of one backend.

    Attributes:
        kind: Which backend this adapter talks to
        target_name: Table or index name
        variant: Schema variant being loaded
        batch_size: Documents per write_batch call
        workers: Concurrent batch writers during load
    """

    kind: BackendKind
    where_compiler: BaseWhere
    default_batch_size: int = 1000
    default_workers: int = 4

    def __init__(
        self,
        target_name: Optional[str] = None,
        variant: Optional[SchemaVariant | str] = None,
        batch_size: Optional[int] = None,
        workers: Optional[int] = None,
        logger: Optional[Logger] = None,
        **kwargs: Any,
    ) -> None:
        self.variant = SchemaVariant(variant or api_settings.SCHEMA_VARIANT)
        self.target_name = target_name or default_target_name(self.kind, self.variant)
        self.batch_size = batch_size or self.default_batch_size
        self.workers = workers or self.default_workers
        self._client: Any = None
        self._logger = logger if isinstance(logger, Logger) else Logger(self.__class__.__name__, backend=self.kind)

    @property
    def logger(self) -> Logger:
        return self._logger

    @property
    def name(self) -> str:
        return self.kind.value

    @property
    def descriptor(self) -> SchemaDescriptor:
        return SchemaDescriptor(name=self.target_name, variant=self.variant, fields=self.expected_fields())

    @abstractmethod
    def expected_fields(self) -> Dict[str, str]:
        """Field name -> native type the provisioned schema must carry."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    @abstractmethod
    async def connect(self) -> None:
        """Open the pooled session.

        Raises:
            ConnectionError: If the backend is unreachable
        """
        raise NotImplementedError

    @abstractmethod
    async def health_check(self) -> None:
        """Round-trip a trivial request.

        Raises:
            ConnectionError: If the backend does not answer
        """
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError

    async def __aenter__(self) -> "BackendAdapter":
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    @abstractmethod
    async def ensure_schema(self) -> SchemaStatus:
        """Create the table/index if absent. Never destructive.

        Raises:
            ProvisioningError: If the existence check or creation fails
        """
        raise NotImplementedError

    @abstractmethod
    async def clear(self) -> int:
        """Remove all documents from the target and return how many were there."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @abstractmethod
    async def write_batch(self, batch: Sequence[SyntheticDocument]) -> int:
        """Write one batch idempotently by id and return the number of documents acknowledged.

        Raises any backend error as-is; retries are the loader's concern.
        """
        raise NotImplementedError

    @abstractmethod
    async def flush(self) -> None:
        """Backend-mandated step making written documents durable/visible, counted as ingest cost."""
        raise NotImplementedError

    @abstractmethod
    async def finalize(self) -> None:
        """Post-load step required before benchmarking.

        Raises:
            FinalizeError: If indexing or refresh fails
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @abstractmethod
    async def prepare_cache(self, mode: CacheMode) -> None:
        """Put the backend into the requested cache state before a measured query."""
        raise NotImplementedError

    @abstractmethod
    async def query(self, query: BenchmarkQuery, cache_mode: CacheMode = CacheMode.WARM) -> QueryOutcome:
        """Run one benchmark query to full materialization.

        Raises:
            QueryError: If the backend rejects or fails the query
        """
        raise NotImplementedError

    @abstractmethod
    async def count(self) -> int:
        """Total number of documents in the target."""
        raise NotImplementedError
