"""Concrete adapter for PostgreSQL.

This module provides the PostgreSQL implementation of the BackendAdapter
interface on top of psycopg 3's async driver and connection pool.

Key Features:
    - Pooled async connections sized to the number of load workers
    - Binary COPY into a transaction-scoped staging table per batch
    - Idempotent merge with INSERT ... ON CONFLICT (id) DO NOTHING
    - GIN indexes for the full-text search vector and the JSONB columns
    - Post-load population of the search vector followed by ANALYZE
"""

from contextlib import AsyncExitStack
from typing import Any, Dict, List, Sequence

import psycopg
from psycopg.conninfo import make_conninfo
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb
from psycopg_pool import AsyncConnectionPool, PoolTimeout

from crossbench.abc import BackendAdapter, QueryOutcome
from crossbench.compilers.postgres import TEXT_SEARCH_CONFIG, PostgresWhereCompiler, postgres_where
from crossbench.compilers.utils import quote_identifier
from crossbench.constants import BackendKind, CacheMode, QueryShape, SchemaStatus, SchemaVariant
from crossbench.exceptions import ConnectionError, FinalizeError, ProvisioningError, QueryError
from crossbench.queries import BenchmarkQuery
from crossbench.schema import SyntheticDocument
from crossbench.settings import settings as api_settings

COLUMNS = ("id", "title", "content", "created_at", "tags", "attributes")
COPY_TYPES = ["bigint", "text", "text", "timestamptz", "jsonb", "jsonb"]
STAGING_TABLE = "crossbench_staging"

# information_schema.columns.data_type for every column the table must carry
EXPECTED_COLUMNS: Dict[str, str] = {
    "id": "bigint",
    "title": "text",
    "content": "text",
    "created_at": "timestamp with time zone",
    "tags": "jsonb",
    "attributes": "jsonb",
    "search_vector": "tsvector",
}


class PostgresAdapter(BackendAdapter):
    """Benchmark backend for PostgreSQL.

    Attributes:
        target_name: Table holding the documents
        pool: psycopg AsyncConnectionPool, created by `connect`
    """

    kind = BackendKind.POSTGRES
    where_compiler: PostgresWhereCompiler = postgres_where
    default_batch_size = 500

    def __init__(self, *args: Any, conninfo: str | None = None, **kwargs: Any) -> None:
        kwargs.setdefault("batch_size", api_settings.PG_BATCH_SIZE)
        kwargs.setdefault("workers", api_settings.PG_WORKERS)
        kwargs.setdefault("target_name", api_settings.TABLE_NAME)
        super().__init__(*args, **kwargs)
        self.conninfo = conninfo or self._default_conninfo()

    @staticmethod
    def _default_conninfo() -> str:
        if api_settings.DATABASE_URL:
            return api_settings.DATABASE_URL
        return make_conninfo(
            host=api_settings.PG_HOST,
            port=api_settings.PG_PORT,
            dbname=api_settings.PG_DBNAME,
            user=api_settings.PG_USER,
            password=api_settings.PG_PASSWORD,
        )

    @property
    def pool(self) -> AsyncConnectionPool:
        if self._client is None:
            raise ConnectionError("PostgreSQL pool is not open", backend=self.kind, operation="pool")
        return self._client

    @property
    def table(self) -> str:
        return quote_identifier(self.target_name)

    def expected_fields(self) -> Dict[str, str]:
        return dict(EXPECTED_COLUMNS)

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        if self._client is not None:
            return
        pool = AsyncConnectionPool(
            self.conninfo,
            min_size=1,
            max_size=self.workers + 1,
            timeout=api_settings.CONNECT_TIMEOUT,
            open=False,
        )
        try:
            await pool.open(wait=True, timeout=api_settings.CONNECT_TIMEOUT)
        except (PoolTimeout, psycopg.OperationalError) as e:
            await pool.close()
            raise ConnectionError(
                "PostgreSQL connection failed",
                backend=self.kind,
                phase="connect",
                original_error=str(e),
            ) from e
        self._client = pool
        self.logger.message("PostgreSQL pool opened (max_size=%d).", self.workers + 1)

    async def health_check(self) -> None:
        try:
            async with self.pool.connection() as conn:
                await conn.execute("SELECT 1")
        except (PoolTimeout, psycopg.Error) as e:
            raise ConnectionError(
                "PostgreSQL health check failed", backend=self.kind, phase="connect", original_error=str(e)
            ) from e

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None
            self.logger.debug("PostgreSQL pool closed.")

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    async def ensure_schema(self) -> SchemaStatus:
        try:
            async with self.pool.connection() as conn:
                cur = await conn.execute(
                    """
                    SELECT EXISTS (
                        SELECT FROM information_schema.tables
                        WHERE table_schema = current_schema() AND table_name = %s
                    )
                    """,
                    (self.target_name,),
                )
                row = await cur.fetchone()
                if row[0]:
                    status = await self._check_columns(conn)
                    if status == SchemaStatus.EXISTS:
                        await self._create_indexes(conn)
                    return status
                await self._create_table(conn)
                await self._create_indexes(conn)
        except psycopg.Error as e:
            raise ProvisioningError(
                "Could not provision table",
                backend=self.kind,
                phase="provision",
                table=self.target_name,
                original_error=str(e),
            ) from e
        self.logger.message("PostgreSQL table '%s' created (%s).", self.target_name, self.variant.value)
        return SchemaStatus.CREATED

    async def _check_columns(self, conn: psycopg.AsyncConnection) -> SchemaStatus:
        cur = await conn.execute(
            "SELECT column_name, data_type FROM information_schema.columns "
            "WHERE table_schema = current_schema() AND table_name = %s",
            (self.target_name,),
        )
        existing = {name: data_type for name, data_type in await cur.fetchall()}
        drift = sorted(name for name, data_type in EXPECTED_COLUMNS.items() if existing.get(name) != data_type)
        if drift:
            self.logger.debug("Table '%s' columns differ for %s; leaving it untouched.", self.target_name, drift)
            return SchemaStatus.DRIFT
        self.logger.message("PostgreSQL table '%s' already exists.", self.target_name)
        return SchemaStatus.EXISTS

    async def _create_table(self, conn: psycopg.AsyncConnection) -> None:
        await conn.execute(
            f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                id BIGINT PRIMARY KEY,
                title TEXT NOT NULL,
                content TEXT NOT NULL,
                created_at TIMESTAMPTZ NOT NULL,
                tags JSONB,
                attributes JSONB,
                search_vector TSVECTOR
            )
            """
        )

    async def _create_indexes(self, conn: psycopg.AsyncConnection) -> None:
        """Idempotent; also run against tables created by other tooling."""
        await conn.execute(
            f"CREATE INDEX IF NOT EXISTS {quote_identifier(self.target_name + '_search_idx')} "
            f"ON {self.table} USING GIN (search_vector)"
        )
        if self.variant == SchemaVariant.STRUCTURED:
            for column in ("tags", "attributes"):
                await conn.execute(
                    f"CREATE INDEX IF NOT EXISTS {quote_identifier(f'{self.target_name}_{column}_idx')} "
                    f"ON {self.table} USING GIN ({column})"
                )

    async def clear(self) -> int:
        count = await self.count()
        if count == 0:
            return 0
        async with self.pool.connection() as conn:
            await conn.execute(f"TRUNCATE TABLE {self.table}")
        self.logger.message("Cleared %d rows from '%s'.", count, self.target_name)
        return count

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def write_batch(self, batch: Sequence[SyntheticDocument]) -> int:
        if not batch:
            return 0
        columns = ", ".join(COLUMNS)
        # The pooled connection block is one transaction; the staging table dies at its commit.
        async with self.pool.connection() as conn:
            await conn.execute(
                f"CREATE TEMP TABLE {STAGING_TABLE} "
                f"(LIKE {self.table} INCLUDING DEFAULTS) ON COMMIT DROP"
            )
            async with conn.cursor() as cur:
                async with cur.copy(f"COPY {STAGING_TABLE} ({columns}) FROM STDIN (FORMAT BINARY)") as copy:
                    copy.set_types(COPY_TYPES)
                    for doc in batch:
                        await copy.write_row(self._copy_row(doc))
                await cur.execute(
                    f"INSERT INTO {self.table} ({columns}) "
                    f"SELECT {columns} FROM {STAGING_TABLE} ON CONFLICT (id) DO NOTHING"
                )
        return len(batch)

    @staticmethod
    def _copy_row(doc: SyntheticDocument) -> tuple:
        doc_id, title, content, created_at, tags, attributes = doc.to_row()
        return (
            doc_id,
            title,
            content,
            created_at,
            Jsonb(tags) if tags is not None else None,
            Jsonb(attributes) if attributes is not None else None,
        )

    async def flush(self) -> None:
        """Nothing to do: every batch commits before it is acknowledged."""

    async def finalize(self) -> None:
        try:
            async with self.pool.connection() as conn:
                cur = await conn.execute(
                    f"UPDATE {self.table} "
                    f"SET search_vector = to_tsvector('{TEXT_SEARCH_CONFIG}', title || ' ' || content) "
                    "WHERE search_vector IS NULL"
                )
                updated = cur.rowcount
                await conn.execute(f"ANALYZE {self.table}")
        except (PoolTimeout, psycopg.Error) as e:
            raise FinalizeError(
                "Search vector population failed",
                backend=self.kind,
                phase="finalize",
                table=self.target_name,
                original_error=str(e),
            ) from e
        self.logger.message("Populated search_vector for %d rows and analyzed '%s'.", updated, self.target_name)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def prepare_cache(self, mode: CacheMode) -> None:
        """Drop session-level state (plans, prepared statements) on every pooled connection.

        Shared buffers and the OS page cache are left alone.
        """
        if mode != CacheMode.COLD:
            return
        async with AsyncExitStack() as stack:
            conns: List[psycopg.AsyncConnection] = []
            for _ in range(self.pool.max_size):
                conns.append(await stack.enter_async_context(self.pool.connection()))
            for conn in conns:
                # DISCARD ALL refuses to run inside a transaction block.
                await conn.set_autocommit(True)
                await conn.execute("DISCARD ALL")
                await conn.set_autocommit(False)

    async def query(self, query: BenchmarkQuery, cache_mode: CacheMode = CacheMode.WARM) -> QueryOutcome:
        sql, params = self.where_compiler.to_statement(self.target_name, query)
        try:
            async with self.pool.connection() as conn:
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(sql, params)
                    rows = await cur.fetchall()
        except (PoolTimeout, psycopg.Error) as e:
            raise QueryError(
                "PostgreSQL query failed", backend=self.kind, query=query.label, original_error=str(e)
            ) from e
        if query.shape == QueryShape.COUNT:
            return QueryOutcome(count=int(rows[0]["count"]), rows=[])
        return QueryOutcome(count=len(rows), rows=rows)

    async def count(self) -> int:
        async with self.pool.connection() as conn:
            cur = await conn.execute(f"SELECT count(*) FROM {self.table}")
            row = await cur.fetchone()
        return int(row[0])
