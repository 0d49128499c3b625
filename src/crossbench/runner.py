"""Benchmark query runner.

Executes the fixed query set against each backend, one backend after the
other, and records latency (dispatch to fully materialized result) and result
count per (query, backend) pair. A failing query becomes a failed result and
never stops the remaining ones.
"""

import asyncio
import time
from typing import List, Optional, Sequence

from crossbench.abc import BackendAdapter
from crossbench.constants import BenchmarkMode, CacheMode
from crossbench.logger import Logger
from crossbench.queries import DEFAULT_QUERIES, BenchmarkQuery
from crossbench.schema import BenchmarkResult
from crossbench.settings import settings as api_settings


class BenchmarkRunner:
    """Run benchmark queries across backends.

    Attributes:
        mode: SEQUENTIAL runs one query at a time per backend; CONCURRENT
            dispatches a backend's whole query set at once
        cache_mode: WARM does one unrecorded warm-up pass first; COLD asks the
            backend to drop its caches before measuring
    """

    def __init__(
        self,
        mode: Optional[BenchmarkMode | str] = None,
        cache_mode: Optional[CacheMode | str] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        self.mode = BenchmarkMode(mode or api_settings.BENCHMARK_MODE)
        self.cache_mode = CacheMode(cache_mode or api_settings.CACHE_MODE)
        self.logger = logger or Logger(self.__class__.__name__)

    async def run(
        self,
        queries: Sequence[BenchmarkQuery] = DEFAULT_QUERIES,
        targets: Sequence[BackendAdapter] = (),
    ) -> List[BenchmarkResult]:
        results: List[BenchmarkResult] = []
        for target in targets:
            results.extend(await self.run_backend(queries, target))
        return results

    async def run_backend(self, queries: Sequence[BenchmarkQuery], target: BackendAdapter) -> List[BenchmarkResult]:
        """Measure every query once against one backend."""
        if self.cache_mode == CacheMode.WARM:
            await self._warm_up(queries, target)

        if self.mode == BenchmarkMode.CONCURRENT:
            await self._prepare(target)
            results = list(await asyncio.gather(*(self._measure(target, q) for q in queries)))
        else:
            results = []
            for query in queries:
                await self._prepare(target)
                results.append(await self._measure(target, query))

        failed = sum(1 for r in results if not r.ok)
        self.logger.message(
            "%s: %d/%d queries succeeded (%s, %s cache).",
            target.name,
            len(results) - failed,
            len(results),
            self.mode.value,
            self.cache_mode.value,
        )
        return results

    async def _warm_up(self, queries: Sequence[BenchmarkQuery], target: BackendAdapter) -> None:
        for query in queries:
            try:
                await target.query(query, CacheMode.WARM)
            except Exception as e:
                # The measured pass records the failure.
                self.logger.debug("Warm-up of %s on %s failed: %s", query.label, target.name, e)

    async def _prepare(self, target: BackendAdapter) -> None:
        if self.cache_mode != CacheMode.COLD:
            return
        try:
            await target.prepare_cache(CacheMode.COLD)
        except Exception as e:
            self.logger.warning("Could not drop caches on %s: %s", target.name, e)

    async def _measure(self, target: BackendAdapter, query: BenchmarkQuery) -> BenchmarkResult:
        start = time.perf_counter()
        try:
            outcome = await target.query(query, self.cache_mode)
        except Exception as e:
            self.logger.warning("Query %s failed on %s: %s", query.label, target.name, e)
            return BenchmarkResult.failed(query.label, target.kind, str(e), self.mode)
        latency = time.perf_counter() - start
        self.logger.debug("%s %s -> %d in %.4fs", target.name, query.label, outcome.count, latency)
        return BenchmarkResult(
            label=query.label,
            backend=target.kind,
            count=outcome.count,
            latency=latency,
            mode=self.mode,
        )


async def run(queries: Sequence[BenchmarkQuery], targets: Sequence[BackendAdapter]) -> List[BenchmarkResult]:
    return await BenchmarkRunner().run(queries, targets)
