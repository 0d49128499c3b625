"""
Main engine for orchestrating the load-and-benchmark pipeline.

This module provides the `BenchmarkEngine`, which wires the generator, the
provisioner, the bulk loader, the post-load indexer and the benchmark runner
over a set of backend adapters, and keeps failures of one backend from
aborting the others.
"""

import asyncio
from typing import List, Optional, Sequence

from crossbench.settings import settings

from .abc import BackendAdapter
from .constants import BackendKind, Phase, SchemaVariant
from .exceptions import ConnectionError, CrossBenchError
from .generator import DocumentGenerator
from .indexer import PostLoadIndexer
from .loader import BulkLoader
from .logger import Logger
from .provisioner import SchemaProvisioner
from .queries import BenchmarkQuery, default_queries
from .runner import BenchmarkRunner
from .schema import BenchmarkResult, FatalError, LoadReport, RunReport
from .utils import stopwatch


class BenchmarkEngine:
    """High-level orchestrator for a dual-backend benchmark run.

    Control flow: connect -> provision -> clear -> load -> finalize -> benchmark.
    Only a connection failure aborts the whole run; every later failure is
    confined to the backend it happened on and shows up in the report.

    Attributes:
        backends: Adapters taking part in the run, one per backend kind
        generator: Replayable document source shared by all backends
        document_count: Documents generated per backend
        queries: Fixed benchmark query set
    """

    def __init__(
        self,
        backends: Sequence[BackendAdapter],
        document_count: Optional[int] = None,
        variant: Optional[SchemaVariant | str] = None,
        seed: Optional[int] = None,
        optional_absence_rate: Optional[float] = None,
        queries: Optional[Sequence[BenchmarkQuery]] = None,
        reset_before_load: Optional[bool] = None,
        loader: Optional[BulkLoader] = None,
        runner: Optional[BenchmarkRunner] = None,
    ) -> None:
        kinds = [b.kind for b in backends]
        if len(set(kinds)) != len(kinds):
            raise ValueError(f"Each backend kind may appear once, got {[k.value for k in kinds]}")
        self._backends = list(backends)
        self.document_count = settings.DOCUMENT_COUNT if document_count is None else document_count
        self.variant = SchemaVariant(variant or settings.SCHEMA_VARIANT)
        self.generator = DocumentGenerator(
            self.variant,
            seed=settings.SEED if seed is None else seed,
            optional_absence_rate=(
                settings.OPTIONAL_ABSENCE_RATE if optional_absence_rate is None else optional_absence_rate
            ),
        )
        self.queries = tuple(queries) if queries is not None else default_queries(settings.QUERY_RESULT_LIMIT)
        self.reset_before_load = settings.RESET_BEFORE_LOAD if reset_before_load is None else reset_before_load
        self.provisioner = SchemaProvisioner()
        self.loader = loader or BulkLoader()
        self.indexer = PostLoadIndexer()
        self.runner = runner or BenchmarkRunner()
        self.logger = Logger(self.__class__.__name__)
        self.logger.message(
            "BenchmarkEngine initialized: backends=%s documents=%d variant=%s seed=%d",
            ",".join(k.value for k in kinds),
            self.document_count,
            self.variant.value,
            self.generator.seed,
        )

    @property
    def backends(self) -> List[BackendAdapter]:
        return list(self._backends)

    def new_load_report(self) -> LoadReport:
        return LoadReport(document_count=self.document_count, variant=self.variant, seed=self.generator.seed)

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    async def connect(self, report: Optional[LoadReport] = None) -> None:
        """Open and health-check every backend.

        Raises:
            ConnectionError: If any backend is unreachable; nothing else has run yet
        """
        for backend in self._backends:
            with stopwatch() as sw:
                try:
                    await backend.connect()
                    await backend.health_check()
                except ConnectionError:
                    raise
                except Exception as e:
                    raise ConnectionError(
                        "Backend unreachable", backend=backend.kind, phase=Phase.CONNECT, original_error=str(e)
                    ) from e
            if report is not None:
                report.record(sw.sample(Phase.CONNECT, backend.kind))

    async def close(self) -> None:
        results = await asyncio.gather(*(b.close() for b in self._backends), return_exceptions=True)
        for backend, result in zip(self._backends, results):
            if isinstance(result, BaseException):
                self.logger.warning("Closing %s failed: %s", backend.name, result)

    async def provision(self, report: LoadReport) -> List[BackendAdapter]:
        """Ensure schemas (and clear old data when configured); return the backends still healthy."""
        live: List[BackendAdapter] = []
        for backend in self._backends:
            entry = report.backend(backend.kind)
            try:
                entry.schema_status, sample = await self.provisioner.ensure_schema(backend)
                report.record(sample)
                if self.reset_before_load:
                    _, sample = await self.provisioner.clear(backend)
                    report.record(sample)
            except CrossBenchError as e:
                self._fail(report, backend.kind, e.phase or Phase.PROVISION, e)
                continue
            live.append(backend)
        return live

    async def load(self, report: Optional[LoadReport] = None) -> LoadReport:
        """Provision, load and finalize every backend.

        Returns:
            LoadReport with per-backend status; failed backends are marked, not raised
        """
        report = report or self.new_load_report()
        live = await self.provision(report)
        await self.loader.load(self.generator.factory(self.document_count), live, report)

        loaded = [b for b in live if report.backend(b.kind).ok]
        finalized = await self.indexer.finalize_all(loaded)
        for kind, outcome in finalized.items():
            if isinstance(outcome, BaseException):
                self._fail(report, kind, Phase.FINALIZE, outcome)
            else:
                report.record(outcome)
        return report

    async def benchmark(self, report: LoadReport) -> List[BenchmarkResult]:
        """Run the query set against every backend that loaded and finalized cleanly."""
        ready = [b for b in self._backends if report.backend(b.kind).ok]
        skipped = [b.name for b in self._backends if b not in ready]
        if skipped:
            self.logger.warning("Skipping benchmark for %s.", ", ".join(skipped))
        with stopwatch() as sw:
            results = await self.runner.run(self.queries, ready)
        report.record(sw.sample(Phase.BENCHMARK))
        return results

    async def run(self) -> RunReport:
        """Execute the whole pipeline and return its report.

        Raises:
            ConnectionError: If a backend is unreachable at startup
        """
        report = self.new_load_report()
        try:
            await self.connect(report)
            await self.load(report)
            results = await self.benchmark(report)
        finally:
            await self.close()
        run = RunReport(
            load=report,
            results=results,
            mode=self.runner.mode,
            cache_mode=self.runner.cache_mode,
            errors=[
                FatalError(backend=kind, phase=entry.failed_phase or Phase.INGEST, message=entry.error or "")
                for kind, entry in report.backends.items()
                if not entry.ok
            ],
        )
        self.logger.message("Run finished with status %s.", run.status.value)
        return run

    def _fail(self, report: LoadReport, kind: BackendKind, phase: str, error: BaseException) -> None:
        report.mark_failed(kind, phase, error)
        self.logger.error("%s failed during %s: %s", kind.value, phase, error)

