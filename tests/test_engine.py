"""Tests for BenchmarkEngine end-to-end orchestration."""

import pytest

from crossbench import BenchmarkEngine
from crossbench.constants import BackendKind, CacheMode, LoadStatus, Phase, RunStatus, SchemaStatus, SchemaVariant
from crossbench.exceptions import ConnectionError
from crossbench.loader import BulkLoader
from crossbench.queries import DEFAULT_QUERIES
from crossbench.runner import BenchmarkRunner


def _engine(backends, count, variant=SchemaVariant.FLAT, **kwargs):
    kwargs.setdefault("optional_absence_rate", 0.1)
    return BenchmarkEngine(
        backends=backends,
        document_count=count,
        variant=variant,
        seed=2024,
        reset_before_load=True,
        loader=BulkLoader(max_retries=1, backoff=0, backoff_max=0, show_progress=False),
        runner=BenchmarkRunner(cache_mode=CacheMode.WARM),
        **kwargs,
    )


def _by_label(results, kind):
    return {r.label: r for r in results if r.backend == kind}


class TestEngineInit:
    def test_duplicate_backend_kinds_rejected(self, make_backend):
        """Test that one adapter per backend kind is enforced."""
        with pytest.raises(ValueError):
            BenchmarkEngine([make_backend(BackendKind.POSTGRES), make_backend(BackendKind.POSTGRES)])

    def test_seed_recorded(self, pg_backend):
        engine = _engine([pg_backend], 10)
        assert engine.new_load_report().seed == 2024

    def test_default_queries(self, pg_backend):
        assert len(_engine([pg_backend], 10).queries) == len(DEFAULT_QUERIES)


class TestFullRun:
    @pytest.mark.asyncio
    async def test_flat_hundred_documents(self, pg_backend, es_backend):
        """Test 100 flat documents: every query answered on both backends with matching keyword counts."""
        run = await _engine([pg_backend, es_backend], 100).run()

        assert run.status == RunStatus.OK
        assert run.errors == []
        for kind in BackendKind:
            entry = run.load.backends[kind]
            assert entry.documents_written == 100
            assert entry.schema_status == SchemaStatus.CREATED
            assert len(run.results_for(kind)) == 8
            for phase in (Phase.PROVISION, Phase.INGEST, Phase.FINALIZE):
                assert run.load.phase_duration(kind, phase) is not None

        pg = _by_label(run.results, BackendKind.POSTGRES)
        es = _by_label(run.results, BackendKind.ELASTICSEARCH)
        assert pg["keyword_match"].count == es["keyword_match"].count
        assert pg["keyword_match"].count > 0
        assert pg["tag_missing"].count == 0

    @pytest.mark.asyncio
    async def test_zero_documents(self, pg_backend, es_backend):
        """Test an empty run still provisions and benchmarks with zero counts."""
        run = await _engine([pg_backend, es_backend], 0).run()

        assert run.status == RunStatus.OK
        for kind in BackendKind:
            assert run.load.backends[kind].batches_written == 0
            assert run.load.phase_duration(kind, Phase.INGEST) == 0.0
            counts = {r.label: r.count for r in run.results_for(kind)}
            assert counts["keyword_match"] == 0
            assert counts["tag_missing"] == 0
        assert pg_backend.flushed == 0

    @pytest.mark.asyncio
    async def test_structured_optional_attribute_partition(self, pg_backend, es_backend):
        """Test exists + absent counts of the optional attribute cover every document."""
        run = await _engine([pg_backend, es_backend], 10_000, SchemaVariant.STRUCTURED, optional_absence_rate=0.01).run()

        assert run.status == RunStatus.OK
        for kind in BackendKind:
            results = _by_label(run.results, kind)
            exists = results["optional_attribute_exists"].count
            absent = results["optional_attribute_absent"].count
            assert exists + absent == 10_000
            assert 0 < absent < 300
            assert results["required_attribute_exists"].count == 10_000
        pg = _by_label(run.results, BackendKind.POSTGRES)
        es = _by_label(run.results, BackendKind.ELASTICSEARCH)
        assert {label: r.count for label, r in pg.items()} == {label: r.count for label, r in es.items()}

    @pytest.mark.asyncio
    async def test_backends_closed_after_run(self, pg_backend, es_backend):
        await _engine([pg_backend, es_backend], 5).run()
        assert not pg_backend.connected
        assert not es_backend.connected

    @pytest.mark.asyncio
    async def test_rerun_clears_previous_data(self, pg_backend):
        engine = _engine([pg_backend], 30)
        await engine.run()
        run = await engine.run()
        assert await pg_backend.count() == 30
        assert run.load.backends[BackendKind.POSTGRES].schema_status == SchemaStatus.EXISTS


class TestFailureIsolation:
    @pytest.mark.asyncio
    async def test_unreachable_backend_aborts_run(self, pg_backend, make_backend):
        """Test a failed health check is fatal before any work starts."""
        down = make_backend(BackendKind.ELASTICSEARCH, healthy=False)
        with pytest.raises(ConnectionError) as exc_info:
            await _engine([pg_backend, down], 10).run()
        assert exc_info.value.backend == "elasticsearch"
        assert pg_backend.schema_objects == []
        assert pg_backend.write_calls == 0

    @pytest.mark.asyncio
    async def test_ingest_failure_is_partial(self, pg_backend, make_backend):
        broken = make_backend(BackendKind.ELASTICSEARCH, fail_writes=-1)
        run = await _engine([pg_backend, broken], 50).run()

        assert run.status == RunStatus.PARTIAL
        assert run.load.backends[BackendKind.ELASTICSEARCH].status == LoadStatus.FAILED
        assert run.load.backends[BackendKind.POSTGRES].documents_written == 50
        assert run.results_for(BackendKind.ELASTICSEARCH) == []
        assert len(run.results_for(BackendKind.POSTGRES)) == 8
        assert [e.phase for e in run.errors] == [Phase.INGEST]

    @pytest.mark.asyncio
    async def test_provisioning_failure_is_partial(self, pg_backend, make_backend):
        broken = make_backend(BackendKind.ELASTICSEARCH, fail_schema=True)
        run = await _engine([pg_backend, broken], 20).run()

        assert run.status == RunStatus.PARTIAL
        assert run.load.backends[BackendKind.ELASTICSEARCH].failed_phase == Phase.PROVISION
        assert broken.write_calls == 0
        assert len(run.results_for(BackendKind.POSTGRES)) == 8

    @pytest.mark.asyncio
    async def test_finalize_failure_skips_benchmark(self, make_backend, es_backend):
        broken = make_backend(BackendKind.POSTGRES, fail_finalize=True)
        run = await _engine([broken, es_backend], 20).run()

        assert run.load.backends[BackendKind.POSTGRES].failed_phase == Phase.FINALIZE
        assert run.results_for(BackendKind.POSTGRES) == []
        assert len(run.results_for(BackendKind.ELASTICSEARCH)) == 8

    @pytest.mark.asyncio
    async def test_every_backend_failing(self, make_backend):
        pg = make_backend(BackendKind.POSTGRES, fail_writes=-1)
        es = make_backend(BackendKind.ELASTICSEARCH, fail_writes=-1)
        run = await _engine([pg, es], 10).run()
        assert run.status == RunStatus.FAILED
        assert run.results == []

    @pytest.mark.asyncio
    async def test_failed_queries_keep_run_ok(self, make_backend, es_backend):
        pg = make_backend(BackendKind.POSTGRES, fail_queries={"nested_range"})
        run = await _engine([pg, es_backend], 10).run()
        assert run.status == RunStatus.OK
        assert not _by_label(run.results, BackendKind.POSTGRES)["nested_range"].ok
