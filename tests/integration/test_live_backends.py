"""Integration tests against live PostgreSQL and Elasticsearch.

Runs the whole pipeline on real services to ensure:
- Both adapters provision, load and finalize the same documents
- Every benchmark query compiles and executes on both backends
- Count parity holds for keyword, tag, existence and range queries

Skipped when either backend is unreachable (see DATABASE_URL / ELASTICSEARCH_URL).
"""

import pytest
from dotenv import load_dotenv

from crossbench import BenchmarkEngine
from crossbench.constants import BackendKind, CacheMode, RunStatus, SchemaStatus, SchemaVariant
from crossbench.dbs import ElasticsearchAdapter, PostgresAdapter
from crossbench.exceptions import ConnectionError
from crossbench.loader import BulkLoader
from crossbench.runner import BenchmarkRunner

load_dotenv()

TARGET = "crossbench_it"


async def _backends(variant):
    backends = [
        PostgresAdapter(target_name=f"{TARGET}_{variant.value}", variant=variant, batch_size=100, workers=2),
        ElasticsearchAdapter(target_name=f"{TARGET}_{variant.value}", variant=variant, batch_size=200, workers=2),
    ]
    try:
        for backend in backends:
            await backend.connect()
            await backend.health_check()
    except ConnectionError as e:
        for backend in backends:
            await backend.close()
        pytest.skip(f"Backends not available: {e}")
    return backends


def _engine(backends, count, variant, cache_mode=CacheMode.WARM):
    return BenchmarkEngine(
        backends=backends,
        document_count=count,
        variant=variant,
        seed=7,
        optional_absence_rate=0.05,
        reset_before_load=True,
        loader=BulkLoader(show_progress=False),
        runner=BenchmarkRunner(cache_mode=cache_mode),
    )


def _counts(run, kind):
    return {r.label: r.count for r in run.results_for(kind)}


@pytest.mark.asyncio
async def test_flat_pipeline_parity():
    """Test a small flat run produces matching keyword counts on both backends."""
    backends = await _backends(SchemaVariant.FLAT)
    run = await _engine(backends, 100, SchemaVariant.FLAT).run()

    assert run.status == RunStatus.OK
    pg = _counts(run, BackendKind.POSTGRES)
    es = _counts(run, BackendKind.ELASTICSEARCH)
    assert len(pg) == len(es) == 8
    assert pg["keyword_match"] == es["keyword_match"] > 0
    assert all(r.latency >= 0 for r in run.results)


@pytest.mark.asyncio
async def test_structured_pipeline_parity():
    """Test every structured query agrees across backends and the optional attribute partitions the set."""
    backends = await _backends(SchemaVariant.STRUCTURED)
    run = await _engine(backends, 2_000, SchemaVariant.STRUCTURED, cache_mode=CacheMode.COLD).run()

    assert run.status == RunStatus.OK
    pg = _counts(run, BackendKind.POSTGRES)
    es = _counts(run, BackendKind.ELASTICSEARCH)
    for label in ("keyword_match", "tag_contains", "tag_missing", "optional_attribute_exists", "nested_range"):
        assert pg[label] == es[label], label
    assert pg["tag_missing"] == 0
    assert pg["optional_attribute_exists"] + pg["optional_attribute_absent"] == 2_000


@pytest.mark.asyncio
async def test_provisioning_is_idempotent():
    backends = await _backends(SchemaVariant.FLAT)
    try:
        for backend in backends:
            await backend.ensure_schema()
            assert await backend.ensure_schema() in (SchemaStatus.EXISTS, SchemaStatus.DRIFT)
    finally:
        for backend in backends:
            await backend.close()
