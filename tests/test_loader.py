"""Tests for concurrent batched ingestion."""

import asyncio

import pytest

from crossbench.constants import BackendKind, LoadStatus, Phase, SchemaVariant
from crossbench.exceptions import BatchWriteError
from crossbench.generator import DocumentGenerator
from crossbench.loader import BulkLoader
from crossbench.schema import LoadReport


def _loader(**kwargs):
    kwargs.setdefault("max_retries", 3)
    return BulkLoader(channel_capacity=2, backoff=0, backoff_max=0, show_progress=False, **kwargs)


def _factory(count, variant=SchemaVariant.FLAT):
    return DocumentGenerator(variant, seed=99).factory(count)


class TestBulkLoader:
    """Loading into one or more in-memory backends."""

    @pytest.mark.asyncio
    async def test_all_documents_written(self, pg_backend, es_backend):
        report = LoadReport(document_count=100)
        await _loader().load(_factory(100), [pg_backend, es_backend], report)

        for backend in (pg_backend, es_backend):
            entry = report.backends[backend.kind]
            assert entry.status == LoadStatus.OK
            assert entry.documents_written == 100
            assert sorted(backend.docs) == list(range(1, 101))
            assert backend.flushed == 1

    @pytest.mark.asyncio
    async def test_batch_counts_follow_batch_size(self, pg_backend, es_backend):
        report = LoadReport(document_count=100)
        await _loader().load(_factory(100), [pg_backend, es_backend], report)

        assert report.backends[BackendKind.POSTGRES].batches_written == 15  # ceil(100 / 7)
        assert report.backends[BackendKind.ELASTICSEARCH].batches_written == 5
        assert pg_backend.max_batch_seen <= 7
        assert report.backends[BackendKind.POSTGRES].workers == 3

    @pytest.mark.asyncio
    async def test_same_documents_reach_every_backend(self, pg_backend, es_backend):
        report = LoadReport(document_count=40)
        await _loader().load(_factory(40, SchemaVariant.STRUCTURED), [pg_backend, es_backend], report)
        assert pg_backend.docs == es_backend.docs

    @pytest.mark.asyncio
    async def test_ingest_timing_recorded_per_backend(self, pg_backend, es_backend):
        report = LoadReport(document_count=30)
        await _loader().load(_factory(30), [pg_backend, es_backend], report)
        ingest = [t for t in report.timings if t.phase == Phase.INGEST]
        assert {t.backend for t in ingest} == {BackendKind.POSTGRES, BackendKind.ELASTICSEARCH}

    @pytest.mark.asyncio
    async def test_zero_documents(self, pg_backend):
        report = LoadReport(document_count=0)
        await _loader().load(_factory(0), [pg_backend], report)

        entry = report.backends[BackendKind.POSTGRES]
        assert entry.status == LoadStatus.OK
        assert entry.batches_written == 0
        assert pg_backend.write_calls == 0
        assert pg_backend.flushed == 0
        assert report.phase_duration(BackendKind.POSTGRES, Phase.INGEST) == 0.0

    @pytest.mark.asyncio
    async def test_no_targets(self):
        report = LoadReport(document_count=10)
        await _loader().load(_factory(10), [], report)
        assert report.backends == {}

    @pytest.mark.asyncio
    async def test_replayed_batch_is_idempotent(self, pg_backend):
        report = LoadReport(document_count=20)
        loader = _loader()
        await loader.load(_factory(20), [pg_backend], report)
        await loader.load(_factory(20), [pg_backend], LoadReport(document_count=20))
        assert await pg_backend.count() == 20


def _counting(factory):
    """Wrap a document factory to record how many passes were started."""
    passes = []

    def documents():
        passes.append(1)
        return factory()

    return documents, passes


class TestFanOut:
    @pytest.mark.asyncio
    async def test_single_generation_pass(self, pg_backend, es_backend):
        documents, passes = _counting(_factory(100))
        await _loader().load(documents, [pg_backend, es_backend], LoadReport(document_count=100))
        assert len(passes) == 1
        assert pg_backend.docs == es_backend.docs

    @pytest.mark.asyncio
    async def test_slow_backend_replays_on_its_own(self, pg_backend, make_backend):
        slow = make_backend(BackendKind.ELASTICSEARCH, batch_size=5, workers=1, write_delay=0.05)
        documents, passes = _counting(_factory(60))
        report = LoadReport(document_count=60)
        await _loader().load(documents, [pg_backend, slow], report)

        assert len(passes) == 2
        assert sorted(slow.docs) == list(range(1, 61))
        assert slow.docs == pg_backend.docs
        assert report.backends[BackendKind.ELASTICSEARCH].batches_written == 12
        assert report.backends[BackendKind.POSTGRES].status == LoadStatus.OK

    @pytest.mark.asyncio
    async def test_generator_failure_fails_every_backend(self, pg_backend, es_backend):
        def broken():
            yield from _factory(10)()
            raise RuntimeError("generator broke")

        report = LoadReport(document_count=50)
        await _loader().load(broken, [pg_backend, es_backend], report)

        for backend in (pg_backend, es_backend):
            entry = report.backends[backend.kind]
            assert entry.status == LoadStatus.FAILED
            assert "generator broke" in entry.error
            assert backend.flushed == 0


class TestRetries:
    @pytest.mark.asyncio
    async def test_transient_failures_retried(self, make_backend):
        backend = make_backend(BackendKind.POSTGRES, batch_size=5, workers=1, fail_writes=2)
        report = LoadReport(document_count=10)
        await _loader(max_retries=3).load(_factory(10), [backend], report)

        entry = report.backends[BackendKind.POSTGRES]
        assert entry.status == LoadStatus.OK
        assert entry.retries == 2
        assert entry.documents_written == 10
        assert backend.write_calls == 4

    @pytest.mark.asyncio
    async def test_exhausted_retries_fail_backend(self, make_backend):
        backend = make_backend(BackendKind.ELASTICSEARCH, batch_size=5, workers=1, fail_writes=-1)
        report = LoadReport(document_count=10)
        await _loader(max_retries=2).load(_factory(10), [backend], report)

        entry = report.backends[BackendKind.ELASTICSEARCH]
        assert entry.status == LoadStatus.FAILED
        assert entry.failed_phase == Phase.INGEST
        assert entry.documents_written == 0
        assert backend.write_calls == 3
        assert "write rejected" in entry.error

    @pytest.mark.asyncio
    async def test_failure_isolated_to_one_backend(self, pg_backend, make_backend):
        broken = make_backend(BackendKind.ELASTICSEARCH, batch_size=10, workers=2, fail_writes=-1)
        report = LoadReport(document_count=50)
        await _loader(max_retries=1).load(_factory(50), [pg_backend, broken], report)

        assert report.backends[BackendKind.POSTGRES].status == LoadStatus.OK
        assert report.backends[BackendKind.POSTGRES].documents_written == 50
        assert report.backends[BackendKind.ELASTICSEARCH].status == LoadStatus.FAILED

    @pytest.mark.asyncio
    async def test_with_retry_raises_batch_write_error(self, make_backend):
        backend = make_backend(BackendKind.POSTGRES, fail_writes=-1)
        batch = list(_factory(3)())
        loader = _loader(max_retries=0)
        entry = LoadReport().backend(BackendKind.POSTGRES)
        with pytest.raises(BatchWriteError) as exc_info:
            await loader._with_retry(backend, entry, "write_batch", backend.write_batch, batch)
        assert exc_info.value.details["batch_size"] == 3
        assert exc_info.value.details["first_id"] == 1
        assert exc_info.value.details["attempts"] == 1


class TestProgress:
    @pytest.mark.asyncio
    async def test_progress_bars_close(self, pg_backend):
        loader = BulkLoader(show_progress=True, progress_interval=0.01, backoff=0)
        report = LoadReport(document_count=25)
        await loader.load(_factory(25), [pg_backend], report)
        await asyncio.sleep(0)
        assert report.backends[BackendKind.POSTGRES].documents_written == 25
