"""Concurrent batched ingestion into every backend.

One producer makes a single pass over the seeded document stream and fans
each backend's batches out to that backend's bounded queue, where a fixed
pool of workers drains it. Offers never wait: a backend whose queue is full
has fallen behind, so it is detached and replays the rest of the stream on
its own instead of holding generation back for the other one. Memory per
backend stays bounded by `channel_capacity * batch_size` documents.
"""

import asyncio
from itertools import islice
from typing import Dict, List, Optional, Sequence

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt, wait_exponential
from tqdm import tqdm

from crossbench.abc import BackendAdapter
from crossbench.constants import BackendKind, Phase
from crossbench.exceptions import BatchWriteError
from crossbench.generator import DocumentFactory
from crossbench.logger import Logger
from crossbench.schema import BackendLoadReport, LoadReport, SyntheticDocument
from crossbench.settings import settings as api_settings
from crossbench.utils import ProgressCounter, Stopwatch, batch_count, chunk_iter

Batch = List[SyntheticDocument]

# Sentinel telling a worker the producer is done.
_DONE = None


class _Lane:
    """One backend's bounded batch queue and its position in the shared stream."""

    def __init__(self, target: BackendAdapter, capacity: int) -> None:
        self.target = target
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)
        self.buffer: Batch = []
        self.queued = 0
        self.closed = False
        self.replay: Optional[asyncio.Task] = None
        self.error: Optional[Exception] = None

    @property
    def attached(self) -> bool:
        return not self.closed and self.replay is None

    def collect(self, doc: SyntheticDocument) -> Optional[Batch]:
        """Buffer one document; return a full batch once `batch_size` is reached."""
        self.buffer.append(doc)
        if len(self.buffer) < self.target.batch_size:
            return None
        batch, self.buffer = self.buffer, []
        return batch

    def offer(self, batch: Batch) -> bool:
        """Queue a batch without waiting; False when the queue is full."""
        if self.queue.full():
            return False
        self.queue.put_nowait(batch)
        self.queued += len(batch)
        return True

    async def put(self, batch: Batch) -> None:
        await self.queue.put(batch)
        self.queued += len(batch)

    async def finish(self) -> None:
        """Queue the trailing partial batch and one sentinel per worker."""
        pending: List[Optional[Batch]] = [self.buffer] if self.buffer else []
        self.buffer = []
        for item in pending + [_DONE] * self.target.workers:
            if self.closed:
                return
            await self.queue.put(item)

    def drain(self) -> None:
        # Wakes a producer blocked on a full queue nobody reads any more.
        while not self.queue.empty():
            self.queue.get_nowait()


class BulkLoader:
    """Streams generated documents into all backends at once.

    Attributes:
        channel_capacity: Batches buffered per backend between producer and workers
        max_retries: Retries per batch after the first attempt
        backoff: Base of the exponential backoff, in seconds
        backoff_max: Upper bound of a single backoff sleep, in seconds
        show_progress: Render tqdm bars from the progress counters
        progress_interval: Seconds between progress bar refreshes
    """

    def __init__(
        self,
        channel_capacity: Optional[int] = None,
        max_retries: Optional[int] = None,
        backoff: Optional[float] = None,
        backoff_max: Optional[float] = None,
        show_progress: Optional[bool] = None,
        progress_interval: float = 0.5,
        logger: Optional[Logger] = None,
    ) -> None:
        self.channel_capacity = channel_capacity or api_settings.CHANNEL_CAPACITY
        self.max_retries = api_settings.MAX_RETRIES if max_retries is None else max_retries
        self.backoff = api_settings.RETRY_BACKOFF_SECONDS if backoff is None else backoff
        self.backoff_max = api_settings.RETRY_BACKOFF_MAX_SECONDS if backoff_max is None else backoff_max
        self.show_progress = api_settings.SHOW_PROGRESS if show_progress is None else show_progress
        self.progress_interval = progress_interval
        self.logger = logger or Logger(self.__class__.__name__)

    async def load(
        self,
        documents: DocumentFactory,
        targets: Sequence[BackendAdapter],
        report: LoadReport,
    ) -> LoadReport:
        """Load every document into every target.

        Args:
            documents: Zero-argument callable returning a fresh pass of the stream
            targets: Backends to write to; each is supervised independently
            report: Report receiving counts, timings and per-backend failures

        Returns:
            The same report, with one BackendLoadReport per target
        """
        lanes = [_Lane(target, self.channel_capacity) for target in targets]
        counters = {target.kind: ProgressCounter(report.document_count) for target in targets}
        reporter = asyncio.create_task(self._report_progress(counters)) if self.show_progress and targets else None
        producer = asyncio.create_task(self._broadcast(documents, lanes)) if lanes else None
        try:
            results = await asyncio.gather(
                *(self._supervise(lane, counters[lane.target.kind], report) for lane in lanes),
                return_exceptions=True,
            )
        finally:
            # Every supervisor has returned, so nothing still needs the producer.
            for task in (producer, reporter):
                if task is not None:
                    task.cancel()
                    await asyncio.gather(task, return_exceptions=True)

        for target, result in zip(targets, results):
            if isinstance(result, BaseException):
                report.mark_failed(target.kind, Phase.INGEST, result)
                self.logger.error(
                    "Load aborted for %s after %d documents: %s",
                    target.name,
                    counters[target.kind].written,
                    result,
                )
            else:
                self.logger.message(
                    "Loaded %d documents into %s in %.2fs.",
                    counters[target.kind].written,
                    target.name,
                    report.phase_duration(target.kind, Phase.INGEST) or 0.0,
                )
        return report

    # ------------------------------------------------------------------
    # Producers
    # ------------------------------------------------------------------

    async def _broadcast(self, documents: DocumentFactory, lanes: List[_Lane]) -> None:
        try:
            for doc in documents():
                attached = [lane for lane in lanes if lane.attached]
                if not attached:
                    return
                offered = False
                for lane in attached:
                    batch = lane.collect(doc)
                    if batch is None:
                        continue
                    offered = True
                    if not lane.offer(batch):
                        self._detach(documents, lane)
                if offered:
                    # Let workers run between batches; offers never yield.
                    await asyncio.sleep(0)
        except Exception as e:
            for lane in lanes:
                if lane.attached:
                    lane.error = e
        await asyncio.gather(*(lane.finish() for lane in lanes if lane.attached))

    def _detach(self, documents: DocumentFactory, lane: _Lane) -> None:
        # The rejected batch was never queued; the replay regenerates it.
        lane.buffer = []
        lane.replay = asyncio.create_task(self._replay(documents, lane))
        self.logger.debug(
            "%s fell behind after %d documents; replaying the rest of the stream separately.",
            lane.target.name,
            lane.queued,
        )

    async def _replay(self, documents: DocumentFactory, lane: _Lane) -> None:
        size = lane.target.batch_size
        try:
            stream = documents()
            for _ in chunk_iter(islice(stream, lane.queued), size):
                await asyncio.sleep(0)
            for batch in chunk_iter(stream, size):
                await lane.put(batch)
                await asyncio.sleep(0)
        except Exception as e:
            lane.error = e
        await lane.finish()

    # ------------------------------------------------------------------
    # Supervisor
    # ------------------------------------------------------------------

    async def _supervise(self, lane: _Lane, counter: ProgressCounter, report: LoadReport) -> None:
        target = lane.target
        entry = report.backend(target.kind)
        entry.batch_size = target.batch_size
        entry.workers = target.workers
        clock = Stopwatch(lazy=True)
        self.logger.debug(
            "Loading %s: %d batches of %d over %d workers.",
            target.name,
            batch_count(report.document_count, target.batch_size),
            target.batch_size,
            target.workers,
        )

        workers = [
            asyncio.create_task(self._work(target, lane.queue, counter, entry, clock)) for _ in range(target.workers)
        ]
        try:
            await asyncio.gather(*workers)
            if lane.error is not None:
                raise lane.error
            if counter.batches:
                await self._with_retry(target, entry, "flush", target.flush)
        except BaseException:
            lane.closed = True
            tasks = [*workers, lane.replay] if lane.replay is not None else workers
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            lane.drain()
            raise
        finally:
            entry.documents_written = counter.written
            entry.batches_written = counter.batches
            report.record(clock.sample(Phase.INGEST, target.kind))

    async def _work(
        self,
        target: BackendAdapter,
        queue: asyncio.Queue,
        counter: ProgressCounter,
        entry: BackendLoadReport,
        clock: Stopwatch,
    ) -> None:
        while True:
            batch = await queue.get()
            if batch is _DONE:
                return
            clock.begin()
            written = await self._with_retry(target, entry, "write_batch", target.write_batch, batch)
            counter.add(written)
            self.logger.debug(
                "%s acknowledged batch of %d (ids %d..%d), total %d",
                target.name,
                written,
                batch[0].id,
                batch[-1].id,
                counter.written,
            )

    # ------------------------------------------------------------------
    # Retry
    # ------------------------------------------------------------------

    async def _with_retry(self, target: BackendAdapter, entry: BackendLoadReport, operation: str, func, *args):
        """Call `func(*args)` with exponential backoff; raise BatchWriteError once retries are exhausted."""

        def before_sleep(state: RetryCallState) -> None:
            entry.retries += 1
            self.logger.warning(
                "%s %s failed (attempt %d/%d), retrying in %.2fs: %s",
                target.name,
                operation,
                state.attempt_number,
                self.max_retries + 1,
                state.next_action.sleep if state.next_action else 0.0,
                state.outcome.exception() if state.outcome else None,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.backoff, max=self.backoff_max),
            retry=retry_if_exception_type(Exception),
            before_sleep=before_sleep,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await func(*args)
        except Exception as e:
            details = {"batch_size": len(args[0]), "first_id": args[0][0].id} if args and args[0] else {}
            raise BatchWriteError(
                f"{operation} failed after retries",
                backend=target.kind,
                phase=Phase.INGEST,
                attempts=self.max_retries + 1,
                original_error=str(e),
                **details,
            ) from e

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    async def _report_progress(self, counters: Dict[BackendKind, ProgressCounter]) -> None:
        bars = {
            kind: tqdm(total=counter.total, desc=kind.value, unit="doc", position=position, leave=True)
            for position, (kind, counter) in enumerate(counters.items())
        }
        try:
            while not all(counter.done for counter in counters.values()):
                await asyncio.sleep(self.progress_interval)
                self._refresh(bars, counters)
        finally:
            self._refresh(bars, counters)
            for bar in bars.values():
                bar.close()

    @staticmethod
    def _refresh(bars: Dict[BackendKind, tqdm], counters: Dict[BackendKind, ProgressCounter]) -> None:
        for kind, bar in bars.items():
            delta = counters[kind].written - bar.n
            if delta > 0:
                bar.update(delta)


async def load(documents: DocumentFactory, targets: Sequence[BackendAdapter], report: LoadReport) -> LoadReport:
    """Shortcut for `BulkLoader().load(...)` with settings defaults."""
    return await BulkLoader().load(documents, targets, report)
