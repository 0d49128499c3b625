"""Utility functions for crossbench.

Shared helpers for batching, naming and timing used across the pipeline.
"""

import math
import time
from contextlib import contextmanager
from datetime import datetime, timezone
from itertools import islice
from typing import Iterable, Iterator, List, Optional, TypeVar

from .constants import DEFAULT_INDEX_PREFIX, DEFAULT_TABLE_PREFIX, BackendKind, SchemaVariant
from .schema import TimingSample

T = TypeVar("T")


# ===========================================================================
# Batching
# ===========================================================================


def chunk_iter(items: Iterable[T], size: int) -> Iterator[List[T]]:
    """Yield successive lists of at most `size` items from any iterable.

    The iterable is consumed lazily so a generator is never materialized.

    Raises:
        ValueError: If size < 1
    """
    if size < 1:
        raise ValueError(f"batch size must be >= 1, got {size}")
    iterator = iter(items)
    while True:
        batch = list(islice(iterator, size))
        if not batch:
            return
        yield batch


def batch_count(total: int, size: int) -> int:
    """Number of batches `chunk_iter` yields for `total` items."""
    if size < 1:
        raise ValueError(f"batch size must be >= 1, got {size}")
    return math.ceil(max(total, 0) / size)


# ===========================================================================
# Naming
# ===========================================================================


def default_target_name(kind: BackendKind, variant: SchemaVariant | str) -> str:
    """Table/index name used when TABLE_NAME or INDEX_NAME is not configured."""
    variant = SchemaVariant(variant)
    prefix = DEFAULT_TABLE_PREFIX if kind == BackendKind.POSTGRES else DEFAULT_INDEX_PREFIX
    return f"{prefix}_{variant.value}"


# ===========================================================================
# Timing
# ===========================================================================


def format_duration(seconds: Optional[float]) -> str:
    """Format duration in human-readable format."""
    if seconds is None:
        return "-"
    if seconds < 1:
        return f"{seconds * 1000:.2f}ms"
    elif seconds < 60:
        return f"{seconds:.2f}s"
    else:
        minutes = int(seconds // 60)
        secs = seconds % 60
        return f"{minutes}m {secs:.2f}s"


class Stopwatch:
    """Records perf_counter() bounds of a phase.

    Started immediately unless `lazy=True`, in which case the first `begin()`
    call sets the start (used to start ingest timing at the first dispatch).

    Example:
        >>> with stopwatch() as sw:
        ...     do_work()
        >>> sw.sample("ingest", BackendKind.POSTGRES).duration
    """

    def __init__(self, lazy: bool = False) -> None:
        self.start: Optional[float] = None
        self.end: Optional[float] = None
        self.started_at: Optional[datetime] = None
        if not lazy:
            self.begin()

    def begin(self) -> None:
        if self.start is None:
            self.start = time.perf_counter()
            self.started_at = datetime.now(timezone.utc)

    def stop(self) -> float:
        self.end = time.perf_counter()
        return self.elapsed

    @property
    def elapsed(self) -> float:
        if self.start is None:
            return 0.0
        end = self.end if self.end is not None else time.perf_counter()
        return end - self.start

    def sample(self, phase: str, backend: Optional[BackendKind] = None) -> TimingSample:
        """Freeze the measurement into a TimingSample; a never-begun watch yields zero duration."""
        if self.end is None:
            self.stop()
        start = self.start if self.start is not None else self.end
        return TimingSample(
            phase=phase,
            backend=backend,
            start=start,
            end=self.end,
            started_at=self.started_at or datetime.now(timezone.utc),
        )


@contextmanager
def stopwatch() -> Iterator[Stopwatch]:
    sw = Stopwatch()
    try:
        yield sw
    finally:
        sw.stop()


# ===========================================================================
# Progress
# ===========================================================================


class ProgressCounter:
    """Monotonic per-backend count of acknowledged documents.

    Workers of one backend share a single counter. Increments happen between
    awaits on the event loop thread, so no lock is needed.
    """

    def __init__(self, total: int = 0) -> None:
        self.total = max(total, 0)
        self._written = 0
        self._batches = 0

    def add(self, documents: int) -> int:
        if documents < 0:
            raise ValueError("progress cannot go backwards")
        self._written += documents
        self._batches += 1
        return self._written

    @property
    def written(self) -> int:
        return self._written

    @property
    def batches(self) -> int:
        return self._batches

    @property
    def done(self) -> bool:
        return self._written >= self.total

    def __repr__(self) -> str:
        return f"ProgressCounter(written={self._written}, total={self.total})"

