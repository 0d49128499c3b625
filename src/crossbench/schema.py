"""Pydantic schemas for documents, timings, results and reports."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator

from .constants import BackendKind, BenchmarkMode, CacheMode, LoadStatus, RunStatus, SchemaStatus, SchemaVariant

Scalar = Union[str, int, float, bool]


class SyntheticDocument(BaseModel):
    """One generated record. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    id: int = Field(..., ge=1, description="Sequence number, unique within a run.")
    title: str
    content: str
    tags: Optional[Tuple[str, ...]] = Field(None, description="Unique tags; None for the flat variant.")
    attributes: Optional[Dict[str, Any]] = Field(None, description="Scalars or one level of nested scalars.")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @field_validator("tags")
    @classmethod
    def _unique_tags(cls, value: Optional[Tuple[str, ...]]) -> Optional[Tuple[str, ...]]:
        if value is not None and len(set(value)) != len(value):
            raise ValueError("tags must be unique")
        return value

    @field_validator("attributes")
    @classmethod
    def _max_two_levels(cls, value: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
        if value is None:
            return value
        for key, leaf in value.items():
            if isinstance(leaf, dict):
                if any(isinstance(inner, (dict, list)) for inner in leaf.values()):
                    raise ValueError(f"attribute '{key}' nests deeper than two levels")
            elif not isinstance(leaf, (str, int, float, bool)):
                raise ValueError(f"attribute '{key}' must be a scalar or a mapping of scalars")
        return value

    @property
    def text(self) -> str:
        """Title and content joined the way both full-text indexes see them."""
        return f"{self.title} {self.content}"

    def to_row(self) -> Tuple[Any, ...]:
        """Column tuple for the relational COPY stream."""
        return (
            self.id,
            self.title,
            self.content,
            self.created_at,
            list(self.tags) if self.tags is not None else None,
            self.attributes,
        )

    def to_source(self) -> Dict[str, Any]:
        """Document body for the search index."""
        source: Dict[str, Any] = {
            "title": self.title,
            "content": self.content,
            "created_at": self.created_at.isoformat(),
        }
        if self.tags is not None:
            source["tags"] = list(self.tags)
        if self.attributes is not None:
            source["attributes"] = self.attributes
        return source


class SchemaDescriptor(BaseModel):
    """Target table/index and its field mapping."""

    model_config = ConfigDict(frozen=True)

    name: str
    variant: SchemaVariant
    fields: Dict[str, str] = Field(default_factory=dict)


class TimingSample(BaseModel):
    """Wall-clock measurement of one pipeline phase."""

    model_config = ConfigDict(frozen=True)

    phase: str
    backend: Optional[BackendKind] = None
    start: float = Field(..., description="perf_counter() at phase start.")
    end: float = Field(..., description="perf_counter() at phase end.")
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @computed_field  # type: ignore[prop-decorator]
    @property
    def duration(self) -> float:
        return max(0.0, self.end - self.start)


class BenchmarkResult(BaseModel):
    """Outcome of one query against one backend."""

    label: str
    backend: BackendKind
    count: Optional[int] = None
    latency: Optional[float] = Field(None, description="Seconds from dispatch to materialized result.")
    mode: BenchmarkMode = BenchmarkMode.SEQUENTIAL
    error: Optional[str] = None

    @computed_field  # type: ignore[prop-decorator]
    @property
    def ok(self) -> bool:
        return self.error is None and self.count is not None

    @classmethod
    def failed(cls, label: str, backend: BackendKind, error: str, mode: BenchmarkMode) -> "BenchmarkResult":
        return cls(label=label, backend=backend, count=None, latency=None, mode=mode, error=error)


class BackendLoadReport(BaseModel):
    """Ingestion summary for one backend."""

    backend: BackendKind
    status: LoadStatus = LoadStatus.OK
    schema_status: Optional[SchemaStatus] = None
    documents_written: int = 0
    batches_written: int = 0
    batch_size: int = 0
    workers: int = 0
    retries: int = 0
    error: Optional[str] = None
    failed_phase: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status == LoadStatus.OK


class LoadReport(BaseModel):
    """Structured timing breakdown of the ingestion phases per backend."""

    document_count: int = 0
    variant: SchemaVariant = SchemaVariant.FLAT
    seed: Optional[int] = None
    backends: Dict[BackendKind, BackendLoadReport] = Field(default_factory=dict)
    timings: List[TimingSample] = Field(default_factory=list)

    def backend(self, kind: BackendKind) -> BackendLoadReport:
        if kind not in self.backends:
            self.backends[kind] = BackendLoadReport(backend=kind)
        return self.backends[kind]

    def record(self, sample: TimingSample) -> TimingSample:
        self.timings.append(sample)
        return sample

    def phase_duration(self, kind: BackendKind, phase: str) -> Optional[float]:
        durations = [t.duration for t in self.timings if t.backend == kind and t.phase == phase]
        return sum(durations) if durations else None

    def throughput(self, kind: BackendKind) -> Optional[float]:
        """Documents per second over the ingest phase."""
        duration = self.phase_duration(kind, "ingest")
        if not duration:
            return None
        return self.backend(kind).documents_written / duration

    def mark_failed(self, kind: BackendKind, phase: str, error: BaseException | str) -> None:
        entry = self.backend(kind)
        entry.status = LoadStatus.FAILED
        entry.failed_phase = phase
        entry.error = str(error)


class FatalError(BaseModel):
    backend: Optional[BackendKind] = None
    phase: str
    message: str


class RunReport(BaseModel):
    """Everything a run produced: load timings, benchmark results, failures."""

    load: LoadReport
    results: List[BenchmarkResult] = Field(default_factory=list)
    mode: BenchmarkMode = BenchmarkMode.SEQUENTIAL
    cache_mode: CacheMode = CacheMode.WARM
    errors: List[FatalError] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def status(self) -> RunStatus:
        if not self.load.backends:
            return RunStatus.FAILED if self.errors else RunStatus.OK
        failed = [b for b in self.load.backends.values() if not b.ok]
        if not failed and not self.errors:
            return RunStatus.OK
        if len(failed) == len(self.load.backends):
            return RunStatus.FAILED
        return RunStatus.PARTIAL

    def results_for(self, kind: BackendKind) -> List[BenchmarkResult]:
        return [r for r in self.results if r.backend == kind]
