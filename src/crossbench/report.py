"""Report rendering for load timings and benchmark results.

Purely presentational: `emit` returns a string, `write` persists it. Three
formats are supported: markdown (default), plain text and JSON.
"""

import json
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from crossbench.constants import BackendKind, BenchmarkMode, CacheMode, Phase
from crossbench.schema import BenchmarkResult, LoadReport, RunReport
from crossbench.settings import settings as api_settings
from crossbench.utils import format_duration

FORMATS = ("markdown", "text", "json")
PHASES = (Phase.PROVISION, Phase.CLEAR, Phase.INGEST, Phase.FINALIZE)


def average_latency(results: Sequence[BenchmarkResult], kind: BackendKind) -> Optional[float]:
    """Mean latency of the successful queries of one backend."""
    latencies = [r.latency for r in results if r.backend == kind and r.ok and r.latency is not None]
    if not latencies:
        return None
    return sum(latencies) / len(latencies)


def parity(entries: Dict[BackendKind, BenchmarkResult]) -> str:
    """'yes' when every backend returned the same count, 'NO' when they differ, '-' when not comparable."""
    if len(entries) < 2 or not all(r.ok for r in entries.values()):
        return "-"
    return "yes" if len({r.count for r in entries.values()}) == 1 else "NO"


class ReportEmitter:
    """Formats a RunReport for humans (markdown/text) or machines (json)."""

    def __init__(self, fmt: Optional[str] = None) -> None:
        self.fmt = fmt or api_settings.REPORT_FORMAT
        if self.fmt not in FORMATS:
            raise ValueError(f"Unknown report format {self.fmt!r}; expected one of {', '.join(FORMATS)}")

    def emit(self, run: RunReport) -> str:
        if self.fmt == "json":
            return self._json(run)
        if self.fmt == "text":
            return self._text(run)
        return self._markdown(run)

    def write(self, run: RunReport, path: str | Path) -> Path:
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        output_path.write_text(self.emit(run), encoding="utf-8")
        return output_path

    # ------------------------------------------------------------------
    # Shared tables
    # ------------------------------------------------------------------

    @staticmethod
    def _backends(run: RunReport) -> List[BackendKind]:
        kinds = list(run.load.backends)
        for result in run.results:
            if result.backend not in kinds:
                kinds.append(result.backend)
        return kinds

    def _phase_rows(self, run: RunReport) -> List[List[str]]:
        rows = []
        for kind in self._backends(run):
            entry = run.load.backends.get(kind)
            if entry is None:
                continue
            status = entry.status.value
            if entry.failed_phase:
                status = f"FAILED ({entry.failed_phase})"
            throughput = run.load.throughput(kind)
            rows.append(
                [
                    kind.value,
                    status,
                    str(entry.documents_written),
                    str(entry.batches_written),
                    str(entry.batch_size),
                    str(entry.workers),
                    str(entry.retries),
                    *[format_duration(run.load.phase_duration(kind, phase)) for phase in PHASES],
                    f"{throughput:.0f} docs/s" if throughput else "-",
                ]
            )
        return rows

    def _query_rows(self, run: RunReport) -> List[List[str]]:
        kinds = self._backends(run)
        by_label: Dict[str, Dict[BackendKind, BenchmarkResult]] = {}
        for result in run.results:
            by_label.setdefault(result.label, {})[result.backend] = result
        rows = []
        for label, entries in by_label.items():
            row = [label]
            for kind in kinds:
                result = entries.get(kind)
                if result is None:
                    row.extend(["-", "-"])
                elif not result.ok:
                    row.extend(["FAILED", "FAILED"])
                else:
                    row.extend([format_duration(result.latency), str(result.count)])
            row.append(parity(entries))
            rows.append(row)
        return rows

    def _headers(self, run: RunReport):
        phase_header = [
            "Backend",
            "Status",
            "Documents",
            "Batches",
            "Batch size",
            "Workers",
            "Retries",
            *[p.capitalize() for p in PHASES],
            "Throughput",
        ]
        query_header = ["Query"]
        for kind in self._backends(run):
            query_header.extend([f"{kind.value} latency", f"{kind.value} count"])
        query_header.append("Parity")
        return phase_header, query_header

    # ------------------------------------------------------------------
    # Formats
    # ------------------------------------------------------------------

    def _markdown(self, run: RunReport) -> str:
        phase_header, query_header = self._headers(run)
        lines = [
            "# CrossBench Results",
            "",
            f"**Generated:** {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}",
            "",
            f"**Documents:** {run.load.document_count} ({run.load.variant.value}, seed {run.load.seed})",
            "",
            f"**Mode:** {run.mode.value}, **Cache:** {run.cache_mode.value}, **Status:** {run.status.value}",
            "",
            "## Load Phases",
            "",
            *_markdown_table(phase_header, self._phase_rows(run)),
            "",
            "## Queries",
            "",
            *_markdown_table(query_header, self._query_rows(run)),
            "",
            "## Average Latency",
            "",
        ]
        for kind in self._backends(run):
            lines.append(f"- **{kind.value}:** {format_duration(average_latency(run.results, kind))}")
        if run.errors:
            lines.extend(["", "## Failures", ""])
            for error in run.errors:
                backend = error.backend.value if error.backend else "run"
                lines.append(f"- **{backend}** ({error.phase}): {error.message}")
        lines.append("")
        return "\n".join(lines)

    def _text(self, run: RunReport) -> str:
        phase_header, query_header = self._headers(run)
        lines = [
            f"CrossBench results: {run.load.document_count} {run.load.variant.value} documents, "
            f"seed {run.load.seed}, mode {run.mode.value}, cache {run.cache_mode.value}, status {run.status.value}",
            "",
            *_text_table(phase_header, self._phase_rows(run)),
            "",
            *_text_table(query_header, self._query_rows(run)),
            "",
        ]
        for kind in self._backends(run):
            lines.append(f"average latency {kind.value}: {format_duration(average_latency(run.results, kind))}")
        for error in run.errors:
            backend = error.backend.value if error.backend else "run"
            lines.append(f"FAILED {backend} ({error.phase}): {error.message}")
        return "\n".join(lines) + "\n"

    def _json(self, run: RunReport) -> str:
        payload = run.model_dump(mode="json")
        payload["averages"] = {kind.value: average_latency(run.results, kind) for kind in self._backends(run)}
        return json.dumps(payload, indent=2)


def _markdown_table(header: List[str], rows: List[List[str]]) -> List[str]:
    lines = ["| " + " | ".join(header) + " |", "|" + "|".join("---" for _ in header) + "|"]
    lines.extend("| " + " | ".join(row) + " |" for row in rows)
    return lines


def _text_table(header: List[str], rows: List[List[str]]) -> List[str]:
    widths = [max(len(str(cell)) for cell in column) for column in zip(header, *rows)]
    lines = ["  ".join(cell.ljust(width) for cell, width in zip(header, widths))]
    lines.append("  ".join("-" * width for width in widths))
    lines.extend("  ".join(cell.ljust(width) for cell, width in zip(row, widths)) for row in rows)
    return lines


def emit(
    load_report: LoadReport,
    results: Sequence[BenchmarkResult],
    fmt: Optional[str] = None,
    mode: BenchmarkMode = BenchmarkMode.SEQUENTIAL,
    cache_mode: CacheMode = CacheMode.WARM,
) -> str:
    """Format a load report and its benchmark results."""
    run = RunReport(load=load_report, results=list(results), mode=mode, cache_mode=cache_mode)
    return ReportEmitter(fmt).emit(run)
