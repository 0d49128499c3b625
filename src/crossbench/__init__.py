"""
This __init__.py file makes the crossbench directory a Python package
and exposes the `BenchmarkEngine`, the backend interface and the schema
classes for easy access.
"""

from .abc import BackendAdapter, QueryOutcome
from .engine import BenchmarkEngine
from .generator import DocumentGenerator, generate
from .queries import DEFAULT_QUERIES, BenchmarkQuery, QueryKind
from .schema import BenchmarkResult, LoadReport, RunReport, SyntheticDocument, TimingSample

__version__ = "0.1.0"

__all__ = [
    "BenchmarkEngine",
    "BackendAdapter",
    "QueryOutcome",
    "DocumentGenerator",
    "generate",
    "BenchmarkQuery",
    "QueryKind",
    "DEFAULT_QUERIES",
    "SyntheticDocument",
    "TimingSample",
    "BenchmarkResult",
    "LoadReport",
    "RunReport",
]
