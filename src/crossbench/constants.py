"""
Shared constants for the benchmark pipeline.
"""

from enum import Enum


class BackendKind(str, Enum):
    POSTGRES = "postgres"
    ELASTICSEARCH = "elasticsearch"


class SchemaVariant(str, Enum):
    FLAT = "flat"
    STRUCTURED = "structured"


class SchemaStatus(str, Enum):
    CREATED = "created"
    EXISTS = "exists"
    DRIFT = "drift"


class QueryShape(str, Enum):
    COUNT = "count"
    RESULTS = "results"


class BenchmarkMode(str, Enum):
    SEQUENTIAL = "sequential"
    CONCURRENT = "concurrent"


class CacheMode(str, Enum):
    WARM = "warm"
    COLD = "cold"


class LoadStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"


class RunStatus(str, Enum):
    OK = "ok"
    PARTIAL = "partial"
    FAILED = "failed"


class Phase:
    CONNECT = "connect"
    PROVISION = "provision"
    CLEAR = "clear"
    INGEST = "ingest"
    FINALIZE = "finalize"
    BENCHMARK = "benchmark"


# Small fixed vocabularies keep keyword and tag queries deterministic:
# every word below is a plain English noun whose stem collides with no other entry.
TEXT_VOCABULARY = [
    "database",
    "search",
    "engine",
    "cluster",
    "shard",
    "replica",
    "vector",
    "token",
    "query",
    "latency",
    "throughput",
    "pipeline",
    "schema",
    "column",
    "table",
    "document",
    "cache",
    "memory",
    "network",
    "server",
    "client",
    "request",
    "response",
    "payload",
    "record",
    "batch",
    "journal",
    "snapshot",
    "backup",
    "metric",
    "signal",
    "window",
    "budget",
    "river",
    "mountain",
    "garden",
    "orange",
    "violet",
    "silver",
    "copper",
    "harbor",
    "lantern",
    "meadow",
    "canyon",
    "falcon",
    "tiger",
    "planet",
    "comet",
    "galaxy",
    "ocean",
]

TAG_VOCABULARY = [
    "python",
    "rust",
    "golang",
    "java",
    "postgres",
    "elastic",
    "docker",
    "kubernetes",
    "linux",
    "cloud",
]

CATEGORIES = ["news", "blog", "manual", "report", "review", "tutorial"]
REGIONS = ["emea", "apac", "amer", "latam"]

DEFAULT_TABLE_PREFIX = "documents"
DEFAULT_INDEX_PREFIX = "documents"
