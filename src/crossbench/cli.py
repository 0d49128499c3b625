"""Command line entry point.

Usage:
    # Default run: settings from the environment / .env
    crossbench

    # Quick flat run with a fixed seed
    crossbench --count 100 --variant flat --seed 42

    # Cold-cache concurrent benchmark, JSON report to a file
    crossbench --mode concurrent --cache-mode cold --format json --output results/run.json

Exit codes:
    0  run completed and every backend succeeded
    1  run completed but at least one backend failed (partial or failed)
    2  fatal startup error (invalid configuration, unreachable backend)
"""

import argparse
import asyncio
import sys
from typing import Dict, List, Optional

from dotenv import load_dotenv

from crossbench.constants import RunStatus
from crossbench.exceptions import ConfigurationError, ConnectionError
from crossbench.logger import get_logger, setup_global_logging
from crossbench.settings import CrossBenchSettings, settings, validate_settings

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_FATAL = 2

# argparse dest -> settings field
OVERRIDES: Dict[str, str] = {
    "count": "DOCUMENT_COUNT",
    "variant": "SCHEMA_VARIANT",
    "seed": "SEED",
    "absence_rate": "OPTIONAL_ABSENCE_RATE",
    "table": "TABLE_NAME",
    "index": "INDEX_NAME",
    "pg_batch_size": "PG_BATCH_SIZE",
    "es_batch_size": "ES_BATCH_SIZE",
    "pg_workers": "PG_WORKERS",
    "es_workers": "ES_WORKERS",
    "channel_capacity": "CHANNEL_CAPACITY",
    "max_retries": "MAX_RETRIES",
    "limit": "QUERY_RESULT_LIMIT",
    "mode": "BENCHMARK_MODE",
    "cache_mode": "CACHE_MODE",
    "format": "REPORT_FORMAT",
    "log_level": "LOG_LEVEL",
    "database_url": "DATABASE_URL",
    "elasticsearch_url": "ELASTICSEARCH_URL",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="crossbench",
        description="Load synthetic documents into PostgreSQL and Elasticsearch and benchmark both",
    )
    parser.add_argument("--env-file", type=str, default=None, help="Read settings from this .env file first")
    parser.add_argument("--count", type=int, help="Number of documents to generate (default: DOCUMENT_COUNT)")
    parser.add_argument("--variant", choices=["flat", "structured"], help="Schema variant")
    parser.add_argument("--seed", type=int, help="Generation seed (default: random, recorded in the report)")
    parser.add_argument("--absence-rate", type=float, help="Probability the optional attribute is absent")
    parser.add_argument("--table", type=str, help="PostgreSQL table name")
    parser.add_argument("--index", type=str, help="Elasticsearch index name")
    parser.add_argument("--pg-batch-size", type=int, help="Documents per PostgreSQL COPY batch")
    parser.add_argument("--es-batch-size", type=int, help="Documents per Elasticsearch bulk request")
    parser.add_argument("--pg-workers", type=int, help="Concurrent PostgreSQL batch writers")
    parser.add_argument("--es-workers", type=int, help="Concurrent Elasticsearch batch writers")
    parser.add_argument("--channel-capacity", type=int, help="Batches buffered per backend")
    parser.add_argument("--max-retries", type=int, help="Retries per failed batch")
    parser.add_argument("--limit", type=int, help="Rows fetched by result-set queries")
    parser.add_argument("--mode", choices=["sequential", "concurrent"], help="Benchmark mode")
    parser.add_argument("--cache-mode", choices=["warm", "cold"], help="Cache state for measured queries")
    parser.add_argument("--format", choices=["markdown", "text", "json"], help="Report format")
    parser.add_argument("--output", type=str, default=None, help="Write the report to this file instead of stdout")
    parser.add_argument("--log-level", type=str, help="Log level (DEBUG, INFO, WARNING, ...)")
    parser.add_argument("--database-url", type=str, help="PostgreSQL connection URL")
    parser.add_argument("--elasticsearch-url", type=str, help="Elasticsearch URL")
    parser.add_argument("--no-reset", action="store_true", help="Keep previously loaded data")
    parser.add_argument("--no-progress", action="store_true", help="Disable progress bars")
    return parser


def apply_overrides(args: argparse.Namespace, config: CrossBenchSettings = settings) -> CrossBenchSettings:
    """Copy explicitly given CLI values onto the settings singleton."""
    if args.env_file:
        fresh = CrossBenchSettings(_env_file=args.env_file)
        for field in CrossBenchSettings.model_fields:
            setattr(config, field, getattr(fresh, field))
    for dest, field in OVERRIDES.items():
        value = getattr(args, dest, None)
        if value is not None:
            setattr(config, field, value)
    if args.no_reset:
        config.RESET_BEFORE_LOAD = False
    if args.no_progress:
        config.SHOW_PROGRESS = False
    return validate_settings(config)


async def run_pipeline(output: Optional[str] = None) -> int:
    # Imported here so adapters pick up the overridden settings at construction time.
    from crossbench.dbs import ElasticsearchAdapter, PostgresAdapter
    from crossbench.engine import BenchmarkEngine
    from crossbench.report import ReportEmitter

    logger = get_logger("crossbench")
    engine = BenchmarkEngine(backends=[PostgresAdapter(), ElasticsearchAdapter()])
    run = await engine.run()

    emitter = ReportEmitter()
    if output:
        path = emitter.write(run, output)
        logger.message("Report saved to: %s", path)
    else:
        sys.stdout.write(emitter.emit(run))
    return EXIT_OK if run.status == RunStatus.OK else EXIT_FAILED


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)
    try:
        apply_overrides(args)
    except ConfigurationError as e:
        setup_global_logging(settings.LOG_LEVEL)
        get_logger("crossbench").error("Invalid configuration: %s", e)
        return EXIT_FATAL
    setup_global_logging(settings.LOG_LEVEL)
    logger = get_logger("crossbench")
    try:
        return asyncio.run(run_pipeline(args.output))
    except (ConnectionError, ConfigurationError) as e:
        logger.critical("Fatal startup error [phase=%s backend=%s]: %s", e.phase or "connect", e.backend, e)
        return EXIT_FATAL
    except KeyboardInterrupt:
        logger.warning("Interrupted.")
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
