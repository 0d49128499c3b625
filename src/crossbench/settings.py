"""Settings for CrossBench pipeline."""

from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict

from crossbench.exceptions import InvalidConfigError


class CrossBenchSettings(BaseSettings):
    """CrossBench configuration settings."""

    # PostgreSQL
    DATABASE_URL: Optional[str] = None
    PG_HOST: str = "localhost"
    PG_PORT: str = "5432"
    PG_DBNAME: str = "benchmark"
    PG_USER: str = "postgres"
    PG_PASSWORD: str = "postgres"

    # Elasticsearch
    ELASTICSEARCH_URL: str = "http://localhost:9200"
    ELASTICSEARCH_API_KEY: Optional[str] = None
    ELASTICSEARCH_USERNAME: Optional[str] = None
    ELASTICSEARCH_PASSWORD: Optional[str] = None

    # Targets (derived from SCHEMA_VARIANT when unset)
    TABLE_NAME: Optional[str] = None
    INDEX_NAME: Optional[str] = None

    # Workload
    DOCUMENT_COUNT: int = 100_000
    SCHEMA_VARIANT: Literal["flat", "structured"] = "structured"
    SEED: Optional[int] = None
    OPTIONAL_ABSENCE_RATE: float = 0.1

    # Ingestion
    PG_BATCH_SIZE: int = 500
    ES_BATCH_SIZE: int = 2000
    PG_WORKERS: int = 4
    ES_WORKERS: int = 4
    CHANNEL_CAPACITY: int = 8
    MAX_RETRIES: int = 3
    RETRY_BACKOFF_SECONDS: float = 0.5
    RETRY_BACKOFF_MAX_SECONDS: float = 8.0
    RESET_BEFORE_LOAD: bool = True
    CONNECT_TIMEOUT: float = 10.0

    # Benchmark
    QUERY_RESULT_LIMIT: int = 10
    BENCHMARK_MODE: Literal["sequential", "concurrent"] = "sequential"
    CACHE_MODE: Literal["warm", "cold"] = "cold"

    # Output
    REPORT_FORMAT: Literal["markdown", "text", "json"] = "markdown"
    SHOW_PROGRESS: bool = True
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = CrossBenchSettings()


def validate_settings(config: CrossBenchSettings = settings) -> CrossBenchSettings:
    """Reject values the pipeline cannot run with.

    Raises:
        InvalidConfigError: On the first invalid value or combination
    """
    positive = ("PG_BATCH_SIZE", "ES_BATCH_SIZE", "PG_WORKERS", "ES_WORKERS", "CHANNEL_CAPACITY", "QUERY_RESULT_LIMIT")
    for key in positive:
        if getattr(config, key) < 1:
            raise InvalidConfigError("Invalid config value", config_key=key, value=getattr(config, key), expected=">=1")
    for key in ("DOCUMENT_COUNT", "MAX_RETRIES", "RETRY_BACKOFF_SECONDS", "RETRY_BACKOFF_MAX_SECONDS"):
        if getattr(config, key) < 0:
            raise InvalidConfigError("Invalid config value", config_key=key, value=getattr(config, key), expected=">=0")
    if not 0.0 <= config.OPTIONAL_ABSENCE_RATE <= 1.0:
        raise InvalidConfigError(
            "Invalid config value",
            config_key="OPTIONAL_ABSENCE_RATE",
            value=config.OPTIONAL_ABSENCE_RATE,
            expected="0..1",
        )
    if config.RETRY_BACKOFF_MAX_SECONDS < config.RETRY_BACKOFF_SECONDS:
        raise InvalidConfigError(
            "Backoff ceiling is below its base",
            config_key="RETRY_BACKOFF_MAX_SECONDS",
            value=config.RETRY_BACKOFF_MAX_SECONDS,
            expected=f">={config.RETRY_BACKOFF_SECONDS}",
        )
    return config
