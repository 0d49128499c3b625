"""Custom exceptions for the CrossBench pipeline.

Every error carries free-form details (backend, phase, batch, ...) which are
rendered into the message so fatal errors are always reported with context.
The taxonomy mirrors the pipeline phases: connection, provisioning, batch
writes, post-load finalization and individual benchmark queries.
"""

from typing import Any, Dict, Optional


class CrossBenchError(Exception):
    """Base exception for all CrossBench errors.

    Attributes:
        message: Error message
        details: Additional error context as key-value pairs
    """

    def __init__(self, message: str = "", **kwargs: Any) -> None:
        """Initialize exception with message and additional details.

        Args:
            message: Human-readable error message
            **kwargs: Additional context (e.g., backend, phase, batch_size)
        """
        self.message = message
        self.details: Dict[str, Any] = kwargs
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the complete error message with details."""
        if not self.details:
            return self.message

        details_str = ", ".join(f"{k}={getattr(v, 'value', v)!r}" for k, v in self.details.items())
        if self.message:
            return f"{self.message} ({details_str})"
        return details_str

    @property
    def backend(self) -> Optional[str]:
        value = self.details.get("backend")
        return getattr(value, "value", value)

    @property
    def phase(self) -> Optional[str]:
        return self.details.get("phase")

    def __repr__(self) -> str:
        """Return detailed representation of the exception."""
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


# Configuration exceptions
class ConfigurationError(CrossBenchError):
    """Raised when configuration is invalid or missing.

    Example:
        >>> raise ConfigurationError("Invalid configuration", setting="PG_WORKERS", value=0)
    """


class MissingConfigError(ConfigurationError):
    """Raised when required configuration values are not set.

    Example:
        >>> raise MissingConfigError("Configuration not set", config_key="DATABASE_URL")
    """


class InvalidConfigError(ConfigurationError):
    """Raised when configuration values are invalid.

    Example:
        >>> raise InvalidConfigError("Invalid config value", config_key="ES_BATCH_SIZE", value=0, expected=">0")
    """


# Pipeline exceptions
class ConnectionError(CrossBenchError):
    """Raised when a backend is unreachable or unhealthy at startup.

    Fatal for the whole run: no work starts unless both backends answer.

    Example:
        >>> raise ConnectionError("Elasticsearch ping failed", backend="elasticsearch", url="http://localhost:9200")
    """


class ProvisioningError(CrossBenchError):
    """Raised when a schema existence check or creation fails.

    Fatal for the affected backend only.

    Example:
        >>> raise ProvisioningError("Could not create table", backend="postgres", table="documents_flat")
    """


class BatchWriteError(CrossBenchError):
    """Raised when a batch write failed after exhausting its retries.

    Aborts the load of the affected backend; the other backend keeps going.

    Example:
        >>> raise BatchWriteError("Bulk request rejected", backend="elasticsearch", batch_size=2000, attempts=4)
    """


class FinalizeError(CrossBenchError):
    """Raised when post-load indexing or refresh fails.

    Fatal for the affected backend's benchmark phase since counts would be unreliable.

    Example:
        >>> raise FinalizeError("Refresh failed", backend="elasticsearch", index="documents_structured")
    """


class QueryError(CrossBenchError):
    """Raised when a single benchmark query fails.

    Recorded as a failed result; the remaining queries still run.

    Example:
        >>> raise QueryError("Malformed query", backend="postgres", query="nested_range")
    """
