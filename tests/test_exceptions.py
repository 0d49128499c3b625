"""Tests for the exception hierarchy."""

import pytest

from crossbench.constants import BackendKind
from crossbench.exceptions import (
    BatchWriteError,
    ConfigurationError,
    ConnectionError,
    CrossBenchError,
    FinalizeError,
    InvalidConfigError,
    MissingConfigError,
    ProvisioningError,
    QueryError,
)


class TestCrossBenchError:
    def test_message_only(self):
        assert str(CrossBenchError("boom")) == "boom"

    def test_details_rendered(self):
        error = BatchWriteError("Bulk request rejected", backend=BackendKind.ELASTICSEARCH, batch_size=2000)
        assert str(error) == "Bulk request rejected (backend='elasticsearch', batch_size=2000)"
        assert error.details["batch_size"] == 2000

    def test_details_without_message(self):
        assert str(CrossBenchError(phase="ingest")) == "phase='ingest'"

    def test_backend_and_phase(self):
        error = FinalizeError("Refresh failed", backend=BackendKind.POSTGRES, phase="finalize")
        assert error.backend == "postgres"
        assert error.phase == "finalize"
        assert CrossBenchError("x").backend is None

    def test_repr(self):
        assert repr(QueryError("bad", query="nested_range")).startswith("QueryError(message='bad'")

    @pytest.mark.parametrize(
        "cls, parent",
        [
            (MissingConfigError, ConfigurationError),
            (InvalidConfigError, ConfigurationError),
            (ConfigurationError, CrossBenchError),
            (ConnectionError, CrossBenchError),
            (ProvisioningError, CrossBenchError),
            (BatchWriteError, CrossBenchError),
            (FinalizeError, CrossBenchError),
            (QueryError, CrossBenchError),
        ],
    )
    def test_hierarchy(self, cls, parent):
        assert issubclass(cls, parent)
