"""Post-load finalization.

Runs each backend's follow-up step after ingestion (search vector population
for PostgreSQL, refresh for Elasticsearch) and times it as its own phase.
"""

import asyncio
from typing import Dict, Sequence

from crossbench.abc import BackendAdapter
from crossbench.constants import BackendKind, Phase
from crossbench.exceptions import FinalizeError
from crossbench.logger import Logger
from crossbench.schema import TimingSample
from crossbench.utils import stopwatch


class PostLoadIndexer:
    def __init__(self, logger: Logger | None = None) -> None:
        self.logger = logger or Logger(self.__class__.__name__)

    async def finalize(self, backend: BackendAdapter) -> TimingSample:
        """Finalize one backend.

        Raises:
            FinalizeError: If the backend's indexing or refresh step fails
        """
        with stopwatch() as sw:
            try:
                await backend.finalize()
            except FinalizeError:
                raise
            except Exception as e:
                raise FinalizeError(
                    "Finalize failed",
                    backend=backend.kind,
                    phase=Phase.FINALIZE,
                    target=backend.target_name,
                    original_error=str(e),
                ) from e
        sample = sw.sample(Phase.FINALIZE, backend.kind)
        self.logger.info("Finalized %s in %.3fs.", backend.name, sample.duration)
        return sample

    async def finalize_all(self, backends: Sequence[BackendAdapter]) -> Dict[BackendKind, TimingSample | BaseException]:
        """Finalize backends concurrently; failures are returned per backend, not raised."""
        results = await asyncio.gather(*(self.finalize(b) for b in backends), return_exceptions=True)
        return {backend.kind: result for backend, result in zip(backends, results)}


async def finalize(backend: BackendAdapter) -> TimingSample:
    return await PostLoadIndexer().finalize(backend)
