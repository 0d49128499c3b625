"""Schema provisioning for benchmark backends.

`ensure_schema` is idempotent and never destructive: an existing target is
left as-is (reported as EXISTS, or DRIFT when its layout is incompatible).
Clearing previously loaded data is a separate, explicit step.
"""

from typing import Tuple

from crossbench.abc import BackendAdapter
from crossbench.constants import Phase, SchemaStatus
from crossbench.exceptions import CrossBenchError, ProvisioningError
from crossbench.logger import Logger
from crossbench.schema import TimingSample
from crossbench.utils import stopwatch


class SchemaProvisioner:
    """Creates and resets the table/index of each backend."""

    def __init__(self, logger: Logger | None = None) -> None:
        self.logger = logger or Logger(self.__class__.__name__)

    async def ensure_schema(self, backend: BackendAdapter) -> Tuple[SchemaStatus, TimingSample]:
        """Make sure the backend's target exists.

        Returns:
            The schema status and the provisioning timing

        Raises:
            ProvisioningError: If the existence check or creation fails
        """
        with stopwatch() as sw:
            try:
                status = await backend.ensure_schema()
            except ProvisioningError:
                raise
            except Exception as e:
                raise ProvisioningError(
                    "Schema provisioning failed",
                    backend=backend.kind,
                    phase=Phase.PROVISION,
                    target=backend.target_name,
                    original_error=str(e),
                ) from e
        if status == SchemaStatus.DRIFT:
            self.logger.warning(
                "Target '%s' on %s has schema drift; benchmark counts may be unreliable.",
                backend.target_name,
                backend.name,
            )
        return status, sw.sample(Phase.PROVISION, backend.kind)

    async def clear(self, backend: BackendAdapter) -> Tuple[int, TimingSample]:
        """Empty the backend's target so counts reflect only the current run.

        Raises:
            ProvisioningError: If the backend refuses to clear
        """
        with stopwatch() as sw:
            try:
                removed = await backend.clear()
            except CrossBenchError:
                raise
            except Exception as e:
                raise ProvisioningError(
                    "Clearing previous data failed",
                    backend=backend.kind,
                    phase=Phase.CLEAR,
                    target=backend.target_name,
                    original_error=str(e),
                ) from e
        self.logger.info("Cleared %d documents from %s '%s'.", removed, backend.name, backend.target_name)
        return removed, sw.sample(Phase.CLEAR, backend.kind)


async def ensure_schema(backend: BackendAdapter) -> SchemaStatus:
    """Shortcut returning only the status."""
    status, _ = await SchemaProvisioner().ensure_schema(backend)
    return status
