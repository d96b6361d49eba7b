"""
Resource installer - applies one deployment unit through the release operation.

The installer never raises for a failed install: a collaborator exception is
converted into a failed ReleaseRecord so the orchestrator can stop fail-fast
with a proper blocker.
"""

import logging
import time
from dataclasses import replace
from typing import Callable

from lakeorch.clients.base import ReleaseOperation
from lakeorch.schemas import DeploymentUnit, ReleaseRecord, ReleaseStatus
from lakeorch.utils import truncate

logger = logging.getLogger(__name__)


class ResourceInstaller:
    """Install-or-upgrade one unit and record the outcome."""

    def __init__(
        self,
        releases: ReleaseOperation,
        error_excerpt_chars: int = 500,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.releases = releases
        self.error_excerpt_chars = error_excerpt_chars
        self._clock = clock

    def install(self, unit: DeploymentUnit) -> ReleaseRecord:
        """
        Apply a unit (idempotent install-or-upgrade).

        Args:
            unit: Deployment unit to apply

        Returns:
            ReleaseRecord with elapsed time; on failure status is "failed"
            and error holds a truncated excerpt
        """
        logger.info(
            f"Installing {unit.name}",
            extra={"event": "install_started", "metadata": unit.to_dict()},
        )

        start = self._clock()
        try:
            record = self.releases.install_or_upgrade(
                unit.name,
                unit.source,
                unit.values,
                version=unit.version,
                release_wait=unit.release_wait,
            )
        except Exception as e:
            record = ReleaseRecord(
                name=unit.name,
                source=unit.source,
                status=ReleaseStatus.FAILED.value,
                error=str(e),
            )
        elapsed = self._clock() - start

        error = record.error
        if not record.deployed and not error:
            error = f"release ended in status '{record.status}'"
        if error is not None:
            error = truncate(error, self.error_excerpt_chars)

        record = replace(record, elapsed_seconds=elapsed, error=error)

        if record.deployed:
            logger.info(
                f"Installed {unit.name} (revision {record.revision}, {elapsed:.1f}s)",
                extra={"event": "install_completed", "metadata": record.to_dict()},
            )
        else:
            logger.error(
                f"Install of {unit.name} failed: {record.error}",
                extra={"event": "install_failed", "metadata": record.to_dict()},
            )
        return record
