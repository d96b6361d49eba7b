"""
Readiness waiter - bounded polling until a phase's resources converge.

A timeout is not an error: wait() returns the last observation and the
orchestrator decides what to do with it.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from lakeorch.clients.base import StateQuery
from lakeorch.errors import LakeorchError
from lakeorch.schemas import ResourceSelector, ResourceState

logger = logging.getLogger(__name__)


@dataclass
class WaitResult:
    """Last observation of a readiness wait."""
    converged: bool
    total: int = 0
    ready: int = 0
    not_ready: list[ResourceState] = field(default_factory=list)
    excluded: list[ResourceState] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "converged": self.converged,
            "total": self.total,
            "ready": self.ready,
            "not_ready": [r.to_dict() for r in self.not_ready],
            "excluded": [r.to_dict() for r in self.excluded],
            "elapsed_seconds": round(self.elapsed_seconds, 2),
        }


class ReadinessWaiter:
    """
    Poll a StateQuery at a fixed interval until every resource in scope has
    converged (ready, or finished successfully) or the ceiling elapses.
    Resources the selector does not track (finished pods when
    exclude_finished is set) are carried along but never waited on.

    Clock and sleep are injectable so tests run instantly.
    """

    def __init__(
        self,
        state: StateQuery,
        poll_interval_seconds: float = 10,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.state = state
        self.poll_interval_seconds = poll_interval_seconds
        self._sleep = sleep
        self._clock = clock

    def observe(self, selector: ResourceSelector) -> Optional[list[ResourceState]]:
        """One poll; None when the query failed."""
        try:
            return self.state.query(selector)
        except LakeorchError as e:
            logger.warning(
                f"Readiness query failed, will retry: {e}",
                extra={"event": "readiness_query_failed", "metadata": {"scope": selector.describe()}},
            )
            return None

    def wait(self, selector: ResourceSelector, timeout_seconds: Optional[float]) -> WaitResult:
        """
        Wait for the scope to converge.

        Args:
            selector: Resources to watch
            timeout_seconds: Ceiling for the wait (required, > 0)

        Returns:
            WaitResult; converged is False on timeout

        Raises:
            ValueError: If timeout_seconds is missing or not positive
        """
        if timeout_seconds is None or timeout_seconds <= 0:
            raise ValueError("Readiness wait requires a positive timeout")

        start = self._clock()
        last: list[ResourceState] = []

        while True:
            resources = self.observe(selector)
            elapsed = self._clock() - start

            if resources is not None:
                last = resources
                tracked = [r for r in resources if selector.tracks(r)]
                pending = [r for r in tracked if not r.converged]
                if tracked and not pending:
                    logger.info(
                        f"{selector.describe()}: {len(tracked)}/{len(tracked)} ready after {int(elapsed)}s",
                        extra={"event": "readiness_converged", "metadata": {"total": len(tracked)}},
                    )
                    return WaitResult(
                        converged=True,
                        total=len(tracked),
                        ready=len(tracked),
                        excluded=[r for r in resources if not selector.tracks(r)],
                        elapsed_seconds=elapsed,
                    )
                logger.debug(
                    f"{selector.describe()}: {len(tracked) - len(pending)}/{len(tracked)} ready",
                    extra={"event": "readiness_poll", "metadata": {"pending": [r.name for r in pending]}},
                )

            if elapsed >= timeout_seconds:
                break
            self._sleep(min(self.poll_interval_seconds, max(timeout_seconds - elapsed, 0)))

        tracked = [r for r in last if selector.tracks(r)]
        not_ready = [r for r in tracked if not r.converged]
        logger.warning(
            f"{selector.describe()}: timed out after {int(elapsed)}s with {len(not_ready)} not ready",
            extra={"event": "readiness_timeout", "metadata": {"not_ready": [r.name for r in not_ready]}},
        )
        return WaitResult(
            converged=False,
            total=len(tracked),
            ready=len(tracked) - len(not_ready),
            not_ready=not_ready,
            excluded=[r for r in last if not selector.tracks(r)],
            elapsed_seconds=elapsed,
        )
