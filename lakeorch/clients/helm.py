"""
helm-backed ReleaseOperation.

install_or_upgrade() runs `helm upgrade --install`, which is idempotent: an
already-current release gets a no-op upgrade. If another operation holds the
release (pending-install, pending-upgrade, ...), the client waits a bounded
time for it to clear before applying.
"""

import json
import logging
import time
from typing import Any, Callable, Mapping, Optional

from lakeorch.clients.base import ReleaseOperation
from lakeorch.errors import QueryError
from lakeorch.runner import CommandResult, CommandRunner
from lakeorch.schemas import ReleaseRecord, ReleaseStatus
from lakeorch.utils import truncate

logger = logging.getLogger(__name__)

LOCKED_STATUS_MARKERS = ("pending", "deploying")


def format_set_value(value: Any) -> str:
    """Render a value for --set (booleans as true/false)."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class HelmClient(ReleaseOperation):
    """
    ReleaseOperation over the helm CLI.

    Usage:
        helm = HelmClient(CommandRunner(env), namespace="ingext")
        record = helm.install_or_upgrade("ingext-community", "oci://...", {})
    """

    def __init__(
        self,
        runner: CommandRunner,
        namespace: str = "ingext",
        lock_wait_seconds: float = 300,
        lock_poll_seconds: float = 10,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.runner = runner
        self.namespace = namespace
        self.lock_wait_seconds = lock_wait_seconds
        self.lock_poll_seconds = lock_poll_seconds
        self._sleep = sleep
        self._clock = clock

    def helm(self, args: list[str]) -> CommandResult:
        return self.runner.run("helm", args)

    def list_releases(self) -> list[dict[str, Any]]:
        """All releases in the namespace, including failed and pending ones."""
        result = self.helm(["list", "-a", "-n", self.namespace, "-o", "json"])
        if not result.ok:
            raise QueryError(f"helm list failed: {truncate(result.output, 300)}")
        try:
            releases = json.loads(result.stdout or "[]")
        except json.JSONDecodeError as e:
            raise QueryError(f"helm list returned invalid JSON: {e}")
        return releases or []

    def get_release(self, name: str) -> Optional[ReleaseRecord]:
        for release in self.list_releases():
            if release.get("name") == name:
                return ReleaseRecord(
                    name=name,
                    source=release.get("chart") or name,
                    status=(release.get("status") or "unknown").lower(),
                    revision=int(release.get("revision") or 0),
                )
        return None

    def is_locked(self, name: str) -> bool:
        """True if the release has an operation in flight."""
        try:
            release = self.get_release(name)
        except QueryError:
            return False
        if release is None:
            return False
        return any(marker in release.status for marker in LOCKED_STATUS_MARKERS)

    def wait_for_unlock(self, name: str) -> bool:
        """
        Wait (bounded) for a pending operation on a release to finish.

        Returns:
            True once the release is free, False on timeout
        """
        start = self._clock()
        while self.is_locked(name):
            elapsed = self._clock() - start
            if elapsed >= self.lock_wait_seconds:
                logger.warning(
                    f"Release {name} still has a pending operation after {int(elapsed)}s",
                    extra={"event": "release_lock_timeout", "metadata": {"release": name}},
                )
                return False
            logger.info(
                f"Release {name} has a pending operation, waiting...",
                extra={"event": "release_locked", "metadata": {"release": name, "elapsed": int(elapsed)}},
            )
            self._sleep(self.lock_poll_seconds)
        return True

    def install_or_upgrade(
        self,
        name: str,
        source: str,
        values: Mapping[str, Any],
        version: Optional[str] = None,
        release_wait: Optional[str] = None,
    ) -> ReleaseRecord:
        self.wait_for_unlock(name)

        args = ["upgrade", "--install", name, source, "--namespace", self.namespace]
        if version:
            args += ["--version", version]
        for key, value in values.items():
            args += ["--set", f"{key}={format_set_value(value)}"]
        if release_wait:
            args += ["--wait", "--timeout", release_wait]

        result = self.helm(args)
        if not result.ok:
            return ReleaseRecord(
                name=name,
                source=source,
                status=ReleaseStatus.FAILED.value,
                error=result.output,
            )

        revision = 0
        try:
            observed = self.get_release(name)
            if observed is not None:
                revision = observed.revision
        except QueryError as e:
            logger.debug(f"Could not read revision of {name}: {e}")

        return ReleaseRecord(
            name=name,
            source=source,
            status=ReleaseStatus.DEPLOYED.value,
            revision=revision,
        )
