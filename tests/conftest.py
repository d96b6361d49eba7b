"""Shared fixtures: in-memory collaborators and a fake clock."""

from typing import Any, Callable, Mapping, Optional

import pytest

from lakeorch.classifier import FailureClassifier, SignatureRegistry
from lakeorch.clients.base import DiagnosticFetch, ReleaseOperation, StateQuery
from lakeorch.errors import QueryError
from lakeorch.healing import SelfHealingPolicy
from lakeorch.installer import ResourceInstaller
from lakeorch.orchestrator import PhaseOrchestrator
from lakeorch.schemas import (
    DeploymentUnit,
    PhaseSpec,
    ReleaseRecord,
    ReleaseStatus,
    ResourceSelector,
    ResourceState,
    ResourceStatus,
)
from lakeorch.waiter import ReadinessWaiter

NAMESPACE = "test"
SCOPE = ResourceSelector(namespace=NAMESPACE)


def ready(name: str) -> ResourceState:
    return ResourceState(name=name, status=ResourceStatus.RUNNING, ready=True)


def crashing(name: str, reason: str = "CrashLoopBackOff", restarts: int = 3) -> ResourceState:
    return ResourceState(name=name, status=ResourceStatus.RUNNING, ready=False, reason=reason, restarts=restarts)


def pending(name: str) -> ResourceState:
    return ResourceState(name=name, status=ResourceStatus.PENDING, ready=False, reason="ContainersNotReady")


def make_phase(
    units=("A", "B", "C"),
    gates=(),
    timeout: float = 60,
    scope: ResourceSelector = SCOPE,
    optional=(),
    name: str = "test-phase",
) -> PhaseSpec:
    return PhaseSpec(
        name=name,
        units=tuple(
            DeploymentUnit(name=u, source=f"oci://charts/{u}", optional=u in optional) for u in units
        ),
        scope=scope,
        gates=tuple(gates),
        wait_timeout_seconds=timeout,
    )


class FakeClock:
    """Monotonic clock that only advances when sleep() is called."""

    def __init__(self):
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeCluster(StateQuery, DiagnosticFetch):
    """
    In-memory cluster.

    Each scope holds a list of observations; every query returns the next one
    and the last one repeats forever.
    """

    def __init__(self):
        self.observations: dict[ResourceSelector, list[list[ResourceState]]] = {}
        self.failing_scopes: set[ResourceSelector] = set()
        self.existing: set[tuple[str, str]] = set()
        self.outputs: dict[str, str] = {}
        self.events: dict[str, str] = {}
        self.deleted: list[tuple[str, str, Optional[str]]] = []
        self.output_calls: list[dict[str, Any]] = []
        self.query_count = 0
        self.on_delete: Optional[Callable[[str], None]] = None

    def set_scope(self, selector: ResourceSelector, *observations: list[ResourceState]) -> None:
        self.observations[selector] = [list(o) for o in observations]

    def query(self, selector: ResourceSelector) -> list[ResourceState]:
        self.query_count += 1
        if selector in self.failing_scopes:
            raise QueryError(f"cannot list {selector.describe()}")
        queue = self.observations.get(selector)
        if not queue:
            return []
        if len(queue) > 1:
            return queue.pop(0)
        return list(queue[0])

    def query_exists(self, kind: str, name: str, namespace: Optional[str] = None) -> bool:
        return (kind, name) in self.existing

    def delete_resource(self, kind: str, name: str, namespace: Optional[str] = None) -> bool:
        self.deleted.append((kind, name, namespace))
        if self.on_delete is not None:
            self.on_delete(name)
        return True

    def fetch_recent_output(
        self,
        resource_name: str,
        namespace: str,
        prefer_previous: bool = True,
        tail_lines: int = 200,
    ) -> str:
        self.output_calls.append({
            "resource": resource_name,
            "namespace": namespace,
            "prefer_previous": prefer_previous,
            "tail_lines": tail_lines,
        })
        return self.outputs.get(resource_name, "")

    def fetch_recent_events(self, scope: str, tail: int = 25) -> str:
        return self.events.get(scope, "")


class FakeReleases(ReleaseOperation):
    """Release manager that records every install call."""

    def __init__(self):
        self.releases: dict[str, ReleaseRecord] = {}
        self.failures: dict[str, str] = {}
        self.raises: dict[str, Exception] = {}
        self.calls: list[str] = []
        self.values: dict[str, Mapping[str, Any]] = {}

    def install_or_upgrade(
        self,
        name: str,
        source: str,
        values: Mapping[str, Any],
        version: Optional[str] = None,
        release_wait: Optional[str] = None,
    ) -> ReleaseRecord:
        self.calls.append(name)
        self.values[name] = dict(values)
        if name in self.raises:
            raise self.raises[name]
        if name in self.failures:
            return ReleaseRecord(name=name, source=source, status=ReleaseStatus.FAILED.value, error=self.failures[name])
        previous = self.releases.get(name)
        record = ReleaseRecord(
            name=name,
            source=source,
            status=ReleaseStatus.DEPLOYED.value,
            revision=(previous.revision if previous else 0) + 1,
        )
        self.releases[name] = record
        return record

    def get_release(self, name: str) -> Optional[ReleaseRecord]:
        return self.releases.get(name)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def cluster():
    return FakeCluster()


@pytest.fixture
def releases():
    return FakeReleases()


@pytest.fixture
def orchestrator(cluster, releases, clock):
    return PhaseOrchestrator(
        state=cluster,
        releases=releases,
        diagnostics=cluster,
        namespace=NAMESPACE,
        classifier=FailureClassifier(cluster, SignatureRegistry.default(), bucket="lake-bucket"),
        healing=SelfHealingPolicy(cluster, grace_seconds=5, sleep=clock.sleep),
        waiter=ReadinessWaiter(cluster, poll_interval_seconds=10, sleep=clock.sleep, clock=clock),
        installer=ResourceInstaller(releases, clock=clock),
    )
