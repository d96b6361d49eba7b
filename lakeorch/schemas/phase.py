"""
Phase definition schemas.

A PhaseSpec is the static description of one orchestration phase: what it
installs (DeploymentUnit, in order), what must hold before it mutates
anything (Gate), which resources it owns (ResourceSelector), and how long to
wait for them.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from .evidence import BlockerCode, ReleaseRecord
from .resources import ResourceSelector, ResourceState


@dataclass(frozen=True)
class GateCheck:
    """Result of a gate check that wants to attach context to its outcome."""
    met: bool
    detail: Optional[str] = None


GateCheckFn = Callable[[], Union[bool, GateCheck]]


@dataclass(frozen=True)
class Gate:
    """
    A named precondition.

    Attributes:
        name: Gate name recorded in evidence
        check: Zero-argument callable returning bool or GateCheck; raising
            means inconclusive, which is treated as unmet
        unmet_message: Operator-facing explanation when the gate is unmet
        code: Blocker code reported when the gate blocks the phase
    """
    name: str
    check: GateCheckFn
    unmet_message: str
    code: str = BlockerCode.GATE_UNMET.value


@dataclass(frozen=True)
class DeploymentUnit:
    """
    One installable, versioned deployment unit (a chart release).

    Attributes:
        name: Release name
        source: Chart reference (e.g. oci://registry/chart)
        values: Fixed configuration map passed as --set key=value
        version: Optional chart version
        release_wait: Optional release-manager wait ceiling (e.g. "10m")
        optional: A failed optional unit is recorded but does not stop the phase
    """
    name: str
    source: str
    values: dict[str, Any] = field(default_factory=dict)
    version: Optional[str] = None
    release_wait: Optional[str] = None
    optional: bool = False

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"name": self.name, "source": self.source}
        if self.values:
            result["values"] = dict(self.values)
        if self.version:
            result["version"] = self.version
        if self.release_wait:
            result["release_wait"] = self.release_wait
        if self.optional:
            result["optional"] = True
        return result


@dataclass(frozen=True)
class Verification:
    """
    A post-install check (e.g. a node pool exists).

    The result lands in Evidence.verifications[label]; a raising check
    records False. A failed blocking verification adds a blocker (message,
    plus any GateCheck detail) unless the phase was forced.

    Attributes:
        label: Key in Evidence.verifications
        check: Zero-argument callable returning bool or GateCheck
        blocking: Whether a failure blocks the phase
        code: Blocker code for a blocking failure
        failure_message: Operator-facing explanation of a blocking failure
    """
    label: str
    check: GateCheckFn
    blocking: bool = False
    code: str = BlockerCode.VERIFICATION_FAILED.value
    failure_message: str = ""


ResumePredicate = Callable[[list[ReleaseRecord], list[ResourceState]], bool]


def default_resume_predicate(
    releases: list[ReleaseRecord],
    resources: list[ResourceState],
) -> bool:
    """Every unit deployed and every owned resource converged (scope non-empty)."""
    return (
        bool(releases)
        and all(r.deployed for r in releases)
        and bool(resources)
        and all(r.converged for r in resources)
    )


@dataclass(frozen=True)
class PhaseSpec:
    """
    Static definition of one phase.

    Attributes:
        name: Phase name (e.g. "stream")
        units: Deployment units, installed strictly in this order
        scope: Resources owned by this phase (waited on after install)
        gates: Preconditions evaluated before any mutation
        wait_timeout_seconds: Ceiling for the readiness wait
        verifications: Post-install checks (blocking or record-only)
        resume_predicate: Overrides the default smart-resume rule
        description: One-line description for listings
    """
    name: str
    units: tuple[DeploymentUnit, ...]
    scope: ResourceSelector
    gates: tuple[Gate, ...] = field(default_factory=tuple)
    wait_timeout_seconds: float = 900
    verifications: tuple[Verification, ...] = field(default_factory=tuple)
    resume_predicate: Optional[ResumePredicate] = None
    description: str = ""

    def __post_init__(self):
        if not self.name:
            raise ValueError("Phase name is required")
        names = [u.name for u in self.units]
        if len(names) != len(set(names)):
            raise ValueError(f"Phase {self.name}: duplicate deployment unit names")
        if self.wait_timeout_seconds <= 0:
            raise ValueError(f"Phase {self.name}: wait_timeout_seconds must be > 0")

    def should_resume(
        self,
        releases: list[ReleaseRecord],
        resources: list[ResourceState],
    ) -> bool:
        predicate = self.resume_predicate or default_resume_predicate
        return predicate(releases, resources)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "units": [u.to_dict() for u in self.units],
            "gates": [g.name for g in self.gates],
            "scope": self.scope.to_dict(),
            "wait_timeout_seconds": self.wait_timeout_seconds,
            "verifications": [v.label for v in self.verifications],
        }
