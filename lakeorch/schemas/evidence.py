"""
Evidence schemas - the structured audit trail of one phase run.

GateOutcome, ReleaseRecord, Diagnosis, and Blocker are immutable records.
Evidence is assembled by the PhaseOrchestrator while the phase runs and
handed to callers inside a PhaseResult; callers only read and serialize it.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from .resources import ResourceState
from .state import PhaseState


class GateStatus(str, Enum):
    """Outcome of one gate evaluation."""
    MET = "met"
    UNMET = "unmet"
    FORCED = "forced"  # unmet, but the caller passed force


class ReleaseStatus(str, Enum):
    """Lifecycle status of an installed deployment unit."""
    DEPLOYED = "deployed"
    FAILED = "failed"


class DiagnosisCode(str, Enum):
    """Closed set of failure classes the classifier can produce."""
    RBAC_MISSING_PERMISSIONS = "RBAC_MISSING_PERMISSIONS"
    RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
    STORAGE_ACCESS_DENIED = "STORAGE_ACCESS_DENIED"
    MISSING_ENV_VAR = "MISSING_ENV_VAR"
    STORAGE_MOUNT_FAILED = "STORAGE_MOUNT_FAILED"
    DEPENDENCY_UNREACHABLE = "DEPENDENCY_UNREACHABLE"
    APPLICATION_PANIC = "APPLICATION_PANIC"


class BlockerCode(str, Enum):
    """Blocker codes produced by the orchestrator itself."""
    GATE_UNMET = "GATE_UNMET"
    INSTALL_FAILED = "INSTALL_FAILED"
    POD_NOT_READY = "POD_NOT_READY"
    PODS_NOT_READY = "PODS_NOT_READY"
    VERIFICATION_FAILED = "VERIFICATION_FAILED"


def _code_value(code: Union[str, Enum]) -> str:
    return code.value if isinstance(code, Enum) else str(code)


@dataclass(frozen=True)
class GateOutcome:
    """
    Recorded outcome of one gate.

    Attributes:
        name: Gate name
        status: met, unmet, or forced
        detail: Query error or extra context from the check
    """
    name: str
    status: GateStatus
    detail: Optional[str] = None

    @property
    def met(self) -> bool:
        return self.status == GateStatus.MET

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "met": self.met,
        }
        if self.detail:
            result["detail"] = self.detail
        return result


@dataclass(frozen=True)
class ReleaseRecord:
    """
    Outcome of installing (or observing) one deployment unit.

    A new record is appended for every install attempt; records are never
    rewritten. The revision is whatever the release manager reported.

    Attributes:
        name: Release name
        source: Chart/package reference
        status: "deployed", "failed", or an observed release-manager status
        revision: Release revision as reported by the release manager
        elapsed_seconds: Wall-clock time of the install call
        error: Truncated error excerpt when status is failed
    """
    name: str
    source: str
    status: str
    revision: int = 0
    elapsed_seconds: Optional[float] = None
    error: Optional[str] = None

    @property
    def deployed(self) -> bool:
        return self.status == ReleaseStatus.DEPLOYED.value

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "source": self.source,
            "status": self.status,
            "revision": self.revision,
        }
        if self.elapsed_seconds is not None:
            result["elapsed_seconds"] = round(self.elapsed_seconds, 2)
        if self.error is not None:
            result["error"] = self.error
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReleaseRecord":
        return cls(
            name=data["name"],
            source=data.get("source", data["name"]),
            status=data["status"],
            revision=data.get("revision", 0),
            elapsed_seconds=data.get("elapsed_seconds"),
            error=data.get("error"),
        )


@dataclass(frozen=True)
class Diagnosis:
    """Classifier output for one non-ready resource."""
    resource: str
    code: DiagnosisCode
    message: str
    remediation: Optional[str] = None
    signature: Optional[str] = None

    def to_blocker(self) -> "Blocker":
        message = self.message
        if self.remediation:
            message = f"{message}\n\nRemediation:\n{self.remediation}"
        return Blocker(code=self.code.value, message=message, resource=self.resource)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "resource": self.resource,
            "code": self.code.value,
            "message": self.message,
        }
        if self.remediation:
            result["remediation"] = self.remediation
        if self.signature:
            result["signature"] = self.signature
        return result


@dataclass(frozen=True)
class Blocker:
    """A typed, reported reason a phase did not succeed."""
    code: str
    message: str
    resource: Optional[str] = None

    def __post_init__(self):
        # Accept enum members but always store the plain string code
        object.__setattr__(self, "code", _code_value(self.code))

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.resource:
            result["resource"] = self.resource
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Blocker":
        return cls(code=data["code"], message=data["message"], resource=data.get("resource"))


@dataclass
class ReadinessSummary:
    """Final readiness observation of the phase scope."""
    ready: bool = False
    total: int = 0
    ready_count: int = 0
    not_ready: list[ResourceState] = field(default_factory=list)
    excluded: list[ResourceState] = field(default_factory=list)  # finished pods outside readiness
    events_tail: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "ready": self.ready,
            "total": self.total,
            "ready_count": self.ready_count,
            "not_ready": [r.to_dict() for r in self.not_ready],
        }
        if self.excluded:
            result["excluded"] = [r.to_dict() for r in self.excluded]
        if self.events_tail:
            result["events_tail"] = self.events_tail
        return result


@dataclass
class Evidence:
    """
    The full audit trail of one phase run.

    Attributes:
        phase: Phase name
        state: Final phase state
        transitions: Every state the run passed through, in order
        forced: True when the caller passed force (always recorded)
        resumed: True when smart-resume short-circuited the phase
        gates: Outcome of every evaluated gate
        releases: One record per install attempt (or per observed release
            when resumed)
        verifications: Post-install check results (node pools, RBAC)
        readiness: Final readiness counts
        diagnoses: Classifier output for non-ready resources
        healed: Resources that received the single self-heal action
        started_at: When the run started
        ended_at: When the run finished
    """
    phase: str
    state: PhaseState = PhaseState.NOT_STARTED
    transitions: list[PhaseState] = field(default_factory=list)
    forced: bool = False
    resumed: bool = False
    gates: list[GateOutcome] = field(default_factory=list)
    releases: list[ReleaseRecord] = field(default_factory=list)
    verifications: dict[str, bool] = field(default_factory=dict)
    readiness: ReadinessSummary = field(default_factory=ReadinessSummary)
    diagnoses: list[Diagnosis] = field(default_factory=list)
    healed: list[str] = field(default_factory=list)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    def release(self, name: str) -> Optional[ReleaseRecord]:
        """Latest record for a release name, if any."""
        for record in reversed(self.releases):
            if record.name == name:
                return record
        return None

    def gate(self, name: str) -> Optional[GateOutcome]:
        for outcome in self.gates:
            if outcome.name == name:
                return outcome
        return None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.ended_at:
            return (self.ended_at - self.started_at).total_seconds()
        return None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON output."""
        result: dict[str, Any] = {
            "phase": self.phase,
            "state": self.state.value,
            "transitions": [s.value for s in self.transitions],
            "forced": self.forced,
            "resumed": self.resumed,
            "gates": [g.to_dict() for g in self.gates],
            "releases": [r.to_dict() for r in self.releases],
            "verifications": dict(self.verifications),
            "readiness": self.readiness.to_dict(),
            "diagnoses": [d.to_dict() for d in self.diagnoses],
            "healed": list(self.healed),
        }
        if self.started_at is not None:
            result["started_at"] = self.started_at.isoformat()
        if self.ended_at is not None:
            result["ended_at"] = self.ended_at.isoformat()
        return result


@dataclass
class PhaseResult:
    """What run_phase() returns: {ok, evidence, blockers}."""
    evidence: Evidence
    blockers: list[Blocker] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        """Success iff nothing blocks and the scope converged."""
        return not self.blockers and self.evidence.readiness.ready

    @property
    def codes(self) -> list[str]:
        return [b.code for b in self.blockers]

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "evidence": self.evidence.to_dict(),
            "blockers": [b.to_dict() for b in self.blockers],
        }
