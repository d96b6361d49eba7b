"""
lakeorch.schemas - Data structures for the phase orchestrator.

Definition side (static, built once per run):
  PhaseSpec -> DeploymentUnit, Gate, ResourceSelector, Verification

Observation side (recomputed per poll):
  ResourceState

Evidence side (assembled by the orchestrator, serializable):
  Evidence -> GateOutcome, ReleaseRecord, ReadinessSummary, Diagnosis
  PhaseResult -> Evidence + Blocker list
"""

from .resources import (
    ResourceSelector,
    ResourceState,
    ResourceStatus,
)
from .state import (
    PhaseState,
    TERMINAL_STATES,
    TRANSITIONS,
)
from .evidence import (
    Blocker,
    BlockerCode,
    Diagnosis,
    DiagnosisCode,
    Evidence,
    GateOutcome,
    GateStatus,
    PhaseResult,
    ReadinessSummary,
    ReleaseRecord,
    ReleaseStatus,
)
from .phase import (
    DeploymentUnit,
    Gate,
    GateCheck,
    PhaseSpec,
    Verification,
    default_resume_predicate,
)

__all__ = [
    # Resources
    "ResourceSelector",
    "ResourceState",
    "ResourceStatus",
    # State
    "PhaseState",
    "TERMINAL_STATES",
    "TRANSITIONS",
    # Evidence
    "Blocker",
    "BlockerCode",
    "Diagnosis",
    "DiagnosisCode",
    "Evidence",
    "GateOutcome",
    "GateStatus",
    "PhaseResult",
    "ReadinessSummary",
    "ReleaseRecord",
    "ReleaseStatus",
    # Phase definition
    "DeploymentUnit",
    "Gate",
    "GateCheck",
    "PhaseSpec",
    "Verification",
    "default_resume_predicate",
]
