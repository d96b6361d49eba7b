"""
Resource schemas - what the orchestrator observes on the cluster.

ResourceSelector names a set of managed resources (usually pods).
ResourceState is one observation of one resource; it is recomputed on every
poll and never persisted.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class ResourceStatus(str, Enum):
    """Coarse lifecycle status of a managed resource."""
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    UNKNOWN = "unknown"

    @classmethod
    def from_phase(cls, phase: Optional[str]) -> "ResourceStatus":
        """Map a Kubernetes pod phase (Pending, Running, ...) to a status."""
        if not phase:
            return cls.UNKNOWN
        try:
            return cls(phase.lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class ResourceSelector:
    """
    A resource scope to query.

    Attributes:
        namespace: Namespace to look in (None for cluster-scoped kinds)
        kind: Resource kind, e.g. "pods" or "nodes"
        label_selector: Optional label selector ("app=x,tier=y")
        name_prefixes: Keep only resources whose name starts with one of these
        exclude_finished: Leave pods that already ran to completion (succeeded
            or failed) out of readiness; they are still reported
    """
    namespace: Optional[str] = None
    kind: str = "pods"
    label_selector: Optional[str] = None
    name_prefixes: tuple[str, ...] = field(default_factory=tuple)
    exclude_finished: bool = False

    def matches_name(self, name: str) -> bool:
        """Check the client-side name filter."""
        if not self.name_prefixes:
            return True
        return any(name.startswith(prefix) for prefix in self.name_prefixes)

    def tracks(self, resource: "ResourceState") -> bool:
        """Whether a resource counts toward readiness of this scope."""
        return not (self.exclude_finished and resource.finished)

    def describe(self) -> str:
        """Human-readable scope description for messages."""
        parts = [self.kind]
        if self.namespace:
            parts.append(f"in namespace '{self.namespace}'")
        if self.label_selector:
            parts.append(f"matching '{self.label_selector}'")
        if self.name_prefixes:
            parts.append(f"named {', '.join(p + '*' for p in self.name_prefixes)}")
        return " ".join(parts)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"kind": self.kind}
        if self.namespace is not None:
            result["namespace"] = self.namespace
        if self.label_selector:
            result["label_selector"] = self.label_selector
        if self.name_prefixes:
            result["name_prefixes"] = list(self.name_prefixes)
        if self.exclude_finished:
            result["exclude_finished"] = True
        return result


@dataclass(frozen=True)
class ResourceState:
    """
    Observed state of a managed resource at a point in time.

    Attributes:
        name: Resource name
        status: Coarse status (pending, running, succeeded, failed, unknown)
        ready: Whether the resource reports its Ready condition
        reason: Why the resource is not ready (e.g. CrashLoopBackOff)
        restarts: Container restart count; a restarted resource has
            previous-run output worth reading first
    """
    name: str
    status: ResourceStatus
    ready: bool = False
    reason: Optional[str] = None
    restarts: int = 0

    @property
    def converged(self) -> bool:
        """Ready, or ran to completion (finished job pods never become Ready)."""
        return self.ready or self.status == ResourceStatus.SUCCEEDED

    @property
    def finished(self) -> bool:
        return self.status in (ResourceStatus.SUCCEEDED, ResourceStatus.FAILED)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "ready": self.ready,
        }
        if self.reason is not None:
            result["reason"] = self.reason
        if self.restarts:
            result["restarts"] = self.restarts
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ResourceState":
        return cls(
            name=data["name"],
            status=ResourceStatus(data.get("status", "unknown")),
            ready=data.get("ready", False),
            reason=data.get("reason"),
            restarts=data.get("restarts", 0),
        )
