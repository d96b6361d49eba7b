"""
Precondition gates.

A gate is evaluated exactly once per phase run, before anything is mutated.
Without force the first unmet gate blocks the phase; with force every gate is
still evaluated and recorded (status "forced" when unmet) but none block.

The factories below build the gates the phase catalog uses. Each factory
returns a Gate whose check talks to a collaborator; a collaborator error
inside a check is treated as "unmet" by the evaluator.
"""

import logging
from dataclasses import dataclass, field
from typing import Iterable, Optional

from lakeorch.clients.base import DiagnosticFetch, StateQuery
from lakeorch.clients.storage import S3BucketClient
from lakeorch.schemas import (
    Gate,
    GateCheck,
    GateOutcome,
    GateStatus,
    ResourceSelector,
)

logger = logging.getLogger(__name__)

SCHEDULING_FAILURE_MARKERS = ("FailedScheduling", "no nodes available", "Insufficient")


@dataclass
class GateReport:
    """Outcome of evaluating a phase's gates."""
    outcomes: list[GateOutcome] = field(default_factory=list)
    blocked: bool = False
    failed_gate: Optional[Gate] = None

    @property
    def failed_outcome(self) -> Optional[GateOutcome]:
        if self.failed_gate is None:
            return None
        for outcome in self.outcomes:
            if outcome.name == self.failed_gate.name:
                return outcome
        return None


class GateEvaluator:
    """Evaluate gates in order, short-circuiting on the first unmet one unless forced."""

    def _check(self, gate: Gate) -> GateCheck:
        try:
            result = gate.check()
        except Exception as e:
            logger.warning(
                f"Gate {gate.name} check raised: {e}",
                extra={"event": "gate_check_error", "metadata": {"gate": gate.name}},
            )
            return GateCheck(met=False, detail=str(e))
        if isinstance(result, GateCheck):
            return result
        return GateCheck(met=bool(result))

    def evaluate(self, gates: Iterable[Gate], force: bool = False) -> GateReport:
        report = GateReport()

        for gate in gates:
            check = self._check(gate)
            if check.met:
                status = GateStatus.MET
            elif force:
                status = GateStatus.FORCED
            else:
                status = GateStatus.UNMET

            outcome = GateOutcome(name=gate.name, status=status, detail=check.detail)
            report.outcomes.append(outcome)

            logger.info(
                f"Gate {gate.name}: {status.value}",
                extra={"event": "gate_evaluated", "metadata": outcome.to_dict()},
            )

            if status == GateStatus.UNMET:
                report.blocked = True
                report.failed_gate = gate
                break

        return report


# ----------------------------------------------------------------------
# Gate factories
# ----------------------------------------------------------------------


def resources_ready_gate(
    name: str,
    state: StateQuery,
    selector: ResourceSelector,
    unmet_message: str,
    code: str = "GATE_UNMET",
) -> Gate:
    """Every resource matching the selector is converged (scope must be non-empty)."""

    def check() -> GateCheck:
        resources = state.query(selector)
        if not resources:
            return GateCheck(met=False, detail=f"no resources match {selector.describe()}")
        tracked = [r for r in resources if selector.tracks(r)]
        if not tracked:
            return GateCheck(met=False, detail=f"only finished resources match {selector.describe()}")
        pending = [r.name for r in tracked if not r.converged]
        if pending:
            return GateCheck(met=False, detail=f"not ready: {', '.join(pending)}")
        return GateCheck(met=True, detail=f"{len(tracked)} ready")

    return Gate(name=name, check=check, unmet_message=unmet_message, code=code)


def resource_exists_gate(
    name: str,
    state: StateQuery,
    kind: str,
    resource_name: str,
    unmet_message: str,
    namespace: Optional[str] = None,
    code: str = "GATE_UNMET",
) -> Gate:
    def check() -> bool:
        return state.query_exists(kind, resource_name, namespace)

    return Gate(name=name, check=check, unmet_message=unmet_message, code=code)


def storage_target_gate(
    storage: S3BucketClient,
    bucket: str,
    name: str = "storage-target",
    code: str = "GATE_UNMET",
) -> Gate:
    """The storage bucket exists and answers for the current credentials."""

    def check() -> GateCheck:
        if not bucket:
            return GateCheck(met=False, detail="no bucket configured")
        return GateCheck(met=storage.exists(bucket), detail=bucket)

    return Gate(
        name=name,
        check=check,
        unmet_message=f"Storage bucket '{bucket}' is not accessible. Create it or fix credentials first.",
        code=code,
    )


def autoscaler_healthy_gate(
    state: StateQuery,
    diagnostics: DiagnosticFetch,
    namespace: str = "kube-system",
    label_selector: str = "app.kubernetes.io/name=karpenter",
    events_tail: int = 25,
    name: str = "autoscaler-healthy",
    code: str = "GATE_UNMET",
) -> Gate:
    """Autoscaler controller pods ready and no recent scheduling failures."""
    selector = ResourceSelector(namespace=namespace, label_selector=label_selector)

    def check() -> GateCheck:
        pods = state.query(selector)
        if not pods:
            return GateCheck(met=False, detail="autoscaler controller not found")
        if not all(p.converged for p in pods):
            pending = ", ".join(p.name for p in pods if not p.converged)
            return GateCheck(met=False, detail=f"controller not ready: {pending}")

        events = diagnostics.fetch_recent_events(namespace, events_tail)
        failures = [
            line for line in events.splitlines()
            if any(marker in line for marker in SCHEDULING_FAILURE_MARKERS)
        ]
        if failures:
            return GateCheck(met=False, detail=failures[-1])
        return GateCheck(met=True)

    return Gate(
        name=name,
        check=check,
        unmet_message=(
            "Node autoscaler is not healthy (controller not ready or recent scheduling failures). "
            "Check the karpenter controller and its node pools."
        ),
        code=code,
    )


def platform_health_gate(
    state: StateQuery,
    dns_namespace: str = "kube-system",
    dns_label_selector: str = "k8s-app=kube-dns",
    name: str = "platform-healthy",
    code: str = "PLATFORM_UNHEALTHY",
) -> Gate:
    """At least one ready node and the cluster DNS pods ready."""
    nodes = ResourceSelector(kind="nodes")
    dns = ResourceSelector(namespace=dns_namespace, label_selector=dns_label_selector)

    def check() -> GateCheck:
        ready_nodes = [n for n in state.query(nodes) if n.ready]
        if not ready_nodes:
            return GateCheck(met=False, detail="no ready nodes")
        dns_pods = state.query(dns)
        if not dns_pods or not all(p.ready for p in dns_pods):
            return GateCheck(met=False, detail="cluster DNS not ready")
        return GateCheck(met=True, detail=f"{len(ready_nodes)} ready nodes")

    return Gate(
        name=name,
        check=check,
        unmet_message="Cluster is not healthy: no ready nodes or cluster DNS is down.",
        code=code,
    )

