"""
kubectl-backed StateQuery and DiagnosticFetch.

All reads use `-o json` and are parsed here; the orchestrator only ever sees
ResourceState objects and plain text.
"""

import json
import logging
from typing import Any, Optional

from lakeorch.clients.base import DiagnosticFetch, StateQuery
from lakeorch.errors import QueryError
from lakeorch.runner import CommandResult, CommandRunner
from lakeorch.schemas import ResourceSelector, ResourceState, ResourceStatus
from lakeorch.utils import truncate

logger = logging.getLogger(__name__)

_NOT_FOUND_MARKERS = ("NotFound", "not found")


def _ready_condition(obj: dict[str, Any]) -> Optional[dict[str, Any]]:
    for condition in obj.get("status", {}).get("conditions") or []:
        if condition.get("type") == "Ready":
            return condition
    return None


def _container_reason(pod: dict[str, Any]) -> Optional[str]:
    """First waiting/terminated reason across containers (e.g. CrashLoopBackOff)."""
    statuses = pod.get("status", {}).get("containerStatuses") or []
    for container in statuses:
        state = container.get("state") or {}
        for key in ("waiting", "terminated"):
            reason = (state.get(key) or {}).get("reason")
            if reason:
                return reason
    return None


def parse_pod(pod: dict[str, Any]) -> ResourceState:
    """Convert one pod object into a ResourceState."""
    ready_condition = _ready_condition(pod)
    ready = bool(ready_condition and ready_condition.get("status") == "True")
    reason = None
    if not ready:
        reason = _container_reason(pod) or (ready_condition or {}).get("reason")
    restarts = sum(
        int(c.get("restartCount") or 0)
        for c in pod.get("status", {}).get("containerStatuses") or []
    )
    return ResourceState(
        name=pod.get("metadata", {}).get("name", "unknown"),
        status=ResourceStatus.from_phase(pod.get("status", {}).get("phase")),
        ready=ready,
        reason=reason,
        restarts=restarts,
    )


def parse_node(node: dict[str, Any]) -> ResourceState:
    """Convert one node object into a ResourceState."""
    ready_condition = _ready_condition(node)
    ready = bool(ready_condition and ready_condition.get("status") == "True")
    return ResourceState(
        name=node.get("metadata", {}).get("name", "unknown"),
        status=ResourceStatus.RUNNING if ready else ResourceStatus.PENDING,
        ready=ready,
        reason=None if ready else (ready_condition or {}).get("reason", "NotReady"),
    )


def parse_generic(obj: dict[str, Any]) -> ResourceState:
    """Fallback for kinds without pod/node semantics: existence means ready."""
    return ResourceState(
        name=obj.get("metadata", {}).get("name", "unknown"),
        status=ResourceStatus.RUNNING,
        ready=True,
    )


_PARSERS = {
    "pod": parse_pod,
    "pods": parse_pod,
    "node": parse_node,
    "nodes": parse_node,
}


def format_event(event: dict[str, Any]) -> str:
    """One event as '<timestamp> <type> <reason> <message>'."""
    timestamp = event.get("lastTimestamp") or event.get("eventTime") or ""
    parts = [timestamp, event.get("type") or "", event.get("reason") or "", event.get("message") or ""]
    return " ".join(parts).strip()


class KubectlClient(StateQuery, DiagnosticFetch):
    """
    StateQuery and DiagnosticFetch over the kubectl CLI.

    Usage:
        client = KubectlClient(CommandRunner(env), namespace="ingext")
        pods = client.query(ResourceSelector(namespace="ingext"))
    """

    def __init__(self, runner: CommandRunner, namespace: str = "ingext"):
        self.runner = runner
        self.namespace = namespace

    def kubectl(self, args: list[str]) -> CommandResult:
        return self.runner.run("kubectl", args)

    def _get_json(self, args: list[str]) -> dict[str, Any]:
        result = self.kubectl(args)
        if not result.ok:
            raise QueryError(f"kubectl {' '.join(args[:2])} failed: {truncate(result.output, 300)}")
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise QueryError(f"kubectl {' '.join(args[:2])} returned invalid JSON: {e}")

    # ------------------------------------------------------------------
    # StateQuery
    # ------------------------------------------------------------------

    def query(self, selector: ResourceSelector) -> list[ResourceState]:
        args = ["get", selector.kind]
        if selector.namespace:
            args += ["-n", selector.namespace]
        if selector.label_selector:
            args += ["-l", selector.label_selector]
        args += ["-o", "json"]

        data = self._get_json(args)
        parser = _PARSERS.get(selector.kind, parse_generic)
        states = [parser(item) for item in data.get("items") or []]
        return [s for s in states if selector.matches_name(s.name)]

    def query_exists(self, kind: str, name: str, namespace: Optional[str] = None) -> bool:
        args = ["get", kind, name]
        if namespace:
            args += ["-n", namespace]
        args += ["-o", "name"]

        result = self.kubectl(args)
        if result.ok:
            return True
        if any(marker in result.output for marker in _NOT_FOUND_MARKERS):
            return False
        raise QueryError(f"Could not determine whether {kind}/{name} exists: {truncate(result.output, 300)}")

    def delete_resource(self, kind: str, name: str, namespace: Optional[str] = None) -> bool:
        args = ["delete", kind, name, "-n", namespace or self.namespace, "--wait=false"]
        result = self.kubectl(args)
        if not result.ok:
            logger.warning(
                f"Delete of {kind}/{name} failed: {truncate(result.output, 200)}",
                extra={"event": "delete_failed", "metadata": {"kind": kind, "name": name}},
            )
        return result.ok

    def can_i(self, verb: str, resource: str, service_account: str, namespace: Optional[str] = None) -> bool:
        """`kubectl auth can-i` for a service account; an error counts as 'no'."""
        namespace = namespace or self.namespace
        result = self.kubectl([
            "auth", "can-i", verb, resource,
            "-n", namespace,
            "--as", f"system:serviceaccount:{namespace}:{service_account}",
        ])
        return result.ok and result.stdout.strip().lower() == "yes"

    # ------------------------------------------------------------------
    # DiagnosticFetch
    # ------------------------------------------------------------------

    def fetch_recent_output(
        self,
        resource_name: str,
        namespace: str,
        prefer_previous: bool = True,
        tail_lines: int = 200,
    ) -> str:
        base = ["logs", "-n", namespace, resource_name, "--all-containers", f"--tail={tail_lines}"]
        if prefer_previous:
            previous = self.kubectl(base + ["--previous"])
            if previous.ok and previous.stdout.strip():
                return previous.stdout

        current = self.kubectl(base)
        return current.stdout if current.ok else ""

    def list_events(self, scope: str) -> list[dict[str, Any]]:
        data = self._get_json(["get", "events", "-n", scope, "--sort-by=.lastTimestamp", "-o", "json"])
        return list(data.get("items") or [])

    def fetch_recent_events(self, scope: str, tail: int = 25) -> str:
        events = self.list_events(scope)
        return "\n".join(format_event(e) for e in events[-tail:])
