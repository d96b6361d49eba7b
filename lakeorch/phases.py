"""
Phase catalog - the Ingext application phases, built from configuration.

    core      service account, RBAC role, stack, etcd
    stream    community config, init and application
    datalake  lake config, node pools, S3 lake, lake application

Each later phase gates on the one before it being ready.
"""

from typing import Optional

from lakeorch.clients.kubectl import KubectlClient
from lakeorch.clients.storage import S3BucketClient
from lakeorch.config import PHASE_ORDER, LakeorchConfig
from lakeorch.errors import PhaseNotFoundError
from lakeorch.gates import (
    autoscaler_healthy_gate,
    platform_health_gate,
    resource_exists_gate,
    resources_ready_gate,
    storage_target_gate,
)
from lakeorch.schemas import DeploymentUnit, GateCheck, PhaseSpec, ResourceSelector, Verification

CHART_REGISTRY = "oci://public.ecr.aws/ingext"
STREAM_PART_OF = "app.kubernetes.io/part-of=ingext-community"


def chart(name: str) -> str:
    return f"{CHART_REGISTRY}/{name}"


def yes_no(value: bool) -> str:
    return "yes" if value else "no"


class PhaseCatalog:
    """Ordered, named phases."""

    def __init__(self, phases: list[PhaseSpec]):
        self._phases = list(phases)
        self._by_name = {p.name: p for p in self._phases}

    def names(self) -> list[str]:
        return [p.name for p in self._phases]

    def get(self, name: str) -> PhaseSpec:
        phase = self._by_name.get(name)
        if phase is None:
            raise PhaseNotFoundError(
                f"Unknown phase '{name}'. Available: {', '.join(self.names())}"
            )
        return phase

    def slice(self, start: Optional[str] = None, end: Optional[str] = None) -> list[PhaseSpec]:
        """Phases from start through end (inclusive, both optional)."""
        names = self.names()
        first = names.index(self.get(start).name) if start else 0
        last = names.index(self.get(end).name) if end else len(names) - 1
        if first > last:
            raise PhaseNotFoundError(f"Phase '{start}' comes after '{end}'")
        return self._phases[first:last + 1]

    def __iter__(self):
        return iter(self._phases)

    def __len__(self) -> int:
        return len(self._phases)


def build_core_phase(config: LakeorchConfig, kubectl: KubectlClient) -> PhaseSpec:
    ns = config.namespace
    return PhaseSpec(
        name="core",
        description="Service account, RBAC role, core stack and etcd",
        gates=(
            platform_health_gate(kubectl),
            autoscaler_healthy_gate(
                kubectl, kubectl, events_tail=config.get_events_tail(), code="AUTOSCALER_UNHEALTHY",
            ),
        ),
        units=(
            DeploymentUnit("ingext-serviceaccount", chart("ingext-serviceaccount"), optional=True),
            DeploymentUnit("ingext-manager-role", chart("ingext-manager-role"), release_wait="5m"),
            DeploymentUnit("ingext-stack", chart("ingext-stack"), release_wait="10m"),
            DeploymentUnit("etcd-single", chart("etcd-single"), release_wait="10m"),
            DeploymentUnit("etcd-single-cronjob", chart("etcd-single-cronjob"), release_wait="10m"),
        ),
        scope=ResourceSelector(namespace=ns, exclude_finished=True),
        wait_timeout_seconds=config.get_wait_timeout("core"),
    )


def build_stream_phase(config: LakeorchConfig, kubectl: KubectlClient) -> PhaseSpec:
    ns = config.namespace
    return PhaseSpec(
        name="stream",
        description="Ingext community stream application",
        gates=(
            platform_health_gate(kubectl),
            resources_ready_gate(
                "core-ready",
                kubectl,
                ResourceSelector(namespace=ns, name_prefixes=("etcd",), exclude_finished=True),
                unmet_message=(
                    f"Core pods in namespace '{ns}' are not all ready. "
                    "Ensure the core phase completes successfully before proceeding."
                ),
                code="CORE_NOT_READY",
            ),
        ),
        units=(
            DeploymentUnit(
                "ingext-community-config",
                chart("ingext-community-config"),
                values={"siteDomain": config.site_domain},
            ),
            DeploymentUnit("ingext-community-init", chart("ingext-community-init")),
            DeploymentUnit("ingext-community", chart("ingext-community")),
        ),
        scope=ResourceSelector(namespace=ns, label_selector=STREAM_PART_OF),
        wait_timeout_seconds=config.get_wait_timeout("stream"),
    )


def build_datalake_phase(
    config: LakeorchConfig,
    kubectl: KubectlClient,
    storage: S3BucketClient,
) -> PhaseSpec:
    ns = config.namespace
    service_account = f"{ns}-sa"

    def rbac_verified() -> GateCheck:
        secrets = kubectl.can_i("get", "secrets", service_account, ns)
        configmaps = kubectl.can_i("get", "configmaps", service_account, ns)
        return GateCheck(
            met=secrets and configmaps,
            detail=f"secrets access: {yes_no(secrets)}, configmaps access: {yes_no(configmaps)}",
        )

    return PhaseSpec(
        name="datalake",
        description="Lake config, merge/search node pools, S3 lake and lake application",
        gates=(
            resources_ready_gate(
                "stream-ready",
                kubectl,
                ResourceSelector(
                    namespace=ns, name_prefixes=("api-", "platform-"), exclude_finished=True,
                ),
                unmet_message=(
                    "Stream pods (api-0, platform-0) are not all ready. "
                    "Ensure the stream phase completes successfully before proceeding."
                ),
                code="STREAM_NOT_READY",
            ),
            storage_target_gate(storage, config.bucket, code="STORAGE_NOT_READY"),
            resource_exists_gate(
                "service-account",
                kubectl,
                "serviceaccount",
                service_account,
                unmet_message=(
                    f"Service account '{service_account}' not found. "
                    "Create it with its pod identity association first."
                ),
                namespace=ns,
                code="SERVICE_ACCOUNT_NOT_FOUND",
            ),
            autoscaler_healthy_gate(
                kubectl, kubectl, events_tail=config.get_events_tail(), code="AUTOSCALER_UNHEALTHY",
            ),
        ),
        units=(
            DeploymentUnit(
                "ingext-lake-config",
                chart("ingext-lake-config"),
                values={"storageType": "s3", "s3.bucket": config.bucket, "s3.region": config.region},
            ),
            DeploymentUnit(
                "ingext-merge-pool",
                chart("ingext-eks-pool"),
                values={"poolName": "pool-merge", "clusterName": config.cluster_name},
                release_wait="10m",
            ),
            DeploymentUnit(
                "ingext-search-pool",
                chart("ingext-eks-pool"),
                values={
                    "poolName": "pool-search",
                    "clusterName": config.cluster_name,
                    "cpuLimit": 128,
                    "memoryLimit": "512Gi",
                },
                release_wait="10m",
            ),
            DeploymentUnit(
                "ingext-s3-lake",
                chart("ingext-s3-lake"),
                values={"bucket.name": config.bucket, "bucket.region": config.region},
            ),
            DeploymentUnit("ingext-lake", chart("ingext-lake"), release_wait="15m"),
        ),
        scope=ResourceSelector(namespace=ns, exclude_finished=True),
        wait_timeout_seconds=config.get_wait_timeout("datalake"),
        verifications=(
            Verification("pool-merge", lambda: kubectl.query_exists("nodepools", "pool-merge")),
            Verification("pool-search", lambda: kubectl.query_exists("nodepools", "pool-search")),
            Verification(
                "rbac",
                rbac_verified,
                blocking=True,
                code="RBAC_NOT_VERIFIED",
                failure_message=(
                    f"RBAC permissions not verified for service account '{service_account}'. "
                    "Install ingext-manager-role in the core phase."
                ),
            ),
        ),
    )


def build_catalog(
    config: LakeorchConfig,
    kubectl: KubectlClient,
    storage: S3BucketClient,
) -> PhaseCatalog:
    """Build every phase in PHASE_ORDER."""
    builders = {
        "core": lambda: build_core_phase(config, kubectl),
        "stream": lambda: build_stream_phase(config, kubectl),
        "datalake": lambda: build_datalake_phase(config, kubectl, storage),
    }
    return PhaseCatalog([builders[name]() for name in PHASE_ORDER])
