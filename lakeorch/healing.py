"""
Self-healing policy.

Some diagnosed faults clear once the resource is recreated, typically a
permission fix that landed after the pod had already cached its failure.
For those codes the policy deletes the resource (the platform recreates it)
and waits a short grace period. The policy is bounded: one round per phase
run and at most once per resource, and it never runs when the caller forced
the phase.
"""

import logging
import time
from typing import Callable, Iterable, Optional

from lakeorch.clients.base import StateQuery
from lakeorch.errors import LakeorchError
from lakeorch.schemas import Diagnosis, DiagnosisCode

logger = logging.getLogger(__name__)

DEFAULT_HEALABLE_CODES = frozenset({
    DiagnosisCode.RBAC_MISSING_PERMISSIONS,
    DiagnosisCode.STORAGE_ACCESS_DENIED,
})


class SelfHealingPolicy:
    """Decide which diagnoses are healable and apply the heal action."""

    def __init__(
        self,
        state: StateQuery,
        healable_codes: Optional[Iterable[DiagnosisCode]] = None,
        grace_seconds: float = 5,
        kind: str = "pods",
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.state = state
        self.healable_codes = frozenset(
            DEFAULT_HEALABLE_CODES if healable_codes is None else healable_codes
        )
        self.grace_seconds = grace_seconds
        self.kind = kind
        self._sleep = sleep

    def is_healable(self, diagnosis: Diagnosis) -> bool:
        return diagnosis.code in self.healable_codes

    def select(self, diagnoses: Iterable[Diagnosis], already_healed: Iterable[str] = ()) -> list[Diagnosis]:
        """Healable diagnoses whose resource has not been healed in this run."""
        seen = set(already_healed)
        selected = []
        for diagnosis in diagnoses:
            if self.is_healable(diagnosis) and diagnosis.resource not in seen:
                selected.append(diagnosis)
                seen.add(diagnosis.resource)
        return selected

    def heal(self, diagnoses: Iterable[Diagnosis], namespace: str) -> list[str]:
        """
        Delete each selected resource so it gets recreated, then wait the grace period.

        Returns:
            Names of resources the action was applied to
        """
        healed = []
        for diagnosis in diagnoses:
            logger.info(
                f"Self-heal: recreating {diagnosis.resource} ({diagnosis.code.value})",
                extra={
                    "event": "self_heal",
                    "metadata": {"resource": diagnosis.resource, "code": diagnosis.code.value},
                },
            )
            try:
                deleted = self.state.delete_resource(self.kind, diagnosis.resource, namespace)
            except LakeorchError as e:
                logger.warning(f"Self-heal of {diagnosis.resource} failed: {e}")
                deleted = False
            if deleted:
                healed.append(diagnosis.resource)

        if healed and self.grace_seconds > 0:
            self._sleep(self.grace_seconds)
        return healed
