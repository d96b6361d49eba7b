"""
Phase orchestrator - runs one phase end to end and explains the outcome.

Flow of run_phase():

    smart-resume check ---------------------------------> resumed_done
    gates (fail-fast unless forced) --------------------> gate_failed
    install units in order (fail-fast) -----------------> install_failed
    post-install verifications (blocking ones add blockers unless forced)
    wait for the phase scope ---------------------------> converged
    on timeout: classify every non-ready resource,
        heal once (never when forced), wait again ------> converged
        otherwise report one blocker per resource ------> reported

Collaborator errors are converted into evidence and blockers here; they never
escape run_phase().
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from lakeorch.classifier import FailureClassifier
from lakeorch.clients.base import DiagnosticFetch, ReleaseOperation, StateQuery
from lakeorch.errors import InvalidTransitionError, LakeorchError
from lakeorch.gates import GateEvaluator
from lakeorch.healing import SelfHealingPolicy
from lakeorch.installer import ResourceInstaller
from lakeorch.schemas import (
    Blocker,
    BlockerCode,
    Diagnosis,
    Evidence,
    GateCheck,
    PhaseResult,
    PhaseSpec,
    PhaseState,
    ReadinessSummary,
    ReleaseRecord,
    ResourceState,
    TRANSITIONS,
)
from lakeorch.utils import head_lines
from lakeorch.waiter import ReadinessWaiter, WaitResult

logger = logging.getLogger(__name__)

FORCE_HINT = "Use --force to bypass."
EVENT_LINES_IN_BLOCKER = 10


@dataclass
class PhaseStateMachine:
    """
    Tracks the state of one phase run and rejects undeclared edges.

    self_healed -> waiting may be taken once; every other edge is one-shot
    by construction of the transition table.
    """
    state: PhaseState = PhaseState.NOT_STARTED
    history: list[PhaseState] = field(default_factory=lambda: [PhaseState.NOT_STARTED])
    max_reentries: int = 1
    reentries: int = 0

    def can_transition(self, target: PhaseState) -> bool:
        if target not in TRANSITIONS.get(self.state, frozenset()):
            return False
        if self.state == PhaseState.SELF_HEALED and self.reentries >= self.max_reentries:
            return False
        return True

    def transition(self, target: PhaseState) -> None:
        if not self.can_transition(target):
            raise InvalidTransitionError(self.state.value, target.value)
        if self.state == PhaseState.SELF_HEALED:
            self.reentries += 1
        self.state = target
        self.history.append(target)


@dataclass
class ResumeCheck:
    """Observed state used by the smart-resume decision."""
    resumable: bool
    releases: list[ReleaseRecord] = field(default_factory=list)
    resources: list[ResourceState] = field(default_factory=list)
    reason: Optional[str] = None


class PhaseOrchestrator:
    """
    Run phases against one deployment target.

    Usage:
        orchestrator = PhaseOrchestrator(kubectl, helm, kubectl, namespace="ingext")
        result = orchestrator.run_phase(catalog.get("stream"))
        if not result.ok:
            for blocker in result.blockers:
                print(blocker.code, blocker.message)
    """

    def __init__(
        self,
        state: StateQuery,
        releases: ReleaseOperation,
        diagnostics: DiagnosticFetch,
        namespace: str = "ingext",
        classifier: Optional[FailureClassifier] = None,
        healing: Optional[SelfHealingPolicy] = None,
        waiter: Optional[ReadinessWaiter] = None,
        installer: Optional[ResourceInstaller] = None,
        gates: Optional[GateEvaluator] = None,
        events_tail: int = 25,
    ):
        self.state = state
        self.releases = releases
        self.diagnostics = diagnostics
        self.namespace = namespace
        self.classifier = classifier or FailureClassifier(diagnostics)
        self.healing = healing or SelfHealingPolicy(state)
        self.waiter = waiter or ReadinessWaiter(state)
        self.installer = installer or ResourceInstaller(releases)
        self.gates = gates or GateEvaluator()
        self.events_tail = events_tail

    # ------------------------------------------------------------------
    # Smart resume
    # ------------------------------------------------------------------

    def check_resume(self, phase: PhaseSpec) -> ResumeCheck:
        """
        Decide from live state whether the phase is already complete.

        Any query error means "not resumable".
        """
        observed: list[ReleaseRecord] = []
        try:
            for unit in phase.units:
                record = self.releases.get_release(unit.name)
                if record is None:
                    if unit.optional:
                        continue
                    return ResumeCheck(resumable=False, releases=observed, reason=f"{unit.name} not installed")
                observed.append(record)
            resources = self.state.query(phase.scope)
        except LakeorchError as e:
            logger.debug(f"Resume check for {phase.name} inconclusive: {e}")
            return ResumeCheck(resumable=False, releases=observed, reason=str(e))

        tracked = [r for r in resources if phase.scope.tracks(r)]
        resumable = phase.should_resume(observed, tracked)
        return ResumeCheck(
            resumable=resumable,
            releases=observed,
            resources=tracked,
            reason=None if resumable else "not every unit deployed and ready",
        )

    # ------------------------------------------------------------------
    # Phase run
    # ------------------------------------------------------------------

    def run_phase(self, phase: PhaseSpec, force: bool = False, verbose: bool = False) -> PhaseResult:
        """
        Run one phase.

        Args:
            phase: Phase definition
            force: Record unmet gates as forced instead of blocking; disables self-heal
            verbose: Log state transitions at INFO instead of DEBUG

        Returns:
            PhaseResult with the evidence trail and any blockers
        """
        evidence = Evidence(phase=phase.name, forced=force, started_at=datetime.utcnow())
        machine = PhaseStateMachine()
        log_level = logging.INFO if verbose else logging.DEBUG

        def move(target: PhaseState) -> None:
            machine.transition(target)
            logger.log(
                log_level,
                f"{phase.name}: -> {target.value}",
                extra={"event": "phase_transition", "phase": phase.name, "metadata": {"state": target.value}},
            )

        logger.info(
            f"Starting phase {phase.name}" + (" (forced)" if force else ""),
            extra={"event": "phase_started", "phase": phase.name, "metadata": {"force": force}},
        )

        blockers = self._run(phase, force, evidence, move)

        evidence.state = machine.state
        evidence.transitions = list(machine.history)
        evidence.ended_at = datetime.utcnow()
        result = PhaseResult(evidence=evidence, blockers=blockers)

        if result.ok:
            logger.info(
                f"Phase {phase.name} succeeded ({machine.state.value})",
                extra={"event": "phase_succeeded", "phase": phase.name},
            )
        else:
            logger.error(
                f"Phase {phase.name} failed with {len(blockers)} blocker(s): {', '.join(result.codes)}",
                extra={"event": "phase_failed", "phase": phase.name, "metadata": {"codes": result.codes}},
            )
        return result

    def _run(self, phase: PhaseSpec, force: bool, evidence: Evidence, move) -> list[Blocker]:
        # Smart resume: no mutation at all
        resume = self.check_resume(phase)
        if resume.resumable:
            evidence.resumed = True
            evidence.releases.extend(resume.releases)
            evidence.readiness = ReadinessSummary(
                ready=True,
                total=len(resume.resources),
                ready_count=len(resume.resources),
            )
            move(PhaseState.RESUMED_DONE)
            return []

        # Gates
        report = self.gates.evaluate(phase.gates, force=force)
        evidence.gates.extend(report.outcomes)
        if report.blocked:
            move(PhaseState.GATE_FAILED)
            return [self._gate_blocker(report)]

        # Installs, strictly in order
        move(PhaseState.INSTALLING)
        for unit in phase.units:
            record = self.installer.install(unit)
            evidence.releases.append(record)
            if record.deployed:
                continue
            if unit.optional:
                logger.warning(
                    f"Optional unit {unit.name} failed, continuing",
                    extra={"event": "optional_install_failed", "phase": phase.name},
                )
                continue
            move(PhaseState.INSTALL_FAILED)
            return [Blocker(
                code=BlockerCode.INSTALL_FAILED,
                message=f"Failed to install {unit.name}: {record.error}",
                resource=unit.name,
            )]

        verification_blockers = self._run_verifications(phase, evidence, force)

        # Wait, classify, heal at most once
        namespace = phase.scope.namespace or self.namespace
        move(PhaseState.WAITING)
        result = self._wait(phase, evidence)
        healed_this_run = False

        while True:
            if result.converged:
                move(PhaseState.CONVERGED)
                return verification_blockers

            move(PhaseState.TIMED_OUT)
            events = self._events(namespace)
            evidence.readiness.events_tail = events or None
            diagnoses, unclassified = self._classify(result.not_ready, namespace)
            evidence.diagnoses.extend(diagnoses)
            move(PhaseState.DIAGNOSED)

            if not force and not healed_this_run:
                targets = self.healing.select(diagnoses, evidence.healed)
                if targets:
                    healed_this_run = True
                    healed = self.healing.heal(targets, namespace)
                    if healed:
                        evidence.healed.extend(healed)
                        move(PhaseState.SELF_HEALED)
                        move(PhaseState.WAITING)
                        result = self._wait(phase, evidence)
                        continue

            move(PhaseState.REPORTED)
            return verification_blockers + self._convergence_blockers(
                phase, result, diagnoses, unclassified, events
            )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _gate_blocker(self, report) -> Blocker:
        gate = report.failed_gate
        outcome = report.failed_outcome
        message = gate.unmet_message
        if outcome is not None and outcome.detail:
            message = f"{message} ({outcome.detail})"
        return Blocker(code=gate.code, message=f"{message} {FORCE_HINT}")

    def _run_verifications(self, phase: PhaseSpec, evidence: Evidence, force: bool) -> list[Blocker]:
        blockers: list[Blocker] = []
        for verification in phase.verifications:
            try:
                result = verification.check()
            except Exception as e:
                logger.warning(f"Verification {verification.label} raised: {e}")
                result = GateCheck(met=False, detail=str(e))
            if not isinstance(result, GateCheck):
                result = GateCheck(met=bool(result))

            evidence.verifications[verification.label] = result.met
            if result.met:
                continue
            logger.warning(
                f"Verification {verification.label} did not pass",
                extra={
                    "event": "verification_failed",
                    "phase": phase.name,
                    "metadata": {"blocking": verification.blocking, "detail": result.detail},
                },
            )
            if verification.blocking and not force:
                message = verification.failure_message or f"Verification {verification.label} did not pass."
                if result.detail:
                    message = f"{message} ({result.detail})"
                blockers.append(Blocker(code=verification.code, message=f"{message} {FORCE_HINT}"))
        return blockers

    def _wait(self, phase: PhaseSpec, evidence: Evidence) -> WaitResult:
        result = self.waiter.wait(phase.scope, phase.wait_timeout_seconds)
        evidence.readiness = ReadinessSummary(
            ready=result.converged,
            total=result.total,
            ready_count=result.ready,
            not_ready=list(result.not_ready),
            excluded=list(result.excluded),
        )
        return result

    def _events(self, namespace: str) -> str:
        try:
            return self.diagnostics.fetch_recent_events(namespace, self.events_tail)
        except LakeorchError as e:
            logger.warning(f"Could not fetch events for {namespace}: {e}")
            return ""

    def _classify(
        self,
        not_ready: list[ResourceState],
        namespace: str,
    ) -> tuple[list[Diagnosis], list[ResourceState]]:
        """Classify every non-ready resource (never stops at the first)."""
        diagnoses: list[Diagnosis] = []
        unclassified: list[ResourceState] = []
        for resource in not_ready:
            try:
                diagnosis = self.classifier.classify(resource, namespace)
            except LakeorchError as e:
                logger.warning(f"Could not fetch output for {resource.name}: {e}")
                diagnosis = None
            if diagnosis is None:
                unclassified.append(resource)
            else:
                diagnoses.append(diagnosis)
        return diagnoses, unclassified

    def _convergence_blockers(
        self,
        phase: PhaseSpec,
        result: WaitResult,
        diagnoses: list[Diagnosis],
        unclassified: list[ResourceState],
        events: str,
    ) -> list[Blocker]:
        blockers = [d.to_blocker() for d in diagnoses]
        recent = head_lines(events, EVENT_LINES_IN_BLOCKER) or "(no events)"

        for resource in unclassified:
            status = resource.reason or resource.status.value
            blockers.append(Blocker(
                code=BlockerCode.POD_NOT_READY,
                message=f"{resource.name} is not ready ({status}).\n\nRecent events:\n{recent}",
                resource=resource.name,
            ))

        if not blockers:
            blockers.append(Blocker(
                code=BlockerCode.PODS_NOT_READY,
                message=(
                    f"{phase.scope.describe()} did not become ready within "
                    f"{int(phase.wait_timeout_seconds)}s ({result.ready}/{result.total} ready)."
                    f"\n\nRecent events:\n{recent}"
                ),
            ))
        return blockers
