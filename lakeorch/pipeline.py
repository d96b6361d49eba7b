"""
Multi-phase pipeline for lakeorch.

Runs phases strictly in order through one PhaseOrchestrator and stops at the
first phase that does not succeed. The optional JSON report is an audit
artifact only; resume always re-queries live state.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from lakeorch.orchestrator import PhaseOrchestrator
from lakeorch.schemas import PhaseResult, PhaseSpec
from lakeorch.utils import (
    format_duration,
    print_banner,
    print_error,
    print_info,
    print_success,
    print_warning,
)

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Result of a multi-phase run."""

    success: bool
    started_at: datetime
    ended_at: datetime
    duration_seconds: float
    phases: Dict[str, PhaseResult] = field(default_factory=dict)
    error_message: Optional[str] = None

    def to_dict(self) -> Dict:
        """Convert to dictionary for serialization."""
        return {
            "success": self.success,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat(),
            "duration_seconds": self.duration_seconds,
            "phases": {name: result.to_dict() for name, result in self.phases.items()},
            "error_message": self.error_message,
        }


def write_report(data: Dict, path: Path) -> None:
    """Write a JSON report, creating parent directories."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
    logger.debug(
        f"Wrote report to {path}",
        extra={"event": "report_written", "metadata": {"file": str(path)}},
    )


def print_phase_result(result: PhaseResult) -> None:
    """Console summary of one phase."""
    evidence = result.evidence
    duration = format_duration(evidence.duration_seconds or 0)

    if result.ok:
        how = "already complete" if evidence.resumed else f"{len(evidence.releases)} releases"
        print_success(f"{evidence.phase}: {how}, {duration}")
    else:
        print_error(f"{evidence.phase}: {evidence.state.value} ({duration})")
        for blocker in result.blockers:
            target = f" [{blocker.resource}]" if blocker.resource else ""
            print_error(f"  {blocker.code}{target}: {blocker.message}")

    for gate in evidence.gates:
        if not gate.met:
            print_warning(f"  gate {gate.name}: {gate.status.value}")
    for label, passed in evidence.verifications.items():
        if not passed:
            print_warning(f"  verification {label}: not passed")
    for name in evidence.healed:
        print_info(f"  self-healed {name}")


class Pipeline:
    """
    Sequential multi-phase runner.

    Usage:
        pipeline = Pipeline(orchestrator)
        result = pipeline.run(catalog.slice("stream", "datalake"))
    """

    def __init__(self, orchestrator: PhaseOrchestrator, report_path: Optional[Path] = None):
        self.orchestrator = orchestrator
        self.report_path = report_path

    def run(
        self,
        phases: List[PhaseSpec],
        force: bool = False,
        verbose: bool = False,
    ) -> PipelineResult:
        """
        Run phases in order.

        Args:
            phases: Phases to run
            force: Passed to every phase
            verbose: Passed to every phase

        Returns:
            PipelineResult with one PhaseResult per phase attempted
        """
        started_at = datetime.utcnow()
        start_time = time.time()

        names = [p.name for p in phases]
        logger.info(
            f"Starting pipeline: {', '.join(names)}",
            extra={"event": "pipeline_started", "metadata": {"phases": names, "force": force}},
        )
        print_banner(f"lakeorch: {' -> '.join(names)}")

        phase_results: Dict[str, PhaseResult] = {}
        error_message = None

        for phase in phases:
            print_info(f"Running phase {phase.name}...")
            result = self.orchestrator.run_phase(phase, force=force, verbose=verbose)
            phase_results[phase.name] = result
            print_phase_result(result)

            if not result.ok:
                error_message = f"Phase {phase.name} failed: {', '.join(result.codes) or 'not ready'}"
                logger.error(
                    f"Pipeline stopped at phase {phase.name}",
                    extra={"event": "pipeline_failed", "phase": phase.name, "metadata": {"codes": result.codes}},
                )
                break

        duration = time.time() - start_time
        pipeline_result = PipelineResult(
            success=error_message is None and len(phase_results) == len(phases),
            started_at=started_at,
            ended_at=datetime.utcnow(),
            duration_seconds=duration,
            phases=phase_results,
            error_message=error_message,
        )

        if pipeline_result.success:
            print_success(f"Pipeline completed successfully in {format_duration(duration)}")
            logger.info(
                "Pipeline completed successfully",
                extra={"event": "pipeline_completed", "metadata": {"duration_seconds": duration}},
            )
        else:
            print_error(pipeline_result.error_message or "Pipeline failed")

        if self.report_path is not None:
            self._save_report(pipeline_result)

        return pipeline_result

    def _save_report(self, result: PipelineResult) -> None:
        try:
            write_report(result.to_dict(), self.report_path)
        except OSError as e:
            logger.warning(
                f"Could not save pipeline report: {e}",
                extra={"event": "report_save_failed", "metadata": {"error": str(e)}},
            )
