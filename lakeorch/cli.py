"""
CLI interface for lakeorch.

Provides commands: init, phases, run, install, status, diagnose, signatures.
"""

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import click
import yaml

from lakeorch import __version__
from lakeorch.classifier import FailureClassifier, SignatureRegistry
from lakeorch.clients import HelmClient, KubectlClient, S3BucketClient
from lakeorch.config import (
    LakeorchConfig,
    default_config_dict,
    get_lakeorch_home,
    load_config,
)
from lakeorch.errors import LakeorchError
from lakeorch.healing import SelfHealingPolicy
from lakeorch.installer import ResourceInstaller
from lakeorch.orchestrator import PhaseOrchestrator
from lakeorch.phases import PhaseCatalog, build_catalog
from lakeorch.pipeline import Pipeline, print_phase_result, write_report
from lakeorch.runner import CommandRunner
from lakeorch.schemas import ResourceState, ResourceStatus
from lakeorch.utils import (
    print_banner,
    print_error,
    print_info,
    print_success,
    print_warning,
    setup_logging,
)
from lakeorch.waiter import ReadinessWaiter


@dataclass
class Runtime:
    """Everything a command needs, wired from one config."""
    config: LakeorchConfig
    catalog: PhaseCatalog
    orchestrator: PhaseOrchestrator
    classifier: FailureClassifier


def build_registry(config: LakeorchConfig) -> SignatureRegistry:
    path = config.get_signatures_file()
    return SignatureRegistry.from_yaml(path) if path else SignatureRegistry.default()


def build_runtime(config: LakeorchConfig) -> Runtime:
    """Wire the kubectl/helm/aws collaborators and the orchestrator from config."""
    runner = CommandRunner(env=config.command_env())
    kubectl = KubectlClient(runner, namespace=config.namespace)
    helm = HelmClient(runner, namespace=config.namespace)
    storage = S3BucketClient(runner, region=config.region)

    classifier = FailureClassifier(
        kubectl,
        build_registry(config),
        tail_lines=config.get_log_tail_lines(),
        cluster=config.cluster_name,
        bucket=config.bucket,
    )
    orchestrator = PhaseOrchestrator(
        state=kubectl,
        releases=helm,
        diagnostics=kubectl,
        namespace=config.namespace,
        classifier=classifier,
        healing=SelfHealingPolicy(
            kubectl,
            healable_codes=config.get_self_heal_codes(),
            grace_seconds=config.get_heal_grace_seconds(),
        ),
        waiter=ReadinessWaiter(kubectl, poll_interval_seconds=config.get_poll_interval()),
        installer=ResourceInstaller(helm, error_excerpt_chars=config.get_error_excerpt_chars()),
        events_tail=config.get_events_tail(),
    )
    return Runtime(
        config=config,
        catalog=build_catalog(config, kubectl, storage),
        orchestrator=orchestrator,
        classifier=classifier,
    )


def _load(config_path: Optional[Path], verbose: bool = False) -> Runtime:
    config = load_config(config_path)
    setup_logging(
        config.get_log_file_path(),
        "DEBUG" if verbose else config.get_log_level(),
        config.get_log_format(),
        config.should_log_to_console(),
    )
    return build_runtime(config)


config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    help="Custom configuration file (default: $LAKEORCH_HOME/config.yaml)",
)


@click.group()
@click.version_option(version=__version__, prog_name="lakeorch")
def main():
    """
    lakeorch - Phased deployment orchestrator for Ingext Stream/Datalake.

    Runs core -> stream -> datalake with gates, smart resume, readiness
    waits and failure diagnosis.
    """
    pass


@main.command("init")
@click.option("--force", is_flag=True, help="Overwrite existing configuration")
def init(force: bool):
    """Initialize lakeorch configuration."""
    home = get_lakeorch_home()
    home.mkdir(parents=True, exist_ok=True)

    cfg_path = home / "config.yaml"
    if cfg_path.exists() and not force:
        click.echo(f"Config already exists at {cfg_path}. Use --force to overwrite.", err=True)
        raise SystemExit(1)

    cfg_path.write_text(yaml.safe_dump(default_config_dict(), sort_keys=False))
    click.echo(f"Initialized lakeorch config at {cfg_path}")
    click.echo("Set target.cluster_name, target.bucket and target.site_domain before installing.")


@main.command("phases")
@config_option
def phases(config_path: Optional[Path]):
    """List phases in run order."""
    try:
        runtime = build_runtime(load_config(config_path))
    except LakeorchError as e:
        print_error(str(e))
        raise SystemExit(1)

    for phase in runtime.catalog:
        units = ", ".join(u.name for u in phase.units)
        click.echo(f"{phase.name:<10} {phase.description}")
        click.echo(f"{'':<10} units: {units}")
        if phase.gates:
            click.echo(f"{'':<10} gates: {', '.join(g.name for g in phase.gates)}")


@main.command("run")
@click.argument("phase")
@click.option("--force", is_flag=True, help="Record unmet gates instead of blocking (disables self-heal)")
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.option("--json", "as_json", is_flag=True, help="Print the phase result as JSON")
@click.option("--report", type=click.Path(path_type=Path), help="Write the phase result to a JSON file")
@config_option
def run(phase: str, force: bool, verbose: bool, as_json: bool, report: Optional[Path], config_path: Optional[Path]):
    """
    Run a single phase.

    Examples:

      # Run the stream phase
      lakeorch run stream

      # Bypass unmet gates
      lakeorch run datalake --force
    """
    try:
        runtime = _load(config_path, verbose)
        spec = runtime.catalog.get(phase)
    except LakeorchError as e:
        print_error(str(e))
        raise SystemExit(1)

    print_banner(f"Phase {spec.name}")
    result = runtime.orchestrator.run_phase(spec, force=force, verbose=verbose)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        print_phase_result(result)
    if report:
        write_report(result.to_dict(), report)

    if not result.ok:
        raise SystemExit(1)


@main.command("install")
@click.option("--from", "from_phase", help="First phase to run (default: first)")
@click.option("--to", "to_phase", help="Last phase to run (default: last)")
@click.option("--force", is_flag=True, help="Record unmet gates instead of blocking (disables self-heal)")
@click.option("--verbose", is_flag=True, help="Enable debug logging")
@click.option("--report", type=click.Path(path_type=Path), help="Write the pipeline result to a JSON file")
@config_option
def install(
    from_phase: Optional[str],
    to_phase: Optional[str],
    force: bool,
    verbose: bool,
    report: Optional[Path],
    config_path: Optional[Path],
):
    """
    Run phases in order, stopping at the first failure.

    Examples:

      # Everything
      lakeorch install

      # Resume from stream
      lakeorch install --from stream
    """
    try:
        runtime = _load(config_path, verbose)
        selected = runtime.catalog.slice(from_phase, to_phase)
    except LakeorchError as e:
        print_error(str(e))
        raise SystemExit(1)

    result = Pipeline(runtime.orchestrator, report_path=report).run(selected, force=force, verbose=verbose)
    if not result.success:
        raise SystemExit(1)


@main.command("status")
@config_option
def status(config_path: Optional[Path]):
    """Show which phases are already complete (read-only)."""
    try:
        runtime = _load(config_path)
    except LakeorchError as e:
        print_error(str(e))
        raise SystemExit(1)

    print_banner("Phase status")
    for phase in runtime.catalog:
        check = runtime.orchestrator.check_resume(phase)
        if check.resumable:
            print_success(f"{phase.name}: complete ({len(check.resources)} resources ready)")
        else:
            print_warning(f"{phase.name}: not complete ({check.reason})")


@main.command("diagnose")
@click.argument("pod")
@click.option("--current", is_flag=True, help="Read current output instead of the previous run")
@config_option
def diagnose(pod: str, current: bool, config_path: Optional[Path]):
    """Classify one resource's recent output against the signature registry."""
    try:
        runtime = _load(config_path)
        resource = ResourceState(name=pod, status=ResourceStatus.UNKNOWN, restarts=0 if current else 1)
        diagnosis = runtime.classifier.classify(resource, runtime.config.namespace)
    except LakeorchError as e:
        print_error(str(e))
        raise SystemExit(1)

    if diagnosis is None:
        print_info(f"No failure signature matched for {pod}")
        return

    print_error(f"{diagnosis.code.value} ({diagnosis.signature})")
    click.echo(diagnosis.message)
    if diagnosis.remediation:
        click.echo("")
        click.echo("Remediation:")
        click.echo(diagnosis.remediation)


@main.command("signatures")
@config_option
def signatures(config_path: Optional[Path]):
    """List failure signatures in priority order."""
    try:
        registry = build_registry(load_config(config_path))
    except LakeorchError as e:
        print_error(str(e))
        raise SystemExit(1)

    for index, signature in enumerate(registry.signatures, start=1):
        click.echo(f"{index:>2}. {signature.code.value:<26} {signature.name}")


if __name__ == "__main__":
    main()
