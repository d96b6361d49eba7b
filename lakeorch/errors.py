"""
Error classes for lakeorch.

These exceptions are raised by collaborators and configuration code. The
orchestrator catches them at the phase boundary and turns them into evidence
and blockers, so they never escape run_phase():
- QueryError: a state query failed or returned unparsable output. Gates treat
  this as "unmet", never as "met".
- CommandError: an external command could not be executed at all.

Configuration and registry problems surface directly to the CLI.
"""


class LakeorchError(Exception):
    """Base exception for lakeorch."""
    pass


class ConfigError(LakeorchError):
    """Configuration file is missing, empty, or invalid."""
    pass


class CommandError(LakeorchError):
    """
    An external command could not be executed.

    Raised for missing binaries or commands that exceed their timeout,
    as opposed to commands that ran and exited non-zero.
    """

    def __init__(self, command: str, message: str):
        self.command = command
        super().__init__(f"{command}: {message}")


class QueryError(LakeorchError):
    """
    A declarative-state query failed.

    Examples:
    - kubectl exited non-zero (cluster unreachable, RBAC denied)
    - Output was not valid JSON
    - Release list could not be parsed

    An inconclusive query is never proof of readiness.
    """
    pass


class PhaseNotFoundError(LakeorchError):
    """Raised when a phase name is not in the catalog."""
    pass


class SignatureError(LakeorchError):
    """Raised when a failure signature definition is invalid."""
    pass


class InvalidTransitionError(LakeorchError):
    """Raised when the phase state machine is driven along an undeclared edge."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Invalid transition: {current} -> {target}")
