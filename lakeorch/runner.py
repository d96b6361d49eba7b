"""
Command runner for external CLIs (kubectl, helm, aws).

Every collaborator shells out through CommandRunner.run(), which returns a
structured CommandResult instead of raising on non-zero exit codes. Callers
decide whether a failed command is fatal.
"""

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Mapping, Optional, Sequence

from lakeorch.errors import CommandError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Result of one external command."""

    ok: bool
    exit_code: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        """stderr when present, otherwise stdout (most CLIs report errors on stderr)."""
        return self.stderr or self.stdout


class CommandRunner:
    """
    Execute external commands with a merged environment.

    Usage:
        runner = CommandRunner(env={"AWS_PROFILE": "default"})
        result = runner.run("kubectl", ["get", "pods", "-o", "json"])
        if result.ok:
            ...
    """

    def __init__(
        self,
        env: Optional[Mapping[str, str]] = None,
        timeout_seconds: Optional[float] = 1800,
    ):
        """
        Initialize the runner.

        Args:
            env: Extra environment variables layered over os.environ
            timeout_seconds: Hard ceiling for any single command
        """
        self.env = {k: str(v) for k, v in (env or {}).items() if v is not None}
        self.timeout_seconds = timeout_seconds

    def run(self, cmd: str, args: Sequence[str]) -> CommandResult:
        """
        Run cmd with args and capture its output.

        Args:
            cmd: Executable name (resolved via PATH)
            args: Command arguments

        Returns:
            CommandResult (ok is True only for exit code 0)

        Raises:
            CommandError: If the executable is missing or the command times out
        """
        command = [cmd, *args]
        logger.debug(
            f"Executing: {' '.join(command)}",
            extra={"event": "command_started", "metadata": {"command": cmd}},
        )

        try:
            result = subprocess.run(
                command,
                capture_output=True,
                text=True,
                check=False,
                env={**os.environ, **self.env},
                timeout=self.timeout_seconds,
            )
        except FileNotFoundError:
            raise CommandError(cmd, "executable not found on PATH")
        except subprocess.TimeoutExpired:
            raise CommandError(cmd, f"timed out after {self.timeout_seconds}s")

        if result.returncode != 0:
            logger.debug(
                f"{cmd} exited with code {result.returncode}",
                extra={
                    "event": "command_failed",
                    "metadata": {"command": cmd, "exit_code": result.returncode},
                },
            )

        return CommandResult(
            ok=result.returncode == 0,
            exit_code=result.returncode,
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )
