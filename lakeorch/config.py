"""
Configuration management for lakeorch.

Loads and validates config.yaml from $LAKEORCH_HOME (default
~/.config/lakeorch) or an explicit path.
"""

import os
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from lakeorch.errors import ConfigError
from lakeorch.schemas import DiagnosisCode

PHASE_ORDER = ["core", "stream", "datalake"]

DEFAULT_WAIT_TIMEOUTS = {
    "core": 600,
    "stream": 900,
    "datalake": 900,
}


def get_lakeorch_home() -> Path:
    """Config home: $LAKEORCH_HOME or ~/.config/lakeorch."""
    home = os.environ.get("LAKEORCH_HOME")
    if home:
        return Path(home).expanduser()
    return Path("~/.config/lakeorch").expanduser()


def get_config_path() -> Path:
    return get_lakeorch_home() / "config.yaml"


def default_config_dict() -> Dict[str, Any]:
    """Starting config written by `lakeorch init`."""
    return {
        "target": {
            "namespace": "ingext",
            "cluster_name": "",
            "profile": "default",
            "region": "us-east-1",
            "bucket": "",
            "site_domain": "",
            "env_file": None,
        },
        "orchestrator": {
            "poll_interval_seconds": 10,
            "heal_grace_seconds": 5,
            "self_heal_codes": [
                DiagnosisCode.RBAC_MISSING_PERMISSIONS.value,
                DiagnosisCode.STORAGE_ACCESS_DENIED.value,
            ],
            "log_tail_lines": 200,
            "events_tail": 25,
            "error_excerpt_chars": 500,
            "signatures_file": None,
            "wait_timeouts": dict(DEFAULT_WAIT_TIMEOUTS),
        },
        "logging": {
            "level": "INFO",
            "format": "structured",
            "output": str(get_lakeorch_home() / "logs" / "lakeorch-{date}.log"),
            "console": True,
        },
    }


class LakeorchConfig:
    """Complete lakeorch configuration."""

    def __init__(self, raw: Dict[str, Any], config_path: Optional[Path] = None):
        self.config_path = config_path
        self.raw_config = raw

        target = raw.get("target") or {}
        self.namespace = target.get("namespace", "ingext")
        self.cluster_name = target.get("cluster_name") or ""
        self.profile = target.get("profile")
        self.region = target.get("region")
        self.bucket = target.get("bucket") or ""
        self.site_domain = target.get("site_domain") or ""
        self.env_file = target.get("env_file")

        self.orchestrator = raw.get("orchestrator") or {}
        self.logging = raw.get("logging") or {}

    # Orchestrator settings

    def get_poll_interval(self) -> float:
        return float(self.orchestrator.get("poll_interval_seconds", 10))

    def get_heal_grace_seconds(self) -> float:
        return float(self.orchestrator.get("heal_grace_seconds", 5))

    def get_self_heal_codes(self) -> List[DiagnosisCode]:
        codes = self.orchestrator.get("self_heal_codes")
        if codes is None:
            codes = [DiagnosisCode.RBAC_MISSING_PERMISSIONS.value, DiagnosisCode.STORAGE_ACCESS_DENIED.value]
        return [DiagnosisCode(c) for c in codes]

    def get_log_tail_lines(self) -> int:
        return int(self.orchestrator.get("log_tail_lines", 200))

    def get_events_tail(self) -> int:
        return int(self.orchestrator.get("events_tail", 25))

    def get_error_excerpt_chars(self) -> int:
        return int(self.orchestrator.get("error_excerpt_chars", 500))

    def get_signatures_file(self) -> Optional[Path]:
        path = self.orchestrator.get("signatures_file")
        return Path(path).expanduser() if path else None

    def get_wait_timeout(self, phase: str) -> float:
        timeouts = self.orchestrator.get("wait_timeouts") or {}
        return float(timeouts.get(phase, DEFAULT_WAIT_TIMEOUTS.get(phase, 900)))

    # Environment

    def command_env(self) -> Dict[str, str]:
        """Extra environment for kubectl/helm/aws commands."""
        env = {}
        if self.profile:
            env["AWS_PROFILE"] = self.profile
        if self.region:
            env["AWS_REGION"] = self.region
            env["AWS_DEFAULT_REGION"] = self.region
        return env

    # Logging

    def get_log_file_path(self) -> Optional[Path]:
        """Log file path with date interpolation (None disables file logging)."""
        log_output = self.logging.get("output")
        if not log_output:
            return None
        log_output = log_output.replace("{date}", datetime.now().strftime("%Y-%m-%d"))
        return Path(log_output).expanduser()

    def get_log_level(self) -> str:
        return str(self.logging.get("level", "INFO")).upper()

    def get_log_format(self) -> str:
        """Get log format (structured or pretty)."""
        return self.logging.get("format", "structured")

    def should_log_to_console(self) -> bool:
        return bool(self.logging.get("console", True))

    def validate(self) -> None:
        """Validate entire configuration."""
        if not self.namespace:
            raise ConfigError("target.namespace is required")

        for code in self.orchestrator.get("self_heal_codes") or []:
            try:
                DiagnosisCode(code)
            except ValueError:
                raise ConfigError(f"Unknown self-heal code: {code}")

        for phase, timeout in (self.orchestrator.get("wait_timeouts") or {}).items():
            if phase not in PHASE_ORDER:
                raise ConfigError(f"wait_timeouts: unknown phase '{phase}'")
            if not isinstance(timeout, (int, float)) or timeout <= 0:
                raise ConfigError(f"wait_timeouts.{phase} must be a positive number")

        if self.get_log_format() not in ("structured", "pretty"):
            raise ConfigError("logging.format must be 'structured' or 'pretty'")

        signatures = self.get_signatures_file()
        if signatures is not None and not signatures.exists():
            raise ConfigError(f"signatures_file does not exist: {signatures}")

    def __repr__(self) -> str:
        return f"LakeorchConfig(namespace={self.namespace}, cluster={self.cluster_name})"


def load_config(config_path: Optional[Path] = None) -> LakeorchConfig:
    """
    Load lakeorch configuration from YAML.

    Args:
        config_path: Path to config file. Defaults to $LAKEORCH_HOME/config.yaml

    Returns:
        Validated LakeorchConfig instance

    Raises:
        ConfigError: If config is missing, empty, or invalid
    """
    if config_path is None:
        config_path = get_config_path()

    if not config_path.exists():
        raise ConfigError(
            f"lakeorch config.yaml not found at {config_path}. Run 'lakeorch init' first."
        )

    try:
        with open(config_path, "r") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML syntax: {e}")

    if not raw:
        raise ConfigError("Configuration file is empty")
    if not isinstance(raw, dict):
        raise ConfigError("Configuration file must contain a mapping")

    config = LakeorchConfig(raw, config_path)

    if config.env_file:
        env_path = Path(config.env_file).expanduser()
        if not env_path.exists():
            raise ConfigError(f"env_file does not exist: {env_path}")
        load_dotenv(env_path, override=False)

    config.validate()
    return config
