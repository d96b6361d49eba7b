"""
Failure classifier - maps a non-ready resource's recent output to a diagnosis.

Signatures live in an ordered registry (loaded from YAML, extendable at
runtime). The first signature that matches wins, so specific root causes are
listed before generic symptoms (a panic is usually the consequence of
something listed above it).
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from lakeorch.clients.base import DiagnosticFetch
from lakeorch.errors import SignatureError
from lakeorch.schemas import Diagnosis, DiagnosisCode, ResourceState

logger = logging.getLogger(__name__)

DEFAULT_SIGNATURES_PATH = Path(__file__).parent / "data" / "signatures.yaml"


def _compile(pattern: Optional[str], where: str) -> Optional[re.Pattern]:
    if not pattern:
        return None
    try:
        return re.compile(pattern)
    except re.error as e:
        raise SignatureError(f"{where}: invalid regex {pattern!r}: {e}")


@dataclass(frozen=True)
class Rule:
    """
    One way a signature can match.

    Attributes:
        all: Substrings that must all be present
        any: Substrings of which at least one must be present (ignored if empty)
        regex: Optional pattern that must match
    """
    all: tuple[str, ...] = ()
    any: tuple[str, ...] = ()
    regex: Optional[re.Pattern] = None

    def matches(self, text: str) -> bool:
        if not (self.all or self.any or self.regex):
            return False
        if any(s not in text for s in self.all):
            return False
        if self.any and not any(s in text for s in self.any):
            return False
        if self.regex is not None and not self.regex.search(text):
            return False
        return True

    @classmethod
    def from_dict(cls, data: dict[str, Any], where: str) -> "Rule":
        if not isinstance(data, dict):
            raise SignatureError(f"{where}: rule must be a mapping")
        rule = cls(
            all=tuple(data.get("all") or ()),
            any=tuple(data.get("any") or ()),
            regex=_compile(data.get("regex"), where),
        )
        if not (rule.all or rule.any or rule.regex):
            raise SignatureError(f"{where}: rule needs at least one of all/any/regex")
        return rule


@dataclass(frozen=True)
class Signature:
    """A named failure pattern with its diagnosis templates."""
    name: str
    code: DiagnosisCode
    rules: tuple[Rule, ...]
    message: str
    remediation: Optional[str] = None
    detail_pattern: Optional[re.Pattern] = None
    detail_default: str = "unknown"

    def matches(self, text: str) -> bool:
        return any(rule.matches(text) for rule in self.rules)

    def extract_detail(self, text: str, context: dict[str, str]) -> str:
        if self.detail_pattern is not None:
            match = self.detail_pattern.search(text)
            if match:
                groups = [g for g in match.groups() if g]
                if groups:
                    return groups[0]
        return self.detail_default.format(**context)

    def diagnose(self, resource: str, text: str, context: dict[str, str]) -> Diagnosis:
        fields = dict(context, resource=resource)
        fields["detail"] = self.extract_detail(text, fields)
        return Diagnosis(
            resource=resource,
            code=self.code,
            message=self.message.format(**fields),
            remediation=self.remediation.format(**fields) if self.remediation else None,
            signature=self.name,
        )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Signature":
        name = data.get("name")
        if not name:
            raise SignatureError("Signature is missing 'name'")
        try:
            code = DiagnosisCode(data.get("code"))
        except ValueError:
            raise SignatureError(f"Signature {name}: unknown code {data.get('code')!r}")
        rules_data = data.get("rules") or []
        if not rules_data:
            raise SignatureError(f"Signature {name}: at least one rule is required")
        if not data.get("message"):
            raise SignatureError(f"Signature {name}: missing 'message'")
        return cls(
            name=name,
            code=code,
            rules=tuple(Rule.from_dict(r, f"Signature {name}") for r in rules_data),
            message=data["message"],
            remediation=data.get("remediation"),
            detail_pattern=_compile(data.get("detail_pattern"), f"Signature {name}"),
            detail_default=str(data.get("detail_default", "unknown")),
        )


@dataclass
class SignatureRegistry:
    """Ordered list of signatures; earlier entries take priority."""
    signatures: list[Signature] = field(default_factory=list)

    @classmethod
    def from_yaml(cls, path: Path) -> "SignatureRegistry":
        """
        Load a registry from a YAML file with a top-level `signatures` list.

        Raises:
            SignatureError: If the file is missing or a definition is invalid
        """
        if not path.exists():
            raise SignatureError(f"Signature file not found: {path}")
        try:
            with open(path, "r") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise SignatureError(f"Invalid YAML in {path}: {e}")

        entries = data.get("signatures") if isinstance(data, dict) else None
        if not entries:
            raise SignatureError(f"No signatures defined in {path}")

        registry = cls()
        for entry in entries:
            registry.register(Signature.from_dict(entry))
        return registry

    @classmethod
    def default(cls) -> "SignatureRegistry":
        return cls.from_yaml(DEFAULT_SIGNATURES_PATH)

    def register(self, signature: Signature, before: Optional[str] = None) -> None:
        """
        Add a signature, at the end or ahead of an existing one.

        Raises:
            SignatureError: On a duplicate name or an unknown `before`
        """
        if signature.name in self.names():
            raise SignatureError(f"Signature {signature.name} is already registered")
        if before is None:
            self.signatures.append(signature)
            return
        names = self.names()
        if before not in names:
            raise SignatureError(f"Cannot insert before unknown signature {before}")
        self.signatures.insert(names.index(before), signature)

    def names(self) -> list[str]:
        return [s.name for s in self.signatures]

    def match(self, text: str) -> Optional[Signature]:
        for signature in self.signatures:
            if signature.matches(text):
                return signature
        return None

    def __len__(self) -> int:
        return len(self.signatures)


class FailureClassifier:
    """
    Classify non-ready resources from their recent output.

    Usage:
        classifier = FailureClassifier(kubectl, SignatureRegistry.default())
        diagnosis = classifier.classify(resource_state, "ingext")
    """

    def __init__(
        self,
        diagnostics: DiagnosticFetch,
        registry: Optional[SignatureRegistry] = None,
        tail_lines: int = 200,
        cluster: Optional[str] = None,
        bucket: Optional[str] = None,
    ):
        self.diagnostics = diagnostics
        self.registry = registry or SignatureRegistry.default()
        self.tail_lines = tail_lines
        self.context = {
            "cluster": cluster or "CLUSTER",
            "bucket": bucket or "unknown",
        }

    def classify_text(self, resource: str, text: str, namespace: str) -> Optional[Diagnosis]:
        """Classify already-fetched output."""
        signature = self.registry.match(text or "")
        if signature is None:
            logger.info(
                f"No failure signature matched for {resource}",
                extra={"event": "classify_no_match", "metadata": {"resource": resource}},
            )
            return None

        diagnosis = signature.diagnose(resource, text, dict(self.context, namespace=namespace))
        logger.info(
            f"{resource}: matched signature {signature.name} ({signature.code.value})",
            extra={
                "event": "classify_matched",
                "metadata": {"resource": resource, "signature": signature.name, "code": signature.code.value},
            },
        )
        return diagnosis

    def classify(self, resource: ResourceState, namespace: str) -> Optional[Diagnosis]:
        """
        Fetch recent output for a resource and classify it.

        Output of the previous run is preferred once the resource has
        restarted, since the crash reason is there.
        """
        text = self.diagnostics.fetch_recent_output(
            resource.name,
            namespace,
            prefer_previous=resource.restarts > 0,
            tail_lines=self.tail_lines,
        )
        return self.classify_text(resource.name, text, namespace)
