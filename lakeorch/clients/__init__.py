"""Collaborators the orchestrator core talks to (cluster state, releases, diagnostics)."""

from .base import DiagnosticFetch, ReleaseOperation, StateQuery
from .helm import HelmClient
from .kubectl import KubectlClient
from .storage import S3BucketClient

__all__ = [
    "DiagnosticFetch",
    "ReleaseOperation",
    "StateQuery",
    "HelmClient",
    "KubectlClient",
    "S3BucketClient",
]
