"""
lakeorch - Phased deployment orchestrator

Installs the Ingext Stream/Datalake application phase by phase, with
precondition gates, smart resume, bounded readiness waits, and failure
diagnosis that ends in actionable blockers.
"""

__version__ = "0.1.0"


__all__ = [
    "LakeorchConfig",
    "load_config",
    "get_lakeorch_home",
    "PhaseOrchestrator",
    "Pipeline",
]

from .config import LakeorchConfig, load_config, get_lakeorch_home
from .orchestrator import PhaseOrchestrator
from .pipeline import Pipeline
