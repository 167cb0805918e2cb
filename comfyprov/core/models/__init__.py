"""
Domain models — Pydantic types and dataclasses for provisioning.

All models are re-exported here for convenient access:

    from comfyprov.core.models import Step, StepResult, Receipt, VersionConstraintSet
"""

from comfyprov.core.models.action import Action, Receipt
from comfyprov.core.models.config import (
    AppConfig,
    PackagesConfig,
    PluginsConfig,
    ProvisionConfig,
    PythonConfig,
    SystemConfig,
    TorchConfig,
    VerificationConfig,
    WrappersConfig,
)
from comfyprov.core.models.constraints import VersionConstraintSet, normalize_package_name
from comfyprov.core.models.repository import RepositoryEntry
from comfyprov.core.models.step import Step, StepPolicy, StepResult
from comfyprov.core.models.verification import (
    CheckOutcome,
    VerificationExpectations,
    VerificationResult,
)

__all__ = [
    # action.py
    "Action",
    "Receipt",
    # config.py
    "AppConfig",
    "PackagesConfig",
    "PluginsConfig",
    "ProvisionConfig",
    "PythonConfig",
    "SystemConfig",
    "TorchConfig",
    "VerificationConfig",
    "WrappersConfig",
    # constraints.py
    "VersionConstraintSet",
    "normalize_package_name",
    # repository.py
    "RepositoryEntry",
    # step.py
    "Step",
    "StepPolicy",
    "StepResult",
    # verification.py
    "CheckOutcome",
    "VerificationExpectations",
    "VerificationResult",
]
