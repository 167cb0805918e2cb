"""
Verify use case — probe an already-provisioned environment.
"""

from __future__ import annotations

from dataclasses import dataclass

from comfyprov.core.models.config import ProvisionConfig
from comfyprov.core.models.verification import VerificationExpectations, VerificationResult
from comfyprov.core.services.runtime_probe import RuntimeProbe, SubprocessRuntimeProbe
from comfyprov.core.services.verification import verify


@dataclass
class VerifyResult:
    """Result of a standalone verification."""

    verification: VerificationResult | None = None
    python: str = ""
    error: str | None = None

    @property
    def passed(self) -> bool:
        return self.error is None and self.verification is not None and self.verification.passed

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        assert self.verification is not None
        return {
            "python": self.python,
            "passed": self.verification.passed,
            "checks": [o.model_dump(mode="json") for o in self.verification.details],
        }


def expectations_from_config(config: ProvisionConfig) -> VerificationExpectations:
    """Expectations for the environment ``config`` describes."""
    return VerificationExpectations(
        runtime_available=True,
        accelerator_required=config.verification.accelerator_required,
        package_versions=config.pins,
        imports=list(config.verification.imports),
    )


def run_verification(
    config: ProvisionConfig,
    probe: RuntimeProbe | None = None,
) -> VerifyResult:
    """Run the verification probe against the configured interpreter.

    Args:
        config: Provisioning configuration (pins, imports, device).
        probe: Runtime probe override; defaults to probing
            ``config.python.executable`` in a subprocess.
    """
    if probe is None:
        probe = SubprocessRuntimeProbe(config.python.executable)

    try:
        verification = verify(
            expectations_from_config(config),
            probe,
            device_index=config.verification.device_index,
            matrix_size=config.verification.matrix_size,
        )
    except Exception as e:
        return VerifyResult(python=config.python.executable, error=f"Verification error: {e}")

    return VerifyResult(verification=verification, python=config.python.executable)
