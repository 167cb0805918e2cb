"""
Verification models — what a provisioned environment must satisfy and
what the probe found.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, Field

from comfyprov.core.models.constraints import VersionConstraintSet


class CheckOutcome(BaseModel):
    """Result of one verification check.

    ``warning`` outcomes are reported but never fail the probe.
    """

    name: str
    status: Literal["passed", "failed", "warning", "skipped"] = "passed"
    message: str = ""
    details: dict[str, Any] = Field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return self.status == "passed"

    @property
    def failed(self) -> bool:
        return self.status == "failed"


class VerificationResult(BaseModel):
    """Ordered list of check outcomes plus the overall verdict."""

    passed: bool = True
    details: list[CheckOutcome] = Field(default_factory=list)

    def get(self, name: str) -> CheckOutcome | None:
        for outcome in self.details:
            if outcome.name == name:
                return outcome
        return None

    @property
    def failures(self) -> list[CheckOutcome]:
        return [o for o in self.details if o.failed]

    @property
    def warnings(self) -> list[CheckOutcome]:
        return [o for o in self.details if o.status == "warning"]


@dataclass
class VerificationExpectations:
    """What the verification probe checks for."""

    runtime_available: bool = True
    accelerator_required: bool = True
    package_versions: VersionConstraintSet = field(default_factory=VersionConstraintSet)
    imports: list[str] = field(default_factory=list)
    smoke_test: Callable[[], CheckOutcome] | None = None
