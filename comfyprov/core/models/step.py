"""
Step models — units of work and their recorded outcomes.

A Step is defined once when the pipeline is built and executed exactly
once per run. A StepResult is appended to the step log when the step
finishes and is read-only afterwards.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

from comfyprov.core.models.action import Receipt

# Installer stdout can be long; the log keeps only its tail.
_MESSAGE_TAIL = 500


class StepPolicy(str, Enum):
    """What a failure of this step means for the rest of the run."""

    FATAL = "fatal"              # abort the pipeline
    BEST_EFFORT = "best_effort"  # record and continue


@dataclass(frozen=True)
class Step:
    """A named, policy-carrying wrapper around one side-effecting action.

    The action takes no arguments and returns a Receipt. Anything it
    needs (paths, package lists, adapters) is bound when the step is
    defined.
    """

    name: str
    action: Callable[[], Receipt]
    policy: StepPolicy = StepPolicy.FATAL
    description: str = ""

    @property
    def fatal(self) -> bool:
        return self.policy is StepPolicy.FATAL


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class StepResult(BaseModel):
    """Recorded outcome of one executed step."""

    step_name: str
    status: Literal["ok", "skipped", "failed"] = "ok"
    policy: StepPolicy = StepPolicy.FATAL
    message: str | None = None
    timestamp: str = Field(default_factory=_now_iso)
    duration_ms: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        """Success for pipeline control: ``ok`` or ``skipped``."""
        return self.status != "failed"

    @property
    def failed(self) -> bool:
        return self.status == "failed"

    @classmethod
    def from_receipt(cls, step: Step, receipt: Receipt) -> StepResult:
        """Build the log record for ``step`` from its action's receipt."""
        if receipt.failed:
            message = receipt.error or "failed"
        else:
            message = receipt.output[-_MESSAGE_TAIL:] or None
        return cls(
            step_name=step.name,
            status=receipt.status,
            policy=step.policy,
            message=message,
            timestamp=receipt.ended_at,
            duration_ms=receipt.duration_ms,
            metadata=receipt.metadata,
        )
