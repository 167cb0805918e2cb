"""
Provisioning pipeline — the central execution loop.

Steps run strictly in the order given: later steps rely on the
filesystem and package state earlier ones leave behind. Each step's
outcome is appended to the step log. A failed fatal step stops the run;
a failed best-effort step is recorded and the run moves on.

Flow:
    steps → invoke action → receipt → StepResult → step log → next / abort
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Literal

from comfyprov.core.models.action import Receipt
from comfyprov.core.models.step import Step, StepResult
from comfyprov.core.persistence.step_log import StepLog

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Outcome of one pipeline run."""

    status: Literal["completed", "aborted"] = "completed"
    failed_step: str | None = None
    log: StepLog = field(default_factory=StepLog)

    @property
    def completed(self) -> bool:
        return self.status == "completed"

    @property
    def aborted(self) -> bool:
        return self.status == "aborted"

    @property
    def total(self) -> int:
        return len(self.log)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.log.entries if r.succeeded)

    @property
    def failed(self) -> int:
        return len(self.log.failures)

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "failed_step": self.failed_step,
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "steps": [r.model_dump(mode="json") for r in self.log.entries],
        }


def _invoke(step: Step) -> StepResult:
    """Run one step's action and turn whatever happens into a StepResult."""
    start = time.monotonic()
    try:
        receipt = step.action()
    except Exception as e:
        logger.debug("Step %s raised", step.name, exc_info=True)
        receipt = Receipt.failure(
            adapter="pipeline",
            action_id=step.name,
            error=f"{type(e).__name__}: {e}",
        )

    if not isinstance(receipt, Receipt):
        receipt = Receipt.failure(
            adapter="pipeline",
            action_id=step.name,
            error=f"Step action returned {type(receipt).__name__}, expected Receipt",
        )

    if not receipt.duration_ms:
        receipt.duration_ms = int((time.monotonic() - start) * 1000)
    return StepResult.from_receipt(step, receipt)


def run_pipeline(steps: Iterable[Step], log: StepLog | None = None) -> PipelineResult:
    """Execute steps in order, enforcing each step's failure policy.

    Args:
        steps: Ordered steps. Each is executed at most once.
        log: Step log to append to. Passing the log of an earlier
            pipeline continues that run's record.

    Returns:
        PipelineResult: ``completed`` when no fatal step failed,
        otherwise ``aborted`` with the failing step's name.
    """
    result = PipelineResult(log=log if log is not None else StepLog())

    for step in steps:
        logger.info("▶ %s", step.description or step.name)
        step_result = _invoke(step)
        result.log.append(step_result)

        if step_result.succeeded:
            marker = "⊘" if step_result.status == "skipped" else "✓"
            logger.info("%s %s (%dms)", marker, step.name, step_result.duration_ms)
            continue

        if step.fatal:
            logger.error("❌ ERROR: %s failed: %s", step.name, step_result.message)
            result.status = "aborted"
            result.failed_step = step.name
            return result

        logger.warning("⚠️  %s failed (continuing): %s", step.name, step_result.message)

    return result
