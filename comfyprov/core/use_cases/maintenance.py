"""
Maintenance use cases — single-purpose runs on a provisioned machine.

``relock`` re-asserts the version pins after someone installed a plugin
by hand; ``wrappers`` regenerates the start and entrypoint scripts.
Both record to the same step log as a full provisioning run.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from comfyprov.adapters.registry import AdapterRegistry
from comfyprov.core.engine.pipeline import PipelineResult, run_pipeline
from comfyprov.core.models.config import ProvisionConfig
from comfyprov.core.models.step import Step
from comfyprov.core.persistence.step_log import StepLog
from comfyprov.core.services.pin_enforcer import PinEnforcer
from comfyprov.core.services.wrappers import wrapper_steps
from comfyprov.core.use_cases.provision import build_registry


@dataclass
class MaintenanceResult:
    """Result of a maintenance run."""

    pipeline: PipelineResult | None = None
    dry_run: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.pipeline is not None and self.pipeline.completed

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error, "dry_run": self.dry_run}
        assert self.pipeline is not None
        return {"dry_run": self.dry_run, **self.pipeline.to_dict()}


def _run(
    config: ProvisionConfig,
    steps: list[Step],
    dry_run: bool,
    step_log_path: Path | None,
) -> MaintenanceResult:
    if step_log_path is None and not dry_run:
        step_log_path = config.step_log_path
    pipeline = run_pipeline(steps, StepLog(step_log_path))
    return MaintenanceResult(pipeline=pipeline, dry_run=dry_run)


def run_relock(
    config: ProvisionConfig,
    *,
    dry_run: bool = False,
    mock_mode: bool = False,
    registry: AdapterRegistry | None = None,
    step_log_path: Path | None = None,
) -> MaintenanceResult:
    """Enforce the configured pins once."""
    if not config.pins:
        return MaintenanceResult(dry_run=dry_run, error="No version pins configured.")
    if registry is None:
        registry = build_registry(config, mock_mode=mock_mode, dry_run=dry_run)
    steps = [PinEnforcer(registry).step("relock-versions", config.pins)]
    return _run(config, steps, dry_run, step_log_path)


def write_wrappers(
    config: ProvisionConfig,
    *,
    dry_run: bool = False,
    registry: AdapterRegistry | None = None,
    step_log_path: Path | None = None,
) -> MaintenanceResult:
    """Regenerate the start script and entrypoint."""
    if registry is None:
        registry = build_registry(config, dry_run=dry_run)
    return _run(config, wrapper_steps(config, registry), dry_run, step_log_path)
