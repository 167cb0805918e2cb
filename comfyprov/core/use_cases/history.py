"""
History use case — read back the step log of earlier runs.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from comfyprov.core.models.config import ProvisionConfig
from comfyprov.core.models.step import StepResult
from comfyprov.core.persistence.step_log import read_recent, read_step_log


@dataclass
class HistoryResult:
    path: Path | None = None
    entries: list[StepResult] = field(default_factory=list)
    failures_only: bool = False

    def to_dict(self) -> dict:
        return {
            "path": str(self.path) if self.path else None,
            "count": len(self.entries),
            "entries": [e.model_dump(mode="json") for e in self.entries],
        }


def step_history(
    config: ProvisionConfig,
    n: int = 20,
    failures_only: bool = False,
    path: Path | None = None,
) -> HistoryResult:
    """The last ``n`` step log entries, optionally only failed ones."""
    path = path or config.step_log_path
    if failures_only:
        entries = [e for e in read_step_log(path) if e.failed][-n:]
    else:
        entries = read_recent(path, n=n)
    return HistoryResult(path=path, entries=entries, failures_only=failures_only)
