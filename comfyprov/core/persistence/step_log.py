"""
Step log — append-only record of every step outcome in a run.

Results are held in memory for the pipeline's report and, when a path
is configured, each one is appended to an NDJSON (newline-delimited
JSON) file the moment it is recorded. Entries are never modified or
deleted; re-runs append to the same file.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

from comfyprov.core.models.step import StepResult

logger = logging.getLogger(__name__)


class StepLog:
    """Append-only, single-writer log of StepResults."""

    def __init__(self, path: Path | None = None):
        self._path = path
        self._entries: list[StepResult] = []

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def entries(self) -> tuple[StepResult, ...]:
        """Recorded results, oldest first."""
        return tuple(self._entries)

    @property
    def failures(self) -> list[StepResult]:
        return [e for e in self._entries if e.failed]

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, step_name: str) -> StepResult | None:
        """Most recent result for a step name."""
        for entry in reversed(self._entries):
            if entry.step_name == step_name:
                return entry
        return None

    def append(self, result: StepResult) -> None:
        """Record a result and flush it to the ledger file, if any."""
        self._entries.append(result)
        if self._path is None:
            return

        line = json.dumps(result.model_dump(mode="json"), ensure_ascii=False) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
            logger.debug("Step log entry written: %s", result.step_name)
        except OSError as e:
            logger.error("Failed to write step log entry: %s", e)


def read_step_log(path: Path) -> list[StepResult]:
    """Read all entries from a step log file.

    Returns:
        List of step results, oldest first.
    """
    if not path.is_file():
        return []

    entries = []
    try:
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(StepResult.model_validate(json.loads(line)))
                except ValueError as e:
                    logger.warning("Skipping corrupt step log entry at line %d: %s", line_num, e)
    except OSError as e:
        logger.error("Failed to read step log: %s", e)

    return entries


def read_recent(path: Path, n: int = 20) -> list[StepResult]:
    """Read the most recent N entries."""
    return read_step_log(path)[-n:]
