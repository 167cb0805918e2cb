"""
Adapter base — the protocol contract between steps and collaborators.

Every external tool the provisioner drives (apt, pip, git, the shell,
the filesystem) sits behind this interface. Steps only talk to
adapters through the registry, never directly to the tools.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel, Field

from comfyprov.core.models.action import Action, Receipt


class ExecutionContext(BaseModel):
    """Everything an adapter needs to execute an action."""

    action: Action
    cwd: str | None = None
    dry_run: bool = False
    params: dict[str, Any] = Field(default_factory=dict)

    @property
    def working_dir(self) -> str:
        """Resolved working directory for the action."""
        return self.params.get("cwd") or self.cwd or "."


class Adapter(ABC):
    """Abstract base class for all adapters.

    Adapters perform external side effects and return receipts.
    They NEVER raise exceptions — failures are captured in the Receipt.

    To create a new adapter:
        1. Subclass Adapter
        2. Implement name, validate, execute
        3. Register it in the AdapterRegistry
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'apt', 'pip', 'git')."""

    @abstractmethod
    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        """Validate that the action can be executed.

        Returns:
            (is_valid, error_message). error_message is empty if valid.
        """

    @abstractmethod
    def execute(self, context: ExecutionContext) -> Receipt:
        """Execute the action and return a receipt.

        MUST never raise exceptions. All failures are captured
        in the Receipt with status='failed'.
        """

    def _receipt(
        self,
        context: ExecutionContext,
        run: dict[str, Any],
        command: list[str],
        **metadata: Any,
    ) -> Receipt:
        """Convert a ``run_subprocess`` result into a Receipt."""
        meta = {"command": " ".join(command), **metadata}
        if run.get("ok"):
            return Receipt.success(
                adapter=self.name,
                action_id=context.action.id,
                output=run.get("stdout", "").strip(),
                duration_ms=run.get("elapsed_ms", 0),
                metadata=meta,
            )
        stderr = (run.get("stderr") or "").strip()
        error = run.get("error", "Command failed")
        return Receipt.failure(
            adapter=self.name,
            action_id=context.action.id,
            error=f"{error}: {stderr}" if stderr else error,
            duration_ms=run.get("elapsed_ms", 0),
            metadata={**meta, "return_code": run.get("return_code")},
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
