"""
Mock adapter — universal test double for all adapter operations.

Used in mock mode to simulate adapter behavior without touching
external tools. Configurable to return success, failure, or custom
responses per action, keyed either by action ID or by operation.
"""

from __future__ import annotations

from comfyprov.adapters.base import Adapter, ExecutionContext
from comfyprov.core.models.action import Receipt


class MockAdapter(Adapter):
    """Universal mock adapter for testing.

    By default, returns success for everything. Can be configured
    with custom responses per action ID or per ``operation`` param.
    """

    def __init__(
        self,
        adapter_name: str = "mock",
        default_output: str = "[mock] executed",
    ):
        self._name = adapter_name
        self._default_output = default_output
        self._responses: dict[str, Receipt] = {}
        self._call_log: list[ExecutionContext] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[ExecutionContext]:
        """All execution contexts this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        """Number of times execute has been called."""
        return len(self._call_log)

    def calls_for(self, operation: str) -> list[ExecutionContext]:
        """Calls whose ``operation`` param matches."""
        return [c for c in self._call_log if c.params.get("operation") == operation]

    def set_response(self, key: str, receipt: Receipt) -> None:
        """Set a custom response for an action ID or an operation name."""
        self._responses[key] = receipt

    def set_failure(self, key: str, error: str = "Mock failure") -> None:
        """Configure an action ID or operation to fail."""
        self._responses[key] = Receipt.failure(
            adapter=self._name,
            action_id=key,
            error=error,
        )

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        self._call_log.append(context)

        for key in (context.action.id, context.params.get("operation")):
            if key and key in self._responses:
                return self._responses[key]

        return Receipt.success(
            adapter=self._name,
            action_id=context.action.id,
            output=self._default_output,
            metadata={"mock": True},
        )

    def reset(self) -> None:
        """Clear call log and custom responses."""
        self._call_log.clear()
        self._responses.clear()
