"""
Adapter registry: the one dispatch point for adapter operations.

Steps never call adapters directly. They call ``registry.run`` with an
adapter name and operation, and always get a Receipt back.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from comfyprov.adapters.base import Adapter, ExecutionContext
from comfyprov.core.models.action import Action, Receipt

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """Registry and dispatcher for adapters.

    In mock mode every operation goes to the mock adapter (or succeeds
    with a canned receipt). In dry-run mode operations are validated and
    then reported as skipped without executing.
    """

    def __init__(self, mock_mode: bool = False, dry_run: bool = False):
        self._adapters: dict[str, Adapter] = {}
        self._mock_mode = mock_mode
        self._mock_adapter: Adapter | None = None
        self._dry_run = dry_run
        self._counter = 0

    def set_mock_mode(self, enabled: bool, mock_adapter: Adapter | None = None) -> None:
        """Route every operation to ``mock_adapter`` (or a canned success)."""
        self._mock_mode = enabled
        self._mock_adapter = mock_adapter

    def register(self, adapter: Adapter) -> None:
        name = adapter.name
        if name in self._adapters:
            logger.warning("Overwriting existing adapter: %s", name)
        self._adapters[name] = adapter
        logger.debug("Registered adapter: %s", name)

    def run(self, adapter: str, operation: str, **params: Any) -> Receipt:
        """Run ``operation`` on the named adapter. Never raises."""
        start_time = time.monotonic()
        self._counter += 1
        action = Action(
            id=f"{adapter}:{operation}:{self._counter}",
            name=operation,
            adapter=adapter,
            params={"operation": operation, **params},
        )
        context = ExecutionContext(
            action=action,
            cwd=params.get("cwd"),
            dry_run=self._dry_run,
            params=action.params,
        )

        target = self._resolve(action)
        if isinstance(target, Receipt):
            return target

        try:
            is_valid, error_msg = target.validate(context)
        except Exception as e:
            return Receipt.failure(adapter, action.id, error=f"Validation error: {e}")
        if not is_valid:
            return Receipt.failure(adapter, action.id, error=f"Validation failed: {error_msg}")

        if self._dry_run:
            return Receipt.skip(
                adapter=adapter,
                action_id=action.id,
                reason=f"[dry-run] Would execute {adapter}:{operation}",
                metadata={"dry_run": True, "params": _printable(action.params)},
            )

        try:
            receipt = target.execute(context)
        except Exception as e:
            # A bug in one adapter still yields a receipt.
            logger.error("Adapter %s raised during execution: %s", adapter, e)
            receipt = Receipt.failure(adapter, action.id, error=f"Unexpected error: {e}")

        if not receipt.duration_ms:
            receipt.duration_ms = int((time.monotonic() - start_time) * 1000)
        return receipt

    def _resolve(self, action: Action) -> Adapter | Receipt:
        """The adapter to run ``action`` on, or a finished receipt."""
        if self._mock_mode:
            if self._mock_adapter is not None:
                return self._mock_adapter
            return Receipt.success(
                adapter=action.adapter,
                action_id=action.id,
                output=f"[mock] {action.adapter}:{action.id} executed",
                metadata={"mock": True, "dry_run": self._dry_run},
            )
        adapter = self._adapters.get(action.adapter)
        if adapter is None:
            return Receipt.failure(
                adapter=action.adapter,
                action_id=action.id,
                error=f"No adapter registered for '{action.adapter}'",
            )
        return adapter


def _printable(params: dict[str, Any]) -> dict[str, Any]:
    """Params for dry-run metadata, with file contents elided."""
    return {k: ("<content>" if k == "content" else v) for k, v in params.items()}
