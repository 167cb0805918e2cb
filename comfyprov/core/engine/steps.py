"""
Step factories — bind an adapter operation into a Step.
"""

from __future__ import annotations

from typing import Any

from comfyprov.adapters.registry import AdapterRegistry
from comfyprov.core.models.step import Step, StepPolicy


def adapter_step(
    name: str,
    registry: AdapterRegistry,
    adapter: str,
    operation: str,
    *,
    policy: StepPolicy = StepPolicy.FATAL,
    description: str = "",
    **params: Any,
) -> Step:
    """A Step whose action dispatches one operation through the registry.

    Example::

        adapter_step("apt-update", registry, "apt", "update")
    """

    def action():
        return registry.run(adapter, operation, **params)

    return Step(name=name, action=action, policy=policy, description=description)
