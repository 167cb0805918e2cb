"""
Version pin enforcer — force exact versions back after other installs.

Plugin requirement files routinely pull in a newer build of a pinned
package as a side effect of resolving their own dependencies. The
enforcer undoes that: remove whatever is installed, then install exactly
the pinned versions with dependency resolution switched off, so the
installer has no reason to "fix" the pin upward again.
"""

from __future__ import annotations

import logging

from comfyprov.adapters.registry import AdapterRegistry
from comfyprov.core.models.action import Receipt
from comfyprov.core.models.constraints import VersionConstraintSet
from comfyprov.core.models.step import Step, StepPolicy

logger = logging.getLogger(__name__)


class PinEnforcer:
    """Re-assert a VersionConstraintSet through the pip adapter."""

    def __init__(self, registry: AdapterRegistry, pip_adapter: str = "pip"):
        self._registry = registry
        self._pip = pip_adapter

    def enforce(self, constraints: VersionConstraintSet) -> Receipt:
        """Make the installed versions of ``constraints`` exactly the pins.

        Uninstall failures (typically "not installed") are logged and
        ignored. A failed install of the pinned set fails the receipt.
        """
        if not constraints:
            return Receipt.skip(
                adapter="pins",
                action_id="enforce",
                reason="No version pins configured",
            )

        packages = constraints.packages
        removed = self._registry.run(
            self._pip, "uninstall", packages=packages, use_constraints=False
        )
        if removed.failed:
            logger.warning("Uninstall of pinned packages reported: %s", removed.error)

        specs = constraints.requirement_specs()
        installed = self._registry.run(
            self._pip,
            "install",
            packages=specs,
            no_deps=True,
            force_reinstall=True,
            use_constraints=False,
        )
        if installed.failed:
            return Receipt.failure(
                adapter="pins",
                action_id="enforce",
                error=f"Failed to install pinned versions: {installed.error}",
                metadata={"pins": specs},
            )

        logger.info("🔒 Pinned %s", ", ".join(specs))
        status = "skipped" if installed.skipped else "ok"
        return Receipt(
            adapter="pins",
            action_id="enforce",
            status=status,
            output=installed.output if status == "skipped" else f"Pinned {len(specs)} packages",
            metadata={"pins": specs, "uninstall_ok": not removed.failed},
        )

    def step(
        self,
        name: str,
        constraints: VersionConstraintSet,
        description: str = "",
    ) -> Step:
        """A fatal pipeline step that enforces ``constraints``."""
        return Step(
            name=name,
            action=lambda: self.enforce(constraints),
            policy=StepPolicy.FATAL,
            description=description or f"Enforce {len(constraints)} version pins",
        )
