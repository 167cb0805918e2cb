"""
Git adapter — repository checkout for the application and its plugins.

Clones are shallow and single-branch. A destination that already
exists is left alone, so re-running a provisioning pass after a partial
failure only fetches what is missing.
"""

from __future__ import annotations

import logging
from pathlib import Path

from comfyprov.adapters.base import Adapter, ExecutionContext
from comfyprov.core.execution.subprocess_runner import run_subprocess
from comfyprov.core.models.action import Receipt

logger = logging.getLogger(__name__)


class GitAdapter(Adapter):
    """Version control operations.

    Action params:
        operation (str): 'clone'.
        url (str): Source repository URL.
        destination (str): Target directory.
        branch (str): Branch to check out (optional; remote default otherwise).
        depth (int): Clone depth (default: 1).
    """

    @property
    def name(self) -> str:
        return "git"

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.params.get("operation", "")
        if operation != "clone":
            return False, f"Unknown operation '{operation}'. Valid: clone"
        if not context.params.get("url"):
            return False, "Missing required param: 'url'"
        if not context.params.get("destination"):
            return False, "Missing required param: 'destination'"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        url = context.params["url"]
        destination = Path(context.params["destination"])
        branch = context.params.get("branch")
        depth = int(context.params.get("depth", 1))

        # A checkout made by "git clone <url>" without a target can end up
        # named after the URL's ".git" suffix.
        legacy = destination.with_name(destination.name + ".git")
        if not destination.exists() and legacy.is_dir():
            logger.info("Renaming %s → %s", legacy.name, destination.name)
            try:
                legacy.rename(destination)
            except OSError as e:
                return Receipt.failure(
                    adapter=self.name,
                    action_id=context.action.id,
                    error=f"Cannot rename {legacy}: {e}",
                )

        if destination.exists():
            return Receipt.skip(
                adapter=self.name,
                action_id=context.action.id,
                reason=f"{destination.name} already exists at {destination}",
                metadata={"url": url, "destination": str(destination)},
            )

        cmd = ["git", "clone", "--depth", str(depth)]
        if branch:
            cmd += ["--branch", branch, "--single-branch"]
        cmd += [url, str(destination)]

        logger.info("git: cloning %s → %s", url, destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        run = run_subprocess(cmd, env_overrides={"GIT_TERMINAL_PROMPT": "0"})
        return self._receipt(
            context,
            run,
            cmd,
            url=url,
            destination=str(destination),
            branch=branch,
        )
