"""
Shell command adapter — execute arbitrary shell commands.

Used for the few provisioning actions that have no dedicated
collaborator: the pip bootstrap script and update-alternatives.
"""

from __future__ import annotations

import logging

from comfyprov.adapters.base import Adapter, ExecutionContext
from comfyprov.core.execution.subprocess_runner import run_subprocess
from comfyprov.core.models.action import Receipt

logger = logging.getLogger(__name__)


class ShellCommandAdapter(Adapter):
    """Execute shell commands and capture output.

    Action params:
        operation (str): 'run'.
        command (str): Executed by ``bash -o pipefail -c``, so a failing
            stage of a pipeline fails the whole command.
        needs_root (bool): Escalate when not root (default: False).
        cwd (str): Working directory (default: context.working_dir).
    """

    @property
    def name(self) -> str:
        return "shell"

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        if not context.params.get("command"):
            return False, "Missing required param: 'command'"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        command = context.params["command"]
        cmd = ["bash", "-o", "pipefail", "-c", command]
        logger.debug("shell: %s", command)
        run = run_subprocess(
            cmd,
            needs_root=bool(context.params.get("needs_root", False)),
            cwd=context.working_dir,
        )
        return self._receipt(context, run, cmd)
