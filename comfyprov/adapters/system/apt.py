"""
APT adapter — OS package manager operations.

Wraps ``apt-get`` and ``add-apt-repository``. Runs non-interactively;
escalates through ``sudo -n`` when the provisioner is not root.
"""

from __future__ import annotations

import logging

from comfyprov.adapters.base import Adapter, ExecutionContext
from comfyprov.core.execution.subprocess_runner import run_subprocess
from comfyprov.core.models.action import Receipt

logger = logging.getLogger(__name__)

_APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}
_LISTS_DIR = "/var/lib/apt/lists"


class AptAdapter(Adapter):
    """Debian/Ubuntu package installation.

    Action params:
        operation (str): One of 'update', 'install', 'add_repository',
                         'clean_lists'.
        packages (list[str]): Packages to install (for 'install').
        repository (str): Repository spec, e.g. 'ppa:deadsnakes/ppa'
                          (for 'add_repository').
    """

    _VALID_OPS = {"update", "install", "add_repository", "clean_lists"}

    @property
    def name(self) -> str:
        return "apt"

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.params.get("operation", "")
        if operation not in self._VALID_OPS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(self._VALID_OPS))}"
        if operation == "install" and not context.params.get("packages"):
            return False, "Missing required param: 'packages'"
        if operation == "add_repository" and not context.params.get("repository"):
            return False, "Missing required param: 'repository'"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.params["operation"]
        if operation == "update":
            cmd = ["apt-get", "update"]
        elif operation == "install":
            packages = list(context.params["packages"])
            cmd = ["apt-get", "install", "-y", "--no-install-recommends", *packages]
        elif operation == "add_repository":
            cmd = ["add-apt-repository", "-y", context.params["repository"]]
        else:
            cmd = ["rm", "-rf", _LISTS_DIR]

        logger.info("apt: %s", " ".join(cmd))
        run = run_subprocess(cmd, needs_root=True, env_overrides=_APT_ENV)
        return self._receipt(context, run, cmd, operation=operation)
