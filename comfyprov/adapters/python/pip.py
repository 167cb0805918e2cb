"""
Pip adapter — Python package installer operations.

Always drives ``<interpreter> -m pip`` for the interpreter being
provisioned, never the one running comfyprov. A constraints file, when
configured, is handed to every invocation through ``PIP_CONSTRAINT`` so
transitive resolution cannot move a pinned package for the rest of the
run.
"""

from __future__ import annotations

import logging
from pathlib import Path

from comfyprov.adapters.base import Adapter, ExecutionContext
from comfyprov.core.execution.subprocess_runner import run_subprocess
from comfyprov.core.models.action import Receipt

logger = logging.getLogger(__name__)


class PipAdapter(Adapter):
    """Install and remove Python distributions.

    Action params:
        operation (str): One of 'install', 'install_requirements',
                         'uninstall', 'cache_purge'.
        packages (list[str]): Requirement specs (install/uninstall).
        requirements (str): Path to a requirements file (install_requirements).
        index_url (str): Alternate index (install).
        no_deps (bool): Disable dependency resolution (install).
        force_reinstall (bool): Reinstall even when satisfied (install).
        upgrade (bool): Pass --upgrade (install).
        use_constraints (bool): Apply the run's constraints file (default True).
    """

    _VALID_OPS = {"install", "install_requirements", "uninstall", "cache_purge"}

    def __init__(
        self,
        python: str = "python3",
        no_cache: bool = True,
        constraints_file: str | Path | None = None,
    ):
        self._python = python
        self._no_cache = no_cache
        self._constraints_file = Path(constraints_file) if constraints_file else None

    @property
    def name(self) -> str:
        return "pip"

    @property
    def python(self) -> str:
        return self._python

    def validate(self, context: ExecutionContext) -> tuple[bool, str]:
        operation = context.params.get("operation", "")
        if operation not in self._VALID_OPS:
            return False, f"Unknown operation '{operation}'. Valid: {', '.join(sorted(self._VALID_OPS))}"
        if operation in ("install", "uninstall") and not context.params.get("packages"):
            return False, "Missing required param: 'packages'"
        if operation == "install_requirements" and not context.params.get("requirements"):
            return False, "Missing required param: 'requirements'"
        return True, ""

    def execute(self, context: ExecutionContext) -> Receipt:
        operation = context.params["operation"]

        if operation == "install_requirements":
            requirements = Path(context.params["requirements"])
            if not requirements.is_file():
                return Receipt.skip(
                    adapter=self.name,
                    action_id=context.action.id,
                    reason=f"No requirements file at {requirements}",
                    metadata={"requirements": str(requirements)},
                )

        cmd = self.build_command(context.params)
        env = self._env(context.params.get("use_constraints", True))
        logger.info("pip: %s", " ".join(cmd[3:]))
        run = run_subprocess(cmd, env_overrides=env, cwd=context.params.get("cwd"))
        return self._receipt(
            context,
            run,
            cmd,
            operation=operation,
            packages=list(context.params.get("packages", [])),
            constraints=str(self._constraints_file) if env else None,
        )

    def build_command(self, params: dict) -> list[str]:
        """Translate action params into a pip command line."""
        operation = params["operation"]
        base = [self._python, "-m", "pip"]

        if operation == "uninstall":
            return [*base, "uninstall", "-y", *params["packages"]]
        if operation == "cache_purge":
            return [*base, "cache", "purge"]

        cmd = [*base, "install"]
        if self._no_cache:
            cmd.append("--no-cache-dir")
        if params.get("upgrade"):
            cmd.append("--upgrade")
        if params.get("force_reinstall"):
            cmd.append("--force-reinstall")
        if params.get("no_deps"):
            cmd.append("--no-deps")
        if params.get("index_url"):
            cmd += ["--index-url", params["index_url"]]

        if operation == "install_requirements":
            cmd += ["-r", str(params["requirements"])]
        else:
            cmd += list(params["packages"])
        return cmd

    def _env(self, use_constraints: bool) -> dict[str, str]:
        if (
            use_constraints
            and self._constraints_file is not None
            and self._constraints_file.is_file()
        ):
            return {"PIP_CONSTRAINT": str(self._constraints_file)}
        return {}
