"""
Provision use case — the full machine setup, start to finish.

Runs in two phases over one step log:

    1. system      OS packages, interpreter, app checkout, pinned stack
    2. plugins     custom nodes, their requirements, re-lock, verify,
                   wrapper scripts, cleanup

The split exists because the plugin list may live inside the app
repository, which only exists once phase 1 has cloned it. A fatal
failure in phase 1 means phase 2 never starts.
"""

from __future__ import annotations

import logging
import shlex
from dataclasses import dataclass
from pathlib import Path

from comfyprov.adapters.python.pip import PipAdapter
from comfyprov.adapters.registry import AdapterRegistry
from comfyprov.adapters.shell.command import ShellCommandAdapter
from comfyprov.adapters.shell.filesystem import FilesystemAdapter
from comfyprov.adapters.system.apt import AptAdapter
from comfyprov.adapters.vcs.git import GitAdapter
from comfyprov.core.engine.pipeline import PipelineResult, run_pipeline
from comfyprov.core.engine.steps import adapter_step
from comfyprov.core.models.action import Receipt
from comfyprov.core.models.config import ProvisionConfig
from comfyprov.core.models.repository import RepositoryEntry
from comfyprov.core.models.step import Step, StepPolicy
from comfyprov.core.persistence.step_log import StepLog
from comfyprov.core.services.pin_enforcer import PinEnforcer
from comfyprov.core.services.repo_list import (
    RepositoryList,
    RepositoryListLoader,
    read_repository_lines,
)
from comfyprov.core.services.runtime_probe import RuntimeProbe, SubprocessRuntimeProbe
from comfyprov.core.services.verification import verification_step
from comfyprov.core.services.wrappers import wrapper_steps
from comfyprov.core.use_cases.verify import expectations_from_config

logger = logging.getLogger(__name__)

FATAL = StepPolicy.FATAL
BEST_EFFORT = StepPolicy.BEST_EFFORT


@dataclass
class ProvisionResult:
    """Result of a provisioning run."""

    pipeline: PipelineResult | None = None
    repositories: RepositoryList | None = None
    dry_run: bool = False
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.pipeline is not None and self.pipeline.completed

    def to_dict(self) -> dict:
        result: dict = {"dry_run": self.dry_run}
        if self.error:
            result["error"] = self.error
            return result
        if self.pipeline:
            result.update(self.pipeline.to_dict())
        if self.repositories is not None:
            result["repositories"] = self.repositories.to_dict()
        return result


# ── Wiring ──────────────────────────────────────────────────────


def build_registry(
    config: ProvisionConfig,
    mock_mode: bool = False,
    dry_run: bool = False,
) -> AdapterRegistry:
    """Registry with every adapter a provisioning run uses."""
    registry = AdapterRegistry(mock_mode=mock_mode, dry_run=dry_run)
    registry.register(AptAdapter())
    registry.register(
        PipAdapter(
            python=config.python.executable,
            no_cache=config.python.no_cache,
            constraints_file=config.constraints_file,
        )
    )
    registry.register(GitAdapter())
    registry.register(ShellCommandAdapter())
    registry.register(FilesystemAdapter())
    return registry


def _skipped_step(name: str, reason: str, policy: StepPolicy = FATAL) -> Step:
    return Step(
        name=name,
        action=lambda: Receipt.skip(adapter="pipeline", action_id=name, reason=reason),
        policy=policy,
    )


# ── Phase 1: system + application ───────────────────────────────


def build_system_steps(config: ProvisionConfig, registry: AdapterRegistry) -> list[Step]:
    """OS-level preparation: timezone, apt, interpreter, pip tooling."""
    sys_cfg = config.system
    python = config.python.executable
    tz = shlex.quote(sys_cfg.timezone)

    steps = [
        adapter_step(
            "configure-timezone", registry, "shell", "run",
            policy=BEST_EFFORT,
            description="🕐 Configuring timezone",
            command=f"ln -snf /usr/share/zoneinfo/{tz} /etc/localtime && echo {tz} > /etc/timezone",
            needs_root=True,
        ),
        adapter_step(
            "apt-update", registry, "apt", "update",
            description="📦 Updating package lists",
        ),
        adapter_step(
            "apt-install-base", registry, "apt", "install",
            description="📦 Installing base packages",
            packages=sys_cfg.base_packages,
        ),
    ]

    if sys_cfg.ppa:
        steps += [
            adapter_step(
                "add-python-ppa", registry, "apt", "add_repository",
                description=f"📦 Adding {sys_cfg.ppa}",
                repository=sys_cfg.ppa,
            ),
            adapter_step("apt-update-ppa", registry, "apt", "update"),
        ]

    steps += [
        adapter_step(
            "apt-install-system", registry, "apt", "install",
            description=f"📦 Installing {python} and system libraries",
            packages=sys_cfg.packages,
        ),
        adapter_step(
            "bootstrap-pip", registry, "shell", "run",
            description=f"📦 Installing pip for {python}",
            command=f"curl -fsSL {shlex.quote(sys_cfg.get_pip_url)} | {shlex.quote(python)}",
            needs_root=True,
        ),
    ]

    if sys_cfg.set_default_python:
        target = shlex.quote(f"/usr/bin/{python}")
        steps.append(
            adapter_step(
                "set-default-python", registry, "shell", "run",
                policy=BEST_EFFORT,
                description=f"🔧 Setting {python} as default",
                command=(
                    f"update-alternatives --install /usr/bin/python python {target} 1"
                    f" && update-alternatives --install /usr/bin/python3 python3 {target} 1"
                ),
                needs_root=True,
            )
        )

    steps += [
        adapter_step(
            "upgrade-pip-tooling", registry, "pip", "install",
            description="📦 Upgrading pip, setuptools, wheel",
            packages=["pip", "setuptools", "wheel"],
            upgrade=True,
        ),
        adapter_step(
            "clean-apt-lists", registry, "apt", "clean_lists",
            policy=BEST_EFFORT,
        ),
    ]
    return steps


def build_base_steps(config: ProvisionConfig, registry: AdapterRegistry) -> list[Step]:
    """Phase 1: system setup (if enabled), app checkout, ML stack, first pin."""
    app = config.app
    steps = build_system_steps(config, registry) if config.system.enabled else []

    steps += [
        adapter_step(
            "create-app-dir", registry, "filesystem", "mkdir",
            description="📁 Creating application directory",
            path=app.app_dir,
        ),
        adapter_step(
            "clone-app", registry, "git", "clone",
            description=f"📥 Cloning {app.repo} (branch: {app.branch})",
            url=app.repo,
            destination=str(app.path),
            branch=app.branch,
        ),
        adapter_step(
            "install-torch", registry, "pip", "install",
            description="🔥 Installing PyTorch",
            packages=config.torch.packages,
            index_url=config.torch.index_url,
        ),
        adapter_step(
            "install-app-requirements", registry, "pip", "install_requirements",
            description="📦 Installing application requirements",
            requirements=str(app.path / app.requirements),
        ),
    ]

    if config.pins:
        steps += [
            adapter_step(
                "write-constraints", registry, "filesystem", "write",
                description="🔒 Writing version constraints",
                path=config.constraints_file,
                content=config.pins.constraints_text(),
            ),
            PinEnforcer(registry).step(
                "pin-versions", config.pins, description="🔒 Installing pinned versions"
            ),
        ]

    if config.packages.required:
        steps.append(
            adapter_step(
                "install-required-packages", registry, "pip", "install",
                description="📦 Installing required packages",
                packages=config.packages.required,
            )
        )

    steps.append(
        adapter_step(
            "create-plugins-dir", registry, "filesystem", "mkdir",
            description=f"📁 Creating {config.plugins.dir_name} directory",
            path=str(config.plugins_path),
        )
    )
    return steps


# ── Phase 2: plugins, verification, wrappers ────────────────────


def load_plugin_entries(config: ProvisionConfig) -> RepositoryList:
    """Parse the plugin list file, inline repositories, then required plugins.

    An unreadable list file is reported as a warning; the inline and
    required repositories are still returned.
    """
    lines: list[str] = []
    warnings: list[str] = []

    list_path = config.plugin_list_path()
    if list_path is not None:
        try:
            lines += read_repository_lines(list_path)
            logger.info("📋 Using plugin list %s", list_path)
        except OSError as e:
            warnings.append(f"cannot read plugin list {list_path}: {e}")
            logger.warning("⚠️  Cannot read plugin list %s: %s", list_path, e)
    else:
        logger.info("📋 No plugin list found, using configured repositories only")

    lines += config.plugins.repositories
    lines += config.plugins.required

    parsed = RepositoryListLoader(config.plugins.special_cases).parse(lines)
    for warning in parsed.warnings:
        logger.warning("⚠️  %s", warning)
    parsed.warnings[:0] = warnings
    return parsed


def _clone_plugin_step(
    entry: RepositoryEntry, config: ProvisionConfig, registry: AdapterRegistry
) -> Step:
    return adapter_step(
        f"clone-plugin:{entry.destination_name}", registry, "git", "clone",
        policy=BEST_EFFORT,
        description=f"📦 Cloning {entry.destination_name}",
        url=entry.source_url,
        destination=str(config.plugins_path / entry.destination_name),
    )


def _plugin_requirements_step(
    entry: RepositoryEntry, config: ProvisionConfig, registry: AdapterRegistry
) -> Step:
    return adapter_step(
        f"install-plugin-requirements:{entry.destination_name}", registry, "pip",
        "install_requirements",
        policy=BEST_EFFORT,
        description=f"📦 Installing requirements for {entry.destination_name}",
        requirements=str(config.plugins_path / entry.destination_name / "requirements.txt"),
    )


def _report_versions(config: ProvisionConfig, probe: RuntimeProbe) -> Receipt:
    runtime = probe.runtime_info()
    if not runtime.get("ok"):
        return Receipt.failure(
            adapter="probe",
            action_id="report-versions",
            error=f"Cannot query runtime: {runtime.get('error')}",
        )

    versions = {"torch": runtime.get("version"), "cuda": runtime.get("cuda_version")}
    for package in config.pins.packages:
        versions[package] = probe.package_version(package).get("version")
    accelerator = probe.accelerator_info(config.verification.device_index)
    if accelerator.get("available"):
        versions["gpu"] = accelerator.get("name")

    lines = [f"{name}: {version or 'not installed'}" for name, version in versions.items()]
    logger.info("📊 Installed Versions:")
    for line in lines:
        logger.info("   %s", line)
    return Receipt.success(
        adapter="probe",
        action_id="report-versions",
        output="\n".join(lines),
        metadata={"versions": versions},
    )


def build_plugin_steps(
    config: ProvisionConfig,
    registry: AdapterRegistry,
    repositories: RepositoryList,
    probe: RuntimeProbe | None = None,
) -> list[Step]:
    """Phase 2, in order: clones, optional packages, plugin requirements,
    re-lock, verification, wrappers, cleanup, version report.

    Without a probe (dry-run or mock mode) verification and the version
    report are recorded as skipped.
    """
    steps = [_clone_plugin_step(e, config, registry) for e in repositories.entries]

    if config.packages.optional:
        steps.append(
            adapter_step(
                "install-optional-packages", registry, "pip", "install",
                policy=BEST_EFFORT,
                description="📦 Installing optional packages",
                packages=config.packages.optional,
            )
        )

    if config.plugins.install_requirements:
        steps += [_plugin_requirements_step(e, config, registry) for e in repositories.entries]

    if config.pins:
        steps.append(
            PinEnforcer(registry).step(
                "relock-versions", config.pins, description="🔒 Re-locking pinned versions"
            )
        )

    if config.verification.enabled:
        if probe is None:
            steps.append(_skipped_step("verify-environment", "[dry-run] Would verify environment"))
        else:
            steps.append(
                verification_step(
                    expectations_from_config(config),
                    probe,
                    device_index=config.verification.device_index,
                    matrix_size=config.verification.matrix_size,
                )
            )

    if config.wrappers.enabled:
        steps += wrapper_steps(config, registry)

    steps.append(
        adapter_step(
            "purge-pip-cache", registry, "pip", "cache_purge",
            policy=BEST_EFFORT,
            description="🧹 Cleaning up",
        )
    )
    if config.pins:
        steps.append(
            adapter_step(
                "remove-constraints", registry, "filesystem", "remove",
                policy=BEST_EFFORT,
                path=config.constraints_file,
            )
        )

    if probe is None:
        steps.append(
            _skipped_step("report-versions", "[dry-run] Would report versions", BEST_EFFORT)
        )
    else:
        steps.append(
            Step(
                name="report-versions",
                action=lambda: _report_versions(config, probe),
                policy=BEST_EFFORT,
            )
        )
    return steps


# ── Entry point ─────────────────────────────────────────────────


def run_provisioning(
    config: ProvisionConfig,
    *,
    dry_run: bool = False,
    mock_mode: bool = False,
    registry: AdapterRegistry | None = None,
    probe: RuntimeProbe | None = None,
    step_log_path: Path | None = None,
) -> ProvisionResult:
    """Provision the machine described by ``config``.

    Args:
        config: Provisioning configuration.
        dry_run: Validate every step without side effects.
        mock_mode: Route every adapter call to the mock adapter.
        registry: Pre-configured adapter registry (tests).
        probe: Runtime probe for verification; defaults to the configured
            interpreter unless running dry or mocked.
        step_log_path: NDJSON step log; defaults to the config's, and to
            none at all on a dry run.

    Returns:
        ProvisionResult with the combined pipeline result.
    """
    result = ProvisionResult(dry_run=dry_run)

    if registry is None:
        registry = build_registry(config, mock_mode=mock_mode, dry_run=dry_run)
    if probe is None and not (dry_run or mock_mode):
        probe = SubprocessRuntimeProbe(config.python.executable)
    if step_log_path is None and not dry_run:
        step_log_path = config.step_log_path

    logger.info("=========================================")
    logger.info("🚀 %s provisioning", config.name)
    logger.info("Repository: %s", config.app.repo)
    logger.info("Branch: %s", config.app.branch)
    logger.info("=========================================")

    log = StepLog(step_log_path)
    pipeline = run_pipeline(build_base_steps(config, registry), log)
    result.pipeline = pipeline
    if pipeline.aborted:
        return result

    repositories = load_plugin_entries(config)
    result.repositories = repositories
    logger.info("🔌 %d plugin repositories", len(repositories))
    for name in repositories.destination_names():
        logger.debug("   %s", name)

    pipeline = run_pipeline(build_plugin_steps(config, registry, repositories, probe), log)
    result.pipeline = pipeline
    if pipeline.aborted:
        return result

    logger.info("=========================================")
    logger.info("✅ Provisioning Complete!")
    logger.info("   App: %s", config.app.path)
    logger.info("   Log: %s", config.log_path)
    if config.wrappers.enabled:
        logger.info("🚀 To start: %s", config.wrappers.start_script)
    logger.info("=========================================")
    return result
