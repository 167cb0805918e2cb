"""
Config check use case — validate provision.yml and report issues.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path

from comfyprov.core.config.loader import ConfigError, find_config_file, load_config
from comfyprov.core.models.config import ProvisionConfig
from comfyprov.core.models.constraints import parse_pin
from comfyprov.core.services.repo_list import RepositoryListLoader


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    config: ProvisionConfig | None = None
    config_path: Path | None = None
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "errors": self.errors,
            "warnings": self.warnings,
            "name": self.config.name if self.config else None,
            "pin_count": len(self.config.pins) if self.config else 0,
            "plugin_count": len(self.config.plugins.repositories) if self.config else 0,
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate provisioning configuration and report issues.

    Args:
        config_path: Optional explicit path to provision.yml.

    Returns:
        ConfigCheckResult with validation status and any issues.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
    if config_path is None:
        result.warnings.append("No provision.yml found; built-in defaults apply.")
    result.config_path = config_path

    try:
        config = load_config(config_path)
        result.config = config
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    # Semantic checks
    if not config.pins:
        result.warnings.append("No version pins defined. Plugin installs may move any package.")

    for spec in config.packages.required:
        if "==" in spec:
            try:
                parse_pin(spec)
            except ValueError as e:
                result.errors.append(f"packages.required: {e}")

    if not 0 < config.wrappers.port < 65536:
        result.errors.append(f"wrappers.port out of range: {config.wrappers.port}")

    if config.verification.matrix_size <= 0:
        result.errors.append("verification.matrix_size must be positive")

    if config.plugins.list_file and not Path(config.plugins.list_file).is_file():
        result.warnings.append(f"Plugin list file does not exist yet: {config.plugins.list_file}")

    inline = RepositoryListLoader(config.plugins.special_cases).parse(
        [*config.plugins.repositories, *config.plugins.required]
    )
    result.warnings += [f"plugins: {w}" for w in inline.warnings]

    if not config.system.enabled and shutil.which(config.python.executable) is None:
        result.warnings.append(
            f"System setup is disabled but {config.python.executable} is not on PATH."
        )

    result.valid = len(result.errors) == 0
    return result
