"""
Configuration loader — reads provision.yml into a ProvisionConfig.

Reads YAML, validates against the Pydantic schema, and returns the typed
config. Every field has a default, so running without any file
provisions the stock image.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from comfyprov.core.models.config import ProvisionConfig

logger = logging.getLogger(__name__)

# Default config filename
PROVISION_CONFIG_FILE = "provision.yml"


class ConfigError(Exception):
    """Raised when provisioning configuration is invalid or unreadable."""


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for provision.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to provision.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / PROVISION_CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None) -> ProvisionConfig:
    """Load and validate provisioning configuration.

    Args:
        path: Explicit path to provision.yml. If None, searches upward
            and falls back to the built-in defaults when nothing is found.

    Returns:
        Validated ProvisionConfig.

    Raises:
        ConfigError: If an explicit file is missing, or any file is invalid.
    """
    if path is None:
        path = find_config_file()
        if path is None:
            logger.debug("No %s found, using defaults", PROVISION_CONFIG_FILE)
            return ProvisionConfig()

    if not path.is_file():
        raise ConfigError(f"Config file not found: {path}")

    logger.debug("Loading provisioning config from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    # The YAML may wrap everything under a "provision" key or be flat
    if isinstance(data.get("provision"), dict):
        data = data["provision"]

    try:
        config = ProvisionConfig.model_validate(data)
    except Exception as e:
        raise ConfigError(f"Invalid provisioning configuration: {e}") from e

    logger.info("Loaded config '%s' with %d pins", config.name, len(config.pins))
    return config


def _rebase(value: str | None, old: str, new: str) -> str | None:
    if value is None:
        return None
    old_path, path = Path(old), Path(value)
    if path == old_path or old_path in path.parents:
        return str(Path(new) / path.relative_to(old_path))
    return value


def apply_overrides(
    config: ProvisionConfig,
    *,
    repo: str | None = None,
    branch: str | None = None,
    plugins: Path | None = None,
    workspace: str | None = None,
) -> ProvisionConfig:
    """Return a copy of ``config`` with command-line overrides applied.

    A new workspace moves every path that lived under the old one
    (app dir, wrapper scripts) along with it.
    """
    app = config.app.model_copy(
        update={k: v for k, v in {"repo": repo, "branch": branch}.items() if v}
    )
    plugins_cfg = config.plugins
    if plugins is not None:
        plugins_cfg = plugins_cfg.model_copy(update={"list_file": str(plugins)})

    wrappers = config.wrappers
    updates: dict = {}
    if workspace and workspace != config.workspace:
        old = config.workspace
        app = app.model_copy(update={"app_dir": _rebase(app.app_dir, old, workspace)})
        wrappers = wrappers.model_copy(
            update={
                "start_script": _rebase(wrappers.start_script, old, workspace),
                "entrypoint": _rebase(wrappers.entrypoint, old, workspace),
            }
        )
        updates["workspace"] = workspace

    return config.model_copy(
        update={**updates, "app": app, "plugins": plugins_cfg, "wrappers": wrappers}
    )
