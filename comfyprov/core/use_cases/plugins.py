"""
Plugins use case — show which repositories a run would clone, and where.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from comfyprov.core.models.config import ProvisionConfig
from comfyprov.core.services.repo_list import RepositoryList
from comfyprov.core.use_cases.provision import load_plugin_entries


@dataclass
class PluginsResult:
    repositories: RepositoryList | None = None
    list_path: Path | None = None
    plugins_dir: Path | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        result: dict = {
            "list_file": str(self.list_path) if self.list_path else None,
            "plugins_dir": str(self.plugins_dir) if self.plugins_dir else None,
        }
        if self.repositories is not None:
            result.update(self.repositories.to_dict())
        return result


def list_plugins(config: ProvisionConfig) -> PluginsResult:
    """Parse the plugin sources ``config`` points at, without cloning."""
    list_path = config.plugin_list_path()
    if config.plugins.list_file and list_path is not None and not list_path.is_file():
        return PluginsResult(list_path=list_path, error=f"Plugin list not found: {list_path}")

    return PluginsResult(
        repositories=load_plugin_entries(config),
        list_path=list_path,
        plugins_dir=config.plugins_path,
    )
