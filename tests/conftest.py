"""
Shared test fixtures and configuration.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from comfyprov.adapters.mock import MockAdapter
from comfyprov.adapters.registry import AdapterRegistry
from comfyprov.core.models.config import ProvisionConfig
from comfyprov.core.services.runtime_probe import RuntimeProbe


class FakeProbe(RuntimeProbe):
    """In-memory runtime probe.

    ``gpu=None`` means no CUDA device; ``torch=None`` means torch is not
    importable. Every call is recorded in ``calls``.
    """

    def __init__(
        self,
        torch: str | None = "2.1.2+cu121",
        gpu: str | None = "NVIDIA GeForce RTX 4090",
        memory_gb: float = 24.0,
        versions: dict[str, str] | None = None,
        import_errors: dict[str, str] | None = None,
        matmul_error: str | None = None,
    ):
        self.torch = torch
        self.gpu = gpu
        self.memory_gb = memory_gb
        self.versions = versions or {}
        self.import_errors = import_errors or {}
        self.matmul_error = matmul_error
        self.calls: list[tuple[str, Any]] = []

    def runtime_info(self) -> dict[str, Any]:
        self.calls.append(("runtime_info", None))
        if self.torch is None:
            return {"ok": False, "error": "ModuleNotFoundError: No module named 'torch'"}
        return {"ok": True, "version": self.torch, "cuda_version": "12.1"}

    def accelerator_info(self, device_index: int = 0) -> dict[str, Any]:
        self.calls.append(("accelerator_info", device_index))
        if self.gpu is None:
            return {"ok": True, "available": False}
        return {
            "ok": True,
            "available": True,
            "device_count": 1,
            "name": self.gpu,
            "memory_gb": self.memory_gb,
        }

    def package_version(self, package: str) -> dict[str, Any]:
        self.calls.append(("package_version", package))
        return {"ok": True, "version": self.versions.get(package)}

    def import_module(self, module: str) -> dict[str, Any]:
        self.calls.append(("import_module", module))
        if module in self.import_errors:
            return {"ok": False, "error": self.import_errors[module]}
        return {"ok": True, "version": None}

    def matmul(self, size: int, device: str) -> dict[str, Any]:
        self.calls.append(("matmul", (size, device)))
        if self.matmul_error:
            return {"ok": False, "error": self.matmul_error}
        if device.startswith("cuda") and self.gpu is None:
            return {"ok": False, "error": "RuntimeError: No CUDA GPUs are available"}
        return {"ok": True, "shape": [size, size], "device": device}


@pytest.fixture
def make_probe():
    """Factory for FakeProbe instances."""
    return FakeProbe


@pytest.fixture
def config(tmp_path: Path) -> ProvisionConfig:
    """A config rooted in tmp_path, with OS-level setup disabled."""
    return ProvisionConfig.model_validate(
        {
            "workspace": str(tmp_path),
            "constraints_file": str(tmp_path / "constraints.txt"),
            "system": {"enabled": False},
            "app": {"app_dir": str(tmp_path / "app")},
            "plugins": {"required": []},
            "wrappers": {
                "start_script": str(tmp_path / "start_comfyui.sh"),
                "entrypoint": str(tmp_path / "entrypoint.sh"),
            },
        }
    )


@pytest.fixture
def mock_adapter() -> MockAdapter:
    return MockAdapter()


@pytest.fixture
def mock_registry(mock_adapter: MockAdapter) -> AdapterRegistry:
    """Registry that routes every action to ``mock_adapter``."""
    registry = AdapterRegistry()
    registry.set_mock_mode(True, mock_adapter)
    return registry
