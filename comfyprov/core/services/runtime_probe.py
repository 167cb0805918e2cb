"""
Runtime probe — ask the provisioned interpreter about its ML stack.

The provisioner runs under whatever Python launched it; the environment
being verified is a different interpreter (``python3.11`` by default).
Each probe therefore runs a small snippet in that interpreter which
prints one JSON object as its last line.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from comfyprov.core.execution.subprocess_runner import run_subprocess

logger = logging.getLogger(__name__)


_RUNTIME_SNIPPET = """\
import json
import torch
print(json.dumps({"version": torch.__version__, "cuda_version": torch.version.cuda}))
"""

_ACCELERATOR_SNIPPET = """\
import json, sys
import torch
idx = int(sys.argv[1])
if not torch.cuda.is_available():
    print(json.dumps({"available": False}))
else:
    props = torch.cuda.get_device_properties(idx)
    print(json.dumps({
        "available": True,
        "device_count": torch.cuda.device_count(),
        "name": torch.cuda.get_device_name(idx),
        "memory_gb": round(props.total_memory / 1024 ** 3, 1),
    }))
"""

_PACKAGE_SNIPPET = """\
import json, sys
from importlib import metadata
try:
    print(json.dumps({"version": metadata.version(sys.argv[1])}))
except metadata.PackageNotFoundError:
    print(json.dumps({"version": None}))
"""

_IMPORT_SNIPPET = """\
import importlib, json, sys
mod = importlib.import_module(sys.argv[1])
print(json.dumps({"version": getattr(mod, "__version__", None)}))
"""

_MATMUL_SNIPPET = """\
import json, sys
import torch
size, device = int(sys.argv[1]), sys.argv[2]
x = torch.randn(size, size, device=device)
y = x @ x.T
if device.startswith("cuda"):
    torch.cuda.synchronize()
print(json.dumps({"shape": list(y.shape), "device": device}))
"""


class RuntimeProbe(ABC):
    """Introspection of the ML runtime under provision.

    Every method returns a dict with ``ok`` plus method-specific fields,
    or ``ok=False`` and ``error``. Implementations must not raise.
    """

    @abstractmethod
    def runtime_info(self) -> dict[str, Any]:
        """``{"ok", "version", "cuda_version"}``"""

    @abstractmethod
    def accelerator_info(self, device_index: int = 0) -> dict[str, Any]:
        """``{"ok", "available", "name", "memory_gb"}``"""

    @abstractmethod
    def package_version(self, package: str) -> dict[str, Any]:
        """``{"ok", "version"}``; version is None when not installed."""

    @abstractmethod
    def import_module(self, module: str) -> dict[str, Any]:
        """``{"ok", "version"}``"""

    @abstractmethod
    def matmul(self, size: int, device: str) -> dict[str, Any]:
        """Run ``x @ x.T`` on ``device``: ``{"ok", "shape", "device"}``"""


class SubprocessRuntimeProbe(RuntimeProbe):
    """Probe a separate interpreter through ``<python> -c <snippet>``."""

    def __init__(self, python: str = "python3"):
        self._python = python

    @property
    def python(self) -> str:
        return self._python

    def _run(self, snippet: str, *args: str) -> dict[str, Any]:
        run = run_subprocess([self._python, "-c", snippet, *args])
        if not run["ok"]:
            stderr = (run.get("stderr") or "").strip()
            # The exception line is the most useful part of a traceback.
            last = stderr.splitlines()[-1] if stderr else run.get("error", "probe failed")
            return {"ok": False, "error": last}

        lines = [ln for ln in run.get("stdout", "").splitlines() if ln.strip()]
        if not lines:
            return {"ok": False, "error": "probe produced no output"}
        try:
            data = json.loads(lines[-1])
        except json.JSONDecodeError as e:
            return {"ok": False, "error": f"unreadable probe output: {e}"}
        return {"ok": True, **data}

    def runtime_info(self) -> dict[str, Any]:
        return self._run(_RUNTIME_SNIPPET)

    def accelerator_info(self, device_index: int = 0) -> dict[str, Any]:
        return self._run(_ACCELERATOR_SNIPPET, str(device_index))

    def package_version(self, package: str) -> dict[str, Any]:
        return self._run(_PACKAGE_SNIPPET, package)

    def import_module(self, module: str) -> dict[str, Any]:
        return self._run(_IMPORT_SNIPPET, module)

    def matmul(self, size: int, device: str) -> dict[str, Any]:
        return self._run(_MATMUL_SNIPPET, str(size), device)
