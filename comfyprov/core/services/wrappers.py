"""
Wrapper script generator — start script and container entrypoint.

Both scripts are plain bash with paths, host, port and title substituted
from the config; they are written executable through the filesystem
adapter.
"""

from __future__ import annotations

from comfyprov.adapters.registry import AdapterRegistry
from comfyprov.core.engine.steps import adapter_step
from comfyprov.core.models.config import ProvisionConfig
from comfyprov.core.models.step import Step, StepPolicy

SCRIPT_MODE = 0o755


def render_start_script(config: ProvisionConfig) -> str:
    """Launch script: runtime env, cd into the app, run its server."""
    app_dir = config.app.path
    w = config.wrappers
    return f"""\
#!/bin/bash

# Environment setup
export DEBIAN_FRONTEND=noninteractive
export PYTHONUNBUFFERED=1
export TZ={config.system.timezone}

# CUDA allocator
export CUDA_FORCE_PTX_JIT=1
export PYTORCH_CUDA_ALLOC_CONF=expandable_segments:True

cd {app_dir}

echo "🚀 Starting {w.title}..."
echo "🌐 Listening on {w.listen}:{w.port}"
echo ""

{config.python.executable} {app_dir}/main.py --listen {w.listen} --port {w.port}
"""


def render_entrypoint(config: ProvisionConfig) -> str:
    """Container entrypoint: print GPU info, then exec the given command."""
    return f"""\
#!/bin/bash
set -e

echo "========================================="
echo "{config.wrappers.title}"
echo "========================================="
echo ""

echo "📊 System Information:"
{config.python.executable} -c "
import torch
if torch.cuda.is_available():
    print(f'GPU: {{torch.cuda.get_device_name({config.verification.device_index})}}')
    print(f'CUDA: {{torch.version.cuda}}')
    print(f'PyTorch: {{torch.__version__}}')
else:
    print('⚠️  No GPU detected')
"
echo ""

exec "$@"
"""


def wrapper_steps(config: ProvisionConfig, registry: AdapterRegistry) -> list[Step]:
    """Steps writing both scripts with mode 0755."""
    w = config.wrappers
    return [
        adapter_step(
            "write-start-script",
            registry,
            "filesystem",
            "write",
            policy=StepPolicy.FATAL,
            description="Write start script",
            path=w.start_script,
            content=render_start_script(config),
            mode=SCRIPT_MODE,
        ),
        adapter_step(
            "write-entrypoint",
            registry,
            "filesystem",
            "write",
            policy=StepPolicy.FATAL,
            description="Write entrypoint script",
            path=w.entrypoint,
            content=render_entrypoint(config),
            mode=SCRIPT_MODE,
        ),
    ]
