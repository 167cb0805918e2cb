"""
ProvisionConfig — everything a provisioning run needs, loaded from
provision.yml.

Defaults reproduce the stock photobooth image (Python 3.11, PyTorch
2.1.2 on CUDA 12.1, OpenCV 4.10.0.84 pinned), so a missing config file
still yields a complete run.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

from comfyprov.core.models.constraints import VersionConstraintSet

DEFAULT_APP_REPO = "https://github.com/Stiryourmind/ComfyUI-v0.3.59-for-AI-booth.git"

DEFAULT_OPENCV_PINS = [
    "opencv-python==4.10.0.84",
    "opencv-python-headless==4.10.0.84",
    "opencv-contrib-python==4.10.0.84",
    "opencv-contrib-python-headless==4.10.0.84",
]


class SystemConfig(BaseModel):
    """OS-level preparation (apt, interpreter, timezone)."""

    enabled: bool = True
    timezone: str = "UTC"
    base_packages: list[str] = Field(
        default_factory=lambda: ["tzdata", "software-properties-common"]
    )
    ppa: str | None = "ppa:deadsnakes/ppa"
    packages: list[str] = Field(
        default_factory=lambda: [
            "python3.11",
            "python3.11-dev",
            "python3.11-venv",
            "python3.11-distutils",
            "git",
            "build-essential",
            "cmake",
            "curl",
            "libopencv-dev",
            "libglib2.0-0",
            "libsm6",
            "libxext6",
            "libxrender-dev",
            "libgomp1",
            "libgl1",
            "libglx-mesa0",
            "fonts-dejavu-core",
            "fontconfig",
        ]
    )
    get_pip_url: str = "https://bootstrap.pypa.io/get-pip.py"
    set_default_python: bool = True


class PythonConfig(BaseModel):
    """The interpreter being provisioned (not the one running comfyprov)."""

    executable: str = "python3.11"
    no_cache: bool = True


class AppConfig(BaseModel):
    """The main application checkout."""

    repo: str = DEFAULT_APP_REPO
    branch: str = "main"
    app_dir: str = "/workspace/app"
    dir_name: str = "ComfyUI"
    requirements: str = "requirements.txt"

    @property
    def path(self) -> Path:
        return Path(self.app_dir) / self.dir_name


class TorchConfig(BaseModel):
    """The ML runtime wheels and where to get them."""

    packages: list[str] = Field(
        default_factory=lambda: [
            "torch==2.1.2+cu121",
            "torchvision==0.16.2+cu121",
            "torchaudio==2.1.2+cu121",
        ]
    )
    index_url: str | None = "https://download.pytorch.org/whl/cu121"


class PackagesConfig(BaseModel):
    """Extra Python packages outside any requirements file."""

    required: list[str] = Field(default_factory=lambda: ["facenet-pytorch==2.6.0"])
    optional: list[str] = Field(
        default_factory=lambda: ["insightface==0.7.3", "onnxruntime", "onnxruntime-gpu"]
    )


class PluginsConfig(BaseModel):
    """Custom-node repositories cloned into the app's plugin directory."""

    dir_name: str = "custom_nodes"
    list_file: str | None = None       # default: <app>/custom_nodes.txt if present
    repositories: list[str] = Field(default_factory=list)
    required: list[str] = Field(
        default_factory=lambda: ["https://github.com/KY-2000/ComfyUI_PuLID_Flux_ll_FaceNet"]
    )
    special_cases: dict[str, str] = Field(
        default_factory=lambda: {"comfyui-manager": "comfyui-manager"}
    )
    install_requirements: bool = True


class VerificationConfig(BaseModel):
    enabled: bool = True
    accelerator_required: bool = True
    imports: list[str] = Field(default_factory=lambda: ["facenet_pytorch"])
    matrix_size: int = 1000
    device_index: int = 0


class WrappersConfig(BaseModel):
    """Generated start script and container entrypoint."""

    enabled: bool = True
    start_script: str = "/workspace/start_comfyui.sh"
    entrypoint: str = "/workspace/entrypoint.sh"
    listen: str = "0.0.0.0"
    port: int = 8188
    title: str = "ComfyUI AI Photobooth"


class ProvisionConfig(BaseModel):
    """Root configuration model."""

    version: int = 1
    name: str = "comfyui-photobooth"

    workspace: str = "/workspace"
    log_file: str = "provisioning.log"      # relative to workspace
    step_log_file: str = "provisioning.ndjson"
    constraints_file: str = "/tmp/comfyprov-constraints.txt"

    system: SystemConfig = Field(default_factory=SystemConfig)
    python: PythonConfig = Field(default_factory=PythonConfig)
    app: AppConfig = Field(default_factory=AppConfig)
    torch: TorchConfig = Field(default_factory=TorchConfig)
    pins: VersionConstraintSet = Field(
        default_factory=lambda: VersionConstraintSet.from_specs(DEFAULT_OPENCV_PINS)
    )
    packages: PackagesConfig = Field(default_factory=PackagesConfig)
    plugins: PluginsConfig = Field(default_factory=PluginsConfig)
    verification: VerificationConfig = Field(default_factory=VerificationConfig)
    wrappers: WrappersConfig = Field(default_factory=WrappersConfig)

    def _in_workspace(self, name: str) -> Path:
        path = Path(name)
        return path if path.is_absolute() else Path(self.workspace) / path

    @property
    def log_path(self) -> Path:
        return self._in_workspace(self.log_file)

    @property
    def step_log_path(self) -> Path:
        return self._in_workspace(self.step_log_file)

    @property
    def plugins_path(self) -> Path:
        return self.app.path / self.plugins.dir_name

    def plugin_list_path(self) -> Path | None:
        """The repository list file, or None when no list exists."""
        if self.plugins.list_file:
            return Path(self.plugins.list_file)
        candidate = self.app.path / "custom_nodes.txt"
        return candidate if candidate.is_file() else None
