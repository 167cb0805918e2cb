"""comfyprov — declarative provisioning of GPU hosts for ComfyUI."""

__version__ = "0.1.0"
