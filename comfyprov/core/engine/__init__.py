"""Pipeline engine."""

from comfyprov.core.engine.pipeline import PipelineResult, run_pipeline
from comfyprov.core.engine.steps import adapter_step

__all__ = ["PipelineResult", "adapter_step", "run_pipeline"]
