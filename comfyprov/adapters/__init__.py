"""Adapters — bindings for the external collaborators a run drives.

Public re-exports for convenient access.
"""

from comfyprov.adapters.base import Adapter, ExecutionContext
from comfyprov.adapters.mock import MockAdapter
from comfyprov.adapters.registry import AdapterRegistry

__all__ = [
    "Adapter",
    "AdapterRegistry",
    "ExecutionContext",
    "MockAdapter",
]
