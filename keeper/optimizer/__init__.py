"""Batching optimizer for stream settlement."""

from keeper.optimizer.models import (
    Batch,
    OptimizationResult,
    PriorityTier,
    WorkItem,
)
from keeper.optimizer.optimizer import GasModel, optimize

__all__ = [
    "Batch",
    "GasModel",
    "OptimizationResult",
    "PriorityTier",
    "WorkItem",
    "optimize",
]
