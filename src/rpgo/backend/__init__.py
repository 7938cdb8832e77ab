"""Optimization back-end: problem assembly and the incremental optimizer."""

from .problem import Anchor, OptimizationProblem
from .incremental import IncrementalOptimizer, UpdateReport, UpdateStage, UpdateStatus

__all__ = [
    "Anchor",
    "IncrementalOptimizer",
    "OptimizationProblem",
    "UpdateReport",
    "UpdateStage",
    "UpdateStatus",
]
