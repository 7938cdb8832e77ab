"""RPGO - Robust Pose Graph Optimization.

A Python library for pose graph optimization that rejects spurious loop
closures with pairwise consistency maximization (PCM) and graduated
non-convexity (GNC) before solving with GTSAM.
"""

from .backend import IncrementalOptimizer, UpdateReport, UpdateStage, UpdateStatus
from .errors import (
    CliqueSearchTimeout,
    DuplicateKeyError,
    MalformedMeasurementError,
    OptimizationFailure,
    RpgoError,
    SolverConvergenceFailure,
    UnderconstrainedGraphWarning,
    UnsupportedConfigurationError,
)
from .params import (
    CliqueStrategy,
    GncMode,
    GncParams,
    PcmMode,
    PcmParams,
    RobustSolverParams,
    SolverParams,
    Verbosity,
)
from .pose_graph import Measurement, MeasurementKind, PoseGraph, loop_closure, odometry

__version__ = "0.1.0"

__all__ = [
    "CliqueSearchTimeout",
    "CliqueStrategy",
    "DuplicateKeyError",
    "GncMode",
    "GncParams",
    "IncrementalOptimizer",
    "MalformedMeasurementError",
    "Measurement",
    "MeasurementKind",
    "OptimizationFailure",
    "PcmMode",
    "PcmParams",
    "PoseGraph",
    "RobustSolverParams",
    "RpgoError",
    "SolverConvergenceFailure",
    "SolverParams",
    "UnderconstrainedGraphWarning",
    "UnsupportedConfigurationError",
    "UpdateReport",
    "UpdateStage",
    "UpdateStatus",
    "Verbosity",
    "__version__",
    "loop_closure",
    "odometry",
]
