"""Pose graph core module using GTSAM.

This module provides the pose graph data model (poses, odometry and loop
closure measurements) and the nonlinear solver used to optimize it.
"""

from .graph import PoseGraph
from .measurement import Measurement, MeasurementKind, loop_closure, odometry
from .node import (
    PoseNode,
    create_noise_model_gaussian,
    create_noise_model_isotropic,
)
from .solver import NonlinearSolver

__all__ = [
    "PoseGraph",
    "PoseNode",
    "Measurement",
    "MeasurementKind",
    "NonlinearSolver",
    "loop_closure",
    "odometry",
    "create_noise_model_gaussian",
    "create_noise_model_isotropic",
]
