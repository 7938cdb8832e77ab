"""Geometry and conversion helpers shared by the 2D and 3D code paths."""

from .conversions import (
    rotation_matrix_to_yaw,
    trajectory_columns,
    transform_to_gtsam_pose,
    values_to_trajectory,
)
from .geometry import SE2, SE3, PoseOps, PoseWithCovariance, ops_for

__all__ = [
    "SE2",
    "SE3",
    "PoseOps",
    "PoseWithCovariance",
    "ops_for",
    "rotation_matrix_to_yaw",
    "trajectory_columns",
    "transform_to_gtsam_pose",
    "values_to_trajectory",
]
