"""Conversions between numpy arrays and GTSAM poses.

Planar poses are 3x3 SE(2) matrices, spatial poses are 4x4 SE(3) matrices.
Trajectories are flattened to one row per pose for tabular output.
"""

from typing import Dict, List

import gtsam
import numpy as np
import numpy.typing as npt

from .geometry import SE2, Pose, PoseOps


def rotation_matrix_to_yaw(R: npt.NDArray[np.float64]) -> float:
    """Extract yaw angle from rotation matrix.

    Args:
        R: 2x2 or 3x3 rotation matrix.

    Returns:
        Yaw angle in radians.
    """
    if R.shape in ((2, 2), (3, 3)):
        return float(np.arctan2(R[1, 0], R[0, 0]))
    raise ValueError("Rotation matrix must be 2x2 or 3x3")


def transform_to_gtsam_pose(T: npt.NDArray[np.float64]) -> Pose:
    """Convert a homogeneous transformation matrix to a GTSAM pose.

    Args:
        T: 3x3 SE(2) or 4x4 SE(3) transformation matrix.

    Returns:
        ``gtsam.Pose2`` for 3x3 input, ``gtsam.Pose3`` for 4x4 input.
    """
    T = np.asarray(T, dtype=np.float64)
    if T.shape == (3, 3):
        return gtsam.Pose2(float(T[0, 2]), float(T[1, 2]), rotation_matrix_to_yaw(T[:2, :2]))
    if T.shape == (4, 4):
        rot = gtsam.Rot3(np.ascontiguousarray(T[:3, :3]))
        return gtsam.Pose3(rot, gtsam.Point3(float(T[0, 3]), float(T[1, 3]), float(T[2, 3])))
    raise ValueError("Transform must be a 3x3 SE(2) or 4x4 SE(3) matrix")


def trajectory_columns(ops: PoseOps) -> List[str]:
    if ops is SE2:
        return ["key", "x", "y", "yaw"]
    return ["key", "x", "y", "z", "qw", "qx", "qy", "qz"]


def values_to_trajectory(values: gtsam.Values, ops: PoseOps) -> List[Dict[str, float]]:
    """Flatten the poses in ``values`` into rows ordered by key.

    Args:
        values: GTSAM values holding poses of a single type.
        ops: Capability set of that pose type.

    Returns:
        One dict per pose with the keys of ``trajectory_columns(ops)``.
    """
    rows = []
    for key in sorted(values.keys()):
        pose = ops.value_at(values, key)
        if ops is SE2:
            rows.append({"key": int(key), "x": pose.x(), "y": pose.y(), "yaw": pose.theta()})
            continue
        t = np.asarray(pose.translation(), dtype=np.float64)
        q = pose.rotation().toQuaternion()
        rows.append(
            {
                "key": int(key),
                "x": t[0],
                "y": t[1],
                "z": t[2],
                "qw": q.w(),
                "qx": q.x(),
                "qy": q.y(),
                "qz": q.z(),
            }
        )
    return rows
