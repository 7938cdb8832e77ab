"""Measurement builders shared by the tests."""

import gtsam
import numpy as np

from rpgo.pose_graph import loop_closure, odometry

ODOM_COV_2D = np.diag([1e-4, 1e-4, 1e-5])
LC_COV_2D = np.diag([1e-2, 1e-2, 1e-3])


def straight_chain(num_poses: int, step: float = 1.0, cov=ODOM_COV_2D):
    """Odometry moving ``step`` metres along x between consecutive keys."""
    return [
        odometry(i, i + 1, gtsam.Pose2(step, 0.0, 0.0), cov) for i in range(num_poses - 1)
    ]


def chain_poses(edges):
    """Dead-reckoned poses of an odometry chain starting at the origin."""
    poses = {edges[0].from_key: gtsam.Pose2()}
    for edge in edges:
        poses[edge.to_key] = poses[edge.from_key].compose(edge.transform)
    return poses


def true_loop_closure(poses, from_key: int, to_key: int, cov=LC_COV_2D, offset=(0.0, 0.0, 0.0)):
    """Loop closure agreeing with ``poses``, optionally perturbed by ``offset``."""
    measured = poses[from_key].between(poses[to_key])
    measured = measured.compose(gtsam.Pose2(*offset))
    return loop_closure(from_key, to_key, measured, cov)
