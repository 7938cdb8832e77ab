"""Pytest configuration and fixtures."""

import gtsam
import numpy as np
import pytest

from helpers import chain_poses, straight_chain, true_loop_closure
from rpgo.pose_graph import odometry


@pytest.fixture
def triangle_odometry():
    """Three poses P0 -> P1 -> P2 turning left at each step."""
    cov = np.diag([1e-3, 1e-3, 1e-4])
    return [
        odometry(0, 1, gtsam.Pose2(1.0, 0.0, np.pi / 2), cov),
        odometry(1, 2, gtsam.Pose2(1.0, 0.0, np.pi / 2), cov),
    ]


@pytest.fixture
def triangle_loop(triangle_odometry):
    """Loop closure P2 -> P0 agreeing exactly with the odometry chain."""
    return true_loop_closure(chain_poses(triangle_odometry), 2, 0)


@pytest.fixture
def line_odometry():
    """Eight poses along a straight line with tight odometry."""
    return straight_chain(8)
